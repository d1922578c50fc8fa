"""Persistence of the onboarding configuration as Terraform variables.

terraform.tfvars.json is the only durable artifact between a failed run
and its retry besides Terraform's own state, so writes are atomic.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from .models import OnboardingConfig

logger = logging.getLogger(__name__)


class ConfigStore:
    """Reads and writes the OnboardingConfig at a fixed path."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def save(self, config: OnboardingConfig) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(config.to_tfvars(), indent=2) + "\n"

        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            # The file carries the callback secret
            tmp_path.chmod(0o600)
            tmp_path.replace(self._path)
        except Exception:
            tmp_path.unlink(missing_ok=True)
            raise

        logger.debug(f"Saved onboarding config to {self._path}")

    def load(self) -> OnboardingConfig:
        """Load the persisted config.

        Raises:
            FileNotFoundError: If nothing has been persisted yet.
            ValueError: If the file is not a valid config.
        """
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"{self._path} is not valid JSON: {e}") from e
        try:
            return OnboardingConfig.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"{self._path} is not a valid onboarding config: {e}") from e
