"""Runtime settings with validation.

Settings are loaded from the environment once at startup and validated
at the boundary so the workflow never starts in a half-configured state.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when settings validation fails."""

    pass


DEFAULT_API_BASE = "https://api.vectorplane.io"
DEFAULT_WORK_DIR_NAME = "vectorplane-azure-connect"

EXCHANGE_PATH = "/api/v1/onboarding/azure/pairing-exchange"
ERROR_REPORT_PATH = "/api/v1/onboarding/azure/report-error"
COMPLETION_PATH = "/api/v1/onboarding/azure/complete"

MAX_CODE_ATTEMPTS = 3

# Entra ID needs a moment before restored objects show up in reads
DEFAULT_PROPAGATION_DELAY_SECONDS = 5
MAX_PROPAGATION_DELAY_SECONDS = 120

DEFAULT_HTTP_TIMEOUT_SECONDS = 30
CALLBACK_CONNECT_TIMEOUT_SECONDS = 30
CALLBACK_TOTAL_TIMEOUT_SECONDS = 60

DEFAULT_TERRAFORM_TIMEOUT_SECONDS = 1800
MIN_TERRAFORM_TIMEOUT_SECONDS = 60
DEFAULT_AZ_TIMEOUT_SECONDS = 120

TFVARS_FILENAME = "terraform.tfvars.json"

VALID_API_BASE_PATTERN = r"^https?://[^\s/]+(:\d+)?(/[^\s]*)?$"


@dataclass(frozen=True)
class Settings:
    """Onboarding settings loaded from environment variables.

    All fields are validated at construction time. Invalid settings raise
    ConfigurationError listing every problem at once.
    """

    api_base: str = DEFAULT_API_BASE
    work_dir: Path = field(default_factory=lambda: Path.home() / DEFAULT_WORK_DIR_NAME)

    terraform_binary: str = "terraform"
    az_binary: str = "az"

    max_code_attempts: int = MAX_CODE_ATTEMPTS
    propagation_delay_seconds: int = DEFAULT_PROPAGATION_DELAY_SECONDS

    http_timeout_seconds: int = DEFAULT_HTTP_TIMEOUT_SECONDS
    terraform_timeout_seconds: int = DEFAULT_TERRAFORM_TIMEOUT_SECONDS
    az_timeout_seconds: int = DEFAULT_AZ_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        errors: list[str] = []

        if not self.api_base:
            errors.append("VP_API_BASE is required")
        elif not re.match(VALID_API_BASE_PATTERN, self.api_base):
            errors.append(f"VP_API_BASE must be an http(s) URL: {self.api_base}")

        if self.max_code_attempts < 1:
            errors.append("max_code_attempts must be at least 1")

        if not (0 <= self.propagation_delay_seconds <= MAX_PROPAGATION_DELAY_SECONDS):
            errors.append(
                f"VP_PROPAGATION_DELAY must be between 0 and "
                f"{MAX_PROPAGATION_DELAY_SECONDS} seconds"
            )

        if self.terraform_timeout_seconds < MIN_TERRAFORM_TIMEOUT_SECONDS:
            errors.append(
                f"VP_TERRAFORM_TIMEOUT must be at least {MIN_TERRAFORM_TIMEOUT_SECONDS} seconds"
            )

        if self.http_timeout_seconds < 1:
            errors.append("http_timeout_seconds must be at least 1")

        if self.work_dir.exists() and not self.work_dir.is_dir():
            errors.append(f"VP_WORK_DIR is not a directory: {self.work_dir}")

        if errors:
            error_msg = "Settings validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def exchange_url(self) -> str:
        return self.api_base.rstrip("/") + EXCHANGE_PATH

    @property
    def error_report_url(self) -> str:
        return self.api_base.rstrip("/") + ERROR_REPORT_PATH

    @property
    def completion_url(self) -> str:
        return self.api_base.rstrip("/") + COMPLETION_PATH

    @property
    def tfvars_path(self) -> Path:
        return self.work_dir / TFVARS_FILENAME

    @classmethod
    def from_env(cls, **overrides: object) -> Settings:
        """Load settings from environment variables.

        Environment Variables:
            VP_API_BASE: VectorPlane backend base URL (default: production)
            VP_WORK_DIR: Workspace holding the Terraform module and state
                (default: ~/vectorplane-azure-connect)
            VP_TERRAFORM_BIN: Terraform executable (default: terraform)
            VP_AZ_BIN: Azure CLI executable (default: az)
            VP_PROPAGATION_DELAY: Seconds to wait after restoring deleted
                directory objects (default: 5)
            VP_TERRAFORM_TIMEOUT: Timeout for each Terraform command (default: 1800)

        Keyword overrides (e.g. from CLI options) take precedence over the
        environment when not None.
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None or value == "":
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        values: dict[str, object] = {
            "api_base": os.environ.get("VP_API_BASE") or DEFAULT_API_BASE,
            "work_dir": Path(
                os.environ.get("VP_WORK_DIR") or Path.home() / DEFAULT_WORK_DIR_NAME
            ).expanduser(),
            "terraform_binary": os.environ.get("VP_TERRAFORM_BIN") or "terraform",
            "az_binary": os.environ.get("VP_AZ_BIN") or "az",
            "propagation_delay_seconds": get_int(
                "VP_PROPAGATION_DELAY", DEFAULT_PROPAGATION_DELAY_SECONDS
            ),
            "terraform_timeout_seconds": get_int(
                "VP_TERRAFORM_TIMEOUT", DEFAULT_TERRAFORM_TIMEOUT_SECONDS
            ),
        }
        for key, value in overrides.items():
            if value is not None:
                values[key] = Path(value).expanduser() if key == "work_dir" else value

        return cls(**values)  # type: ignore[arg-type]
