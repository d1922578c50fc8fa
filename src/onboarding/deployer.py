"""Terraform init/apply orchestration.

Apply is never retried here: repeating it against unknown partial state
risks conflicting mutations. Recovery is re-running the whole workflow,
which re-enters reconciliation first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .errors import ApplyFailed, EngineInitFailed
from .terraform import TerraformError, TerraformRunner, summarize_errors

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    """Successful apply: the engine's summary plus root module outputs."""

    output: str
    outputs: dict[str, Any] = field(default_factory=dict)


class ApplyOrchestrator:
    def __init__(self, runner: TerraformRunner) -> None:
        self._runner = runner

    def init(self) -> None:
        """Run terraform init.

        Raises:
            EngineInitFailed: If init fails or terraform cannot be run.
        """
        try:
            result = self._runner.init()
        except TerraformError as e:
            raise EngineInitFailed(str(e), detail="terraform init failed") from e

        if not result.ok:
            logger.error("terraform init failed", extra={"output": result.output[-2000:]})
            raise EngineInitFailed(
                "Terraform initialization failed.",
                detail="terraform init failed",
            )

    def apply(self) -> ApplyResult:
        """Run terraform apply and collect outputs.

        Raises:
            ApplyFailed: With a bounded error summary for telemetry.
        """
        try:
            result = self._runner.apply()
        except TerraformError as e:
            raise ApplyFailed(str(e), detail=str(e)[:500]) from e

        if not result.ok:
            summary = summarize_errors(result.output)
            logger.error("terraform apply failed", extra={"summary": summary})
            raise ApplyFailed("Deployment failed.", detail=summary, output=result.output)

        try:
            outputs = self._runner.outputs()
        except TerraformError as e:
            # Resources are provisioned; the callback can go out with partial facts
            logger.warning(f"Could not read terraform outputs: {e}")
            outputs = {}

        return ApplyResult(output=result.output, outputs=outputs)
