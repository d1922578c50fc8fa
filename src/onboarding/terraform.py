"""Terraform CLI runner.

Each command is a blocking subprocess returning its exit status and
combined output. Callers decide what a non-zero exit means; only a
missing binary or a timeout raises here.
"""

from __future__ import annotations

import json
import logging
import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .config import DEFAULT_TERRAFORM_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

MAX_ERROR_SUMMARY_CHARS = 500
MAX_ERROR_SUMMARY_LINES = 3

ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m")
# Terraform frames diagnostics with box-drawing bars
DIAGNOSTIC_FRAME_CHARS = "\r│"


class TerraformError(Exception):
    """Raised when terraform cannot be run at all."""

    pass


@dataclass(frozen=True)
class CommandResult:
    """Exit status and combined stdout/stderr of a terraform command."""

    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def clean_output(text: str) -> str:
    """Strip ANSI colour codes, diagnostic frame characters and indentation."""
    cleaned = ANSI_ESCAPE_PATTERN.sub("", text)
    cleaned = cleaned.translate({ord(c): None for c in DIAGNOSTIC_FRAME_CHARS})
    return "\n".join(line.lstrip() for line in cleaned.split("\n"))


def summarize_errors(
    output: str,
    max_lines: int = MAX_ERROR_SUMMARY_LINES,
    max_chars: int = MAX_ERROR_SUMMARY_CHARS,
) -> str:
    """Last few error-bearing lines of engine output, bounded for telemetry."""
    error_lines = [line for line in clean_output(output).split("\n") if "error" in line.lower()]
    return "\n".join(error_lines[-max_lines:])[:max_chars]


class TerraformRunner:
    """Runs terraform commands in the onboarding workspace."""

    def __init__(
        self,
        work_dir: Path,
        binary: str = "terraform",
        timeout: int = DEFAULT_TERRAFORM_TIMEOUT_SECONDS,
    ) -> None:
        self._work_dir = work_dir
        self._binary = binary
        self._timeout = timeout

    def _run(self, args: list[str]) -> CommandResult:
        cmd = [self._binary, *args]
        env = os.environ.copy()
        env["TF_IN_AUTOMATION"] = "1"
        env["TF_INPUT"] = "0"

        logger.debug(f"Running {' '.join(cmd)}", extra={"cwd": str(self._work_dir)})
        try:
            result = subprocess.run(
                cmd,
                cwd=self._work_dir,
                env=env,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise TerraformError(f"terraform {args[0]} timed out after {self._timeout}s") from e
        except FileNotFoundError as e:
            raise TerraformError(f"Command not found: {self._binary}") from e

        output = result.stdout
        if result.stderr:
            output = f"{output}\n{result.stderr}" if output else result.stderr
        return CommandResult(returncode=result.returncode, output=output)

    def init(self) -> CommandResult:
        return self._run(["init", "-input=false", "-no-color"])

    def state_list(self) -> list[str]:
        """Addresses currently bound in state.

        An unreadable or missing state is treated as empty, same as a
        workspace that has never been applied.
        """
        result = self._run(["state", "list"])
        if not result.ok:
            logger.debug(f"terraform state list failed: {result.output.strip()}")
            return []
        return [line.strip() for line in result.output.splitlines() if line.strip()]

    def import_resource(self, address: str, resource_id: str) -> CommandResult:
        return self._run(["import", "-input=false", "-no-color", address, resource_id])

    def apply(self) -> CommandResult:
        return self._run(["apply", "-auto-approve", "-input=false"])

    def outputs(self) -> dict[str, Any]:
        """Root module outputs flattened to name -> value.

        Raises:
            TerraformError: If outputs cannot be read.
        """
        result = self._run(["output", "-json"])
        if not result.ok:
            raise TerraformError(f"terraform output failed: {result.output.strip()}")
        try:
            raw = json.loads(result.output or "{}")
        except json.JSONDecodeError as e:
            raise TerraformError("terraform output returned non-JSON") from e
        return {name: item.get("value") for name, item in raw.items() if isinstance(item, dict)}
