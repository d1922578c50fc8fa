"""Thin wrapper around the Azure CLI session.

Terraform's azurerm provider follows the CLI's active subscription, so the
context switch must happen in the CLI itself rather than in an SDK client.
"""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass
from typing import Any

from .config import DEFAULT_AZ_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class AzureCliError(Exception):
    """Raised when an az command fails, times out, or is missing."""

    pass


@dataclass(frozen=True)
class AccountInfo:
    """The CLI's active subscription."""

    subscription_id: str
    tenant_id: str
    name: str = ""


class AzureCli:
    """Runs az commands as blocking subprocesses."""

    def __init__(self, binary: str = "az", timeout: int = DEFAULT_AZ_TIMEOUT_SECONDS) -> None:
        self._binary = binary
        self._timeout = timeout

    def _run(self, args: list[str]) -> str:
        cmd = [self._binary, *args]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise AzureCliError(f"Command timed out after {self._timeout}s: {' '.join(cmd)}") from e
        except FileNotFoundError as e:
            raise AzureCliError(f"Command not found: {self._binary}") from e

        if result.returncode != 0:
            message = result.stderr.strip() or f"exit code {result.returncode}"
            raise AzureCliError(f"az {' '.join(args[:2])} failed: {message}")
        return result.stdout

    def _run_json(self, args: list[str]) -> Any:
        output = self._run([*args, "--output", "json"])
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            raise AzureCliError(f"az returned non-JSON output for {' '.join(args)}") from e

    def current_account(self) -> AccountInfo | None:
        """Return the active subscription, or None when not logged in."""
        try:
            data = self._run_json(["account", "show"])
        except AzureCliError as e:
            logger.debug(f"No active Azure CLI account: {e}")
            return None

        subscription_id = (data or {}).get("id") or ""
        if not subscription_id:
            return None
        return AccountInfo(
            subscription_id=subscription_id,
            tenant_id=data.get("tenantId") or "",
            name=data.get("name") or "",
        )

    def set_subscription(self, subscription_id: str) -> None:
        """Switch the CLI's active subscription.

        Raises:
            AzureCliError: If the subscription is not accessible.
        """
        self._run(["account", "set", "--subscription", subscription_id])
        logger.info("Switched Azure CLI subscription", extra={"subscription_id": subscription_id})
