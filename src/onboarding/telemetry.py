"""Best-effort error reporting to the VectorPlane dashboard."""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

# Error kinds understood by the dashboard
PERMISSIONS = "permissions"
TERRAFORM_INIT = "terraform_init"
TERRAFORM_APPLY = "terraform_apply"
UNEXPECTED = "unexpected"

REPORT_TIMEOUT_SECONDS = 10


class TelemetryReporter:
    """Fire-and-forget error reports keyed by the onboarding session.

    A no-op until ``session_id`` is known. Never raises: transport failures
    are logged and swallowed so reporting cannot mask the original error.
    """

    def __init__(self, url: str, client: httpx.Client | None = None) -> None:
        self._url = url
        self._client = client
        self.session_id: str | None = None

    def report(self, kind: str, detail: str = "") -> None:
        if not self.session_id:
            logger.debug(f"Skipping error report ({kind}): no session yet")
            return

        payload = {"session_id": self.session_id, "error_type": kind, "detail": detail}
        try:
            if self._client is not None:
                self._client.post(self._url, json=payload, timeout=REPORT_TIMEOUT_SECONDS)
            else:
                with httpx.Client(timeout=REPORT_TIMEOUT_SECONDS) as client:
                    client.post(self._url, json=payload)
        except httpx.HTTPError as e:
            logger.warning(
                f"Failed to report error to dashboard: {e}",
                extra={"error_type": kind, "session_id": self.session_id},
            )
            return

        logger.info("Reported error to dashboard", extra={"error_type": kind})
