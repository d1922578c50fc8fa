"""Signed completion callback to the VectorPlane backend.

The callback is sent only after a successful apply. Failing to deliver
it never fails the run - the Azure side is already correctly
provisioned - but the operator is given every fact the backend would
have received so it can be relayed out of band.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import click
import httpx

from .config import CALLBACK_CONNECT_TIMEOUT_SECONDS, CALLBACK_TOTAL_TIMEOUT_SECONDS
from .errors import CallbackFailed
from .models import ROLE_SLOTS, OnboardingConfig
from .scope import EffectiveScope
from .security import sign_payload

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-VectorPlane-Signature"
TIMESTAMP_HEADER = "X-VectorPlane-Timestamp"
EXTERNAL_ID_HEADER = "X-VectorPlane-External-Id"

CALLBACK_TIMEOUT = httpx.Timeout(
    CALLBACK_TOTAL_TIMEOUT_SECONDS, connect=CALLBACK_CONNECT_TIMEOUT_SECONDS
)

# Terraform output names -> payload keys
OUTPUT_KEYS: dict[str, str] = {
    "application_client_id": "application_client_id",
    "application_object_id": "application_object_id",
    "service_principal_object_id": "service_principal_object_id",
    "tenant_id": "tenant_id",
}


@dataclass
class NotifyResult:
    delivered: bool
    status_code: int | None = None
    error: str | None = None


def build_payload(
    config: OnboardingConfig,
    scope: EffectiveScope,
    outputs: dict[str, Any],
    completed_at: datetime | None = None,
) -> dict[str, Any]:
    """Identity and scope facts reported on completion."""
    payload: dict[str, Any] = {
        "external_id": config.external_id,
        "tenant_id": scope.tenant_id,
        "subscription_id": config.subscription_id,
        "onboarding_scope": config.onboarding_scope.value,
        "management_group_id": config.management_group_id or None,
        "app_display_name": config.app_display_name,
        "application_client_id": None,
        "application_object_id": None,
        "service_principal_object_id": None,
        "role_scope": scope.role_scope,
        "roles": [slot.role_name for slot in ROLE_SLOTS],
        "completed_at": (completed_at or datetime.now(UTC)).isoformat().replace("+00:00", "Z"),
    }
    for output_name, key in OUTPUT_KEYS.items():
        if outputs.get(output_name):
            payload[key] = outputs[output_name]
    return payload


class CompletionNotifier:
    def __init__(
        self,
        default_url: str,
        client: httpx.Client,
        *,
        echo: Callable[[str], None] = click.echo,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._default_url = default_url
        self._client = client
        self._echo = echo
        self._clock = clock

    def notify(
        self,
        config: OnboardingConfig,
        scope: EffectiveScope,
        outputs: dict[str, Any],
    ) -> NotifyResult:
        now = self._clock()
        payload = build_payload(config, scope, outputs, completed_at=now)
        body = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        timestamp = str(int(now.timestamp()))
        signature: str | None = None

        try:
            if not config.callback_secret:
                raise CallbackFailed("No callback secret was issued for this session")
            signature = sign_payload(config.callback_secret, timestamp, body)
            status_code = self._send(config, body, timestamp, signature)
        except CallbackFailed as e:
            logger.warning(
                f"Completion callback failed: {e.message}",
                extra={"external_id": config.external_id},
            )
            self._print_manual_recovery(payload, timestamp, signature)
            return NotifyResult(delivered=False, error=e.message)

        logger.info("Completion callback delivered", extra={"status_code": status_code})
        return NotifyResult(delivered=True, status_code=status_code)

    def _send(self, config: OnboardingConfig, body: str, timestamp: str, signature: str) -> int:
        url = config.callback_url or self._default_url
        headers = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: signature,
            TIMESTAMP_HEADER: timestamp,
            EXTERNAL_ID_HEADER: config.external_id,
        }
        try:
            response = self._client.post(
                url, content=body, headers=headers, timeout=CALLBACK_TIMEOUT
            )
        except httpx.HTTPError as e:
            raise CallbackFailed(f"Could not reach VectorPlane: {e}") from e

        if not response.is_success:
            raise CallbackFailed(f"VectorPlane returned HTTP {response.status_code}")
        return response.status_code

    def _print_manual_recovery(
        self, payload: dict[str, Any], timestamp: str, signature: str | None
    ) -> None:
        record: dict[str, Any] = {"payload": payload, "timestamp": timestamp}
        if signature:
            record["signature"] = signature

        self._echo("")
        self._echo("------------------------------------------------")
        self._echo("  Could not notify VectorPlane automatically.")
        self._echo("  Your Azure integration IS deployed. Send the block")
        self._echo("  below to VectorPlane support to finish onboarding:")
        self._echo("------------------------------------------------")
        self._echo(json.dumps(record, indent=2, sort_keys=True))
        self._echo("------------------------------------------------")
