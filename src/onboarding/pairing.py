"""Pairing code exchange (device-flow style, RFC 8628).

The operator copies a short-lived code from the VectorPlane dashboard; the
backend trades it for the onboarding configuration. A failed attempt
re-prompts for a code rather than resubmitting the same one, since the
dashboard may have issued a newer code in the meantime.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable

import click
import httpx
from pydantic import ValidationError

from .config import MAX_CODE_ATTEMPTS
from .errors import (
    ExhaustedAttempts,
    InvalidCode,
    MalformedConfig,
    PairingError,
    SupersededCode,
)
from .models import OnboardingConfig

logger = logging.getLogger(__name__)

HTTP_GONE = 410


def normalize_code(code: str) -> str:
    """Codes are issued upper-case (e.g. VP-7K2Q); users paste them loosely."""
    return code.strip().upper()


def parse_config(body: str) -> OnboardingConfig:
    """Validate a successful exchange response.

    Raises:
        MalformedConfig: If the body is not JSON or lacks required fields.
    """
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise MalformedConfig("Invalid configuration received (not JSON)") from e

    if not isinstance(data, dict):
        raise MalformedConfig("Invalid configuration received (not a JSON object)")

    try:
        return OnboardingConfig.model_validate(data)
    except ValidationError as e:
        raise MalformedConfig(f"Invalid configuration received: {e}") from e


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text.strip() or "Unknown error"
    if isinstance(data, dict) and data.get("detail"):
        return str(data["detail"])
    return "Unknown error"


class ConfigExchange:
    """Trades pairing codes for an OnboardingConfig with bounded attempts."""

    def __init__(
        self,
        url: str,
        client: httpx.Client,
        prompt: Callable[[], str],
        *,
        max_attempts: int = MAX_CODE_ATTEMPTS,
        echo: Callable[[str], None] = click.echo,
    ) -> None:
        self._url = url
        self._client = client
        self._prompt = prompt
        self._max_attempts = max_attempts
        self._echo = echo

    def submit(self, code: str) -> OnboardingConfig:
        """Submit a single normalized code.

        Raises:
            SupersededCode: On 410 - a newer code exists.
            InvalidCode: On any other non-2xx response or transport failure.
            MalformedConfig: If a 2xx response carries an unusable config.
        """
        try:
            response = self._client.post(self._url, json={"pairing_code": code})
        except httpx.HTTPError as e:
            raise InvalidCode(f"Could not reach VectorPlane: {e}") from e

        if response.status_code == HTTP_GONE:
            raise SupersededCode(_error_detail(response))
        if not response.is_success:
            raise InvalidCode(_error_detail(response))

        return parse_config(response.text)

    def exchange(self, code: str | None = None) -> OnboardingConfig:
        """Exchange a pairing code, prompting again after each failure.

        Args:
            code: First code to try. When None the first code is prompted for.

        Raises:
            ExhaustedAttempts: When every attempt failed.
            MalformedConfig: Immediately - retrying a successful exchange cannot help.
        """
        for attempt in range(1, self._max_attempts + 1):
            if code is None or attempt > 1:
                code = self._prompt()
            normalized = normalize_code(code or "")

            if not normalized:
                self._echo("No code entered.")
                continue

            self._echo("Authenticating with VectorPlane...")
            try:
                config = self.submit(normalized)
            except (InvalidCode, SupersededCode) as e:
                self._report_attempt_failure(e, attempt)
                continue

            logger.info(
                "Pairing exchange succeeded",
                extra={"attempt": attempt, "external_id": config.external_id},
            )
            return config

        raise ExhaustedAttempts(
            "Max attempts reached. Please regenerate a code in the VectorPlane dashboard."
        )

    def _report_attempt_failure(self, error: PairingError, attempt: int) -> None:
        logger.info(
            "Pairing exchange rejected",
            extra={"attempt": attempt, "reason": type(error).__name__},
        )
        self._echo(f"Error: {error.message}")
        if isinstance(error, SupersededCode):
            self._echo("A newer code was generated. Check your VectorPlane dashboard.")
        elif attempt < self._max_attempts:
            self._echo("Try again, or get a new code from your VectorPlane dashboard.")
