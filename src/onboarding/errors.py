"""Error taxonomy for the onboarding workflow.

Every workflow error carries the telemetry kind it is reported under and
whether it is reportable at all. Pairing-stage errors are never reported:
no session id exists yet.
"""

from __future__ import annotations


class OnboardingError(Exception):
    """Base class for all onboarding workflow errors."""

    error_type: str = "unexpected"
    reportable: bool = True

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail if detail is not None else message


# Pairing exchange - resolved locally by the bounded retry loop


class PairingError(OnboardingError):
    """Base for pairing-stage failures (never reported)."""

    error_type = "pairing"
    reportable = False


class InvalidCode(PairingError):
    """Pairing code rejected as invalid or expired."""


class SupersededCode(PairingError):
    """A newer pairing code was issued for this session."""


class ExhaustedAttempts(PairingError):
    """All pairing attempts were used up."""


class MalformedConfig(PairingError):
    """The exchange succeeded but returned an unusable configuration."""


# Azure context


class NotAuthenticated(OnboardingError):
    """No authenticated Azure CLI session is available."""

    error_type = "permissions"


class InsufficientPermissions(OnboardingError):
    """The session cannot access the target subscription or management group."""

    error_type = "permissions"


# Terraform


class EngineInitFailed(OnboardingError):
    """terraform init failed."""

    error_type = "terraform_init"


class ApplyFailed(OnboardingError):
    """terraform apply failed.

    ``detail`` holds the bounded diagnostic summary sent to telemetry and
    ``output`` the full engine output shown to the operator.
    """

    error_type = "terraform_apply"

    def __init__(self, message: str, *, detail: str, output: str = "") -> None:
        super().__init__(message, detail=detail)
        self.output = output


# Completion callback - non-fatal


class CallbackFailed(OnboardingError):
    """The completion callback could not be delivered."""

    error_type = "callback"
    reportable = False
