"""Security enforcement for zero-secret onboarding.

The trust established by onboarding is a federated identity credential:
VectorPlane never receives a client secret. The onboarding run itself
must not lean on one either, so it authenticates with the operator's
ambient Azure CLI session (Azure Cloud Shell is pre-authenticated).

SECURITY INVARIANTS:
1. Service principal secrets must never be present in the environment
2. AzureCliCredential is the ONLY credential type used for directory and ARM calls
3. The callback signing secret is never logged
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import os

from azure.identity import AzureCliCredential

logger = logging.getLogger(__name__)

FORBIDDEN_CREDENTIAL_ENV_VARS: tuple[str, ...] = (
    "AZURE_CLIENT_SECRET",
    "AZURE_CLIENT_CERTIFICATE_PATH",
    "AZURE_CLIENT_CERTIFICATE_PASSWORD",
    "AZURE_USERNAME",
    "AZURE_PASSWORD",
    "ARM_CLIENT_SECRET",
)

SECRETLESS_VIOLATION_MESSAGE = """
╔══════════════════════════════════════════════════════════════════════════════╗
║                         SECURITY VIOLATION DETECTED                          ║
╠══════════════════════════════════════════════════════════════════════════════╣
║  VectorPlane onboarding is SECRETLESS: it uses your Azure CLI session and    ║
║  grants access through a federated identity credential.                      ║
║                                                                              ║
║  Detected: {env_var}
║                                                                              ║
║  RESOLUTION:                                                                 ║
║  1. Unset all service principal credential environment variables             ║
║  2. Sign in interactively with 'az login' (or use Azure Cloud Shell)         ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""


class SecretlessViolationError(Exception):
    """Raised when a credential secret is found in the environment.

    Fatal: onboarding must not proceed.
    """

    pass


def enforce_secretless_architecture() -> None:
    """Refuse to run when credential secrets are present in the environment.

    Raises:
        SecretlessViolationError: If any credential environment variable is set.
    """
    for env_var in FORBIDDEN_CREDENTIAL_ENV_VARS:
        if os.environ.get(env_var):
            logger.critical(
                "Secretless architecture violation",
                extra={
                    "security_event": "credential_detected",
                    "env_var": env_var,
                    "action": "startup_blocked",
                },
            )
            raise SecretlessViolationError(SECRETLESS_VIOLATION_MESSAGE.format(env_var=env_var))

    logger.debug(
        "Secretless architecture verified",
        extra={"security_event": "secretless_verified", "credential_type": "AzureCli"},
    )


def get_cli_credential() -> AzureCliCredential:
    """Get an AzureCliCredential after verifying the environment is secretless.

    This is the ONLY way directory and ARM clients obtain credentials.

    Raises:
        SecretlessViolationError: If credential environment variables detected.
    """
    enforce_secretless_architecture()
    return AzureCliCredential()


def sign_payload(secret: str, timestamp: str, body: str) -> str:
    """HMAC-SHA256 over ``timestamp + "." + body``, base64-encoded."""
    message = f"{timestamp}.{body}".encode()
    digest = hmac.new(secret.encode(), message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")
