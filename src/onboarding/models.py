"""Pydantic models and fixed catalogs for the onboarding workflow.

These models provide:
1. Validation of the configuration returned by the pairing exchange
2. The scope-qualified app display name
3. The fixed Terraform slot addresses and role catalog the reconciler
   looks up by natural key
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator

APP_DISPLAY_NAME_PREFIX = "VectorPlane Security"
FEDERATED_CREDENTIAL_NAME = "VectorPlane WIF"

# Length of the id fragment used in the display name
DISPLAY_NAME_ID_LENGTH = 8


class OnboardingScope(str, Enum):
    """Granularity at which read-only roles are granted."""

    SUBSCRIPTION = "SUBSCRIPTION"
    MANAGEMENT_GROUP = "MANAGEMENT_GROUP"


class ResourceKind(str, Enum):
    """Kinds of live objects the reconciler maps onto Terraform slots."""

    APPLICATION = "application"
    SERVICE_PRINCIPAL = "service_principal"
    FEDERATED_CREDENTIAL = "federated_credential"
    ROLE_ASSIGNMENT = "role_assignment"


# =============================================================================
# Terraform slot addresses
# =============================================================================

APPLICATION_ADDRESS = "azuread_application.vectorplane"
SERVICE_PRINCIPAL_ADDRESS = "azuread_service_principal.vectorplane"
FEDERATED_CREDENTIAL_ADDRESS = "azuread_application_federated_identity_credential.vectorplane"


@dataclass(frozen=True)
class RoleSlot:
    """A fixed read-only role and the Terraform slot that grants it."""

    role_name: str
    slot_name: str

    @property
    def address(self) -> str:
        return f"azurerm_role_assignment.{self.slot_name}"


ROLE_SLOTS: tuple[RoleSlot, ...] = (
    RoleSlot("Reader", "reader"),
    RoleSlot("Storage Blob Data Reader", "storage_blob_reader"),
    RoleSlot("Security Reader", "security_reader"),
)


def application_import_id(object_id: str) -> str:
    return f"/applications/{object_id}"


def service_principal_import_id(object_id: str) -> str:
    return f"/servicePrincipals/{object_id}"


def federated_credential_import_id(app_object_id: str, credential_id: str) -> str:
    return f"{app_object_id}/federatedIdentityCredential/{credential_id}"


# =============================================================================
# Onboarding configuration
# =============================================================================


class OnboardingConfig(BaseModel):
    """Configuration issued by the pairing exchange.

    Persisted verbatim (plus late-bound fields) as terraform.tfvars.json,
    so unknown fields from the backend are kept and written back.
    """

    model_config = {"extra": "allow"}

    external_id: Annotated[str, Field(min_length=1)]
    subscription_id: str = ""
    onboarding_scope: OnboardingScope = OnboardingScope.SUBSCRIPTION
    management_group_id: str = ""
    app_display_name: str = ""

    # Per-session secret for signing the completion callback
    callback_secret: str | None = None
    callback_url: str | None = None

    @field_validator("external_id")
    @classmethod
    def validate_external_id(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("external_id must not be blank")
        return v.strip()

    @field_validator("subscription_id", "management_group_id", "app_display_name", mode="before")
    @classmethod
    def null_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("onboarding_scope", mode="before")
    @classmethod
    def default_scope(cls, v: Any) -> Any:
        # Older backends omit the scope or send null for subscription onboarding
        if v is None or v == "":
            return OnboardingScope.SUBSCRIPTION
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @property
    def is_management_group(self) -> bool:
        return self.onboarding_scope == OnboardingScope.MANAGEMENT_GROUP

    def derive_app_display_name(self) -> str:
        """Scope-qualified display name, unique enough to avoid directory collisions."""
        if self.is_management_group:
            short = self.management_group_id[:DISPLAY_NAME_ID_LENGTH]
            return f"{APP_DISPLAY_NAME_PREFIX} (mg-{short})"
        short = self.subscription_id[:DISPLAY_NAME_ID_LENGTH]
        return f"{APP_DISPLAY_NAME_PREFIX} ({short})"

    def role_scope(self) -> str:
        """ARM scope string applied identically to every role assignment."""
        if self.is_management_group:
            return f"/providers/Microsoft.Management/managementGroups/{self.management_group_id}"
        return f"/subscriptions/{self.subscription_id}"

    def to_tfvars(self) -> dict[str, Any]:
        """Serialize for Terraform, keeping backend-supplied extra fields."""
        return self.model_dump(mode="json", exclude_none=True)


# =============================================================================
# Reconciliation records
# =============================================================================


@dataclass(frozen=True)
class NaturalKeyRecord:
    """A live object located by natural key for a given Terraform slot.

    Transient: computed fresh each reconciliation pass, never persisted.
    """

    kind: ResourceKind
    lookup_filter: str
    physical_id: str
    # Secondary identifier dependents are looked up by (the appId of an application)
    reference: str = ""


@dataclass(frozen=True)
class RoleAssignmentSpec:
    """One of the fixed role grants for the service principal."""

    role_name: str
    scope: str
    principal_id: str

    @property
    def lookup_filter(self) -> str:
        return f"assignee={self.principal_id} role={self.role_name} scope={self.scope}"
