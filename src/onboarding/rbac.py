"""Role assignment lookup via the ARM authorization API."""

from __future__ import annotations

import logging
from typing import Protocol

from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError
from azure.mgmt.authorization import AuthorizationManagementClient

from .directory import DirectoryError
from .models import RoleAssignmentSpec

logger = logging.getLogger(__name__)

# Well-known Azure built-in role GUIDs (identical across tenants)
BUILTIN_ROLES: dict[str, str] = {
    "Reader": "acdd72a7-3385-48ef-bd42-f606fba81ae7",
    "Storage Blob Data Reader": "2a2b9908-6ea1-4ae2-8e65-a410df84e7d1",
    "Security Reader": "39bc4728-0917-49c7-9d2c-d95423bc2eb4",
}


def role_definition_guid(role_name: str) -> str:
    """Map a built-in role name to its GUID.

    Raises:
        ValueError: If the role is not one of the onboarding roles.
    """
    try:
        return BUILTIN_ROLES[role_name]
    except KeyError:
        raise ValueError(f"Role '{role_name}' is not a known built-in role") from None


class RoleAssignmentLookup(Protocol):
    def find_role_assignment(self, spec: RoleAssignmentSpec) -> str | None: ...


class ArmRoleAssignments:
    """Finds role assignments by (assignee, role, scope)."""

    def __init__(self, credential: TokenCredential, subscription_id: str) -> None:
        self._client = AuthorizationManagementClient(
            credential=credential,
            subscription_id=subscription_id,
        )

    def find_role_assignment(self, spec: RoleAssignmentSpec) -> str | None:
        """Return the ARM id of a matching assignment at exactly ``spec.scope``.

        Listing at a scope also returns inherited and child assignments, so
        the scope is compared exactly, matching ``az role assignment list --scope``.

        Raises:
            DirectoryError: If the ARM call fails.
        """
        role_guid = role_definition_guid(spec.role_name).lower()
        try:
            assignments = self._client.role_assignments.list_for_scope(
                scope=spec.scope,
                filter=f"principalId eq '{spec.principal_id}'",
            )
            for assignment in assignments:
                definition_id = (assignment.role_definition_id or "").lower()
                if not definition_id.endswith(role_guid):
                    continue
                if (assignment.scope or "").lower().rstrip("/") != spec.scope.lower().rstrip("/"):
                    continue
                return assignment.id
        except AzureError as e:
            raise DirectoryError(f"Role assignment lookup failed for {spec.role_name}: {e}") from e
        return None
