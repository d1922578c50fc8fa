"""In-memory Azure, Entra ID and Terraform fakes for workflow testing.

Key Features:
- Live and soft-deleted applications / service principals
- Role assignments keyed by principal, role and scope
- Terraform state with import semantics (already-managed addresses fail)
- Azure CLI account context with subscription switching
- Failure injection for every lookup

Usage:
    from azure_mock import MockDirectory, MockRoleAssignments, MockTerraform

    directory = MockDirectory()
    app = directory.add_application("VectorPlane Security (sub-123)")
    directory.soft_delete(app)

    reconciler = ResourceReconciler(MockTerraform(), lookup, directory)
"""

from .account import DEFAULT_TENANT_ID, MockAzureCli, MockManagementGroups
from .credential import MockCliCredential
from .directory import (
    MockApplication,
    MockDirectory,
    MockRoleAssignment,
    MockRoleAssignments,
    MockServicePrincipal,
)
from .terraform import MockTerraform

__all__ = [
    "DEFAULT_TENANT_ID",
    "MockApplication",
    "MockAzureCli",
    "MockCliCredential",
    "MockDirectory",
    "MockManagementGroups",
    "MockRoleAssignment",
    "MockRoleAssignments",
    "MockServicePrincipal",
    "MockTerraform",
]
