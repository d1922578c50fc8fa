"""Pre-flight reconciliation of live Azure objects with Terraform state.

Handles the two situations that would otherwise make `terraform apply`
fail with "already exists" conflicts:

(a) Objects exist in Entra ID / ARM but not in Terraform state (orphaned
    by a previous run whose state was lost).
(b) Objects were soft-deleted; Entra ID retains them for 30 days and they
    must be restored before Terraform can manage them again.

STATE MACHINE:
    FRESH    -> RESTORE_DELETED -> IMPORT_EXISTING -> DONE
    RESUMING -> DONE

Once state holds any address the run is RESUMING and recovery is skipped
entirely: apply already knows how to update bound resources.

Every recovery step is best-effort. A failed lookup or import is recorded
as a warning and the next step still runs; whatever stays unbound is
simply created by apply.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from .directory import DirectoryError, IdentityDirectory, SoftDeleteDirectory
from .models import (
    APPLICATION_ADDRESS,
    FEDERATED_CREDENTIAL_ADDRESS,
    FEDERATED_CREDENTIAL_NAME,
    ROLE_SLOTS,
    SERVICE_PRINCIPAL_ADDRESS,
    NaturalKeyRecord,
    OnboardingConfig,
    ResourceKind,
    RoleAssignmentSpec,
    application_import_id,
    federated_credential_import_id,
    service_principal_import_id,
)
from .rbac import RoleAssignmentLookup
from .scope import EffectiveScope
from .terraform import CommandResult, TerraformError

logger = logging.getLogger(__name__)


class ReconcileState(str, Enum):
    FRESH = "fresh"
    RESUMING = "resuming"
    RESTORE_DELETED = "restore_deleted"
    IMPORT_EXISTING = "import_existing"
    DONE = "done"


class DeclarativeState(Protocol):
    """The slice of the Terraform runner the reconciler mutates."""

    def state_list(self) -> list[str]: ...

    def import_resource(self, address: str, resource_id: str) -> CommandResult: ...


@dataclass
class ReconciliationReport:
    """Outcome of one reconciliation pass."""

    state: ReconcileState = ReconcileState.FRESH
    existing_count: int = 0
    restored: list[ResourceKind] = field(default_factory=list)
    imported: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    transitions: list[ReconcileState] = field(default_factory=list)

    def summary(self) -> str:
        if self.state == ReconcileState.RESUMING:
            return f"State loaded ({self.existing_count} resources). Resuming."
        if self.imported:
            return f"Recovered {len(self.imported)} existing resource(s) into state."
        return "No existing resources found. Fresh deployment."


class NaturalKeyLookup:
    """Pure lookups: (kind, natural key) -> live object, or None.

    Raises DirectoryError when a lookup could not be performed, which is
    distinct from the object not existing.
    """

    def __init__(
        self,
        directory: IdentityDirectory,
        role_assignments: RoleAssignmentLookup,
    ) -> None:
        self._directory = directory
        self._role_assignments = role_assignments

    def application(self, display_name: str) -> NaturalKeyRecord | None:
        found = self._directory.find_application(display_name)
        if found is None:
            return None
        return NaturalKeyRecord(
            ResourceKind.APPLICATION,
            f"displayName eq '{display_name}'",
            found.object_id,
            reference=found.app_id,
        )

    def service_principal(self, app_id: str) -> NaturalKeyRecord | None:
        found = self._directory.find_service_principal(app_id)
        if found is None:
            return None
        return NaturalKeyRecord(
            ResourceKind.SERVICE_PRINCIPAL, f"appId eq '{app_id}'", found.object_id
        )

    def federated_credential(self, app_object_id: str) -> NaturalKeyRecord | None:
        credential_id = self._directory.find_federated_credential(
            app_object_id, FEDERATED_CREDENTIAL_NAME
        )
        if credential_id is None:
            return None
        return NaturalKeyRecord(
            ResourceKind.FEDERATED_CREDENTIAL,
            f"name eq '{FEDERATED_CREDENTIAL_NAME}'",
            credential_id,
            reference=app_object_id,
        )

    def role_assignment(self, spec: RoleAssignmentSpec) -> NaturalKeyRecord | None:
        assignment_id = self._role_assignments.find_role_assignment(spec)
        if assignment_id is None:
            return None
        return NaturalKeyRecord(ResourceKind.ROLE_ASSIGNMENT, spec.lookup_filter, assignment_id)


class ResourceReconciler:
    """Restores and imports existing objects so apply never double-creates."""

    def __init__(
        self,
        state: DeclarativeState,
        lookup: NaturalKeyLookup,
        soft_delete: SoftDeleteDirectory,
        *,
        propagation_delay_seconds: float = 5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._state = state
        self._lookup = lookup
        self._soft_delete = soft_delete
        self._propagation_delay_seconds = propagation_delay_seconds
        self._sleep = sleep

    def reconcile(self, config: OnboardingConfig, scope: EffectiveScope) -> ReconciliationReport:
        report = ReconciliationReport()

        existing = self._state.state_list()
        if existing:
            report.state = ReconcileState.RESUMING
            report.existing_count = len(existing)
            report.transitions = [ReconcileState.RESUMING, ReconcileState.DONE]
            logger.info(
                "Terraform state present, skipping recovery",
                extra={"resources": len(existing)},
            )
            return report

        report.transitions.append(ReconcileState.FRESH)

        report.transitions.append(ReconcileState.RESTORE_DELETED)
        self._restore_deleted(config.app_display_name, report)

        report.transitions.append(ReconcileState.IMPORT_EXISTING)
        self._import_existing(config, scope, report)

        report.transitions.append(ReconcileState.DONE)
        logger.info(
            "Reconciliation complete",
            extra={
                "imported": report.imported,
                "restored": [k.value for k in report.restored],
                "warnings": len(report.warnings),
            },
        )
        return report

    # -------------------------------------------------------------------------
    # RESTORE_DELETED
    # -------------------------------------------------------------------------

    def _restore_deleted(self, display_name: str, report: ReconciliationReport) -> None:
        try:
            deleted_app = self._soft_delete.find_deleted_application(display_name)
        except DirectoryError as e:
            self._warn(report, f"Could not search deleted applications: {e}")
            return
        if deleted_app is None:
            return

        if self._restore(deleted_app.object_id, ResourceKind.APPLICATION, report):
            logger.info("Restored App Registration", extra={"object_id": deleted_app.object_id})

        # The principal is a separate deletable entity and must be restored on its own
        if deleted_app.app_id:
            try:
                deleted_sp = self._soft_delete.find_deleted_service_principal(deleted_app.app_id)
            except DirectoryError as e:
                self._warn(report, f"Could not search deleted service principals: {e}")
                deleted_sp = None
            if deleted_sp is not None and self._restore(
                deleted_sp.object_id, ResourceKind.SERVICE_PRINCIPAL, report
            ):
                logger.info("Restored Service Principal", extra={"object_id": deleted_sp.object_id})

        # Restored objects are not immediately visible to reads
        if self._propagation_delay_seconds > 0:
            logger.info(f"Waiting {self._propagation_delay_seconds}s for directory propagation")
            self._sleep(self._propagation_delay_seconds)

    def _restore(self, object_id: str, kind: ResourceKind, report: ReconciliationReport) -> bool:
        try:
            self._soft_delete.restore(object_id)
        except DirectoryError as e:
            self._warn(report, f"Could not restore deleted {kind.value}: {e}")
            return False
        report.restored.append(kind)
        return True

    # -------------------------------------------------------------------------
    # IMPORT_EXISTING
    # -------------------------------------------------------------------------

    def _import_existing(
        self,
        config: OnboardingConfig,
        scope: EffectiveScope,
        report: ReconciliationReport,
    ) -> None:
        lookup = self._lookup

        app = self._find(report, lookup.application, config.app_display_name)
        if app is None:
            return
        self.bind(APPLICATION_ADDRESS, application_import_id(app.physical_id), report)

        sp = self._find(report, lookup.service_principal, app.reference)
        if sp is None:
            # Credential and role assignments cannot be located without the principal
            return
        self.bind(SERVICE_PRINCIPAL_ADDRESS, service_principal_import_id(sp.physical_id), report)

        credential = self._find(report, lookup.federated_credential, app.physical_id)
        if credential is not None:
            self.bind(
                FEDERATED_CREDENTIAL_ADDRESS,
                federated_credential_import_id(app.physical_id, credential.physical_id),
                report,
            )

        for slot in ROLE_SLOTS:
            spec = RoleAssignmentSpec(slot.role_name, scope.role_scope, sp.physical_id)
            assignment = self._find(report, lookup.role_assignment, spec)
            if assignment is not None:
                self.bind(slot.address, assignment.physical_id, report)

    def _find(
        self,
        report: ReconciliationReport,
        lookup: Callable[[Any], NaturalKeyRecord | None],
        key: Any,
    ) -> NaturalKeyRecord | None:
        if not key:
            return None
        try:
            return lookup(key)
        except (DirectoryError, ValueError) as e:
            self._warn(report, f"Lookup by natural key failed ({lookup.__name__}): {e}")
            return None

    def bind(self, address: str, resource_id: str, report: ReconciliationReport) -> bool:
        """Import a live object into Terraform state under ``address``."""
        try:
            result = self._state.import_resource(address, resource_id)
        except TerraformError as e:
            self._warn(report, f"Import of {address} failed: {e}")
            return False

        if not result.ok:
            last_line = result.output.strip().splitlines()[-1] if result.output.strip() else ""
            self._warn(report, f"Import of {address} failed: {last_line}")
            return False

        report.imported.append(address)
        logger.info(
            "Imported existing resource",
            extra={"address": address, "resource_id": resource_id},
        )
        return True

    @staticmethod
    def _warn(report: ReconciliationReport, message: str) -> None:
        logger.warning(message)
        report.warnings.append(message)
