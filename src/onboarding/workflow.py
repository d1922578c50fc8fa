"""The onboarding workflow: pairing -> context -> reconcile -> apply -> notify.

Re-running is always safe. Reconciliation brings Terraform state in line
with whatever a previous run left behind, so the supported recovery path
for any failure is simply to run again.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

import click
import httpx

from .azure_cli import AzureCli
from .config import Settings
from .deployer import ApplyOrchestrator
from .directory import GraphDirectory
from .errors import ApplyFailed, OnboardingError, PairingError
from .models import OnboardingConfig
from .notifier import CompletionNotifier
from .pairing import ConfigExchange
from .rbac import ArmRoleAssignments
from .reconciler import NaturalKeyLookup, ReconciliationReport, ResourceReconciler
from .scope import ArmManagementGroupAccess, EffectiveScope, ScopeVerifier
from .security import get_cli_credential
from .telemetry import UNEXPECTED, TelemetryReporter
from .terraform import TerraformRunner
from .workspace import ConfigStore

logger = logging.getLogger(__name__)

TOTAL_STEPS = 5


class Reconciler(Protocol):
    def reconcile(
        self, config: OnboardingConfig, scope: EffectiveScope
    ) -> ReconciliationReport: ...


class OnboardingWorkflow:
    """Runs the five onboarding stages and maps failures to exit codes.

    From context verification onward every failure is both shown to the
    operator and reported to the dashboard.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        exchange: ConfigExchange,
        store: ConfigStore,
        telemetry: TelemetryReporter,
        verifier: ScopeVerifier,
        reconciler_factory: Callable[[OnboardingConfig, EffectiveScope], Reconciler],
        orchestrator: ApplyOrchestrator,
        notifier: CompletionNotifier,
        echo: Callable[[str], None] = click.echo,
    ) -> None:
        self._settings = settings
        self._exchange = exchange
        self._store = store
        self._telemetry = telemetry
        self._verifier = verifier
        self._reconciler_factory = reconciler_factory
        self._orchestrator = orchestrator
        self._notifier = notifier
        self._echo = echo

    def _step(self, number: int, title: str) -> None:
        self._echo("")
        self._echo(f"[{number}/{TOTAL_STEPS}] {title}...")

    def run(self, code: str | None = None) -> int:
        self._echo("")
        self._echo("------------------------------------------------")
        self._echo("  VectorPlane Azure Onboarding")
        self._echo("------------------------------------------------")

        self._step(1, "Exchanging pairing code")
        try:
            config = self._exchange.exchange(code)
        except PairingError as e:
            self._echo(f"Error: {e.message}")
            return 1

        # From here on, errors are reported to the dashboard
        self._telemetry.session_id = config.external_id

        try:
            return self._run_configured(config)
        except OnboardingError as e:
            if e.reportable:
                self._telemetry.report(e.error_type, e.detail)
            self._echo(f"Error: {e.message}")
            return 1
        except Exception as e:
            logger.exception("Onboarding failed unexpectedly", extra={"error": str(e)})
            self._telemetry.report(UNEXPECTED, f"{type(e).__name__}: {e}"[:500])
            self._echo(f"Error: unexpected failure ({type(e).__name__}). Re-run to resume.")
            return 1

    def _run_configured(self, config: OnboardingConfig) -> int:
        config.app_display_name = config.derive_app_display_name()
        self._store.save(config)
        if config.is_management_group:
            self._echo(f"Identity verified. Management Group: {config.management_group_id}")
        else:
            self._echo(f"Identity verified. Subscription: {config.subscription_id}")

        self._step(2, "Verifying Azure context")
        scope = self._verifier.verify(config)
        if scope.management_group_id:
            self._echo(f"  Management Group: {scope.management_group_id}")
        self._echo(f"  Subscription: {scope.subscription_id}")
        self._echo(f"  Tenant: {scope.tenant_id}")

        self._step(3, "Initializing Terraform + reconciling")
        self._orchestrator.init()
        self._echo("  Terraform initialized.")
        report = self._reconciler_factory(config, scope).reconcile(config, scope)
        for address in report.imported:
            self._echo(f"    Imported {address}")
        for warning in report.warnings:
            self._echo(f"    Warning: {warning}")
        self._echo(f"  {report.summary()}")

        self._step(4, "Deploying integration")
        try:
            result = self._orchestrator.apply()
        except ApplyFailed as e:
            self._echo(e.output)
            self._telemetry.report(e.error_type, e.detail)
            self._echo("")
            self._echo("Error: Deployment failed. Your VectorPlane dashboard will show details.")
            self._echo("Re-run this command to resume once the issue is resolved.")
            return 1
        self._echo(result.output)

        self._step(5, "Notifying VectorPlane")
        notified = self._notifier.notify(config, scope, result.outputs)
        self._print_success(config, notified.delivered)
        return 0

    def _print_success(self, config: OnboardingConfig, notified: bool) -> None:
        echo = self._echo
        echo("")
        echo("================================================")
        echo("  VectorPlane Azure integration deployed!")
        echo("")
        echo("  - App Registration created")
        echo("  - Federated Identity Credential configured")
        if config.is_management_group:
            echo("  - Reader + Storage + Security Reader assigned to MG")
            echo("  - Subscriptions will be discovered automatically")
        else:
            echo("  - Reader + Storage + Security Reader roles assigned")
        echo("  - Zero client secrets exchanged")
        echo("")
        if notified:
            echo("  Check your VectorPlane dashboard for findings.")
        else:
            echo("  Dashboard not yet notified - see the recovery block above.")
        echo("")
        echo(f"  To remove: cd {self._settings.work_dir} && terraform destroy")
        echo("================================================")


def build_workflow(
    settings: Settings,
    http_client: httpx.Client,
    prompt: Callable[[], str],
    echo: Callable[[str], None] = click.echo,
) -> OnboardingWorkflow:
    """Wire the workflow against real Azure, Terraform and VectorPlane endpoints."""
    store = ConfigStore(settings.tfvars_path)
    credential = get_cli_credential()
    runner = TerraformRunner(
        settings.work_dir,
        binary=settings.terraform_binary,
        timeout=settings.terraform_timeout_seconds,
    )

    verifier = ScopeVerifier(
        account=AzureCli(settings.az_binary, timeout=settings.az_timeout_seconds),
        management_groups=ArmManagementGroupAccess(credential),
        store=store,
    )

    def reconciler_factory(config: OnboardingConfig, scope: EffectiveScope) -> ResourceReconciler:
        directory = GraphDirectory(credential, http_client)
        lookup = NaturalKeyLookup(directory, ArmRoleAssignments(credential, scope.subscription_id))
        return ResourceReconciler(
            runner,
            lookup,
            directory,
            propagation_delay_seconds=settings.propagation_delay_seconds,
        )

    return OnboardingWorkflow(
        settings,
        exchange=ConfigExchange(
            settings.exchange_url,
            http_client,
            prompt,
            max_attempts=settings.max_code_attempts,
            echo=echo,
        ),
        store=store,
        telemetry=TelemetryReporter(settings.error_report_url, http_client),
        verifier=verifier,
        reconciler_factory=reconciler_factory,
        orchestrator=ApplyOrchestrator(runner),
        notifier=CompletionNotifier(settings.completion_url, http_client, echo=echo),
        echo=echo,
    )
