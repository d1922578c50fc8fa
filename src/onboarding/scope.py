"""Azure context verification.

Confirms the operator's CLI session can act at the onboarding scope before
anything is created. Permission fixes happen out of band, so nothing here
is retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError
from azure.mgmt.resource import ResourceManagementClient

from .azure_cli import AccountInfo, AzureCliError
from .errors import InsufficientPermissions, NotAuthenticated
from .models import OnboardingConfig, OnboardingScope
from .workspace import ConfigStore

logger = logging.getLogger(__name__)

MANAGEMENT_GROUP_API_VERSION = "2021-04-01"


class AccountContext(Protocol):
    def current_account(self) -> AccountInfo | None: ...

    def set_subscription(self, subscription_id: str) -> None: ...


class ManagementGroupAccess(Protocol):
    def check(self, management_group_id: str, subscription_id: str) -> None: ...


@dataclass(frozen=True)
class EffectiveScope:
    """The verified context the rest of the run operates in."""

    subscription_id: str
    tenant_id: str
    onboarding_scope: OnboardingScope
    management_group_id: str
    role_scope: str


class ArmManagementGroupAccess:
    """Checks read access to a management group via a generic ARM GET."""

    def __init__(self, credential: TokenCredential) -> None:
        self._credential = credential

    def check(self, management_group_id: str, subscription_id: str) -> None:
        """Raise AzureError when the management group cannot be read."""
        # The resource client is subscription-bound even for tenant-level ids
        client = ResourceManagementClient(
            credential=self._credential,
            subscription_id=subscription_id,
        )
        client.resources.get_by_id(
            resource_id=f"/providers/Microsoft.Management/managementGroups/{management_group_id}",
            api_version=MANAGEMENT_GROUP_API_VERSION,
        )


class ScopeVerifier:
    """Verifies (and if needed switches) the Azure context for onboarding."""

    def __init__(
        self,
        account: AccountContext,
        management_groups: ManagementGroupAccess,
        store: ConfigStore,
    ) -> None:
        self._account = account
        self._management_groups = management_groups
        self._store = store

    def verify(self, config: OnboardingConfig) -> EffectiveScope:
        """Verify the session against the config's onboarding scope.

        May fill ``config.subscription_id`` for management-group onboarding,
        in which case the config is persisted before returning.

        Raises:
            NotAuthenticated: If there is no active CLI session.
            InsufficientPermissions: If the target scope is not accessible.
        """
        account = self._account.current_account()
        if account is None:
            raise NotAuthenticated(
                "Not logged into Azure. Run 'az login' first.",
                detail="Not logged into Azure CLI",
            )

        if config.is_management_group:
            self._verify_management_group(config, account)
        elif account.subscription_id != config.subscription_id:
            self._switch_subscription(config)
            # The target subscription may live in another tenant
            account = self._account.current_account() or account

        return EffectiveScope(
            subscription_id=config.subscription_id,
            tenant_id=account.tenant_id,
            onboarding_scope=config.onboarding_scope,
            management_group_id=config.management_group_id,
            role_scope=config.role_scope(),
        )

    def _verify_management_group(self, config: OnboardingConfig, account: AccountInfo) -> None:
        # The azurerm provider still needs a subscription to authenticate against
        if not config.subscription_id:
            config.subscription_id = account.subscription_id
            self._store.save(config)
            logger.info(
                "Using current subscription for provider",
                extra={"subscription_id": account.subscription_id},
            )

        mg_id = config.management_group_id
        if not mg_id:
            raise InsufficientPermissions(
                "No Management Group was issued for this onboarding session.",
                detail="Cannot access Management Group (none issued)",
            )
        try:
            self._management_groups.check(mg_id, config.subscription_id)
        except AzureError as e:
            logger.error(f"Management group '{mg_id}' not accessible: {e}")
            raise InsufficientPermissions(
                f"Cannot access Management Group '{mg_id}'. "
                "Ensure you have Reader access on the Management Group.",
                detail=f"Cannot access Management Group {mg_id}",
            ) from e

    def _switch_subscription(self, config: OnboardingConfig) -> None:
        if not config.subscription_id:
            raise InsufficientPermissions(
                "No subscription was issued for this onboarding session.",
                detail="Cannot access subscription (none issued)",
            )
        try:
            self._account.set_subscription(config.subscription_id)
        except AzureCliError as e:
            raise InsufficientPermissions(
                f"Cannot access subscription {config.subscription_id}. "
                "Ensure you have Owner or User Access Administrator role.",
                detail=f"Cannot access subscription {config.subscription_id}",
            ) from e
