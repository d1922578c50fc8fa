"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for azure_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from onboarding.models import OnboardingConfig, OnboardingScope  # noqa: E402
from onboarding.scope import EffectiveScope  # noqa: E402

TENANT_ID = "72f988bf-0000-0000-0000-000000000000"


@pytest.fixture
def subscription_config() -> OnboardingConfig:
    config = OnboardingConfig.model_validate(
        {
            "external_id": "ext-abc",
            "subscription_id": "sub-123",
            "callback_secret": "s3cret",
        }
    )
    config.app_display_name = config.derive_app_display_name()
    return config


@pytest.fixture
def subscription_scope(subscription_config: OnboardingConfig) -> EffectiveScope:
    return EffectiveScope(
        subscription_id="sub-123",
        tenant_id=TENANT_ID,
        onboarding_scope=OnboardingScope.SUBSCRIPTION,
        management_group_id="",
        role_scope="/subscriptions/sub-123",
    )


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "vectorplane-azure-connect"
    directory.mkdir()
    return directory
