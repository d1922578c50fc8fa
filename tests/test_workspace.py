"""Tests for terraform.tfvars.json persistence."""

import json
import stat
from pathlib import Path

import pytest

from onboarding.models import OnboardingConfig
from onboarding.workspace import ConfigStore


class TestConfigStore:
    def test_save_and_load(self, work_dir: Path, subscription_config: OnboardingConfig) -> None:
        store = ConfigStore(work_dir / "terraform.tfvars.json")
        store.save(subscription_config)

        loaded = store.load()

        assert loaded.external_id == "ext-abc"
        assert loaded.app_display_name == "VectorPlane Security (sub-123)"

    def test_file_is_owner_only(
        self, work_dir: Path, subscription_config: OnboardingConfig
    ) -> None:
        """Test that the file holding the callback secret is not world-readable."""
        path = work_dir / "terraform.tfvars.json"
        ConfigStore(path).save(subscription_config)

        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_no_temp_files_left(
        self, work_dir: Path, subscription_config: OnboardingConfig
    ) -> None:
        ConfigStore(work_dir / "terraform.tfvars.json").save(subscription_config)

        assert [p.name for p in work_dir.iterdir()] == ["terraform.tfvars.json"]

    def test_overwrite_keeps_late_bound_fields(
        self, work_dir: Path, subscription_config: OnboardingConfig
    ) -> None:
        path = work_dir / "terraform.tfvars.json"
        store = ConfigStore(path)
        store.save(subscription_config)

        subscription_config.subscription_id = "sub-999"
        store.save(subscription_config)

        assert json.loads(path.read_text())["subscription_id"] == "sub-999"

    def test_load_missing(self, work_dir: Path) -> None:
        with pytest.raises(FileNotFoundError):
            ConfigStore(work_dir / "terraform.tfvars.json").load()

    def test_load_invalid_json(self, work_dir: Path) -> None:
        path = work_dir / "terraform.tfvars.json"
        path.write_text("{not json")

        with pytest.raises(ValueError, match="not valid JSON"):
            ConfigStore(path).load()

    def test_load_invalid_config(self, work_dir: Path) -> None:
        path = work_dir / "terraform.tfvars.json"
        path.write_text(json.dumps({"subscription_id": "sub-123"}))

        with pytest.raises(ValueError, match="not a valid onboarding config"):
            ConfigStore(path).load()
