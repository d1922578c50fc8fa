"""Tests for the vectorplane-onboard command."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from unittest import mock

import pytest
from click.testing import CliRunner

from onboarding.main import JsonFormatter, cli

CLEAN_ENV: dict[str, str | None] = {
    "AZURE_CLIENT_SECRET": None,
    "AZURE_CLIENT_CERTIFICATE_PATH": None,
    "AZURE_CLIENT_CERTIFICATE_PASSWORD": None,
    "AZURE_USERNAME": None,
    "AZURE_PASSWORD": None,
    "ARM_CLIENT_SECRET": None,
    "VP_API_BASE": None,
    "VP_PAIRING_CODE": None,
}


@pytest.fixture(autouse=True)
def restore_root_logger() -> Iterator[None]:
    """setup_logging replaces root handlers with ones bound to the runner streams."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestCli:
    @mock.patch("onboarding.main.build_workflow")
    def test_runs_workflow(self, mock_build: mock.Mock, work_dir: Path) -> None:
        mock_build.return_value.run.return_value = 0

        result = CliRunner().invoke(
            cli, ["--code", "VP-7K2Q", "--work-dir", str(work_dir)], env=CLEAN_ENV
        )

        assert result.exit_code == 0
        settings = mock_build.call_args[0][0]
        assert settings.work_dir == work_dir
        mock_build.return_value.run.assert_called_once_with("VP-7K2Q")

    @mock.patch("onboarding.main.build_workflow")
    def test_code_from_environment(self, mock_build: mock.Mock, work_dir: Path) -> None:
        mock_build.return_value.run.return_value = 0
        env = {**CLEAN_ENV, "VP_PAIRING_CODE": "VP-ENV1"}

        CliRunner().invoke(cli, ["--work-dir", str(work_dir)], env=env)

        mock_build.return_value.run.assert_called_once_with("VP-ENV1")

    @mock.patch("onboarding.main.build_workflow")
    def test_workflow_failure_exit_code(self, mock_build: mock.Mock, work_dir: Path) -> None:
        mock_build.return_value.run.return_value = 1

        result = CliRunner().invoke(cli, ["--work-dir", str(work_dir)], env=CLEAN_ENV)

        assert result.exit_code == 1

    @mock.patch("onboarding.main.build_workflow")
    def test_secretless_violation_exits_2(self, mock_build: mock.Mock, work_dir: Path) -> None:
        env = {**CLEAN_ENV, "AZURE_CLIENT_SECRET": "leaked"}

        result = CliRunner().invoke(cli, ["--work-dir", str(work_dir)], env=env)

        assert result.exit_code == 2
        assert "AZURE_CLIENT_SECRET" in result.output
        mock_build.assert_not_called()

    @mock.patch("onboarding.main.build_workflow")
    def test_missing_workspace(self, mock_build: mock.Mock, tmp_path: Path) -> None:
        result = CliRunner().invoke(
            cli, ["--work-dir", str(tmp_path / "absent")], env=CLEAN_ENV
        )

        assert result.exit_code == 1
        assert "Workspace not found" in result.output
        mock_build.assert_not_called()

    def test_invalid_api_base(self, work_dir: Path) -> None:
        result = CliRunner().invoke(
            cli, ["--work-dir", str(work_dir), "--api-base", "not-a-url"], env=CLEAN_ENV
        )

        assert result.exit_code == 1
        assert "VP_API_BASE" in result.output

    def test_version(self) -> None:
        result = CliRunner().invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestJsonFormatter:
    def test_includes_extras(self) -> None:
        record = logging.LogRecord(
            "onboarding.reconciler", logging.INFO, __file__, 1, "Imported %s", ("app",), None
        )
        record.address = "azuread_application.vectorplane"

        data = json.loads(JsonFormatter().format(record))

        assert data["message"] == "Imported app"
        assert data["level"] == "INFO"
        assert data["address"] == "azuread_application.vectorplane"
        assert "msg" not in data
