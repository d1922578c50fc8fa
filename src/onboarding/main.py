"""Entry point for VectorPlane Azure onboarding.

Usage (in Azure Cloud Shell, from the cloned module workspace):
    vectorplane-onboard
    vectorplane-onboard --code VP-7K2Q --work-dir ~/vectorplane-azure-connect

Exit codes:
    0  integration deployed (even if the dashboard callback failed)
    1  any fatal onboarding error
    2  secretless violation (credential secrets found in the environment)
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

import click
import httpx

from .config import ConfigurationError, Settings
from .security import SecretlessViolationError, enforce_secretless_architecture
from .workflow import build_workflow

# LogRecord attributes that are not user-supplied extras
_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(verbose: bool = False, json_logs: bool = False) -> None:
    """Log to stderr so operator-facing output on stdout stays readable."""
    handler = logging.StreamHandler(sys.stderr)
    if json_logs:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        handlers=[handler],
        force=True,
    )

    # Reduce noise from SDKs
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def prompt_for_code() -> str:
    return click.prompt(
        "Enter pairing code from dashboard (e.g. VP-XXXX)",
        default="",
        show_default=False,
    )


@click.command()
@click.version_option(version="0.1.0", prog_name="vectorplane-onboard")
@click.option("--code", envvar="VP_PAIRING_CODE", help="Pairing code (prompted when omitted).")
@click.option(
    "--work-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Workspace holding the Terraform module [env: VP_WORK_DIR].",
)
@click.option("--api-base", help="VectorPlane API base URL [env: VP_API_BASE].")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging on stderr.")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines.")
def cli(
    code: str | None,
    work_dir: Path | None,
    api_base: str | None,
    verbose: bool,
    json_logs: bool,
) -> None:
    """Connect an Azure subscription or management group to VectorPlane.

    Safe to re-run at any point: existing and soft-deleted resources are
    recovered instead of duplicated.
    """
    setup_logging(verbose=verbose, json_logs=json_logs)
    logger = logging.getLogger(__name__)

    try:
        settings = Settings.from_env(work_dir=work_dir, api_base=api_base)
    except ConfigurationError as e:
        logger.error("Configuration error", extra={"error": str(e)})
        raise click.ClickException(str(e)) from e

    try:
        enforce_secretless_architecture()
    except SecretlessViolationError as e:
        click.echo(str(e), err=True)
        sys.exit(2)

    if not settings.work_dir.is_dir():
        raise click.ClickException(
            f"Workspace not found: {settings.work_dir}. "
            "Clone the VectorPlane Terraform module there first."
        )

    with httpx.Client(timeout=settings.http_timeout_seconds) as http_client:
        workflow = build_workflow(settings, http_client, prompt_for_code)
        exit_code = workflow.run(code)

    sys.exit(exit_code)


def run() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    run()
