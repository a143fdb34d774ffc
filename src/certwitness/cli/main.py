"""certwitness CLI (Typer + Rich).

Commands:
- `check DOMAIN...`: verify one or more domains, print a table, optionally
  write JSON. Exit code 0 = all matched, 1 = some mismatched, 2 = some failed.
- `doctor ...`: configuration and connectivity diagnostics.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from certwitness.adapters.json_exporter import export_report_json
from certwitness.cli import doctor
from certwitness.cli.ui_components import build_mismatch_panel, build_results_table, print_banner
from certwitness.core.config import AppSettings
from certwitness.core.domain.models import (
    BatchReport,
    CheckStatus,
    ComparisonMode,
    DomainCheck,
    FingerprintStrategy,
)
from certwitness.core.services.verification_pipeline import PipelineHooks, verify_batch

app = typer.Typer(
    no_args_is_help=True,
    help="Compare a domain's live TLS chain with the chain an attestation service recorded.",
)
app.add_typer(doctor.app, name="doctor")

_console = Console()

EXIT_MATCHED = 0
EXIT_MISMATCHED = 1
EXIT_FAILED = 2


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )


def exit_code_for(report: BatchReport) -> int:
    if report.failed:
        return EXIT_FAILED
    if report.mismatched:
        return EXIT_MISMATCHED
    return EXIT_MATCHED


@app.command()
def check(
    domains: list[str] = typer.Argument(..., help="Domains to verify (checked independently)."),
    mode: Optional[ComparisonMode] = typer.Option(None, "--mode", help="leaf or full_chain."),
    strategy: Optional[FingerprintStrategy] = typer.Option(None, "--strategy", help="sha256 or pem."),
    remote_digests: Optional[bool] = typer.Option(
        None,
        "--remote-digests/--no-remote-digests",
        help="Use the service's chain digests instead of re-hashing its PEMs.",
    ),
    json_out: Optional[Path] = typer.Option(None, "--json-out", help="Also write the report as JSON."),
    no_banner: bool = typer.Option(False, "--no-banner", help="Skip the banner."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Verify DOMAINS and report matched / mismatched / failed for each."""

    overrides: dict[str, Any] = {}
    if mode is not None:
        overrides["comparison_mode"] = mode
    if strategy is not None:
        overrides["fingerprint_strategy"] = strategy
    if remote_digests is not None:
        overrides["trust_remote_digests"] = remote_digests
    settings = AppSettings(**overrides)

    configure_logging("DEBUG" if verbose else settings.log_level)
    if not no_banner:
        print_banner(_console)

    with _console.status("Checking certificate chains...") as status:

        def progress(done: DomainCheck) -> None:
            status.update(f"Checked {done.domain}")

        report = asyncio.run(
            verify_batch(domains, settings=settings, hooks=PipelineHooks(on_check=progress))
        )

    _console.print(build_results_table(report))
    for item in report.checks:
        if item.status is CheckStatus.MISMATCHED:
            _console.print(build_mismatch_panel(item))

    if json_out is not None:
        path = export_report_json(report=report, output_path=json_out)
        _console.print(f"[green]Report written to:[/green] {path}")

    raise typer.Exit(code=exit_code_for(report))


def run() -> None:
    app()
