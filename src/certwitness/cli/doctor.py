"""Doctor commands: environment diagnostics and user configuration."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from certwitness.adapters.http_client import build_async_client
from certwitness.core.config import AppSettings, get_user_env_file, write_user_env_vars
from certwitness.core.domain.models import ComparisonMode, FingerprintStrategy

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()


async def _check_http(settings: AppSettings) -> tuple[bool, str]:
    try:
        async with build_async_client(settings) as client:
            response = await client.get(settings.attestation_base_url)
        return True, f"HTTP {response.status_code}"
    except Exception as exc:
        return False, str(exc)


@app.command()
def run() -> None:
    """Show the effective configuration and check the attestation service is reachable."""

    settings = AppSettings()

    table = Table(title="certwitness doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    table.add_row("Attestation URL", "OK", settings.attestation_base_url)
    table.add_row("Attestation timeout", "OK", f"{settings.attestation_timeout_seconds:g}s")
    table.add_row("TLS target", "OK", f"port {settings.tls_port}, timeout {settings.tls_timeout_seconds:g}s")
    table.add_row("Comparison", "OK", f"{settings.comparison_mode.value} / {settings.fingerprint_strategy.value}")

    if settings.comparison_mode is ComparisonMode.FULL_CHAIN and settings.fingerprint_strategy is FingerprintStrategy.SHA256:
        detail = "service digests" if settings.trust_remote_digests else "re-hashed locally"
        table.add_row("Chain digests", "OK", detail)

    ok_http, detail_http = asyncio.run(_check_http(settings))
    table.add_row("Attestation connectivity", "OK" if ok_http else "FAIL", detail_http)

    _console.print(table)
    _console.print(f"\n[dim]User config file:[/dim] {get_user_env_file()}")


@app.command(name="setup")
def setup() -> None:
    """Interactive setup (stores config in the user config .env)."""

    current = AppSettings()

    base_url = typer.prompt(
        "Attestation base URL", default=current.attestation_base_url, show_default=True
    ).strip()
    mode = typer.prompt(
        "Comparison mode (leaf/full_chain)", default=current.comparison_mode.value, show_default=True
    ).strip().lower()
    strategy = typer.prompt(
        "Fingerprint strategy (sha256/pem)", default=current.fingerprint_strategy.value, show_default=True
    ).strip().lower()

    if mode not in {m.value for m in ComparisonMode}:
        raise typer.BadParameter(f"unknown comparison mode: {mode}")
    if strategy not in {s.value for s in FingerprintStrategy}:
        raise typer.BadParameter(f"unknown fingerprint strategy: {strategy}")
    if not base_url.startswith(("https://", "http://")):
        raise typer.BadParameter("base URL must start with http:// or https://")

    env_path = write_user_env_vars(
        {
            "CERTWITNESS_ATTESTATION_BASE_URL": base_url,
            "CERTWITNESS_COMPARISON_MODE": mode,
            "CERTWITNESS_FINGERPRINT_STRATEGY": strategy,
        }
    )

    _console.print(f"[green]Saved config to:[/green] {env_path}")
