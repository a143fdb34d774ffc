"""Componentes de UI para CLI (Rich).

Por qué separar componentes:
- Evita mezclar lógica de comandos con detalles visuales.
- El banner, la tabla de resultados y los paneles de diferencias se reutilizan
  en `check` y `doctor`.
"""


from __future__ import annotations

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from certwitness.core.domain.models import BatchReport, CheckStatus, DomainCheck, FingerprintStrategy

_STATUS_STYLES = {
    CheckStatus.MATCHED: "green",
    CheckStatus.MISMATCHED: "bold red",
    CheckStatus.FAILED: "yellow",
}


def print_banner(console: Console) -> None:
    """Imprime el banner de bienvenida (se omite en ejecuciones solo-JSON)."""

    title = Text("certwitness", style="bold cyan")
    subtitle = Text("Live TLS chain vs attested chain", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="cyan", padding=(1, 4)))


def short_fingerprint(value: str | None) -> str:
    if value is None:
        return "-"
    if value.startswith("-----BEGIN"):
        body = "".join(value.splitlines()[1:-1])
        return f"pem:{body[-16:]}"
    return value[:16]


def describe_check(check: DomainCheck) -> str:
    if check.status is CheckStatus.FAILED:
        assert check.error is not None
        return f"{check.error.kind.value}: {check.error.message}"
    assert check.result is not None
    if check.status is CheckStatus.MATCHED:
        return f"{len(check.result.live.fingerprints)} certificate(s) agree"
    return f"{len(check.result.differences)} position(s) differ"


def build_results_table(report: BatchReport) -> Table:
    table = Table(title="Certificate chain checks")
    table.add_column("Domain", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Detail", style="dim")
    for check in report.checks:
        style = _STATUS_STYLES[check.status]
        table.add_row(check.domain, Text(check.status.value, style=style), describe_check(check))
    return table


def build_mismatch_panel(check: DomainCheck) -> Panel:
    """Panel con las huellas, lado a lado, de las posiciones que difieren."""

    assert check.result is not None
    result = check.result
    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Live", style="magenta")
    table.add_column("Attested", style="blue")
    for diff in result.differences:
        table.add_row(str(diff.position), short_fingerprint(diff.live), short_fingerprint(diff.attested))

    subtitle = f"mode={result.live.mode.value}"
    if result.live.strategy is FingerprintStrategy.PEM:
        subtitle += ", strategy=pem"
    return Panel(
        table,
        title=Text(f"Mismatch: {check.domain}", style="bold red"),
        subtitle=subtitle,
        border_style="red",
    )
