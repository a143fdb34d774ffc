"""Exportación JSON del reporte de un lote.

Por qué JSON:
- Un scheduler o un job de alertas externo puede consumir los veredictos sin
  parsear la tabla de la terminal.
"""


from __future__ import annotations

import json
from pathlib import Path

from certwitness.core.domain.models import BatchReport


def export_report_json(*, report: BatchReport, output_path: Path) -> Path:
    """Escribe el `BatchReport` como JSON UTF-8 con un layout estable."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = report.model_dump(mode="json")
    output_path.write_text(
        json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )
    return output_path
