"""Configuración del Core.

Por qué aquí:
- Centraliza variables de entorno (pydantic-settings) sin contaminar la CLI.
- Permite que ambas fuentes de cadena lean timeouts y política de comparación
  de forma consistente.
"""


from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from certwitness.core.domain.models import ComparisonMode, FingerprintStrategy


def get_user_config_dir() -> Path:
    """Directorio de configuración por usuario (cross-platform, sin dependencias)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "certwitness"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "certwitness"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "certwitness"
    return Path.home() / ".config" / "certwitness"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _parse_env_lines(text: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if key:
            data[key] = value.strip().strip('"').strip("'")
    return data


def write_user_env_vars(values: dict[str, str], env_path: Path | None = None) -> Path:
    """Escribe/actualiza variables en el .env global del usuario, conservando el resto."""

    env_path = env_path or get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, str] = {}
    if env_path.exists():
        existing = _parse_env_lines(env_path.read_text(encoding="utf-8"))

    existing.update({k: v for k, v in values.items() if v is not None})

    lines = ["# certwitness user config (.env)"]
    for key in sorted(existing):
        lines.append(f"{key}={existing[key]}")
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return env_path


class AppSettings(BaseSettings):
    """Configuración central de la aplicación.

    Por qué pydantic-settings:
    - Valores tipados y validados en el borde (env vars) en vez de parseo ad-hoc.
    - Un único contrato de configuración para la CLI y ambos adaptadores.
    """

    model_config = SettingsConfigDict(
        env_prefix="CERTWITNESS_",
        extra="ignore",
        case_sensitive=False,
        # Order: project first (dev), then the user's global config.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    attestation_base_url: str = Field(
        default="https://api.cert.ist",
        min_length=8,
        description="URL base del servicio de atestación; el dominio se añade como segmento de ruta.",
    )
    attestation_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Timeout total por request de atestación (segundos).",
    )

    tls_port: int = Field(
        default=443,
        ge=1,
        le=65535,
        description="Puerto del handshake TLS en vivo.",
    )
    tls_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Límite para la conexión TCP y para el handshake TLS (segundos, cada uno).",
    )

    comparison_mode: ComparisonMode = Field(
        default=ComparisonMode.FULL_CHAIN,
        description="Comparar solo la hoja o toda la cadena presentada.",
    )
    fingerprint_strategy: FingerprintStrategy = Field(
        default=FingerprintStrategy.SHA256,
        description="sha256 (recomendado) o el texto PEM canónico.",
    )
    trust_remote_digests: bool = Field(
        default=True,
        description="Solo full_chain + sha256: usar los digests del servicio en vez de re-hashear sus PEM.",
    )

    max_concurrency: int = Field(
        default=10,
        ge=1,
        le=200,
        description="Máximo de dominios verificados a la vez en un lote.",
    )
    user_agent: str = Field(
        default="certwitness/0.1",
        min_length=1,
        description="User-Agent enviado al servicio de atestación.",
    )
    log_level: str = Field(
        default="WARNING",
        description="Nivel de log raíz usado por la CLI.",
    )
