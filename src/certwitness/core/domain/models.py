"""Modelos del dominio (Pydantic v2).

Por qué Pydantic en el dominio:
- La validación estricta al construir deja los invariantes de los snapshots
  (una sola huella en modo leaf, nunca una cadena vacía) fuera de los servicios.
- `model_dump(mode="json")` da a la CLI y al exportador JSON una serialización
  estable sin esfuerzo.

Nota:
- Estos modelos describen *qué* se observó, no *cómo* se obtuvo.
"""


from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, computed_field, model_validator
from pydantic.config import ConfigDict

from certwitness.core.domain.errors import InvalidDomainError


class ComparisonMode(str, Enum):
    """Qué parte de la cadena aporta cada fuente."""

    LEAF = "leaf"
    FULL_CHAIN = "full_chain"


class FingerprintStrategy(str, Enum):
    """Cómo un certificado se convierte en una identidad comparable."""

    SHA256 = "sha256"
    PEM = "pem"


class ChainSource(str, Enum):
    LIVE = "live"
    ATTESTED = "attested"


class CheckStatus(str, Enum):
    MATCHED = "matched"
    MISMATCHED = "mismatched"
    FAILED = "failed"


class FailureKind(str, Enum):
    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    INVALID_DOMAIN = "invalid_domain"
    RECONCILIATION = "reconciliation"
    UNEXPECTED = "unexpected"


class ChainSnapshot(BaseModel):
    """Vista de una fuente sobre la cadena de un dominio (la hoja primero)."""

    model_config = ConfigDict(frozen=True)

    source: ChainSource = Field(
        ...,
        description="Dónde se observó la cadena.",
    )
    mode: ComparisonMode = Field(
        ...,
        description="Solo la hoja o la cadena completa.",
    )
    strategy: FingerprintStrategy = Field(
        ...,
        description="Estrategia de huella usada en todas las entradas.",
    )
    fingerprints: tuple[str, ...] = Field(
        ...,
        min_length=1,
        description="Huellas en el orden presentado por el servidor (la posición 0 es la hoja).",
    )

    @model_validator(mode="after")
    def _leaf_has_one_entry(self) -> "ChainSnapshot":
        if self.mode is ComparisonMode.LEAF and len(self.fingerprints) != 1:
            raise ValueError(
                f"leaf snapshot must hold exactly one fingerprint, got {len(self.fingerprints)}"
            )
        return self

    @property
    def leaf(self) -> str:
        return self.fingerprints[0]


class ChainDifference(BaseModel):
    """Posición donde las dos cadenas difieren (None = falta en ese lado)."""

    model_config = ConfigDict(frozen=True)

    position: int = Field(..., ge=0)
    live: str | None = None
    attested: str | None = None


class VerificationResult(BaseModel):
    """Veredicto de una reconciliación, con ambos snapshots para diagnóstico."""

    model_config = ConfigDict(frozen=True)

    domain: str = Field(..., min_length=1)
    matched: bool
    live: ChainSnapshot
    attested: ChainSnapshot
    differences: tuple[ChainDifference, ...] = Field(
        default=(),
        description="Vacío cuando `matched` es true.",
    )


class CheckFailure(BaseModel):
    """Por qué no se pudo completar una verificación."""

    model_config = ConfigDict(frozen=True)

    kind: FailureKind
    source: ChainSource | None = None
    message: str


class DomainCheck(BaseModel):
    """Resultado etiquetado por dominio: matched, mismatched o failed.

    Reglas:
    - `matched` / `mismatched` llevan `result` y ningún `error`.
    - `failed` lleva `error` y ningún `result`.
    """

    model_config = ConfigDict(frozen=True)

    domain: str
    status: CheckStatus
    result: VerificationResult | None = None
    error: CheckFailure | None = None

    @model_validator(mode="after")
    def _status_matches_payload(self) -> "DomainCheck":
        if self.status is CheckStatus.FAILED:
            if self.error is None or self.result is not None:
                raise ValueError("failed check must carry an error and no result")
        else:
            if self.result is None or self.error is not None:
                raise ValueError("completed check must carry a result and no error")
            if self.result.matched != (self.status is CheckStatus.MATCHED):
                raise ValueError("status disagrees with result.matched")
        return self

    @classmethod
    def from_result(cls, result: VerificationResult) -> "DomainCheck":
        status = CheckStatus.MATCHED if result.matched else CheckStatus.MISMATCHED
        return cls(domain=result.domain, status=status, result=result)

    @classmethod
    def from_failure(cls, domain: str, failure: CheckFailure) -> "DomainCheck":
        return cls(domain=domain, status=CheckStatus.FAILED, error=failure)


class BatchReport(BaseModel):
    """Resultados por dominio de un lote, en el orden de entrada."""

    checks: list[DomainCheck] = Field(default_factory=list)
    checked_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Cuándo terminó el lote (UTC).",
    )

    def _count(self, status: CheckStatus) -> int:
        return sum(1 for check in self.checks if check.status is status)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def matched(self) -> int:
        return self._count(CheckStatus.MATCHED)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def mismatched(self) -> int:
        return self._count(CheckStatus.MISMATCHED)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failed(self) -> int:
        return self._count(CheckStatus.FAILED)


_FORBIDDEN_DOMAIN_CHARS = frozenset("/:?#@\\")


def normalize_domain(value: str) -> str:
    """Hostname canónico, usado tanto para SNI como en la ruta de la URL de atestación."""

    cleaned = value.strip().lower()
    if cleaned.endswith("."):
        cleaned = cleaned[:-1]
    if not cleaned:
        raise InvalidDomainError(value, "empty")
    if any(ch.isspace() for ch in cleaned):
        raise InvalidDomainError(value, "contains whitespace")
    if any(ch in _FORBIDDEN_DOMAIN_CHARS for ch in cleaned):
        raise InvalidDomainError(value, "contains URL or port syntax")
    if len(cleaned) > 253:
        raise InvalidDomainError(value, "longer than 253 characters")
    labels = cleaned.split(".")
    if any(not label for label in labels):
        raise InvalidDomainError(value, "empty label")
    if any(len(label) > 63 for label in labels):
        raise InvalidDomainError(value, "label longer than 63 characters")
    try:
        encoded = cleaned.encode("idna")
    except UnicodeError as exc:
        raise InvalidDomainError(value, f"not encodable as IDNA ({exc})") from exc
    if len(encoded) > 253:
        raise InvalidDomainError(value, "longer than 253 characters once IDNA-encoded")
    return cleaned
