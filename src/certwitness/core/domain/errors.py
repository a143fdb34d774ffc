"""Error taxonomy.

Why separate from the models:
- Fetch failures and mismatches are different things. A mismatch is a normal
  verdict (`CheckStatus.MISMATCHED`); only the classes below mean "the check
  could not be completed".
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from certwitness.core.domain.models import ChainSource


class CertWitnessError(Exception):
    """Base class for every error raised by certwitness."""


class InvalidDomainError(CertWitnessError, ValueError):
    """The supplied value cannot be used as SNI name and API path segment."""

    def __init__(self, value: str, reason: str) -> None:
        super().__init__(f"invalid domain {value!r}: {reason}")
        self.value = value
        self.reason = reason


class FetchError(CertWitnessError):
    """A source could not produce a snapshot for `domain`."""

    def __init__(
        self,
        *,
        domain: str,
        source: ChainSource,
        message: str,
        cause: BaseException | None = None,
    ) -> None:
        detail = f"{source.value} fetch for {domain} failed: {message}"
        if cause is not None:
            detail = f"{detail} ({type(cause).__name__}: {cause})"
        super().__init__(detail)
        self.domain = domain
        self.source = source
        self.cause = cause


class TransportError(FetchError):
    """DNS, connect, dial or timeout failure."""


class ProtocolError(FetchError):
    """TLS handshake failure, bad HTTP status, undecodable or incomplete payload."""


class ReconciliationError(CertWitnessError):
    """Snapshots that cannot be compared (different mode or strategy)."""
