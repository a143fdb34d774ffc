"""Verification orchestration.

This module owns the per-domain flow (fetch both views concurrently,
reconcile, classify) and the batch fan-out. Entry points (CLI, library
callers, tests) delegate here so printing and progress stay out of the core.

Failure policy:
- Every error raised while checking a domain becomes a `failed` `DomainCheck`;
  errors outside the taxonomy are logged with their traceback and tagged
  `unexpected`.
- One domain failing never stops the others.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from certwitness.adapters.chain_sources import AttestedChainFetcher, LiveChainFetcher
from certwitness.core.config import AppSettings
from certwitness.core.domain.errors import (
    CertWitnessError,
    FetchError,
    InvalidDomainError,
    ProtocolError,
    ReconciliationError,
)
from certwitness.core.domain.models import (
    BatchReport,
    CheckFailure,
    CheckStatus,
    DomainCheck,
    FailureKind,
    normalize_domain,
)
from certwitness.core.interfaces.fetcher import ChainFetcher
from certwitness.core.services.reconciler import reconcile

logger = logging.getLogger(__name__)


@dataclass
class PipelineHooks:
    """Optional callbacks for UI layers (progress)."""

    on_check: Callable[[DomainCheck], None] | None = None


def _failure_from(exc: Exception) -> CheckFailure:
    if isinstance(exc, FetchError):
        kind = FailureKind.PROTOCOL if isinstance(exc, ProtocolError) else FailureKind.TRANSPORT
        return CheckFailure(kind=kind, source=exc.source, message=str(exc))
    if isinstance(exc, InvalidDomainError):
        return CheckFailure(kind=FailureKind.INVALID_DOMAIN, message=str(exc))
    if isinstance(exc, ReconciliationError):
        return CheckFailure(kind=FailureKind.RECONCILIATION, message=str(exc))
    return CheckFailure(kind=FailureKind.UNEXPECTED, message=f"{type(exc).__name__}: {exc}")


async def verify_domain(
    domain: str,
    *,
    settings: AppSettings,
    live_fetcher: ChainFetcher | None = None,
    attested_fetcher: ChainFetcher | None = None,
) -> DomainCheck:
    """Check one domain and return a tagged outcome (never raises per-domain errors)."""

    try:
        name = normalize_domain(domain)
    except InvalidDomainError as exc:
        logger.warning("%s", exc)
        return DomainCheck.from_failure(domain.strip() or domain, _failure_from(exc))

    live_fetcher = live_fetcher or LiveChainFetcher(settings)
    attested_fetcher = attested_fetcher or AttestedChainFetcher(settings)

    # Both fetches run to completion so a failure in one never leaves the
    # other's connection dangling.
    live, attested = await asyncio.gather(
        live_fetcher.fetch(name),
        attested_fetcher.fetch(name),
        return_exceptions=True,
    )
    for outcome in (live, attested):
        if isinstance(outcome, CertWitnessError):
            logger.warning("%s", outcome)
            return DomainCheck.from_failure(name, _failure_from(outcome))
        if isinstance(outcome, Exception):
            logger.error("%s: unexpected error", name, exc_info=outcome)
            return DomainCheck.from_failure(name, _failure_from(outcome))
        if isinstance(outcome, BaseException):
            raise outcome

    try:
        result = reconcile(name, live, attested)
    except ReconciliationError as exc:
        logger.warning("%s: %s", name, exc)
        return DomainCheck.from_failure(name, _failure_from(exc))
    except Exception as exc:
        logger.exception("%s: unexpected error", name)
        return DomainCheck.from_failure(name, _failure_from(exc))

    logger.info("Domain: %s, Certificates matched? %s", name, result.matched)
    return DomainCheck.from_result(result)


async def verify_batch(
    domains: Sequence[str],
    *,
    settings: AppSettings,
    hooks: PipelineHooks | None = None,
    live_fetcher: ChainFetcher | None = None,
    attested_fetcher: ChainFetcher | None = None,
) -> BatchReport:
    """Check every domain independently; results keep input order."""

    hooks = hooks or PipelineHooks()
    sem = asyncio.Semaphore(max(1, settings.max_concurrency))

    async def check_one(domain: str) -> DomainCheck:
        async with sem:
            check = await verify_domain(
                domain,
                settings=settings,
                live_fetcher=live_fetcher,
                attested_fetcher=attested_fetcher,
            )
        if hooks.on_check:
            hooks.on_check(check)
        return check

    checks = await asyncio.gather(*(check_one(domain) for domain in domains))
    return BatchReport(checks=list(checks))


def validate_certificate(domain: str, settings: AppSettings | None = None) -> bool:
    """Synchronous convenience: True only when both views matched.

    `False` covers both a verified mismatch and a check that could not be
    completed; use `verify_domain` to tell them apart.
    """

    check = asyncio.run(verify_domain(domain, settings=settings or AppSettings()))
    return check.status is CheckStatus.MATCHED
