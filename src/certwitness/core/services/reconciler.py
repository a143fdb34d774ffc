"""Chain reconciliation.

Comparison is an explicit, order-sensitive walk over two fingerprint
sequences. Position 0 is the leaf; a permutation of the expected chain is a
mismatch.
"""

from __future__ import annotations

import logging
from itertools import zip_longest

from certwitness.core.domain.errors import ReconciliationError
from certwitness.core.domain.models import (
    ChainDifference,
    ChainSnapshot,
    VerificationResult,
)

logger = logging.getLogger(__name__)


def _check_comparable(live: ChainSnapshot, attested: ChainSnapshot) -> None:
    if live.mode is not attested.mode:
        raise ReconciliationError(
            f"cannot compare a {live.mode.value} snapshot with a {attested.mode.value} snapshot"
        )
    if live.strategy is not attested.strategy:
        raise ReconciliationError(
            f"cannot compare {live.strategy.value} fingerprints with {attested.strategy.value} fingerprints"
        )


def diff_chains(live: tuple[str, ...], attested: tuple[str, ...]) -> tuple[ChainDifference, ...]:
    """Positions where the sequences disagree, including length overhang."""

    return tuple(
        ChainDifference(position=position, live=a, attested=b)
        for position, (a, b) in enumerate(zip_longest(live, attested))
        if a != b
    )


def reconcile(domain: str, live: ChainSnapshot, attested: ChainSnapshot) -> VerificationResult:
    """Binary verdict for one domain.

    Leaf snapshots hold exactly one fingerprint, so both modes reduce to the
    same positional comparison.
    """

    _check_comparable(live, attested)

    differences = diff_chains(live.fingerprints, attested.fingerprints)
    matched = not differences
    if not matched:
        logger.debug(
            "%s: %d differing position(s) (live=%d certs, attested=%d certs)",
            domain,
            len(differences),
            len(live.fingerprints),
            len(attested.fingerprints),
        )

    return VerificationResult(
        domain=domain,
        matched=matched,
        live=live,
        attested=attested,
        differences=differences,
    )
