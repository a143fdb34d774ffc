"""Fuente de cadena: servicio de atestación (HTTPS + JSON).

Pregunta a un tercero qué ha observado para el dominio:
`GET <attestation_base_url>/<domain>`.

- modo leaf: `certificate.pem`, re-canonicalizado y con huella calculada aquí.
- modo full_chain: el array `chain` en orden, confiando en los digests
  `pem.hashes.sha256` del servicio o recalculándolos desde `certificate_pem`.
"""


from __future__ import annotations

import logging
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from certwitness.adapters.chain_sources.models import AttestationReply, ChainEntry
from certwitness.adapters.http_client import build_async_client
from certwitness.core.config import AppSettings
from certwitness.core.domain.errors import ProtocolError, TransportError
from certwitness.core.domain.models import (
    ChainSnapshot,
    ChainSource,
    ComparisonMode,
    FingerprintStrategy,
)
from certwitness.core.interfaces.fetcher import ChainFetcher
from certwitness.core.services.fingerprint import fingerprint_pem, normalize_remote_digest

logger = logging.getLogger(__name__)


class AttestedChainFetcher(ChainFetcher):
    """Obtiene la cadena que el servicio de atestación registró para un dominio."""

    source = ChainSource.ATTESTED

    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or AppSettings()
        self._transport = transport

    def endpoint(self, domain: str) -> str:
        base = self._settings.attestation_base_url.rstrip("/")
        return f"{base}/{quote(domain, safe='')}"

    async def fetch(self, domain: str) -> ChainSnapshot:
        url = self.endpoint(domain)
        logger.debug("GET %s", url)

        # The client owns the pooled connection; leaving the block releases it
        # on success and on every error below.
        try:
            async with build_async_client(self._settings, transport=self._transport) as client:
                response = await client.get(url)
        except httpx.TransportError as exc:
            raise TransportError(
                domain=domain, source=self.source, message="request failed", cause=exc
            ) from exc
        except httpx.HTTPError as exc:
            raise ProtocolError(
                domain=domain, source=self.source, message="request failed", cause=exc
            ) from exc

        if not response.is_success:
            raise ProtocolError(
                domain=domain,
                source=self.source,
                message=f"HTTP {response.status_code} from {url}",
            )

        try:
            reply = AttestationReply.model_validate(response.json())
        except ValidationError as exc:
            raise ProtocolError(
                domain=domain, source=self.source, message="unexpected reply schema", cause=exc
            ) from exc
        except ValueError as exc:
            raise ProtocolError(
                domain=domain, source=self.source, message="reply is not valid JSON", cause=exc
            ) from exc

        if self._settings.comparison_mode is ComparisonMode.LEAF:
            fingerprints = [self._leaf_fingerprint(domain, reply)]
        else:
            fingerprints = self._chain_fingerprints(domain, reply)

        return ChainSnapshot(
            source=self.source,
            mode=self._settings.comparison_mode,
            strategy=self._settings.fingerprint_strategy,
            fingerprints=tuple(fingerprints),
        )

    def _leaf_fingerprint(self, domain: str, reply: AttestationReply) -> str:
        if reply.certificate is None or not reply.certificate.pem:
            raise ProtocolError(
                domain=domain, source=self.source, message="reply has no certificate.pem"
            )
        return self._from_pem(domain, reply.certificate.pem, field="certificate.pem")

    def _chain_fingerprints(self, domain: str, reply: AttestationReply) -> list[str]:
        if not reply.chain:
            raise ProtocolError(domain=domain, source=self.source, message="reply has no chain")

        use_digests = (
            self._settings.trust_remote_digests
            and self._settings.fingerprint_strategy is FingerprintStrategy.SHA256
        )
        return [
            self._entry_fingerprint(domain, index, entry, use_digests)
            for index, entry in enumerate(reply.chain)
        ]

    def _entry_fingerprint(
        self, domain: str, index: int, entry: ChainEntry, use_digests: bool
    ) -> str:
        if use_digests:
            digest = entry.sha256
            if not digest:
                raise ProtocolError(
                    domain=domain,
                    source=self.source,
                    message=f"chain[{index}] has no pem.hashes.sha256",
                )
            try:
                return normalize_remote_digest(digest)
            except ValueError as exc:
                raise ProtocolError(
                    domain=domain,
                    source=self.source,
                    message=f"chain[{index}].pem.hashes.sha256 is malformed",
                    cause=exc,
                ) from exc

        if not entry.certificate_pem:
            raise ProtocolError(
                domain=domain,
                source=self.source,
                message=f"chain[{index}] has no certificate_pem",
            )
        return self._from_pem(domain, entry.certificate_pem, field=f"chain[{index}].certificate_pem")

    def _from_pem(self, domain: str, text: str, *, field: str) -> str:
        try:
            return fingerprint_pem(text, self._settings.fingerprint_strategy)
        except ValueError as exc:
            raise ProtocolError(
                domain=domain, source=self.source, message=f"{field} is not a PEM certificate", cause=exc
            ) from exc
