"""Chain source: live TLS handshake (pyOpenSSL).

Connects to `domain:tls_port`, completes a handshake with SNI and reads the
peer chain exactly as the server presented it (leaf first).

Certificate verification is disabled on purpose: this source observes what
is served, including self-signed or otherwise invalid chains.

The handshake is blocking and runs in a worker thread so it can be awaited
next to the attestation request.
"""

from __future__ import annotations

import asyncio
import logging
import select
import socket
import time

from OpenSSL import SSL, crypto

from certwitness.core.config import AppSettings
from certwitness.core.domain.errors import ProtocolError, TransportError
from certwitness.core.domain.models import ChainSnapshot, ChainSource, ComparisonMode
from certwitness.core.interfaces.fetcher import ChainFetcher
from certwitness.core.services.fingerprint import fingerprint

logger = logging.getLogger(__name__)


def _client_context() -> SSL.Context:
    context = SSL.Context(SSL.TLS_CLIENT_METHOD)
    context.set_verify(SSL.VERIFY_NONE, lambda *args: True)
    return context


def _handshake(conn: SSL.Connection, sock: socket.socket, timeout: float) -> None:
    """Drive a non-blocking handshake until done or `timeout` elapses."""

    deadline = time.monotonic() + timeout
    while True:
        try:
            conn.do_handshake()
            return
        except SSL.WantReadError:
            want_read = True
        except SSL.WantWriteError:
            want_read = False

        remaining = deadline - time.monotonic()
        if remaining > 0:
            if want_read:
                ready = select.select([sock], [], [], remaining)[0]
            else:
                ready = select.select([], [sock], [], remaining)[1]
            if ready:
                continue
        raise TimeoutError(f"TLS handshake did not complete within {timeout:g}s")


def _close_logged(sock: socket.socket, domain: str) -> None:
    try:
        sock.close()
    except OSError:
        logger.exception("closing TLS connection to %s failed", domain)


class LiveChainFetcher(ChainFetcher):
    """Observes the chain a server presents during a live handshake."""

    source = ChainSource.LIVE

    def __init__(self, settings: AppSettings | None = None) -> None:
        self._settings = settings or AppSettings()

    async def fetch(self, domain: str) -> ChainSnapshot:
        chain = await asyncio.to_thread(self.peer_chain, domain)
        if self._settings.comparison_mode is ComparisonMode.LEAF:
            chain = chain[:1]

        strategy = self._settings.fingerprint_strategy
        try:
            fingerprints = tuple(fingerprint(der, strategy) for der in chain)
        except ValueError as exc:
            raise ProtocolError(
                domain=domain, source=self.source, message="PEM encoding failed", cause=exc
            ) from exc

        return ChainSnapshot(
            source=self.source,
            mode=self._settings.comparison_mode,
            strategy=strategy,
            fingerprints=fingerprints,
        )

    def peer_chain(self, domain: str) -> list[bytes]:
        """DER certificates presented by `domain`, in server order."""

        port = self._settings.tls_port
        timeout = self._settings.tls_timeout_seconds
        address = f"{domain}:{port}"

        try:
            server_name = domain.encode("idna")
        except UnicodeError as exc:
            raise ProtocolError(
                domain=domain, source=self.source, message=f"{domain!r} is not a valid SNI name", cause=exc
            ) from exc

        try:
            sock = socket.create_connection((domain, port), timeout=timeout)
        except (OSError, UnicodeError) as exc:
            raise TransportError(
                domain=domain, source=self.source, message=f"cannot connect to {address}", cause=exc
            ) from exc

        try:
            conn = SSL.Connection(_client_context(), sock)
            conn.set_tlsext_host_name(server_name)
            conn.set_connect_state()
            _handshake(conn, sock, timeout)
            presented = conn.get_peer_cert_chain()
        except SSL.SysCallError as exc:
            raise TransportError(
                domain=domain, source=self.source, message=f"connection to {address} dropped", cause=exc
            ) from exc
        except SSL.Error as exc:
            raise ProtocolError(
                domain=domain, source=self.source, message=f"TLS handshake with {address} failed", cause=exc
            ) from exc
        except OSError as exc:
            raise TransportError(
                domain=domain, source=self.source, message=f"TLS handshake with {address} failed", cause=exc
            ) from exc
        finally:
            _close_logged(sock, domain)

        if not presented:
            raise ProtocolError(
                domain=domain, source=self.source, message=f"{address} presented no certificates"
            )

        logger.debug("%s presented %d certificate(s)", address, len(presented))
        return [crypto.dump_certificate(crypto.FILETYPE_ASN1, cert) for cert in presented]
