from __future__ import annotations

import asyncio
import logging
import socket
import threading
from typing import Callable

import pytest

from certwitness.adapters.chain_sources.live import LiveChainFetcher
from certwitness.core.config import AppSettings
from certwitness.core.domain.errors import FetchError, ProtocolError, TransportError
from certwitness.core.domain.models import ChainSource, ComparisonMode, FingerprintStrategy
from certwitness.core.services.fingerprint import encode_pem, fingerprint

from conftest import IssuedChain, closed_port


def _fetcher(port: int, **overrides) -> LiveChainFetcher:
    return LiveChainFetcher(AppSettings(_env_file=None, tls_port=port, **overrides))


def test_reads_presented_chain_in_order(tls_server: int, issued_chain: IssuedChain) -> None:
    snapshot = asyncio.run(_fetcher(tls_server).fetch("localhost"))

    assert snapshot.source is ChainSource.LIVE
    assert snapshot.mode is ComparisonMode.FULL_CHAIN
    assert snapshot.fingerprints == (fingerprint(issued_chain.leaf_der), fingerprint(issued_chain.ca_der))


def test_leaf_mode_keeps_position_zero(tls_server: int, issued_chain: IssuedChain) -> None:
    fetcher = _fetcher(
        tls_server,
        comparison_mode=ComparisonMode.LEAF,
        fingerprint_strategy=FingerprintStrategy.PEM,
    )

    snapshot = asyncio.run(fetcher.fetch("localhost"))

    assert snapshot.fingerprints == (encode_pem(issued_chain.leaf_der),)


def test_peer_chain_returns_der(tls_server: int, issued_chain: IssuedChain) -> None:
    assert _fetcher(tls_server).peer_chain("localhost") == [issued_chain.leaf_der, issued_chain.ca_der]


def test_refused_connection_is_a_transport_error() -> None:
    with pytest.raises(TransportError) as excinfo:
        asyncio.run(_fetcher(closed_port()).fetch("localhost"))

    assert excinfo.value.domain == "localhost"
    assert excinfo.value.source is ChainSource.LIVE
    assert isinstance(excinfo.value.cause, OSError)


def test_non_tls_peer_is_a_protocol_error(
    one_shot_server: Callable[[Callable[[socket.socket], None]], int],
) -> None:
    def handler(conn: socket.socket) -> None:
        conn.recv(4096)
        conn.sendall(b"HTTP/1.1 400 Bad Request\r\nContent-Length: 0\r\n\r\n" * 4)
        conn.settimeout(5)
        while conn.recv(4096):
            pass

    port = one_shot_server(handler)

    with pytest.raises(ProtocolError, match="handshake"):
        asyncio.run(_fetcher(port).fetch("localhost"))


def test_silent_peer_times_out(
    one_shot_server: Callable[[Callable[[socket.socket], None]], int],
) -> None:
    release = threading.Event()

    def handler(conn: socket.socket) -> None:
        release.wait(5)

    port = one_shot_server(handler)
    try:
        with pytest.raises(TransportError) as excinfo:
            asyncio.run(_fetcher(port, tls_timeout_seconds=0.3).fetch("localhost"))
    finally:
        release.set()

    assert isinstance(excinfo.value.cause, TimeoutError)


def test_socket_closed_after_handshake_failure(
    monkeypatch: pytest.MonkeyPatch,
    one_shot_server: Callable[[Callable[[socket.socket], None]], int],
) -> None:
    opened: list[socket.socket] = []
    real_create_connection = socket.create_connection

    def tracking_create_connection(*args, **kwargs) -> socket.socket:
        sock = real_create_connection(*args, **kwargs)
        opened.append(sock)
        return sock

    def handler(conn: socket.socket) -> None:
        conn.recv(4096)
        conn.sendall(b"not tls at all\r\n" * 16)
        conn.settimeout(5)
        while conn.recv(4096):
            pass

    monkeypatch.setattr(socket, "create_connection", tracking_create_connection)
    port = one_shot_server(handler)

    with pytest.raises(ProtocolError):
        _fetcher(port).peer_chain("localhost")

    assert len(opened) == 1
    assert opened[0].fileno() == -1


def test_overlong_label_is_a_fetch_error_not_a_unicode_error() -> None:
    with pytest.raises(FetchError) as excinfo:
        _fetcher(closed_port()).peer_chain("a" * 64 + ".test")

    assert excinfo.value.source is ChainSource.LIVE
    assert isinstance(excinfo.value.cause, UnicodeError)


class FailingClose:
    """Socket proxy whose `close` releases the descriptor and then raises."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock

    def __getattr__(self, name: str):
        return getattr(self._sock, name)

    def close(self) -> None:
        self._sock.close()
        raise OSError(9, "close failed")


def _failing_close_connections(monkeypatch: pytest.MonkeyPatch) -> None:
    real_create_connection = socket.create_connection

    def create_connection(*args, **kwargs) -> FailingClose:
        return FailingClose(real_create_connection(*args, **kwargs))

    monkeypatch.setattr(socket, "create_connection", create_connection)


def test_close_failure_is_logged_and_chain_still_returned(
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
    tls_server: int,
    issued_chain: IssuedChain,
) -> None:
    _failing_close_connections(monkeypatch)

    with caplog.at_level(logging.ERROR, logger="certwitness"):
        snapshot = asyncio.run(_fetcher(tls_server).fetch("localhost"))

    assert snapshot.fingerprints == (fingerprint(issued_chain.leaf_der), fingerprint(issued_chain.ca_der))
    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert "closing TLS connection to localhost failed" in errors[0].getMessage()
    assert errors[0].exc_info is not None


def test_close_failure_does_not_mask_handshake_error(
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
    one_shot_server: Callable[[Callable[[socket.socket], None]], int],
) -> None:
    def handler(conn: socket.socket) -> None:
        conn.recv(4096)
        conn.sendall(b"not tls at all\r\n" * 16)
        conn.settimeout(5)
        while conn.recv(4096):
            pass

    _failing_close_connections(monkeypatch)
    port = one_shot_server(handler)

    with caplog.at_level(logging.ERROR, logger="certwitness"):
        with pytest.raises(ProtocolError, match="handshake"):
            _fetcher(port).peer_chain("localhost")

    assert "closing TLS connection to localhost failed" in caplog.text
