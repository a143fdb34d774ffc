from __future__ import annotations

import datetime as dt
import socket
import ssl
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from certwitness.core.config import AppSettings
from certwitness.core.domain.errors import TransportError
from certwitness.core.domain.models import ChainSnapshot, ChainSource


@dataclass
class IssuedChain:
    leaf_der: bytes
    ca_der: bytes
    chain_file: Path
    key_file: Path


def _name(common_name: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


@pytest.fixture(scope="session")
def issued_chain(tmp_path_factory: pytest.TempPathFactory) -> IssuedChain:
    """A CA and a `localhost` leaf signed by it, written as server files."""

    now = dt.datetime.now(dt.timezone.utc)
    ca_key = ec.generate_private_key(ec.SECP256R1())
    ca_cert = (
        x509.CertificateBuilder()
        .subject_name(_name("certwitness test CA"))
        .issuer_name(_name("certwitness test CA"))
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - dt.timedelta(days=1))
        .not_valid_after(now + dt.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(ca_key, hashes.SHA256())
    )

    leaf_key = ec.generate_private_key(ec.SECP256R1())
    leaf_cert = (
        x509.CertificateBuilder()
        .subject_name(_name("localhost"))
        .issuer_name(ca_cert.subject)
        .public_key(leaf_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - dt.timedelta(days=1))
        .not_valid_after(now + dt.timedelta(days=30))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName("localhost")]), critical=False)
        .sign(ca_key, hashes.SHA256())
    )

    directory = tmp_path_factory.mktemp("pki")
    chain_file = directory / "chain.pem"
    key_file = directory / "leaf.key"
    chain_file.write_bytes(
        leaf_cert.public_bytes(serialization.Encoding.PEM)
        + ca_cert.public_bytes(serialization.Encoding.PEM)
    )
    key_file.write_bytes(
        leaf_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    return IssuedChain(
        leaf_der=leaf_cert.public_bytes(serialization.Encoding.DER),
        ca_der=ca_cert.public_bytes(serialization.Encoding.DER),
        chain_file=chain_file,
        key_file=key_file,
    )


def _serve_once(listener: socket.socket, handler: Callable[[socket.socket], None]) -> None:
    try:
        conn, _ = listener.accept()
    except OSError:
        return
    with conn:
        try:
            handler(conn)
        except (ssl.SSLError, OSError):
            pass


@pytest.fixture
def one_shot_server() -> Iterator[Callable[[Callable[[socket.socket], None]], int]]:
    """Start a loopback listener that hands its first connection to `handler`."""

    listeners: list[socket.socket] = []
    threads: list[threading.Thread] = []

    def start(handler: Callable[[socket.socket], None]) -> int:
        listener = socket.create_server(("127.0.0.1", 0))
        listeners.append(listener)
        thread = threading.Thread(target=_serve_once, args=(listener, handler), daemon=True)
        thread.start()
        threads.append(thread)
        return listener.getsockname()[1]

    yield start

    for listener in listeners:
        listener.close()
    for thread in threads:
        thread.join(timeout=5)


@pytest.fixture
def tls_server(
    issued_chain: IssuedChain,
    one_shot_server: Callable[[Callable[[socket.socket], None]], int],
) -> int:
    """Port of a TLS server presenting [leaf, CA]."""

    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(certfile=str(issued_chain.chain_file), keyfile=str(issued_chain.key_file))

    def handler(conn: socket.socket) -> None:
        with context.wrap_socket(conn, server_side=True) as tls:
            tls.recv(1)

    return one_shot_server(handler)


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(_env_file=None)


def closed_port() -> int:
    """A loopback port with nothing listening on it."""

    with socket.create_server(("127.0.0.1", 0)) as spare:
        return spare.getsockname()[1]


class FakeFetcher:
    """In-memory chain source keyed by domain."""

    def __init__(
        self,
        source: ChainSource,
        snapshots: dict[str, ChainSnapshot] | None = None,
        *,
        failing: set[str] | None = None,
    ) -> None:
        self.source = source
        self.snapshots = snapshots or {}
        self.failing = failing or set()
        self.calls: list[str] = []

    async def fetch(self, domain: str) -> ChainSnapshot:
        self.calls.append(domain)
        if domain in self.failing:
            raise TransportError(
                domain=domain,
                source=self.source,
                message="dial failed",
                cause=ConnectionRefusedError(111, "Connection refused"),
            )
        return self.snapshots[domain]


def flip_pad_bits(pem: str) -> str:
    """Alter the base64 character just before a single `=` in its unused low bits."""

    alphabet = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
    lines = pem.splitlines()
    last = lines[-2]
    assert last.endswith("=") and not last.endswith("==")
    changed = alphabet[alphabet.index(last[-2]) ^ 1]
    lines[-2] = last[:-2] + changed + "="
    return "\n".join(lines) + "\n"
