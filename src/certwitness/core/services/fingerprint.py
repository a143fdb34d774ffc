"""Certificate fingerprinting.

Every certificate, whichever source it came from, goes through the same
canonical PEM encoding before it is hashed. Certificates are treated as opaque
DER bytes: nothing here parses X.509.

Canonical PEM:
- `-----BEGIN CERTIFICATE-----` header line
- standard base64 body wrapped at 64 columns
- `-----END CERTIFICATE-----` footer line and a trailing newline
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import ssl

from certwitness.core.domain.models import FingerprintStrategy


def encode_pem(der: bytes) -> str:
    """Canonical PEM text for a DER certificate."""

    if not der:
        raise ValueError("cannot PEM-encode an empty certificate")
    return ssl.DER_cert_to_PEM_cert(der)


def decode_pem(text: str) -> bytes:
    """DER bytes of a single PEM certificate.

    Surrounding whitespace, CRLF and line wrapping are tolerated. The base64
    body itself must be canonical: characters outside the alphabet and
    non-zero pad bits are rejected, so two different bodies never decode to
    the same DER.
    """

    cleaned = text.replace("\r\n", "\n").strip()
    if not cleaned.startswith(ssl.PEM_HEADER):
        raise ValueError(f"PEM certificate must start with {ssl.PEM_HEADER!r}")
    if not cleaned.endswith(ssl.PEM_FOOTER):
        raise ValueError(f"PEM certificate must end with {ssl.PEM_FOOTER!r}")

    body = "".join(cleaned[len(ssl.PEM_HEADER) : -len(ssl.PEM_FOOTER)].split())
    try:
        der = base64.b64decode(body, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"PEM body is not valid base64 ({exc})") from exc
    if not der:
        raise ValueError("PEM certificate has an empty body")
    if base64.b64encode(der).decode("ascii") != body:
        raise ValueError("PEM body is not canonical base64")
    return der


def fingerprint(der: bytes, strategy: FingerprintStrategy = FingerprintStrategy.SHA256) -> str:
    """Comparable identity of a certificate.

    - `sha256`: lowercase hex SHA-256 of the canonical PEM bytes. This is how
      the attestation service hashes its own chain entries.
    - `pem`: the canonical PEM text itself.
    """

    pem = encode_pem(der)
    if strategy is FingerprintStrategy.PEM:
        return pem
    return hashlib.sha256(pem.encode("ascii")).hexdigest()


def fingerprint_pem(text: str, strategy: FingerprintStrategy = FingerprintStrategy.SHA256) -> str:
    """Re-canonicalise PEM text, then fingerprint it."""

    return fingerprint(decode_pem(text), strategy)


def normalize_remote_digest(value: str) -> str:
    """Validate a service-supplied SHA-256 hex digest and lower-case it."""

    digest = value.strip().lower()
    if len(digest) != 64 or any(ch not in "0123456789abcdef" for ch in digest):
        raise ValueError(f"not a sha256 hex digest: {value!r}")
    return digest
