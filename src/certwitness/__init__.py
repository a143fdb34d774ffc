"""certwitness: cross-check a domain's live TLS chain against an attestation service."""

__version__ = "0.1.0"
