"""Fuentes de cadena (fetchers concretos).

Por qué un paquete:
- Un módulo por fuente (TLS en vivo, API de atestación).
- Cada uno implementa `certwitness.core.interfaces.fetcher.ChainFetcher`.
"""


from certwitness.adapters.chain_sources.attested import AttestedChainFetcher
from certwitness.adapters.chain_sources.live import LiveChainFetcher

__all__ = [
    "AttestedChainFetcher",
    "LiveChainFetcher",
]
