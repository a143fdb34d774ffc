"""Contrato de fuentes de cadena.

Por qué Protocol:
- Define un contrato estructural (duck typing) sin herencia rígida.
- La fuente TLS en vivo, la de la API de atestación y los fakes de test son
  intercambiables detrás de él.
"""


from __future__ import annotations

from typing import Protocol, runtime_checkable

from certwitness.core.domain.models import ChainSnapshot


@runtime_checkable
class ChainFetcher(Protocol):
    """Contrato mínimo para una fuente de cadena de certificados.

    Reglas de diseño:
    - `fetch` es async porque siempre hace I/O de red.
    - Devuelve un `ChainSnapshot` normalizado o lanza `FetchError`; nunca un
      resultado parcial.
    """

    async def fetch(self, domain: str) -> ChainSnapshot:
        """Observa la cadena de `domain` y la devuelve con huellas calculadas."""

        ...
