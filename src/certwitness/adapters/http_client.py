"""Wrapper de httpx.

Por qué un wrapper:
- Estandariza timeout, headers y política de redirects para la fuente de
  atestación.
- Facilita testeo: se puede enchufar un `httpx.MockTransport` sin tocar el
  fetcher.
"""


from __future__ import annotations

import httpx

from certwitness.core.config import AppSettings


def build_async_client(
    settings: AppSettings | None = None,
    *,
    extra_headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Crea un `httpx.AsyncClient` con defaults seguros.

    El endpoint de atestación se consulta con verificación de certificados
    normal; solo la fuente TLS en vivo observa cadenas sin verificar.
    """

    settings = settings or AppSettings()
    headers: dict[str, str] = {
        "User-Agent": settings.user_agent,
        "Accept": "application/json",
    }
    if extra_headers:
        headers.update(extra_headers)
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.attestation_timeout_seconds),
        follow_redirects=True,
        headers=headers,
        transport=transport,
    )
