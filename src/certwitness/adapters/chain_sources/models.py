"""Esquema de la respuesta de la API de atestación.

Idea:
- Solo se modelan los campos que comparamos; el resto del cuerpo se ignora,
  así los campos nuevos del servicio nunca rompen el parseo.

Forma (resumida):
    {
      "certificate": {"pem": "-----BEGIN CERTIFICATE-----..."},
      "chain": [
        {"certificate_pem": "-----BEGIN ...", "pem": {"hashes": {"sha256": "ab12..."}}},
        ...
      ]
    }
"""


from __future__ import annotations

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


class PemHashes(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sha256: str | None = None


class PemInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    hashes: PemHashes | None = None


class AttestedCertificate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    pem: str | None = Field(
        default=None,
        description="Texto PEM del certificado hoja.",
    )


class ChainEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    certificate_pem: str | None = None
    pem: PemInfo | None = None

    @property
    def sha256(self) -> str | None:
        if self.pem is None or self.pem.hashes is None:
            return None
        return self.pem.hashes.sha256


class AttestationReply(BaseModel):
    model_config = ConfigDict(extra="ignore")

    certificate: AttestedCertificate | None = None
    chain: list[ChainEntry] | None = None
