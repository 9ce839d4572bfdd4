"""Contrato de verificação de identidade (bearer token)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class Identity:
    uid: str
    email: str | None = None
    claims: dict[str, Any] = field(default_factory=dict)


class IdentityVerifier(Protocol):
    """Verifica um ID token; token inválido levanta AuthenticationError."""

    async def verify(self, token: str) -> Identity:
        """Retorna a identidade estável do chamador."""
