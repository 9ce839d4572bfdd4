"""Contrato do provider LLM ("create completion")."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, TypedDict


class ProviderMessage(TypedDict):
    role: str
    content: str


@dataclass(frozen=True, slots=True)
class Completion:
    """Resposta do provider com uso *real* reportado."""

    text: str
    input_tokens: int
    output_tokens: int
    model: str

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class LLMProvider(Protocol):
    """Porta para o provider de LLM.

    Implementações devem aplicar timeout próprio e levantar a exceção
    nativa do SDK; a classificação transitória/permanente é feita pelo
    ResilientLLMClient.
    """

    async def create_completion(
        self,
        *,
        system: str,
        model: str,
        messages: Sequence[ProviderMessage],
        temperature: float,
        max_tokens: int,
    ) -> Completion:
        """Gera uma completion."""
