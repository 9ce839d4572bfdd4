"""Medição de uso real por request."""

from __future__ import annotations

from dataclasses import dataclass, field

from wbso_chat.domain.protocols.llm_provider import Completion


@dataclass
class UsageMeter:
    """Acumula o custo real de cada chamada ao provider assim que ela retorna.

    A reconciliação do ledger lê `cost` no final do request, inclusive
    quando o request falha no meio: o que já foi gasto continua contado.
    """

    cost: float = 0.0
    tokens: int = 0
    calls: list[str] = field(default_factory=list)

    def record(self, completion: Completion, cost: float, purpose: str) -> None:
        self.cost = round(self.cost + cost, 6)
        self.tokens += completion.total_tokens
        self.calls.append(purpose)
