"""Estimativa de tokens e cálculo de custo.

estimate() é apenas uma aproximação para o orçamento *antes* da chamada
(admissão). Tudo o que é persistido em sessão/ledger usa o uso real
reportado pelo provider via cost().
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from wbso_chat.domain.errors import UnknownModelError
from wbso_chat.domain.protocols.llm_provider import Completion, ProviderMessage

_WHITESPACE = re.compile(r"\s+")

COST_DECIMALS = 6
CHARS_PER_TOKEN = 3.5


@dataclass(frozen=True, slots=True)
class ModelPricing:
    """Preço em USD por token (entrada e saída separados)."""

    input: float
    output: float


def _per_million(input_usd: float, output_usd: float) -> ModelPricing:
    return ModelPricing(input=input_usd / 1_000_000, output=output_usd / 1_000_000)


DEFAULT_PRICING: Mapping[str, ModelPricing] = {
    "gpt-4o-mini": _per_million(0.15, 0.60),
    "gpt-4o": _per_million(2.50, 10.00),
    "gpt-4.1-mini": _per_million(0.40, 1.60),
    "gpt-4.1": _per_million(2.00, 8.00),
}


class TokenCounter:
    """Estimador de tokens e tabela de preços por modelo."""

    def __init__(self, pricing: Mapping[str, ModelPricing] | None = None) -> None:
        self._pricing = dict(pricing or DEFAULT_PRICING)

    def estimate(self, text: str | None) -> int:
        """Aproximação determinística: ~1 token a cada 3,5 caracteres."""
        if not text:
            return 0
        clean = _WHITESPACE.sub(" ", text.strip())
        return math.ceil(len(clean) / CHARS_PER_TOKEN)

    def pricing_for(self, model: str) -> ModelPricing:
        rates = self._pricing.get(model)
        if rates is None:
            raise UnknownModelError(f"Unknown model pricing: {model}")
        return rates

    def cost(self, input_tokens: int, output_tokens: int, model: str) -> float:
        """Custo monetário arredondado a 6 casas decimais."""
        rates = self.pricing_for(model)
        amount = input_tokens * rates.input + output_tokens * rates.output
        return round(amount, COST_DECIMALS)

    def completion_cost(self, completion: Completion) -> float:
        """Custo a partir do uso real reportado pelo provider."""
        return self.cost(completion.input_tokens, completion.output_tokens, completion.model)

    def estimate_call_cost(
        self,
        system: str,
        messages: Iterable[ProviderMessage],
        model: str,
        max_output_tokens: int,
    ) -> float:
        """Pior caso de uma chamada: entrada estimada + saída máxima."""
        input_tokens = self.estimate(system) + sum(self.estimate(m["content"]) for m in messages)
        return self.cost(input_tokens, max_output_tokens, model)


def format_cost(cost: float) -> str:
    """Formata custo para exibição (milidólares quando muito pequeno)."""
    if cost < 0.01:
        return f"${cost * 1000:.2f}m"
    return f"${cost:.3f}"
