"""Pontuação de completude e regra de fases.

A pontuação é uma função pura de extracted_info: o mesmo mapa sempre
gera o mesmo score e a mesma fase, independente da ordem das mensagens
que o produziram. O scorer é injetável no orquestrador para que a
ponderação dos campos possa mudar sem tocar na máquina de fases.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from wbso_chat.domain.models import Phase

CLARIFICATION_THRESHOLD = 50
GENERATION_THRESHOLD = 80

REQUIRED_FIELDS: tuple[str, ...] = (
    "projectTitle",
    "projectType",
    "problemDescription",
    "proposedSolution",
    "technicalChallenges",
    "innovationAspects",
    "timeline",
    "teamSize",
    "companyInfo",
)


class CompletenessScorer(Protocol):
    """Converte o mapa extraído em score 0–100."""

    def __call__(self, extracted_info: Mapping[str, Any]) -> int: ...


def is_filled(value: Any) -> bool:
    """Um campo conta quando tem conteúdo não vazio."""
    if value is None or value is False:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, Mapping):
        return any(is_filled(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return any(is_filled(v) for v in value)
    return True


class FieldCountScorer:
    """Score proporcional aos campos obrigatórios preenchidos.

    Sem pesos explícitos, todos os campos valem o mesmo.
    """

    def __init__(
        self,
        fields: tuple[str, ...] = REQUIRED_FIELDS,
        weights: Mapping[str, float] | None = None,
    ) -> None:
        if not fields:
            raise ValueError("fields não pode ser vazio")
        self._fields = fields
        self._weights = {name: float((weights or {}).get(name, 1.0)) for name in fields}
        self._total = sum(self._weights.values())

    @property
    def fields(self) -> tuple[str, ...]:
        return self._fields

    def __call__(self, extracted_info: Mapping[str, Any]) -> int:
        provided = sum(
            self._weights[name] for name in self._fields if is_filled(extracted_info.get(name))
        )
        return min(100, round(provided / self._total * 100))


default_scorer = FieldCountScorer()


def determine_phase(completeness: int) -> Phase:
    """Fase derivada do score; pode regredir se o score cair."""
    if completeness >= GENERATION_THRESHOLD:
        return Phase.GENERATION
    if completeness >= CLARIFICATION_THRESHOLD:
        return Phase.CLARIFICATION
    return Phase.DISCOVERY


def is_ready_for_generation(completeness: int, phase: Phase) -> bool:
    return completeness >= GENERATION_THRESHOLD and phase == Phase.GENERATION
