"""Extração estruturada: parse da resposta do provider como entrada não confiável.

A resposta de extração pode vir com texto ao redor, cercas de código,
chaves desconhecidas ou tipos errados. Nada disso derruba o turno:
- chaves desconhecidas são descartadas
- tipos errados são convertidos quando óbvio, senão o campo é descartado
- JSON inválido vira {} (com log de fallback)
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from wbso_chat.domain.completeness import is_filled
from wbso_chat.observability.logging import get_logger, log_fallback

logger: logging.Logger = get_logger(__name__)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class _Lenient(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _to_text(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value.strip() or None
    return value


class Timeline(_Lenient):
    start_date: str | None = None
    duration: str | None = None

    @field_validator("start_date", "duration", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return _to_text(value)


class CompanyInfo(_Lenient):
    name: str | None = None
    sector: str | None = None

    @field_validator("name", "sector", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return _to_text(value)


class ExtractedInfo(_Lenient):
    """Campos reconhecidos da extração (todos opcionais)."""

    project_title: str | None = None
    project_type: Literal["development", "research"] | None = None
    problem_description: str | None = None
    proposed_solution: str | None = None
    technical_challenges: list[str] | None = None
    innovation_aspects: str | None = None
    timeline: Timeline | None = None
    team_size: str | None = None
    company_info: CompanyInfo | None = None
    budget_estimate: str | None = None

    @field_validator(
        "project_title",
        "problem_description",
        "proposed_solution",
        "innovation_aspects",
        "team_size",
        "budget_estimate",
        mode="before",
    )
    @classmethod
    def _text(cls, value: Any) -> Any:
        return _to_text(value)

    @field_validator("project_type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("technical_challenges", mode="before")
    @classmethod
    def _to_list(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [value]
        if isinstance(value, (list, tuple)):
            items = [str(item).strip() for item in value if isinstance(item, (str, int, float))]
            return [item for item in items if item] or None
        return value


def parse_json_object(text: str | None) -> dict[str, Any] | None:
    """Localiza e decodifica o primeiro objeto JSON do texto; None se não houver."""
    if not text:
        return None
    candidate = _CODE_FENCE.sub("", text.strip())
    start, end = candidate.find("{"), candidate.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        data = json.loads(candidate[start : end + 1])
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def sanitize_extracted(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Valida campo a campo; campo inválido é descartado sem afetar os demais."""
    clean: dict[str, Any] = {}
    for key, value in raw.items():
        try:
            parsed = ExtractedInfo.model_validate({key: value})
        except ValidationError:
            logger.debug("Campo extraído descartado", extra={"field": key})
            continue
        for name, parsed_value in parsed.model_dump(by_alias=True, exclude_none=True).items():
            # Objeto aninhado vazio não pode sobrescrever valor já coletado
            if is_filled(parsed_value):
                clean[name] = parsed_value
    return clean


def parse_extraction(text: str | None, session_id: str | None = None) -> dict[str, Any]:
    """Converte a resposta de extração em mapa saneado ({} quando inválida)."""
    raw = parse_json_object(text)
    if raw is None:
        log_fallback(logger, "extraction", reason="invalid_json", session_id=session_id)
        return {}
    return sanitize_extracted(raw)


def merge_extracted_info(
    current: Mapping[str, Any], update: Mapping[str, Any]
) -> dict[str, Any]:
    """União por chave: só as chaves presentes em `update` são sobrescritas."""
    return {**current, **update}
