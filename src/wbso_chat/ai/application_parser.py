"""Parse estrito do documento gerado + fallback explícito.

O fallback usa apenas extracted_info (nunca texto livre do provider) e é
sinalizado no log: o chamador sempre recebe um GrantApplication válido.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from wbso_chat.ai.extraction import parse_json_object
from wbso_chat.domain.models import Activity, CostBreakdown, GrantApplication
from wbso_chat.observability.logging import get_logger, log_fallback

logger: logging.Logger = get_logger(__name__)

# Valores de referência do documento de fallback (1 FTE/ano).
FALLBACK_HOURS = 1920
FALLBACK_LABOR_COSTS = 124_800.0
FALLBACK_DEDUCTION = 44_928.0
FALLBACK_DURATION = "12 months"


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def build_fallback_application(extracted_info: Mapping[str, Any]) -> GrantApplication:
    """Documento mínimo montado só com a informação extraída."""
    challenges = extracted_info.get("technicalChallenges")
    if isinstance(challenges, list):
        challenge_text = _text(" ".join(str(c) for c in challenges))
    else:
        challenge_text = _text(challenges)

    timeline = extracted_info.get("timeline")
    duration = _text(timeline.get("duration")) if isinstance(timeline, Mapping) else None

    return GrantApplication(
        project_description=_text(extracted_info.get("problemDescription"))
        or "Project description not fully captured",
        technical_challenge=challenge_text or "Technical challenges not specified",
        innovative_aspects=_text(extracted_info.get("innovationAspects"))
        or "Innovation aspects not specified",
        expected_results="Expected results based on project goals",
        activities=[
            Activity(
                name="Research and Development",
                description=_text(extracted_info.get("proposedSolution")) or "R&D activities",
                duration=duration or FALLBACK_DURATION,
                hours=FALLBACK_HOURS,
            )
        ],
        cost_breakdown=CostBreakdown(
            total_hours=FALLBACK_HOURS,
            labor_costs=FALLBACK_LABOR_COSTS,
            deduction=FALLBACK_DEDUCTION,
        ),
    )


def parse_application(
    text: str | None,
    extracted_info: Mapping[str, Any],
    session_id: str | None = None,
) -> tuple[GrantApplication, bool]:
    """Retorna (documento, fallback_usado).

    netCosts informado pelo provider é ignorado: CostBreakdown sempre
    recalcula labor_costs - deduction.
    """
    raw = parse_json_object(text)
    if raw is None:
        log_fallback(logger, "application_parser", reason="invalid_json", session_id=session_id)
        return build_fallback_application(extracted_info), True

    try:
        return GrantApplication.model_validate(raw), False
    except ValidationError as exc:
        logger.warning(
            "Documento gerado fora do schema",
            extra={"error_count": exc.error_count()},
        )
        log_fallback(
            logger, "application_parser", reason="schema_mismatch", session_id=session_id
        )
        return build_fallback_application(extracted_info), True
