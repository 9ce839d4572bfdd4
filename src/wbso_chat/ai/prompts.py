"""Prompts e formatação para as chamadas ao provider.

Responsabilidades:
- Mensagem de abertura (greeting) conforme contexto do usuário
- System prompt contextual (base + fase + informação já coletada)
- Instruções de extração e de geração do documento final
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any

from wbso_chat.ai.knowledge_base import KnowledgeBase
from wbso_chat.domain.models import ChatMessage, Session, UserContext
from wbso_chat.domain.protocols.llm_provider import ProviderMessage

EXTRACTION_SYSTEM_PROMPT = (
    "You are an information extraction expert. Extract structured data from "
    "conversations and return valid JSON."
)

GENERATION_SYSTEM_PROMPT = """\
You are a WBSO application writer. Generate a complete, professional WBSO application \
ALWAYS IN DUTCH based on the conversation context.

CRITICAL: Regardless of the conversation language, the final document must be written in \
Dutch as required by RVO (Rijksdienst voor Ondernemend Nederland).

Return only a JSON object with the exact structure requested. Never add text before or after."""

_GENERATION_LANGUAGE_NOTES = {
    "en": (
        "IMPORTANT: The conversation was in English, but write all content in professional "
        "Dutch for the official WBSO application as required by RVO."
    ),
    "nl": (
        "BELANGRIJK: Schrijf alle content in professioneel Nederlands voor de officiële "
        "WBSO-aanvraag zoals vereist door RVO."
    ),
}

_APPLICATION_SCHEMA = {
    "projectDescription": "Professional project description in Dutch",
    "technicalChallenge": "Detailed technical challenge explanation in Dutch",
    "innovativeAspects": "Innovation and novelty description in Dutch",
    "expectedResults": "Expected outcomes and results in Dutch",
    "activities": [
        {
            "name": "Activity name in Dutch",
            "description": "Detailed description in Dutch",
            "duration": "Duration description in Dutch",
            "hours": "number",
        }
    ],
    "costBreakdown": {
        "totalHours": "number",
        "laborCosts": "number",
        "deduction": "number",
        "netCosts": "number",
    },
}

_EXTRACTION_FIELDS = """\
- projectTitle: string
- projectType: "development" | "research"
- problemDescription: string
- proposedSolution: string
- technicalChallenges: string[]
- innovationAspects: string
- timeline: {startDate: string, duration: string}
- teamSize: string
- companyInfo: {name: string, sector: string}
- budgetEstimate: string"""


def build_greeting(user_context: UserContext) -> str:
    """Primeira mensagem "do usuário" que abre a conversa.

    Usuário vindo da WBSO Check (pré-preenchido) tem empresa e setor
    citados para o assistente continuar de onde parou.
    """
    english = user_context.language == "en"
    company = user_context.display_company_name
    lead = user_context.lead_data
    sector = lead.sbi_description if lead else None

    if user_context.is_pre_filled and company:
        if english:
            kind = f", a {sector} company" if sector else ""
            return (
                f"I want to create a WBSO application for {company}{kind}. I've already "
                "provided some information through the WBSO Check, so let's continue from "
                "there to complete my application."
            )
        kind = f", een {sector} bedrijf" if sector else ""
        return (
            f"Ik wil een WBSO-aanvraag maken voor {company}{kind}. Ik heb al wat informatie "
            "verstrekt via de WBSO Check, dus laten we daar vandaan verder gaan om mijn "
            "aanvraag te voltooien."
        )

    if english:
        return "I want to start a WBSO application for my company's R&D project."
    return "Ik wil een WBSO-aanvraag starten voor het R&D-project van mijn bedrijf."


def _lead_context(user_context: UserContext) -> str | None:
    lead = user_context.lead_data
    if lead is None:
        if user_context.company_name:
            return f"USER CONTEXT:\n- Company: {user_context.company_name}"
        return None

    lines = [f"- Company: {user_context.display_company_name or 'unknown'}"]
    if lead.sbi_description:
        lines.append(f"- Sector: {lead.sbi_description}")
    if lead.technical_staff_count is not None:
        lines.append(f"- Team size: {lead.technical_staff_count}")
    if lead.technical_problems:
        lines.append(f"- Technical problems identified: {', '.join(lead.technical_problems)}")
    if lead.calculated_subsidy is not None:
        lines.append(f"- Calculated subsidy potential: EUR {lead.calculated_subsidy:,.0f}")
    body = "\n".join(lines)
    return (
        f"USER CONTEXT (from WBSO Check):\n{body}\n\n"
        "Use this context to provide more targeted questions and advice."
    )


def build_system_prompt(session: Session, knowledge_base: KnowledgeBase) -> str:
    """System prompt da conversa: base + fase + contexto + info coletada."""
    info = session.extracted_info
    company_info = info.get("companyInfo") if isinstance(info.get("companyInfo"), Mapping) else {}
    sector = company_info.get("sector") if company_info else None
    if sector is None and session.user_context.lead_data:
        sector = session.user_context.lead_data.sbi_description

    parts = [
        knowledge_base.system_prompt(session.user_context.language),
        knowledge_base.phase_prompt(session.phase),
    ]
    extra = knowledge_base.relevant_context(
        project_type=info.get("projectType"),
        sector=sector,
        include_rejections=bool(info),
    )
    if extra:
        parts.append(extra)

    lead = _lead_context(session.user_context)
    if lead:
        parts.append(lead)

    if info:
        parts.append(
            "INFORMATION ALREADY COLLECTED:\n"
            f"{json.dumps(info, indent=2, ensure_ascii=False, default=str)}\n\n"
            "Build on this information rather than asking for details already provided."
        )
    return "\n\n".join(parts)


def to_provider_messages(messages: Sequence[ChatMessage]) -> list[ProviderMessage]:
    return [{"role": m.role.value, "content": m.content} for m in messages]


def build_extraction_prompt(user_message: str, extracted_info: Mapping[str, Any]) -> str:
    """Instrução de extração; a resposta é tratada como entrada não confiável."""
    previous = json.dumps(dict(extracted_info), ensure_ascii=False, default=str)
    return (
        "Based on this conversation exchange, extract any new structured information about "
        "the WBSO project. Return as JSON with only the fields that have clear, specific "
        "information.\n\n"
        f'User message: "{user_message}"\n\n'
        f"Previous extracted info: {previous}\n\n"
        f"Extract fields like:\n{_EXTRACTION_FIELDS}\n\n"
        "Return only new or updated information as JSON. If nothing specific was mentioned, "
        "return {}."
    )


def build_generation_prompt(session: Session) -> str:
    """Prompt do documento final: info extraída completa + histórico."""
    language = session.user_context.language
    note = _GENERATION_LANGUAGE_NOTES.get(language, _GENERATION_LANGUAGE_NOTES["nl"])
    history = "\n\n".join(f"{m.role.value}: {m.content}" for m in session.messages)
    info = json.dumps(session.extracted_info, indent=2, ensure_ascii=False, default=str)
    schema = json.dumps(_APPLICATION_SCHEMA, indent=2)
    return (
        "Generate a complete WBSO application based on this conversation:\n\n"
        f"{note}\n\n"
        f"EXTRACTED INFORMATION:\n{info}\n\n"
        f"CONVERSATION HISTORY:\n{history}\n\n"
        f"Generate a complete WBSO application with the following structure as JSON:\n{schema}\n\n"
        "netCosts must equal laborCosts minus deduction. Ensure the application is in "
        "professional Dutch, WBSO-compliant and ready for RVO submission."
    )
