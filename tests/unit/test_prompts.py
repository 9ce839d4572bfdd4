"""Testes de montagem dos prompts."""

from __future__ import annotations

from tests.helpers.samples import fields
from wbso_chat.ai.knowledge_base import build_knowledge_base
from wbso_chat.ai.prompts import (
    build_extraction_prompt,
    build_generation_prompt,
    build_greeting,
    build_system_prompt,
    to_provider_messages,
)
from wbso_chat.domain.models import ChatMessage, LeadData, MessageRole, Phase, UserContext
from wbso_chat.infra.session_store import build_session


class TestGreeting:
    def test_generic_greeting_per_language(self) -> None:
        assert "WBSO-aanvraag" in build_greeting(UserContext(language="nl"))
        assert "WBSO application" in build_greeting(UserContext(language="en"))

    def test_pre_filled_mentions_company_and_sector(self) -> None:
        context = UserContext(
            language="nl",
            is_pre_filled=True,
            company_name="Acme BV",
            lead_data=LeadData(sbi_description="Software ontwikkeling"),
        )
        greeting = build_greeting(context)
        assert "Acme BV" in greeting
        assert "Software ontwikkeling" in greeting
        assert "WBSO Check" in greeting

    def test_company_from_lead_data(self) -> None:
        context = UserContext(
            language="en",
            is_pre_filled=True,
            lead_data=LeadData(company_name="Lead Corp"),
        )
        assert "Lead Corp" in build_greeting(context)

    def test_pre_filled_without_company_is_generic(self) -> None:
        context = UserContext(language="en", is_pre_filled=True)
        assert build_greeting(context) == build_greeting(UserContext(language="en"))


class TestSystemPrompt:
    def test_new_session(self) -> None:
        kb = build_knowledge_base()
        session = build_session("session-0001", UserContext(language="en"))

        prompt = build_system_prompt(session, kb)

        assert prompt.startswith(kb.system_prompt("en"))
        assert kb.phase_prompt(Phase.DISCOVERY) in prompt
        assert "INFORMATION ALREADY COLLECTED" not in prompt
        assert "COMMON REJECTION PATTERNS" not in prompt

    def test_collected_information_and_sector(self) -> None:
        kb = build_knowledge_base()
        session = build_session("session-0001", UserContext()).model_copy(
            update={
                "phase": Phase.CLARIFICATION,
                "extracted_info": fields("projectTitle", "projectType", "companyInfo"),
            }
        )

        prompt = build_system_prompt(session, kb)

        assert kb.phase_prompt(Phase.CLARIFICATION) in prompt
        assert "INFORMATION ALREADY COLLECTED" in prompt
        assert "Adaptieve planningsengine" in prompt
        assert kb.sector_guideline("Software ontwikkeling") in prompt
        assert "SUCCESS PATTERNS" in prompt

    def test_lead_context(self) -> None:
        context = UserContext(
            company_name="Acme BV",
            lead_data=LeadData(
                sbi_description="Manufacturing",
                technical_staff_count=6,
                technical_problems=["Slijtage van matrijzen"],
                calculated_subsidy=25000,
            ),
        )
        prompt = build_system_prompt(build_session("session-0001", context), build_knowledge_base())

        assert "USER CONTEXT (from WBSO Check)" in prompt
        assert "- Company: Acme BV" in prompt
        assert "Slijtage van matrijzen" in prompt
        assert "EUR 25,000" in prompt
        assert build_knowledge_base().sector_guideline("Manufacturing") in prompt


def test_provider_messages() -> None:
    messages = [
        ChatMessage(role=MessageRole.ASSISTANT, content="Welkom"),
        ChatMessage(role=MessageRole.USER, content="Wij bouwen een planner"),
    ]
    assert to_provider_messages(messages) == [
        {"role": "assistant", "content": "Welkom"},
        {"role": "user", "content": "Wij bouwen een planner"},
    ]


def test_extraction_prompt() -> None:
    prompt = build_extraction_prompt("Wij zijn met 4 developers", {"projectTitle": "Planner"})
    assert '"Wij zijn met 4 developers"' in prompt
    assert '{"projectTitle": "Planner"}' in prompt
    assert "technicalChallenges" in prompt


def test_generation_prompt() -> None:
    session = build_session("session-0001", UserContext(language="en")).model_copy(
        update={
            "extracted_info": fields("projectTitle"),
            "messages": [ChatMessage(role=MessageRole.USER, content="Wij bouwen een planner")],
        }
    )

    prompt = build_generation_prompt(session)

    assert "The conversation was in English" in prompt
    assert "EXTRACTED INFORMATION" in prompt
    assert "user: Wij bouwen een planner" in prompt
    assert '"costBreakdown"' in prompt
