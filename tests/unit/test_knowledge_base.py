from __future__ import annotations

import dataclasses

import pytest

from wbso_chat.ai.knowledge_base import build_knowledge_base
from wbso_chat.domain.models import Phase


class TestKnowledgeBase:
    def test_system_prompts_per_language(self) -> None:
        kb = build_knowledge_base()
        assert "WBSO-adviseur" in kb.system_prompt("nl")
        assert "WBSO (Dutch R&D tax credit) consultant" in kb.system_prompt("en")
        for language in ("nl", "en"):
            assert "Technical novelty" in kb.system_prompt(language)

    def test_unknown_language_uses_default(self) -> None:
        assert build_knowledge_base().system_prompt("de") == build_knowledge_base().system_prompt(
            "nl"
        )
        english_default = build_knowledge_base(default_language="en")
        assert english_default.system_prompt(None) == english_default.system_prompt("en")

    def test_phase_prompts_are_distinct(self) -> None:
        kb = build_knowledge_base()
        prompts = {kb.phase_prompt(phase) for phase in Phase}
        assert len(prompts) == len(Phase)

    def test_sector_guidelines(self) -> None:
        kb = build_knowledge_base()
        assert kb.sector_guideline("Manufacturing")
        assert kb.sector_guideline("Retail") is None
        assert kb.sector_guideline(None) is None

    def test_relevant_context(self) -> None:
        kb = build_knowledge_base()
        context = kb.relevant_context(
            project_type="development", sector="Healthcare", include_rejections=True
        )
        assert "SECTOR-SPECIFIC GUIDELINES" in context
        assert "SUCCESS PATTERNS" in context
        assert "COMMON REJECTION PATTERNS TO AVOID" in context
        assert kb.relevant_context() == ""

    def test_immutable(self) -> None:
        kb = build_knowledge_base()
        with pytest.raises(TypeError):
            kb.sector_guidelines["Retail"] = "anything"  # type: ignore[index]
        with pytest.raises(dataclasses.FrozenInstanceError):
            kb.default_language = "en"  # type: ignore[misc]
