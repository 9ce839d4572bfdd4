"""Base de conhecimento WBSO (regras, diretrizes por setor, prompts por fase).

Objeto imutável construído uma única vez no startup e passado por
referência ao orquestrador. Nenhuma mutação em runtime.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from wbso_chat.domain.models import Phase

_CORE_RULES = """\
WBSO core eligibility rules:
1. Technical novelty: the project develops technically new knowledge or solutions that
   cannot be obtained with existing, generally known techniques.
2. Self-execution: the R&D work is carried out by the applicant's own technical staff.
3. Risk and uncertainty: the technical outcome is uncertain at the start and failure is possible.
4. Dutch R&D: the work is performed in the Netherlands by employees on Dutch payroll.
5. Excluded: market research, routine maintenance or debugging, reverse engineering,
   standard software implementation, commercial activities.
6. Documentation: a clear technical problem, why conventional methods fall short,
   a systematic approach and realistic time estimates."""

_SYSTEM_PROMPTS = {
    "nl": """\
U bent een gespecialiseerde WBSO-adviseur. U helpt Nederlandse bedrijven via een natuurlijk,
professioneel gesprek alle informatie te verzamelen voor een complete WBSO-aanvraag die aan de
eisen van RVO voldoet.

WBSO-EXPERTISE:
{rules}

GESPREKSRICHTLIJNEN:
- Stel telkens EEN gerichte vraag en bouw voort op eerdere antwoorden.
- Richt u op technische problemen en onzekerheden, niet op bedrijfsproblemen.
- Benoem vroeg activiteiten die niet kwalificeren en stel verbeteringen voor.
- Houd urenschattingen en planning realistisch en verdedigbaar.

Begin met de vraag om het project en de belangrijkste technische uitdagingen te beschrijven.""",
    "en": """\
You are a specialised WBSO (Dutch R&D tax credit) consultant. Through a natural, professional
conversation you help Dutch companies gather everything needed for a complete WBSO application
that meets RVO requirements.

WBSO EXPERTISE:
{rules}

CONVERSATION GUIDELINES:
- Ask ONE focused question at a time and build on previous answers.
- Focus on technical problems and uncertainties, not business problems.
- Flag non-qualifying activities early and suggest improvements.
- Keep hour estimates and timelines realistic and defensible.

Begin by asking them to describe their project and the main technical challenges.""",
}

_PHASE_PROMPTS = {
    Phase.DISCOVERY: (
        "Focus on understanding the project goals and technical challenges. Ask open questions "
        "about what they are building and why existing solutions do not work."
    ),
    Phase.CLARIFICATION: (
        "Dig deeper into specific technical details. Probe for genuine innovation, technical "
        "risks and measurable challenges that qualify for WBSO."
    ),
    Phase.GENERATION: (
        "Enough information has been collected. Confirm the remaining details and tell the user "
        "the application can now be generated."
    ),
    Phase.COMPLETE: (
        "The application has been generated. Answer follow-up questions about the document."
    ),
}

_SECTOR_GUIDELINES = {
    "Software ontwikkeling": (
        "Algorithm innovation (AI/ML) and new data processing methods are highly eligible; "
        "UI improvements generally are not; database or performance work needs new techniques."
    ),
    "Manufacturing": (
        "Process optimisation with technical innovation, new production methods, material "
        "science improvements and automation beyond standard implementation qualify."
    ),
    "Healthcare": (
        "Medical device innovation and digital health with technical novelty qualify; "
        "regulatory compliance on its own does not."
    ),
}

_SUCCESS_PATTERNS = {
    "development": (
        "Novel algorithms or data processing approaches, automation with technical challenges "
        "beyond standard system integration, and solutions to complex compatibility issues "
        "between systems."
    ),
    "research": (
        "Systematic investigation of a technical question whose answer is not known in the "
        "field, with experiments designed to reduce a clearly stated technical uncertainty."
    ),
}

_REJECTION_PATTERNS = (
    "Projects that only implement existing commercial solutions",
    "Standard web development without technical innovation",
    "Database administration and routine maintenance",
    "User experience improvements without technical challenges",
    "Market research or business process optimisation",
    "Projects with no technical risk or uncertainty",
)


@dataclass(frozen=True)
class KnowledgeBase:
    """Conhecimento estático usado na montagem dos prompts."""

    core_rules: str
    system_prompts: Mapping[str, str]
    phase_prompts: Mapping[Phase, str]
    sector_guidelines: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    success_patterns: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    rejection_patterns: tuple[str, ...] = ()
    default_language: str = "nl"

    def system_prompt(self, language: str | None = None) -> str:
        lang = language if language in self.system_prompts else self.default_language
        return self.system_prompts[lang]

    def phase_prompt(self, phase: Phase) -> str:
        return self.phase_prompts.get(phase, self.phase_prompts[Phase.DISCOVERY])

    def sector_guideline(self, sector: str | None) -> str | None:
        if not sector:
            return None
        return self.sector_guidelines.get(sector)

    def relevant_context(
        self,
        project_type: str | None = None,
        sector: str | None = None,
        include_rejections: bool = False,
    ) -> str:
        """Contexto extra por setor/tipo de projeto."""
        parts: list[str] = []
        guideline = self.sector_guideline(sector)
        if guideline:
            parts.append(f"SECTOR-SPECIFIC GUIDELINES:\n{guideline}")
        if project_type and project_type in self.success_patterns:
            parts.append(f"SUCCESS PATTERNS:\n{self.success_patterns[project_type]}")
        if include_rejections and self.rejection_patterns:
            bullets = "\n".join(f"- {p}" for p in self.rejection_patterns)
            parts.append(f"COMMON REJECTION PATTERNS TO AVOID:\n{bullets}")
        return "\n\n".join(parts)


def build_knowledge_base(default_language: str = "nl") -> KnowledgeBase:
    """Constrói a base padrão (chamar uma vez no startup)."""
    return KnowledgeBase(
        core_rules=_CORE_RULES,
        system_prompts=MappingProxyType(
            {lang: template.format(rules=_CORE_RULES) for lang, template in _SYSTEM_PROMPTS.items()}
        ),
        phase_prompts=MappingProxyType(dict(_PHASE_PROMPTS)),
        sector_guidelines=MappingProxyType(dict(_SECTOR_GUIDELINES)),
        success_patterns=MappingProxyType(dict(_SUCCESS_PATTERNS)),
        rejection_patterns=_REJECTION_PATTERNS,
        default_language=default_language,
    )
