"""Orquestrador da conversa WBSO.

Fluxo de uma mensagem:
1. carrega a sessão e aplica os limites por sessão
2. anexa a mensagem do usuário
3. chamada de chat (system prompt contextual + histórico)
4. anexa a resposta do assistente
5. chamada de extração (resposta tratada como entrada não confiável)
6. merge por chave, recalcula completude e fase
7. o uso real de cada chamada é persistido assim que ela retorna

A sessão só muda de fase por determine_phase (score) ou por geração
concluída (complete).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from wbso_chat.ai.application_parser import parse_application
from wbso_chat.ai.extraction import merge_extracted_info, parse_extraction
from wbso_chat.ai.knowledge_base import KnowledgeBase
from wbso_chat.ai.llm_client import ResilientLLMClient
from wbso_chat.ai.prompts import (
    EXTRACTION_SYSTEM_PROMPT,
    GENERATION_SYSTEM_PROMPT,
    build_extraction_prompt,
    build_generation_prompt,
    build_greeting,
    build_system_prompt,
    to_provider_messages,
)
from wbso_chat.ai.tokens import TokenCounter
from wbso_chat.application.usage import UsageMeter
from wbso_chat.domain.completeness import (
    GENERATION_THRESHOLD,
    CompletenessScorer,
    default_scorer,
    determine_phase,
    is_ready_for_generation,
)
from wbso_chat.domain.errors import (
    InsufficientInformation,
    LLMServiceError,
    SessionLimitExceeded,
    SessionNotFound,
)
from wbso_chat.domain.models import (
    ChatMessage,
    GrantApplication,
    MessageRole,
    Phase,
    Session,
    SessionStats,
    UserContext,
)
from wbso_chat.domain.protocols.llm_provider import Completion, ProviderMessage
from wbso_chat.infra.session_store import SessionStore
from wbso_chat.observability.logging import get_logger, log_fallback, short_id

if TYPE_CHECKING:
    from wbso_chat.config.settings import Settings

logger: logging.Logger = get_logger(__name__)


@dataclass(frozen=True)
class OrchestratorConfig:
    """Parâmetros por tipo de chamada e limites por sessão."""

    model: str = "gpt-4o-mini"
    chat_max_tokens: int = 4000
    chat_temperature: float = 0.3
    greeting_max_tokens: int = 1000
    extraction_max_tokens: int = 1000
    extraction_temperature: float = 0.1
    generation_max_tokens: int = 4000
    generation_temperature: float = 0.2
    max_exchanges: int = 15
    max_session_cost: float = 5.0

    @classmethod
    def from_settings(cls, settings: Settings) -> OrchestratorConfig:
        return cls(
            model=settings.llm_model,
            chat_max_tokens=settings.chat_max_tokens,
            chat_temperature=settings.chat_temperature,
            greeting_max_tokens=settings.greeting_max_tokens,
            extraction_max_tokens=settings.extraction_max_tokens,
            extraction_temperature=settings.extraction_temperature,
            generation_max_tokens=settings.generation_max_tokens,
            generation_temperature=settings.generation_temperature,
            max_exchanges=settings.session_max_exchanges,
            max_session_cost=settings.session_max_cost,
        )


@dataclass(frozen=True)
class ChatResult:
    message: str
    session_id: str
    phase: Phase
    completeness: int
    cost: float
    ready_for_generation: bool
    extracted_info: dict[str, Any] = field(default_factory=dict)


class ConversationOrchestrator:
    """Dirige start / mensagem / geração sobre SessionStore e ResilientLLMClient."""

    def __init__(
        self,
        store: SessionStore,
        llm: ResilientLLMClient,
        knowledge_base: KnowledgeBase,
        token_counter: TokenCounter | None = None,
        config: OrchestratorConfig | None = None,
        scorer: CompletenessScorer = default_scorer,
    ) -> None:
        self._store = store
        self._llm = llm
        self._kb = knowledge_base
        self._tokens = token_counter or TokenCounter()
        self._config = config or OrchestratorConfig()
        self._scorer = scorer

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    # --- helpers -----------------------------------------------------------

    async def load_session(self, session_id: str) -> Session:
        """Raises SessionNotFound quando ausente ou expirada."""
        session = await self._store.get(session_id)
        if session is None:
            raise SessionNotFound(f"session {short_id(session_id)} not found")
        return session

    async def _complete(
        self,
        session_id: str,
        *,
        system: str,
        messages: list[ProviderMessage],
        temperature: float,
        max_tokens: int,
        purpose: str,
        language: str,
        meter: UsageMeter | None,
    ) -> Completion:
        """Uma chamada ao provider com uso real persistido logo em seguida."""
        completion = await self._llm.complete(
            system=system,
            model=self._config.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            purpose=purpose,
            language=language,
        )
        cost = self._tokens.completion_cost(completion)
        if meter is not None:
            meter.record(completion, cost, purpose)
        await self._store.update(
            session_id,
            increments={"token_count": completion.total_tokens, "cost": cost},
        )
        return completion

    def _check_session_limits(self, session: Session) -> None:
        exchanges = sum(1 for m in session.messages if m.role == MessageRole.USER)
        if exchanges >= self._config.max_exchanges:
            logger.warning(
                "Session exchange limit reached",
                extra={"session_id": short_id(session.id), "exchanges": exchanges},
            )
            raise SessionLimitExceeded(f"max exchanges ({self._config.max_exchanges}) reached")
        if session.cost >= self._config.max_session_cost:
            logger.warning(
                "Session cost limit reached",
                extra={"session_id": short_id(session.id), "cost": session.cost},
            )
            raise SessionLimitExceeded(f"session cost {session.cost:.4f} over limit")

    # --- estimativas para admissão -------------------------------------------

    def estimate_start_cost(self, user_context: UserContext) -> float:
        greeting: ProviderMessage = {"role": "user", "content": build_greeting(user_context)}
        return self._tokens.estimate_call_cost(
            self._kb.system_prompt(user_context.language),
            [greeting],
            self._config.model,
            self._config.greeting_max_tokens,
        )

    def estimate_message_cost(self, session: Session, text: str) -> float:
        """Chat + extração no pior caso."""
        user_message: ProviderMessage = {"role": "user", "content": text}
        chat = self._tokens.estimate_call_cost(
            build_system_prompt(session, self._kb),
            [*to_provider_messages(session.messages), user_message],
            self._config.model,
            self._config.chat_max_tokens,
        )
        extraction_prompt: ProviderMessage = {
            "role": "user",
            "content": build_extraction_prompt(text, session.extracted_info),
        }
        extraction = self._tokens.estimate_call_cost(
            EXTRACTION_SYSTEM_PROMPT,
            [extraction_prompt],
            self._config.model,
            self._config.extraction_max_tokens,
        )
        return round(chat + extraction, 6)

    def estimate_generation_cost(self, session: Session) -> float:
        prompt: ProviderMessage = {"role": "user", "content": build_generation_prompt(session)}
        return self._tokens.estimate_call_cost(
            GENERATION_SYSTEM_PROMPT,
            [prompt],
            self._config.model,
            self._config.generation_max_tokens,
        )

    # --- operações -----------------------------------------------------------

    async def start(
        self,
        session_id: str,
        user_context: UserContext,
        meter: UsageMeter | None = None,
    ) -> ChatResult:
        """Cria a sessão e gera a mensagem de abertura.

        Raises:
            SessionAlreadyExists: Sessão ativa com o mesmo id.
            LLMServiceError: Provider indisponível (a sessão recém-criada é removida).
        """
        await self._store.create(session_id, user_context)
        greeting = build_greeting(user_context)

        try:
            completion = await self._complete(
                session_id,
                system=self._kb.system_prompt(user_context.language),
                messages=[{"role": "user", "content": greeting}],
                temperature=self._config.chat_temperature,
                max_tokens=self._config.greeting_max_tokens,
                purpose="greeting",
                language=user_context.language,
                meter=meter,
            )
        except LLMServiceError:
            # Sem abertura a sessão não é utilizável; libera o id para nova tentativa.
            await self._store.delete(session_id)
            raise

        session = await self._store.append_message(
            session_id, ChatMessage(role=MessageRole.ASSISTANT, content=completion.text)
        )
        logger.info(
            "Conversation started",
            extra={
                "session_id": short_id(session_id),
                "language": user_context.language,
                "pre_filled": user_context.is_pre_filled,
                "cost": session.cost,
            },
        )
        return ChatResult(
            message=completion.text,
            session_id=session_id,
            phase=session.phase,
            completeness=session.completeness,
            cost=session.cost,
            ready_for_generation=False,
        )

    async def _extract(
        self, session: Session, text: str, meter: UsageMeter | None
    ) -> dict[str, Any]:
        language = session.user_context.language
        try:
            completion = await self._complete(
                session.id,
                system=EXTRACTION_SYSTEM_PROMPT,
                messages=[
                    {
                        "role": "user",
                        "content": build_extraction_prompt(text, session.extracted_info),
                    }
                ],
                temperature=self._config.extraction_temperature,
                max_tokens=self._config.extraction_max_tokens,
                purpose="extraction",
                language=language,
                meter=meter,
            )
        except LLMServiceError as exc:
            logger.warning(
                "Extraction call failed; turn continues without new information",
                extra={"session_id": short_id(session.id), "error_type": type(exc).__name__},
            )
            log_fallback(logger, "extraction", reason="provider_error", session_id=session.id)
            return {}
        return parse_extraction(completion.text, session_id=session.id)

    async def process_message(
        self,
        session_id: str,
        text: str,
        meter: UsageMeter | None = None,
    ) -> ChatResult:
        """Processa um turno do usuário.

        Raises:
            SessionNotFound: Sessão ausente ou expirada.
            SessionLimitExceeded: Limite de trocas ou de custo da sessão.
            LLMServiceError: Falha da chamada de chat após retries.
        """
        session = await self.load_session(session_id)
        self._check_session_limits(session)

        session = await self._store.append_message(
            session_id, ChatMessage(role=MessageRole.USER, content=text)
        )
        language = session.user_context.language

        chat = await self._complete(
            session_id,
            system=build_system_prompt(session, self._kb),
            messages=to_provider_messages(session.messages),
            temperature=self._config.chat_temperature,
            max_tokens=self._config.chat_max_tokens,
            purpose="chat",
            language=language,
            meter=meter,
        )
        session = await self._store.append_message(
            session_id, ChatMessage(role=MessageRole.ASSISTANT, content=chat.text)
        )

        new_info = await self._extract(session, text, meter)
        previous_phase = session.phase

        def _merge_turn(current: Session) -> dict[str, Any]:
            # Roda sobre o registro mais recente: turnos concorrentes não perdem chaves
            merged = merge_extracted_info(current.extracted_info, new_info)
            completeness = self._scorer(merged)
            fields: dict[str, Any] = {"extracted_info": merged, "completeness": completeness}
            if current.phase != Phase.COMPLETE:
                fields["phase"] = determine_phase(completeness)
            return fields

        session = await self._store.update(session_id, derive=_merge_turn)
        if session.phase != previous_phase:
            logger.info(
                "Phase transition",
                extra={
                    "session_id": short_id(session_id),
                    "from_phase": previous_phase.value,
                    "to_phase": session.phase.value,
                    "completeness": session.completeness,
                },
            )

        logger.info(
            "Message processed",
            extra={
                "session_id": short_id(session_id),
                "phase": session.phase.value,
                "completeness": session.completeness,
                "new_fields": sorted(new_info),
            },
        )
        return ChatResult(
            message=chat.text,
            session_id=session_id,
            phase=session.phase,
            completeness=session.completeness,
            cost=session.cost,
            ready_for_generation=is_ready_for_generation(session.completeness, session.phase),
            extracted_info=dict(session.extracted_info),
        )

    async def generate_application(
        self,
        session_id: str,
        meter: UsageMeter | None = None,
    ) -> GrantApplication:
        """Gera o documento final.

        Documento fora do schema vira fallback explícito a partir de
        extracted_info; falha do provider propaga.

        Raises:
            SessionNotFound: Sessão ausente ou expirada.
            InsufficientInformation: Completude abaixo do limiar de geração.
            LLMServiceError: Provider indisponível.
        """
        session = await self.load_session(session_id)
        if session.completeness < GENERATION_THRESHOLD:
            raise InsufficientInformation(
                f"completeness {session.completeness} below {GENERATION_THRESHOLD}"
            )

        completion = await self._complete(
            session_id,
            system=GENERATION_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": build_generation_prompt(session)}],
            temperature=self._config.generation_temperature,
            max_tokens=self._config.generation_max_tokens,
            purpose="generation",
            language=session.user_context.language,
            meter=meter,
        )
        application, fallback_used = parse_application(
            completion.text, session.extracted_info, session_id=session_id
        )
        session = await self._store.update(session_id, {"phase": Phase.COMPLETE})

        logger.info(
            "Application generated",
            extra={
                "session_id": short_id(session_id),
                "fallback_used": fallback_used,
                "activities": len(application.activities),
                "total_cost": session.cost,
            },
        )
        return application

    async def session_stats(self, session_id: str) -> SessionStats:
        session = await self.load_session(session_id)
        duration = session.updated_at - session.created_at
        return SessionStats(
            message_count=len(session.messages),
            total_cost=session.cost,
            token_count=session.token_count,
            duration_seconds=max(0, int(duration.total_seconds())),
            completeness=session.completeness,
        )

    async def cleanup_expired_sessions(self, limit: int = 100) -> int:
        return await self._store.cleanup_expired(limit)
