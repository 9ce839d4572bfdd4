"""Contrato de persistência de sessão + factory de backends.

Regras comuns a todos os backends:
- expires_at = created_at + TTL, fixo (atividade não estende)
- sessão expirada é tratada como ausente e removida na leitura
- messages é append-only; append é atômico (sem lost update)
- updated_at é renovado em toda mutação
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from wbso_chat.domain.models import ChatMessage, Session, UserContext
from wbso_chat.observability.logging import get_logger

if TYPE_CHECKING:
    from wbso_chat.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

DEFAULT_TTL = timedelta(hours=24)

# Campos que update() aceita; o resto é imutável ou tem operação própria.
UPDATABLE_FIELDS = frozenset({"phase", "extracted_info", "completeness", "token_count", "cost"})
INCREMENTABLE_FIELDS = frozenset({"token_count", "cost"})


def build_session(
    session_id: str,
    user_context: UserContext | None = None,
    ttl: timedelta = DEFAULT_TTL,
    now: datetime | None = None,
) -> Session:
    """Cria o registro inicial de uma sessão (fase discovery, sem mensagens)."""
    created_at = now or datetime.now(tz=UTC)
    return Session(
        id=session_id,
        user_context=user_context or UserContext(),
        created_at=created_at,
        updated_at=created_at,
        expires_at=created_at + ttl,
    )


SessionDerivation = Callable[[Session], Mapping[str, Any]]


def apply_update(
    session: Session,
    fields: Mapping[str, Any] | None = None,
    increments: Mapping[str, float] | None = None,
    now: datetime | None = None,
    derive: SessionDerivation | None = None,
) -> Session:
    """Merge raso de campos de topo sobre a sessão.

    extracted_info em `fields` deve chegar já mesclado pelo chamador.
    `derive` recebe o registro corrente e devolve campos calculados a
    partir dele (ex.: merge de extracted_info + completude); roda dentro
    do mesmo passo atômico do backend. increments soma deltas não
    negativos aos totais (token_count, cost).

    Raises:
        ValueError: Campo não atualizável ou delta negativo.
    """
    fields = dict(fields or {})
    if derive is not None:
        fields.update(derive(session))
    increments = dict(increments or {})

    forbidden = set(fields) - UPDATABLE_FIELDS
    if forbidden:
        raise ValueError(f"Campos não atualizáveis: {sorted(forbidden)}")
    bad_increments = set(increments) - INCREMENTABLE_FIELDS
    if bad_increments:
        raise ValueError(f"Campos não incrementáveis: {sorted(bad_increments)}")
    if any(delta < 0 for delta in increments.values()):
        raise ValueError("Totais de uso nunca diminuem")

    changes: dict[str, Any] = dict(fields)
    if "token_count" in increments:
        changes["token_count"] = session.token_count + int(increments["token_count"])
    if "cost" in increments:
        changes["cost"] = round(session.cost + float(increments["cost"]), 6)
    if changes.get("token_count", session.token_count) < session.token_count:
        raise ValueError("token_count nunca diminui")
    if changes.get("cost", session.cost) < session.cost:
        raise ValueError("cost nunca diminui")

    changes["updated_at"] = now or datetime.now(tz=UTC)
    return session.model_copy(update=changes, deep=True)


def append_to(session: Session, message: ChatMessage, now: datetime | None = None) -> Session:
    """Retorna cópia da sessão com a mensagem anexada ao final."""
    return session.model_copy(
        update={
            "messages": [*session.messages, message],
            "updated_at": now or datetime.now(tz=UTC),
        },
        deep=True,
    )


class SessionStore(ABC):
    """Contrato assíncrono de armazenamento de sessões."""

    @abstractmethod
    async def create(self, session_id: str, user_context: UserContext | None = None) -> Session:
        """Cria sessão nova.

        Raises:
            SessionAlreadyExists: Já existe registro não expirado com o id.
        """

    @abstractmethod
    async def get(self, session_id: str) -> Session | None:
        """Retorna a sessão ou None se ausente/expirada."""

    @abstractmethod
    async def update(
        self,
        session_id: str,
        fields: Mapping[str, Any] | None = None,
        *,
        increments: Mapping[str, float] | None = None,
        derive: SessionDerivation | None = None,
    ) -> Session:
        """Read-modify-write transacional.

        `derive` calcula campos a partir do registro corrente, no mesmo
        passo atômico (lock em memória, transação no Firestore).

        Raises:
            SessionNotFound: Sessão ausente ou expirada.
        """

    @abstractmethod
    async def append_message(self, session_id: str, message: ChatMessage) -> Session:
        """Anexa mensagem atomicamente.

        Raises:
            SessionNotFound: Sessão ausente ou expirada.
        """

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        """Remove a sessão; False se não existia."""

    @abstractmethod
    async def cleanup_expired(self, limit: int = 100) -> int:
        """Remove até `limit` sessões expiradas; retorna quantas removeu."""


def create_session_store(settings: Settings, firestore_client: Any | None = None) -> SessionStore:
    """Cria o SessionStore conforme SESSION_STORE_BACKEND.

    Raises:
        ValueError: Backend desconhecido.
    """
    backend = settings.session_store_backend.lower()
    ttl = timedelta(hours=settings.session_ttl_hours)

    if backend == "memory":
        from wbso_chat.infra.session_store_memory import InMemorySessionStore

        logger.warning(
            "Using in-memory session store (dev only, unsuitable for Cloud Run)",
            extra={"ttl_hours": settings.session_ttl_hours},
        )
        return InMemorySessionStore(ttl=ttl)

    if backend == "firestore":
        from wbso_chat.infra.session_store_firestore import FirestoreSessionStore

        if firestore_client is None:
            from google.cloud import firestore

            firestore_client = firestore.Client(
                project=settings.firestore_project,
                database=settings.firestore_database_id,
            )
        logger.info(
            "Using Firestore session store",
            extra={"collection": settings.sessions_collection},
        )
        return FirestoreSessionStore(
            firestore_client,
            collection=settings.sessions_collection,
            ttl=ttl,
        )

    raise ValueError(f"Unknown session store backend: {backend}")
