"""Implementação de SessionStore em memória (apenas dev/testes)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from wbso_chat.domain.errors import SessionAlreadyExists, SessionNotFound
from wbso_chat.domain.models import ChatMessage, Session, UserContext
from wbso_chat.infra.session_store import (
    DEFAULT_TTL,
    SessionDerivation,
    SessionStore,
    append_to,
    apply_update,
    build_session,
)
from wbso_chat.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)


class InMemorySessionStore(SessionStore):
    """Armazenamento em memória (não usar em produção).

    Um único asyncio.Lock serializa as mutações; as sessões devolvidas
    são cópias, então o chamador nunca altera o estado interno.
    """

    def __init__(self, ttl: timedelta = DEFAULT_TTL) -> None:
        self._ttl = ttl
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()

    def _live(self, session_id: str, now: datetime) -> Session | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if session.is_expired(now):
            del self._sessions[session_id]
            logger.debug(
                "Session expired (in-memory)",
                extra={"session_id": short_id(session_id)},
            )
            return None
        return session

    async def create(self, session_id: str, user_context: UserContext | None = None) -> Session:
        async with self._lock:
            now = datetime.now(tz=UTC)
            if self._live(session_id, now) is not None:
                raise SessionAlreadyExists(f"session {short_id(session_id)} already exists")
            session = build_session(session_id, user_context, ttl=self._ttl, now=now)
            self._sessions[session_id] = session
            logger.debug("Session created (in-memory)", extra={"session_id": short_id(session_id)})
            return session.model_copy(deep=True)

    async def get(self, session_id: str) -> Session | None:
        async with self._lock:
            session = self._live(session_id, datetime.now(tz=UTC))
            return session.model_copy(deep=True) if session else None

    async def update(
        self,
        session_id: str,
        fields: Mapping[str, Any] | None = None,
        *,
        increments: Mapping[str, float] | None = None,
        derive: SessionDerivation | None = None,
    ) -> Session:
        async with self._lock:
            now = datetime.now(tz=UTC)
            current = self._live(session_id, now)
            if current is None:
                raise SessionNotFound(f"session {short_id(session_id)} not found")
            updated = apply_update(current, fields, increments, now=now, derive=derive)
            self._sessions[session_id] = updated
            return updated.model_copy(deep=True)

    async def append_message(self, session_id: str, message: ChatMessage) -> Session:
        async with self._lock:
            now = datetime.now(tz=UTC)
            current = self._live(session_id, now)
            if current is None:
                raise SessionNotFound(f"session {short_id(session_id)} not found")
            updated = append_to(current, message, now=now)
            self._sessions[session_id] = updated
            return updated.model_copy(deep=True)

    async def delete(self, session_id: str) -> bool:
        async with self._lock:
            removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.debug("Session deleted (in-memory)", extra={"session_id": short_id(session_id)})
        return removed

    async def cleanup_expired(self, limit: int = 100) -> int:
        async with self._lock:
            now = datetime.now(tz=UTC)
            expired = [sid for sid, s in self._sessions.items() if s.is_expired(now)][:limit]
            for sid in expired:
                del self._sessions[sid]
        logger.info("Expired sessions removed (in-memory)", extra={"deleted": len(expired)})
        return len(expired)
