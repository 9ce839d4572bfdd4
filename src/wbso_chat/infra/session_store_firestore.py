"""Implementação de SessionStore usando Firestore (produção).

Coleção padrão: wbso_chat_sessions/{session_id}

O client síncrono do Firestore roda em worker thread (anyio.to_thread)
para não bloquear o event loop. Toda mutação é uma transação
read-modify-write (@firestore.transactional), então appends concorrentes
de instâncias diferentes nunca perdem mensagens: o Firestore reexecuta a
função quando detecta conflito.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import anyio
from google.cloud import firestore
from pydantic import ValidationError

from wbso_chat.domain.errors import SessionAlreadyExists, SessionNotFound, StorageError
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


class FirestoreSessionStore(SessionStore):
    """Armazenamento de sessão em Firestore.

    O campo expiresAt também serve para a política de TTL do Firestore e
    para a varredura de cleanup_expired.
    """

    def __init__(
        self,
        client: firestore.Client,
        collection: str = "wbso_chat_sessions",
        ttl: timedelta = DEFAULT_TTL,
    ) -> None:
        self._client = client
        self._collection = collection
        self._ttl = ttl

    def _doc_ref(self, session_id: str) -> firestore.DocumentReference:
        return self._client.collection(self._collection).document(session_id)

    def _parse(self, session_id: str, data: dict[str, Any] | None) -> Session:
        try:
            return Session.model_validate(data or {})
        except ValidationError as exc:
            logger.error(
                "Documento de sessão malformado",
                extra={"session_id": short_id(session_id), "error": str(exc)},
            )
            raise StorageError(f"malformed session document: {session_id}") from exc

    # --- operações síncronas (executadas em thread) -------------------------

    def _create_sync(self, session_id: str, user_context: UserContext | None) -> Session:
        doc_ref = self._doc_ref(session_id)
        now = datetime.now(tz=UTC)
        session = build_session(session_id, user_context, ttl=self._ttl, now=now)

        @firestore.transactional
        def _txn(transaction: firestore.Transaction) -> Session:
            snapshot = doc_ref.get(transaction=transaction)
            if snapshot.exists:
                existing = self._parse(session_id, snapshot.to_dict())
                if not existing.is_expired(now):
                    raise SessionAlreadyExists(f"session {short_id(session_id)} already exists")
            # Registro expirado é substituído.
            transaction.set(doc_ref, session.to_document())
            return session

        return _txn(self._client.transaction())

    def _get_sync(self, session_id: str) -> Session | None:
        doc_ref = self._doc_ref(session_id)
        snapshot = doc_ref.get()
        if not snapshot.exists:
            logger.debug("Session not found (Firestore)", extra={"session_id": short_id(session_id)})
            return None

        session = self._parse(session_id, snapshot.to_dict())
        if session.is_expired():
            logger.debug("Session expired (Firestore)", extra={"session_id": short_id(session_id)})
            doc_ref.delete()
            return None
        return session

    def _mutate_sync(
        self, session_id: str, mutate: Callable[[Session, datetime], Session]
    ) -> Session:
        doc_ref = self._doc_ref(session_id)

        @firestore.transactional
        def _txn(transaction: firestore.Transaction) -> Session:
            now = datetime.now(tz=UTC)
            snapshot = doc_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise SessionNotFound(f"session {short_id(session_id)} not found")
            current = self._parse(session_id, snapshot.to_dict())
            if current.is_expired(now):
                raise SessionNotFound(f"session {short_id(session_id)} expired")
            updated = mutate(current, now)
            transaction.set(doc_ref, updated.to_document())
            return updated

        return _txn(self._client.transaction())

    def _delete_sync(self, session_id: str) -> bool:
        doc_ref = self._doc_ref(session_id)
        if not doc_ref.get().exists:
            return False
        doc_ref.delete()
        logger.debug("Session deleted (Firestore)", extra={"session_id": short_id(session_id)})
        return True

    def _cleanup_sync(self, limit: int) -> int:
        now = datetime.now(tz=UTC)
        query = (
            self._client.collection(self._collection)
            .where("expiresAt", "<", now)
            .limit(limit)
        )
        docs = list(query.stream())
        if not docs:
            return 0

        batch = self._client.batch()
        for doc in docs:
            batch.delete(doc.reference)
        batch.commit()
        return len(docs)

    # --- contrato assíncrono ------------------------------------------------

    async def create(self, session_id: str, user_context: UserContext | None = None) -> Session:
        session = await anyio.to_thread.run_sync(self._create_sync, session_id, user_context)
        logger.info("Session created (Firestore)", extra={"session_id": short_id(session_id)})
        return session

    async def get(self, session_id: str) -> Session | None:
        return await anyio.to_thread.run_sync(self._get_sync, session_id)

    async def update(
        self,
        session_id: str,
        fields: Mapping[str, Any] | None = None,
        *,
        increments: Mapping[str, float] | None = None,
        derive: SessionDerivation | None = None,
    ) -> Session:
        def _mutate(current: Session, now: datetime) -> Session:
            return apply_update(current, fields, increments, now=now, derive=derive)

        return await anyio.to_thread.run_sync(self._mutate_sync, session_id, _mutate)

    async def append_message(self, session_id: str, message: ChatMessage) -> Session:
        def _mutate(current: Session, now: datetime) -> Session:
            return append_to(current, message, now=now)

        return await anyio.to_thread.run_sync(self._mutate_sync, session_id, _mutate)

    async def delete(self, session_id: str) -> bool:
        return await anyio.to_thread.run_sync(self._delete_sync, session_id)

    async def cleanup_expired(self, limit: int = 100) -> int:
        deleted = await anyio.to_thread.run_sync(self._cleanup_sync, limit)
        logger.info(
            "Expired sessions removed (Firestore)",
            extra={"deleted": deleted, "limit": limit},
        )
        return deleted
