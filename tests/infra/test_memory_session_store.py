"""Testes do SessionStore em memória."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from wbso_chat.domain.errors import SessionAlreadyExists, SessionNotFound
from wbso_chat.domain.models import ChatMessage, MessageRole, Phase, UserContext
from wbso_chat.infra.session_store_memory import InMemorySessionStore


def _message(content: str, role: MessageRole = MessageRole.USER) -> ChatMessage:
    return ChatMessage(role=role, content=content)


class TestCreateAndGet:
    @pytest.mark.asyncio
    async def test_new_session_defaults(self) -> None:
        store = InMemorySessionStore(ttl=timedelta(hours=24))

        session = await store.create("session-0001", UserContext(user_id="user-1"))

        assert session.phase == Phase.DISCOVERY
        assert session.messages == []
        assert session.extracted_info == {}
        assert session.completeness == 0
        assert session.cost == 0.0
        assert session.owner_id == "user-1"
        assert session.expires_at - session.created_at == timedelta(hours=24)
        assert await store.get("session-0001") == session

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self) -> None:
        store = InMemorySessionStore()
        await store.create("session-0001")

        with pytest.raises(SessionAlreadyExists):
            await store.create("session-0001")

    @pytest.mark.asyncio
    async def test_missing_session(self) -> None:
        assert await InMemorySessionStore().get("session-none") is None

    @pytest.mark.asyncio
    async def test_expired_session_is_absent(self) -> None:
        store = InMemorySessionStore(ttl=timedelta(0))
        await store.create("session-0001")

        assert await store.get("session-0001") is None
        with pytest.raises(SessionNotFound):
            await store.append_message("session-0001", _message("hallo"))

        # id expirado pode ser reutilizado
        recreated = await store.create("session-0001")
        assert recreated.messages == []

    @pytest.mark.asyncio
    async def test_returns_copies(self) -> None:
        store = InMemorySessionStore()
        await store.create("session-0001")

        session = await store.get("session-0001")
        session.messages.append(_message("lokaal"))
        session.extracted_info["projectTitle"] = "lokaal"

        fresh = await store.get("session-0001")
        assert fresh.messages == []
        assert fresh.extracted_info == {}


class TestMutations:
    @pytest.mark.asyncio
    async def test_append_preserves_order(self) -> None:
        store = InMemorySessionStore()
        await store.create("session-0001")

        await store.append_message("session-0001", _message("een"))
        session = await store.append_message(
            "session-0001", _message("twee", MessageRole.ASSISTANT)
        )

        assert [m.content for m in session.messages] == ["een", "twee"]
        assert session.updated_at >= session.created_at

    @pytest.mark.asyncio
    async def test_concurrent_appends_are_not_lost(self) -> None:
        store = InMemorySessionStore()
        await store.create("session-0001")

        await asyncio.gather(
            *(store.append_message("session-0001", _message(f"msg-{i}")) for i in range(20))
        )

        session = await store.get("session-0001")
        assert len(session.messages) == 20
        assert {m.content for m in session.messages} == {f"msg-{i}" for i in range(20)}

    @pytest.mark.asyncio
    async def test_concurrent_increments(self) -> None:
        store = InMemorySessionStore()
        await store.create("session-0001")

        await asyncio.gather(
            *(
                store.update("session-0001", increments={"token_count": 10, "cost": 0.1})
                for _ in range(10)
            )
        )

        session = await store.get("session-0001")
        assert session.token_count == 100
        assert session.cost == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_update_fields(self) -> None:
        store = InMemorySessionStore()
        created = await store.create("session-0001")

        session = await store.update(
            "session-0001",
            {"phase": Phase.CLARIFICATION, "extracted_info": {"teamSize": "4"}, "completeness": 11},
        )

        assert session.phase == Phase.CLARIFICATION
        assert session.extracted_info == {"teamSize": "4"}
        assert session.completeness == 11
        assert session.expires_at == created.expires_at

    @pytest.mark.asyncio
    async def test_derive_reads_latest_record(self) -> None:
        store = InMemorySessionStore()
        await store.create("session-0001")

        def _add(key: str, value: str):
            def _derive(current):
                return {"extracted_info": {**current.extracted_info, key: value}}

            return _derive

        await asyncio.gather(
            store.update("session-0001", derive=_add("projectTitle", "Planner")),
            store.update("session-0001", derive=_add("teamSize", "4")),
            store.update("session-0001", derive=_add("projectType", "development")),
        )

        session = await store.get("session-0001")
        assert session.extracted_info == {
            "projectTitle": "Planner",
            "teamSize": "4",
            "projectType": "development",
        }

    @pytest.mark.asyncio
    async def test_derived_fields_are_validated(self) -> None:
        store = InMemorySessionStore()
        await store.create("session-0001")

        with pytest.raises(ValueError):
            await store.update("session-0001", derive=lambda current: {"messages": []})

    @pytest.mark.asyncio
    async def test_immutable_fields_rejected(self) -> None:
        store = InMemorySessionStore()
        await store.create("session-0001")

        with pytest.raises(ValueError):
            await store.update("session-0001", {"messages": []})
        with pytest.raises(ValueError):
            await store.update("session-0001", {"user_context": UserContext(user_id="x")})
        with pytest.raises(ValueError):
            await store.update("session-0001", {"expires_at": None})

    @pytest.mark.asyncio
    async def test_totals_never_decrease(self) -> None:
        store = InMemorySessionStore()
        await store.create("session-0001")
        await store.update("session-0001", increments={"cost": 0.5, "token_count": 100})

        with pytest.raises(ValueError):
            await store.update("session-0001", increments={"cost": -0.1})
        with pytest.raises(ValueError):
            await store.update("session-0001", {"cost": 0.0})
        with pytest.raises(ValueError):
            await store.update("session-0001", {"token_count": 1})

        session = await store.get("session-0001")
        assert session.cost == 0.5
        assert session.token_count == 100

    @pytest.mark.asyncio
    async def test_update_missing_session(self) -> None:
        with pytest.raises(SessionNotFound):
            await InMemorySessionStore().update("session-none", {"completeness": 10})


class TestDeleteAndCleanup:
    @pytest.mark.asyncio
    async def test_delete(self) -> None:
        store = InMemorySessionStore()
        await store.create("session-0001")

        assert await store.delete("session-0001") is True
        assert await store.delete("session-0001") is False
        assert await store.get("session-0001") is None

    @pytest.mark.asyncio
    async def test_cleanup_respects_limit(self) -> None:
        store = InMemorySessionStore(ttl=timedelta(0))
        for i in range(3):
            await store.create(f"session-000{i}")

        assert await store.cleanup_expired(limit=2) == 2
        assert await store.cleanup_expired(limit=2) == 1
        assert await store.cleanup_expired() == 0

    @pytest.mark.asyncio
    async def test_cleanup_keeps_live_sessions(self) -> None:
        store = InMemorySessionStore()
        await store.create("session-0001")

        assert await store.cleanup_expired() == 0
        assert await store.get("session-0001") is not None
