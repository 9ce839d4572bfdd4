"""CostLedger em Firestore.

Documentos:
- user_daily_costs/{uid}_{YYYY-MM-DD}: {userId, date, totalCost, updatedAt}
- system_costs/global_{YYYY-MM-DD}: {date, totalCost, updatedAt}

reserve() lê as duas entradas, verifica os tetos e grava as duas na
mesma transação. O Firestore reexecuta a função em caso de conflito, de
modo que reservas concorrentes nunca ultrapassam o teto.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import anyio
from google.cloud import firestore

from wbso_chat.infra.cost_ledger import (
    CostLedger,
    Reservation,
    apply_delta,
    check_limits,
    utc_day,
)
from wbso_chat.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)


def _total(snapshot: firestore.DocumentSnapshot) -> float:
    if not snapshot.exists:
        return 0.0
    data = snapshot.to_dict() or {}
    return float(data.get("totalCost", 0.0))


class FirestoreCostLedger(CostLedger):
    def __init__(
        self,
        client: firestore.Client,
        user_daily_limit: float,
        global_daily_limit: float,
        user_collection: str = "user_daily_costs",
        system_collection: str = "system_costs",
    ) -> None:
        super().__init__(user_daily_limit, global_daily_limit)
        self._client = client
        self._user_collection = user_collection
        self._system_collection = system_collection

    def _user_ref(self, user_id: str, day: str) -> firestore.DocumentReference:
        return self._client.collection(self._user_collection).document(f"{user_id}_{day}")

    def _global_ref(self, day: str) -> firestore.DocumentReference:
        return self._client.collection(self._system_collection).document(f"global_{day}")

    def _write(
        self,
        transaction: firestore.Transaction,
        user_id: str,
        day: str,
        user_total: float,
        global_total: float,
    ) -> None:
        now = datetime.now(tz=UTC)
        transaction.set(
            self._user_ref(user_id, day),
            {"userId": user_id, "date": day, "totalCost": user_total, "updatedAt": now},
            merge=True,
        )
        transaction.set(
            self._global_ref(day),
            {"date": day, "totalCost": global_total, "updatedAt": now},
            merge=True,
        )

    def _reserve_sync(self, user_id: str, amount: float) -> Reservation:
        day = utc_day()
        user_ref = self._user_ref(user_id, day)
        global_ref = self._global_ref(day)

        @firestore.transactional
        def _txn(transaction: firestore.Transaction) -> Reservation:
            user_total = _total(user_ref.get(transaction=transaction))
            global_total = _total(global_ref.get(transaction=transaction))
            check_limits(
                user_total, global_total, amount, self.user_daily_limit, self.global_daily_limit
            )
            self._write(
                transaction,
                user_id,
                day,
                apply_delta(user_total, amount),
                apply_delta(global_total, amount),
            )
            return Reservation(user_id=user_id, amount=amount, day=day)

        return _txn(self._client.transaction())

    def _adjust_sync(self, reservation: Reservation, delta: float) -> None:
        user_ref = self._user_ref(reservation.user_id, reservation.day)
        global_ref = self._global_ref(reservation.day)

        @firestore.transactional
        def _txn(transaction: firestore.Transaction) -> None:
            user_total = _total(user_ref.get(transaction=transaction))
            global_total = _total(global_ref.get(transaction=transaction))
            self._write(
                transaction,
                reservation.user_id,
                reservation.day,
                apply_delta(user_total, delta),
                apply_delta(global_total, delta),
            )

        _txn(self._client.transaction())

    async def reserve(self, user_id: str, amount: float) -> Reservation:
        return await anyio.to_thread.run_sync(self._reserve_sync, user_id, amount)

    async def adjust(self, reservation: Reservation, delta: float) -> None:
        if delta == 0:
            return
        await anyio.to_thread.run_sync(self._adjust_sync, reservation, delta)
        logger.debug(
            "Cost ledger adjusted",
            extra={"user_id": short_id(reservation.user_id), "delta": round(delta, 6)},
        )

    async def user_total(self, user_id: str, day: str | None = None) -> float:
        ref = self._user_ref(user_id, day or utc_day())
        return _total(await anyio.to_thread.run_sync(ref.get))

    async def global_total(self, day: str | None = None) -> float:
        ref = self._global_ref(day or utc_day())
        return _total(await anyio.to_thread.run_sync(ref.get))
