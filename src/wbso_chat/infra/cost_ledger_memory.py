"""CostLedger em memória (apenas dev/testes)."""

from __future__ import annotations

import asyncio

from wbso_chat.infra.cost_ledger import (
    CostLedger,
    Reservation,
    apply_delta,
    check_limits,
    utc_day,
)


class InMemoryCostLedger(CostLedger):
    """Ledger por processo; o lock torna reserve() atômico."""

    def __init__(self, user_daily_limit: float, global_daily_limit: float) -> None:
        super().__init__(user_daily_limit, global_daily_limit)
        self._user: dict[tuple[str, str], float] = {}
        self._global: dict[str, float] = {}
        self._lock = asyncio.Lock()

    async def reserve(self, user_id: str, amount: float) -> Reservation:
        async with self._lock:
            day = utc_day()
            user_total = self._user.get((user_id, day), 0.0)
            global_total = self._global.get(day, 0.0)
            check_limits(
                user_total, global_total, amount, self.user_daily_limit, self.global_daily_limit
            )
            self._user[(user_id, day)] = apply_delta(user_total, amount)
            self._global[day] = apply_delta(global_total, amount)
            return Reservation(user_id=user_id, amount=amount, day=day)

    async def adjust(self, reservation: Reservation, delta: float) -> None:
        if delta == 0:
            return
        async with self._lock:
            key = (reservation.user_id, reservation.day)
            self._user[key] = apply_delta(self._user.get(key, 0.0), delta)
            self._global[reservation.day] = apply_delta(
                self._global.get(reservation.day, 0.0), delta
            )

    async def user_total(self, user_id: str, day: str | None = None) -> float:
        return self._user.get((user_id, day or utc_day()), 0.0)

    async def global_total(self, day: str | None = None) -> float:
        return self._global.get(day or utc_day(), 0.0)
