"""Controle de admissão: rate limiting + reserva de custo.

Ordem no request:
1. rate limiters (conjuntivos; para no primeiro que recusar)
2. reserva da estimativa no ledger diário (usuário + global, atômica)
3. operação medida por UsageMeter
4. reconciliação: aplica (custo real - estimativa) ao ledger

Rejeições de admissão são esperadas e logadas como warning.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from wbso_chat.application.usage import UsageMeter
from wbso_chat.domain.errors import (
    GenerationRateLimitExceeded,
    GlobalCostLimitExceeded,
    RateLimitExceeded,
    UserCostLimitExceeded,
)
from wbso_chat.infra import cost_ledger, rate_limiter
from wbso_chat.infra.cost_ledger import CostLedger, Reservation
from wbso_chat.infra.rate_limiter import RateLimiter, RateLimiters
from wbso_chat.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)

T = TypeVar("T")


class AdmissionController:
    def __init__(self, limiters: RateLimiters, ledger: CostLedger) -> None:
        self._limiters = limiters
        self._ledger = ledger

    @property
    def ledger(self) -> CostLedger:
        return self._ledger

    async def _consume_all(
        self,
        checks: tuple[tuple[RateLimiter, str], ...],
        error_type: type[RateLimitExceeded],
    ) -> None:
        for limiter, subject in checks:
            result = await limiter.consume(subject)
            if not result.allowed:
                rate_limiter.log_rejection(result, subject)
                raise error_type(result.retry_after_seconds, limiter.name)

    async def check_chat_rate(self, client_address: str, user_id: str) -> None:
        """Janela curta por IP, janela de emergência por IP e janela horária por usuário.

        Raises:
            RateLimitExceeded: Algum bucket esgotado.
        """
        await self._consume_all(
            (
                (self._limiters.chat, client_address),
                (self._limiters.emergency, client_address),
                (self._limiters.user_chat, user_id),
            ),
            RateLimitExceeded,
        )

    async def check_generation_rate(self, client_address: str, user_id: str) -> None:
        """Par estrito para geração do documento final.

        Raises:
            GenerationRateLimitExceeded: Algum bucket esgotado.
        """
        await self._consume_all(
            (
                (self._limiters.generation, client_address),
                (self._limiters.user_generation, user_id),
            ),
            GenerationRateLimitExceeded,
        )

    async def reserve(self, user_id: str, estimate: float) -> Reservation:
        """Reserva a estimativa nos tetos diários.

        Raises:
            UserCostLimitExceeded: Teto do usuário.
            GlobalCostLimitExceeded: Teto global.
        """
        try:
            return await self._ledger.reserve(user_id, estimate)
        except (UserCostLimitExceeded, GlobalCostLimitExceeded) as exc:
            cost_ledger.log_rejection(exc, user_id, estimate)
            raise

    async def settle(self, reservation: Reservation, actual_cost: float) -> None:
        """Aplica a diferença entre custo real e reservado aos dois ledgers."""
        delta = round(actual_cost - reservation.amount, 6)
        await self._ledger.adjust(reservation, delta)
        logger.info(
            "Cost reservation settled",
            extra={
                "user_id": short_id(reservation.user_id),
                "estimated_cost": reservation.amount,
                "actual_cost": actual_cost,
            },
        )

    async def run_metered(
        self,
        user_id: str,
        estimate: float,
        operation: Callable[[UsageMeter], Awaitable[T]],
    ) -> T:
        """Reserva, executa a operação e reconcilia com o uso medido.

        A reconciliação roda no finally: falha no meio da operação ainda
        contabiliza o que o provider já cobrou.
        """
        reservation = await self.reserve(user_id, estimate)
        meter = UsageMeter()
        try:
            return await operation(meter)
        finally:
            await self.settle(reservation, meter.cost)
