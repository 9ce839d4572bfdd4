"""Testes do controle de admissão (rate limit + reserva/reconciliação de custo)."""

from __future__ import annotations

import asyncio

import pytest

from wbso_chat.application.admission import AdmissionController
from wbso_chat.application.usage import UsageMeter
from wbso_chat.domain.errors import (
    GenerationRateLimitExceeded,
    GlobalCostLimitExceeded,
    RateLimitExceeded,
    UserCostLimitExceeded,
)
from wbso_chat.domain.protocols.llm_provider import Completion
from wbso_chat.infra.cost_ledger_memory import InMemoryCostLedger
from wbso_chat.infra.rate_limiter import InMemoryRateLimiter, RateLimiters


def _limiters(
    chat: int = 10, emergency: int = 100, user_chat: int = 50, generation: int = 3
) -> RateLimiters:
    clock = lambda: 1000.0  # noqa: E731
    return RateLimiters(
        chat=InMemoryRateLimiter("chat", chat, 60, clock=clock),
        emergency=InMemoryRateLimiter("emergency", emergency, 3600, clock=clock),
        user_chat=InMemoryRateLimiter("user_chat", user_chat, 3600, clock=clock),
        generation=InMemoryRateLimiter("generation", generation, 600, clock=clock),
        user_generation=InMemoryRateLimiter("user_generation", generation, 600, clock=clock),
    )


def _controller(limiters: RateLimiters | None = None, user_limit: float = 10.0):
    ledger = InMemoryCostLedger(user_daily_limit=user_limit, global_daily_limit=500.0)
    return AdmissionController(limiters or _limiters(), ledger), ledger


def _charge(meter: UsageMeter, cost: float) -> None:
    completion = Completion(text="ok", input_tokens=200, output_tokens=50, model="gpt-4o-mini")
    meter.record(completion, cost, "chat")


class TestRateChecks:
    @pytest.mark.asyncio
    async def test_chat_limit_per_address(self) -> None:
        controller, _ = _controller(_limiters(chat=2))

        await controller.check_chat_rate("1.2.3.4", "user-1")
        await controller.check_chat_rate("1.2.3.4", "user-2")
        with pytest.raises(RateLimitExceeded) as exc_info:
            await controller.check_chat_rate("1.2.3.4", "user-3")

        assert exc_info.value.limiter == "chat"
        assert exc_info.value.retry_after_seconds == 20
        await controller.check_chat_rate("5.6.7.8", "user-1")

    @pytest.mark.asyncio
    async def test_user_limit_across_addresses(self) -> None:
        controller, _ = _controller(_limiters(user_chat=2))

        await controller.check_chat_rate("1.1.1.1", "user-1")
        await controller.check_chat_rate("2.2.2.2", "user-1")
        with pytest.raises(RateLimitExceeded) as exc_info:
            await controller.check_chat_rate("3.3.3.3", "user-1")

        assert exc_info.value.limiter == "user_chat"

    @pytest.mark.asyncio
    async def test_generation_limit(self) -> None:
        controller, _ = _controller(_limiters(generation=1))

        await controller.check_generation_rate("1.2.3.4", "user-1")
        with pytest.raises(GenerationRateLimitExceeded) as exc_info:
            await controller.check_generation_rate("1.2.3.4", "user-1")

        assert exc_info.value.code == "rate_limited"
        assert exc_info.value.user_message.startswith("Generation limit exceeded")
        assert "minutes" in exc_info.value.user_message


class TestRunMetered:
    @pytest.mark.asyncio
    async def test_settles_to_actual_cost(self) -> None:
        controller, ledger = _controller()

        async def operation(meter: UsageMeter) -> str:
            assert await ledger.user_total("user-1") == pytest.approx(1.0)
            _charge(meter, 0.2)
            return "done"

        assert await controller.run_metered("user-1", 1.0, operation) == "done"
        assert await ledger.user_total("user-1") == pytest.approx(0.2)
        assert await ledger.global_total() == pytest.approx(0.2)

    @pytest.mark.asyncio
    async def test_settles_when_operation_fails(self) -> None:
        controller, ledger = _controller()

        async def operation(meter: UsageMeter) -> None:
            _charge(meter, 0.05)
            raise RuntimeError("provider down")

        with pytest.raises(RuntimeError):
            await controller.run_metered("user-1", 1.0, operation)

        assert await ledger.user_total("user-1") == pytest.approx(0.05)

    @pytest.mark.asyncio
    async def test_actual_above_estimate(self) -> None:
        controller, ledger = _controller()

        async def operation(meter: UsageMeter) -> None:
            _charge(meter, 0.3)

        await controller.run_metered("user-1", 0.1, operation)

        assert await ledger.user_total("user-1") == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_rejected_reservation_skips_operation(self) -> None:
        controller, ledger = _controller(user_limit=0.5)
        calls: list[UsageMeter] = []

        async def operation(meter: UsageMeter) -> None:
            calls.append(meter)

        with pytest.raises(UserCostLimitExceeded):
            await controller.run_metered("user-1", 1.0, operation)

        assert calls == []
        assert await ledger.user_total("user-1") == 0.0

    @pytest.mark.asyncio
    async def test_global_rejection(self) -> None:
        ledger = InMemoryCostLedger(user_daily_limit=10.0, global_daily_limit=0.5)
        controller = AdmissionController(_limiters(), ledger)

        with pytest.raises(GlobalCostLimitExceeded):
            await controller.reserve("user-1", 1.0)

    @pytest.mark.asyncio
    async def test_shielded_operation_settles_after_cancellation(self) -> None:
        controller, ledger = _controller()
        started = asyncio.Event()
        release = asyncio.Event()

        async def operation(meter: UsageMeter) -> str:
            started.set()
            await release.wait()
            _charge(meter, 0.2)
            return "done"

        inner = asyncio.ensure_future(controller.run_metered("user-1", 1.0, operation))
        outer = asyncio.ensure_future(asyncio.shield(inner))
        await started.wait()

        outer.cancel()
        with pytest.raises(asyncio.CancelledError):
            await outer

        release.set()
        assert await inner == "done"
        assert await ledger.user_total("user-1") == pytest.approx(0.2)
