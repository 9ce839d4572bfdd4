"""Rate limiting por janela fixa (memória ou Redis).

Cada limiter conta pontos por (sujeito, id da janela); a janela zera a
cada `window_seconds`. Vários limiters se aplicam em conjunto: quem
chama consome um ponto em cada um, na ordem, e para no primeiro que
recusar.

O backend memory conta por processo: com N instâncias o teto efetivo é
N x pontos. O backend Redis centraliza o contador (INCR + EXPIRE).
"""

from __future__ import annotations

import logging
import math
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import anyio

from wbso_chat.observability.logging import get_logger, short_id

if TYPE_CHECKING:
    from wbso_chat.config.settings import Settings

logger: logging.Logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """Resultado de um consumo de pontos."""

    allowed: bool
    limiter: str
    consumed: int
    remaining: int
    retry_after_seconds: int


class RateLimiter(ABC):
    """Contrato de um limiter de janela fixa."""

    def __init__(
        self,
        name: str,
        points: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if points <= 0 or window_seconds <= 0:
            raise ValueError("points e window_seconds devem ser > 0")
        self.name = name
        self.points = points
        self.window_seconds = window_seconds
        self._clock = clock

    def _window(self, now: float) -> tuple[int, int]:
        """Retorna (id da janela, segundos até a próxima janela)."""
        window_id = int(now // self.window_seconds)
        window_end = (window_id + 1) * self.window_seconds
        return window_id, max(1, math.ceil(window_end - now))

    def _result(self, count: int, retry_after: int) -> RateLimitResult:
        allowed = count <= self.points
        return RateLimitResult(
            allowed=allowed,
            limiter=self.name,
            consumed=count,
            remaining=max(0, self.points - count),
            retry_after_seconds=0 if allowed else retry_after,
        )

    @abstractmethod
    async def consume(self, subject: str, points: int = 1) -> RateLimitResult:
        """Consome pontos do sujeito na janela corrente."""


class InMemoryRateLimiter(RateLimiter):
    """Limiter em memória (por processo).

    consume() não tem await entre leitura e escrita, então é atômico
    dentro do event loop.
    """

    def __init__(
        self,
        name: str,
        points: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(name, points, window_seconds, clock)
        self._counters: dict[str, tuple[int, int]] = {}
        self._last_window: int | None = None

    async def consume(self, subject: str, points: int = 1) -> RateLimitResult:
        window_id, retry_after = self._window(self._clock())
        if window_id != self._last_window:
            # Janela virou: contadores antigos não valem mais
            self._purge(window_id)
            self._last_window = window_id
        current_window, count = self._counters.get(subject, (window_id, 0))
        if current_window != window_id:
            count = 0
        count += points
        self._counters[subject] = (window_id, count)
        return self._result(count, retry_after)

    def _purge(self, window_id: int) -> None:
        stale = [key for key, (wid, _) in self._counters.items() if wid < window_id]
        for key in stale:
            del self._counters[key]


class RedisRateLimiter(RateLimiter):
    """Limiter distribuído via Redis.

    Chave: ratelimit:{nome}:{sujeito}:{id da janela}. A primeira
    ocorrência define o EXPIRE da chave (igual à janela).
    """

    def __init__(
        self,
        name: str,
        points: int,
        window_seconds: int,
        redis_client: Any,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(name, points, window_seconds, clock)
        self._redis = redis_client

    def _consume_sync(self, subject: str, points: int) -> RateLimitResult:
        window_id, retry_after = self._window(self._clock())
        key = f"ratelimit:{self.name}:{subject}:{window_id}"
        count = int(self._redis.incrby(key, points))
        if count == points:
            # Primeira ocorrência: setar TTL
            self._redis.expire(key, self.window_seconds)
        return self._result(count, retry_after)

    async def consume(self, subject: str, points: int = 1) -> RateLimitResult:
        return await anyio.to_thread.run_sync(self._consume_sync, subject, points)


@dataclass(frozen=True)
class RateLimiters:
    """Conjunto de limiters usado pelo controle de admissão."""

    chat: RateLimiter
    emergency: RateLimiter
    user_chat: RateLimiter
    generation: RateLimiter
    user_generation: RateLimiter


def create_rate_limiter(
    backend: str,
    name: str,
    points: int,
    window_seconds: int,
    redis_client: Any | None = None,
) -> RateLimiter:
    """Factory para um RateLimiter.

    Raises:
        ValueError: Backend inválido ou cliente Redis ausente.
    """
    if backend == "memory":
        return InMemoryRateLimiter(name, points, window_seconds)

    if backend == "redis":
        if redis_client is None:
            raise ValueError("redis_client required for redis backend")
        return RedisRateLimiter(name, points, window_seconds, redis_client)

    raise ValueError(f"Unknown rate limiter backend: {backend}")


def create_rate_limiters_from_settings(
    settings: Settings, redis_client: Any | None = None
) -> RateLimiters:
    """Cria todos os limiters a partir de Settings."""
    backend = settings.rate_limiter_backend.lower()

    if backend == "redis" and redis_client is None:
        import redis

        redis_client = redis.from_url(settings.redis_url or "redis://localhost:6379")
        logger.info("Auto-created Redis client for rate limiting")

    if backend == "memory":
        logger.warning(
            "Using in-memory rate limiting (per-instance counters)",
            extra={"environment": settings.environment},
        )

    def _make(name: str, points: int, window: int) -> RateLimiter:
        return create_rate_limiter(backend, name, points, window, redis_client)

    return RateLimiters(
        chat=_make("chat", settings.chat_rate_points, settings.chat_rate_window_seconds),
        emergency=_make(
            "emergency", settings.emergency_rate_points, settings.emergency_rate_window_seconds
        ),
        user_chat=_make(
            "user_chat", settings.user_chat_rate_points, settings.user_chat_rate_window_seconds
        ),
        generation=_make(
            "generation", settings.generation_rate_points, settings.generation_rate_window_seconds
        ),
        user_generation=_make(
            "user_generation",
            settings.user_generation_rate_points,
            settings.user_generation_rate_window_seconds,
        ),
    )


def log_rejection(result: RateLimitResult, subject: str) -> None:
    """Rejeição de admissão é esperada: warning, nunca error."""
    logger.warning(
        "Rate limit exceeded",
        extra={
            "limiter": result.limiter,
            "subject": short_id(subject),
            "retry_after_seconds": result.retry_after_seconds,
        },
    )
