"""Cliente LLM resiliente: retry com backoff exponencial + jitter.

Envolve uma única chamada lógica "enviar prompt, receber completion":
- Classifica o erro (transitório x permanente) por tipo, status e texto
- Só erros transitórios (overload, rate limit, timeout, rede) são retentados
- Backoff: min(base * 2^tentativa + jitter, teto)
- Ao esgotar, embrulha o erro técnico numa mensagem segura e traduzida

Não conhece sessões; o orquestrador é quem decide o que fazer com o texto.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from wbso_chat.domain.errors import LLMServiceError, WbsoChatError
from wbso_chat.domain.protocols.llm_provider import Completion, LLMProvider, ProviderMessage
from wbso_chat.observability.logging import get_logger
from wbso_chat.observability.timing import timed

logger: logging.Logger = get_logger(__name__)

_TRANSIENT_STATUS = frozenset({408, 409, 425, 429, 500, 502, 503, 504, 529})

# Marcadores no texto do erro, por categoria (ordem importa: mais específico antes)
_TRANSIENT_MARKERS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("overloaded", ("overloaded", "overload", "capacity", "529")),
    ("rate_limited", ("rate limit", "rate_limit", "ratelimit", "too many requests", "429")),
    ("timeout", ("timeout", "timed out", "deadline exceeded")),
    (
        "network",
        (
            "connection",
            "network",
            "econnreset",
            "econnrefused",
            "socket hang up",
            "temporarily unavailable",
            "service unavailable",
            "bad gateway",
        ),
    ),
)

USER_MESSAGES: dict[str, dict[str, str]] = {
    "nl": {
        "overloaded": "De AI-assistent is momenteel overbelast. Probeer het over een paar minuten opnieuw.",
        "rate_limited": "Er worden momenteel te veel verzoeken verwerkt. Wacht even en probeer het opnieuw.",
        "timeout": "De AI-assistent reageert niet op tijd. Probeer het opnieuw.",
        "network": "Er is een verbindingsprobleem met de AI-assistent. Probeer het opnieuw.",
        "permanent": "De AI-assistent kon uw verzoek niet verwerken. Probeer het later opnieuw.",
    },
    "en": {
        "overloaded": "The AI assistant is currently overloaded. Please try again in a few minutes.",
        "rate_limited": "Too many requests are being processed right now. Please wait and try again.",
        "timeout": "The AI assistant did not respond in time. Please try again.",
        "network": "There is a connection problem with the AI assistant. Please try again.",
        "permanent": "The AI assistant could not process your request. Please try again later.",
    },
}


@dataclass(frozen=True)
class RetryConfig:
    """Política de retry; defaults conservadores."""

    max_retries: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 10.0
    jitter_seconds: float = 0.5
    timeout_seconds: float = 60.0


def classify_error(exc: BaseException) -> str | None:
    """Retorna a categoria transitória do erro ou None se permanente."""
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return "timeout"
    if isinstance(exc, ConnectionError):
        return "network"

    status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    if isinstance(status, int):
        if status == 429:
            return "rate_limited"
        if status == 529:
            return "overloaded"
        if status in _TRANSIENT_STATUS:
            return "network"
        if 400 <= status < 500:
            return None

    haystack = f"{type(exc).__name__} {exc}".lower()
    for category, markers in _TRANSIENT_MARKERS:
        if any(marker in haystack for marker in markers):
            return category
    return None


def calculate_backoff(
    attempt: int,
    base_seconds: float,
    max_seconds: float,
    jitter: float = 0.0,
) -> float:
    """Backoff exponencial com jitter, limitado pelo teto."""
    return min(base_seconds * (2**attempt) + jitter, max_seconds)


def user_message_for(category: str | None, language: str = "nl") -> str:
    messages = USER_MESSAGES.get(language, USER_MESSAGES["nl"])
    return messages[category or "permanent"]


class ResilientLLMClient:
    """Wrapper de resiliência sobre um LLMProvider."""

    def __init__(
        self,
        provider: LLMProvider,
        config: RetryConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._provider = provider
        self._config = config or RetryConfig()
        self._sleep = sleep
        self._rng = rng or random.Random()

    @property
    def config(self) -> RetryConfig:
        return self._config

    def _next_delay(self, attempt: int) -> float:
        cfg = self._config
        jitter = self._rng.uniform(0, cfg.jitter_seconds) if cfg.jitter_seconds > 0 else 0.0
        return calculate_backoff(attempt, cfg.base_delay_seconds, cfg.max_delay_seconds, jitter)

    async def complete(
        self,
        *,
        system: str,
        model: str,
        messages: Sequence[ProviderMessage],
        temperature: float,
        max_tokens: int,
        purpose: str = "chat",
        language: str = "nl",
    ) -> Completion:
        """Executa a chamada com retry.

        Raises:
            LLMServiceError: Erro permanente (sem retry) ou retries esgotados.
        """
        cfg = self._config
        attempts = cfg.max_retries + 1

        for attempt in range(attempts):
            try:
                with timed("llm_call", purpose=purpose, attempt=attempt + 1):
                    return await asyncio.wait_for(
                        self._provider.create_completion(
                            system=system,
                            model=model,
                            messages=messages,
                            temperature=temperature,
                            max_tokens=max_tokens,
                        ),
                        timeout=cfg.timeout_seconds,
                    )
            except WbsoChatError:
                raise
            except Exception as exc:  # noqa: BLE001
                category = classify_error(exc)
                if category is None:
                    logger.error(
                        "Erro permanente do provider LLM (sem retry)",
                        extra={
                            "purpose": purpose,
                            "error_type": type(exc).__name__,
                            "error": str(exc),
                        },
                    )
                    error = LLMServiceError(
                        str(exc),
                        user_message=user_message_for(None, language),
                        retryable=False,
                        attempts=attempt + 1,
                    )
                    error.status_code = 502
                    raise error from exc

                if attempt >= cfg.max_retries:
                    logger.error(
                        "Esgotou tentativas de retry do provider LLM",
                        extra={
                            "purpose": purpose,
                            "category": category,
                            "total_attempts": attempts,
                            "error_type": type(exc).__name__,
                            "error": str(exc),
                        },
                    )
                    raise LLMServiceError(
                        str(exc),
                        user_message=user_message_for(category, language),
                        retryable=True,
                        attempts=attempts,
                    ) from exc

                delay = self._next_delay(attempt)
                logger.warning(
                    "Erro transitório do provider LLM; aguardando backoff",
                    extra={
                        "purpose": purpose,
                        "category": category,
                        "attempt": attempt + 1,
                        "backoff_seconds": round(delay, 3),
                        "error_type": type(exc).__name__,
                    },
                )
                await self._sleep(delay)

        raise AssertionError("unreachable")  # pragma: no cover
