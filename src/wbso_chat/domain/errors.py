"""Taxonomia de erros de domínio.

Cada erro carrega:
- mensagem técnica (str(exc)) — vai apenas para logs
- user_message — texto curado que pode cruzar a fronteira HTTP
- status_code / code — mapeamento usado pelos handlers da API

Categorias:
(a) admissão: rate/custo — esperadas, recuperáveis esperando
(b) provider: falhas transitórias esgotadas após retry
(c) validação: entrada malformada, autenticação, posse de sessão
(d) estado: sessão ausente/expirada, informação insuficiente
Falhas de parse/extração nunca chegam aqui (degradam localmente).
"""

from __future__ import annotations


class WbsoChatError(Exception):
    """Base de todos os erros esperados do serviço."""

    status_code: int = 500
    code: str = "internal_error"
    default_user_message: str = "Something went wrong. Please try again later."

    def __init__(self, message: str | None = None, *, user_message: str | None = None) -> None:
        self.user_message = user_message or self.default_user_message
        super().__init__(message or self.user_message)


# --- (c) validação -----------------------------------------------------------


class AuthenticationError(WbsoChatError):
    status_code = 401
    code = "authentication_failed"
    default_user_message = "Missing or invalid authentication token."


class SessionOwnershipError(WbsoChatError):
    status_code = 403
    code = "access_denied"
    default_user_message = "Access denied: session belongs to another user."


class InvalidRequest(WbsoChatError):
    status_code = 422
    code = "invalid_request"
    default_user_message = "Invalid request."


# --- (d) estado ----------------------------------------------------------------


class SessionNotFound(WbsoChatError):
    status_code = 404
    code = "session_not_found"
    default_user_message = "Conversation not found or expired. Please start a new conversation."


class SessionAlreadyExists(WbsoChatError):
    status_code = 409
    code = "session_exists"
    default_user_message = "A conversation with this id already exists."


class InsufficientInformation(WbsoChatError):
    status_code = 422
    code = "insufficient_information"
    default_user_message = (
        "Insufficient information for application generation. "
        "Please continue the conversation."
    )


class SessionLimitExceeded(WbsoChatError):
    status_code = 429
    code = "session_limit_exceeded"
    default_user_message = (
        "This conversation has reached its maximum length or budget. "
        "Please start a new conversation."
    )


# --- (a) admissão ----------------------------------------------------------------


class RateLimitExceeded(WbsoChatError):
    status_code = 429
    code = "rate_limited"

    def __init__(self, retry_after_seconds: int, limiter: str = "chat") -> None:
        self.retry_after_seconds = max(1, int(retry_after_seconds))
        self.limiter = limiter
        super().__init__(
            f"rate limiter '{limiter}' exhausted",
            user_message=(
                "Rate limit exceeded. Please wait "
                f"{self.retry_after_seconds} seconds before trying again."
            ),
        )


class GenerationRateLimitExceeded(RateLimitExceeded):
    """Limite estrito de geração (documento final)."""

    def __init__(self, retry_after_seconds: int, limiter: str = "generation") -> None:
        super().__init__(retry_after_seconds, limiter)
        minutes = max(1, round(self.retry_after_seconds / 60))
        self.user_message = (
            f"Generation limit exceeded. Please wait {minutes} minutes before trying again."
        )


class UserCostLimitExceeded(WbsoChatError):
    status_code = 429
    code = "daily_usage_limit"
    default_user_message = "Daily usage limit reached. Please try again tomorrow."


class GlobalCostLimitExceeded(WbsoChatError):
    status_code = 503
    code = "service_busy"
    default_user_message = (
        "Service temporarily unavailable due to high usage. Please try again tomorrow."
    )


# --- (b) provider ----------------------------------------------------------------


class LLMServiceError(WbsoChatError):
    """Falha do provider LLM após esgotar a política de retry.

    technical_message preserva o erro original para logs; a mensagem ao
    usuário é traduzida e não revela detalhes do provider.
    """

    status_code = 503
    code = "ai_unavailable"

    def __init__(
        self,
        technical_message: str,
        *,
        user_message: str,
        retryable: bool = True,
        attempts: int = 1,
    ) -> None:
        self.technical_message = technical_message
        self.retryable = retryable
        self.attempts = attempts
        super().__init__(technical_message, user_message=user_message)


# --- configuração / infraestrutura ----------------------------------------------


class UnknownModelError(WbsoChatError):
    """Modelo sem preço conhecido (fail-closed: nunca adivinhar preço)."""

    code = "configuration_error"


class StorageError(WbsoChatError):
    """Falha ao persistir ou ler sessão/ledger."""

    code = "storage_error"
