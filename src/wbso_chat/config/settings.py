"""Configurações da aplicação via variáveis de ambiente.

Todas as configurações são carregadas de env vars ou Secret Manager.
Nunca hardcode secrets ou valores sensíveis.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict

from wbso_chat.ai.tokens import DEFAULT_PRICING
from wbso_chat.infra.secrets import create_secret_provider
from wbso_chat.observability.logging import get_logger

_STORAGE_BACKENDS = {"memory", "firestore"}
_RATE_LIMITER_BACKENDS = {"memory", "redis"}


class Settings(BaseSettings):
    """Configurações lidas do ambiente."""

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    # Aplicação
    service_name: str = "wbso_chat"
    version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "json"  # json | text
    correlation_id_header: str = "X-Correlation-ID"
    cors_allowed_origins: list[str] = [
        "http://localhost:3000",
        "https://wbsosimpel.nl",
        "https://www.wbsosimpel.nl",
        "https://app.wbsosimpel.nl",
    ]

    # LLM (provider OpenAI)
    openai_api_key: str | None = None  # Secret Manager em staging/prod
    llm_model: str = "gpt-4o-mini"
    llm_timeout_seconds: float = 60.0  # Timeout por chamada ao provider
    llm_max_retries: int = 3
    llm_backoff_base_seconds: float = 1.0
    llm_backoff_max_seconds: float = 10.0
    llm_backoff_jitter_seconds: float = 0.5
    chat_max_tokens: int = 4000
    chat_temperature: float = 0.3
    greeting_max_tokens: int = 1000
    extraction_max_tokens: int = 1000
    extraction_temperature: float = 0.1
    generation_max_tokens: int = 4000
    generation_temperature: float = 0.2
    default_language: str = "nl"

    # Sessão
    session_store_backend: str = "memory"  # memory | firestore
    sessions_collection: str = "wbso_chat_sessions"
    session_ttl_hours: int = 24  # TTL fixo a partir da criação
    session_max_exchanges: int = 15
    session_max_cost: float = 5.00
    cleanup_batch_size: int = 100

    # Custos (ledger diário)
    cost_ledger_backend: str = "memory"  # memory | firestore
    user_costs_collection: str = "user_daily_costs"
    system_costs_collection: str = "system_costs"
    user_daily_cost_limit: float = 10.00
    global_daily_cost_limit: float = 500.00

    # Rate limiting
    rate_limiter_backend: str = "memory"  # memory | redis
    redis_url: str | None = None
    chat_rate_points: int = 20
    chat_rate_window_seconds: int = 300
    emergency_rate_points: int = 10
    emergency_rate_window_seconds: int = 60
    user_chat_rate_points: int = 50
    user_chat_rate_window_seconds: int = 3600
    generation_rate_points: int = 3
    generation_rate_window_seconds: int = 3600
    user_generation_rate_points: int = 5
    user_generation_rate_window_seconds: int = 86400

    # Firestore / GCP
    gcp_project: str | None = None
    firestore_project_id: str | None = None
    firestore_database_id: str = "(default)"
    firebase_project_id: str | None = None  # audience dos ID tokens

    # Segurança
    internal_task_token: str | None = None  # Protege /internal/*
    internal_token_header: str = "X-Internal-Token"

    def validate_llm_config(self) -> list[str]:
        """Valida configuração do provider LLM e da política de retry."""
        errors: list[str] = []
        if not self.is_development and not self.openai_api_key:
            errors.append("OPENAI_API_KEY obrigatório fora de development")
        if self.llm_model not in DEFAULT_PRICING:
            errors.append(f"LLM_MODEL sem preço conhecido: {self.llm_model}")
        if self.llm_max_retries < 0:
            errors.append("LLM_MAX_RETRIES deve ser >= 0")
        if self.llm_backoff_base_seconds <= 0:
            errors.append("LLM_BACKOFF_BASE_SECONDS deve ser > 0")
        if self.llm_backoff_max_seconds < self.llm_backoff_base_seconds:
            errors.append("LLM_BACKOFF_MAX_SECONDS deve ser >= LLM_BACKOFF_BASE_SECONDS")
        if self.llm_timeout_seconds <= 0:
            errors.append("LLM_TIMEOUT_SECONDS deve ser > 0")
        if self.default_language not in {"nl", "en"}:
            errors.append("DEFAULT_LANGUAGE inválido: use nl | en")
        return errors

    def validate_storage_backends(self) -> list[str]:
        """Valida backends de sessão e ledger.

        Em staging/prod, memory é proibido (instâncias Cloud Run não
        compartilham memória e o ledger perderia reservas entre instâncias).
        """
        errors: list[str] = []
        for label, backend in (
            ("SESSION_STORE_BACKEND", self.session_store_backend.lower()),
            ("COST_LEDGER_BACKEND", self.cost_ledger_backend.lower()),
        ):
            if backend not in _STORAGE_BACKENDS:
                errors.append(
                    f"{label} '{backend}' inválido. Valores válidos: {sorted(_STORAGE_BACKENDS)}"
                )
            elif backend == "memory" and (self.is_staging or self.is_production):
                errors.append(f"{label}=memory é proibido em staging/production")
        return errors

    def validate_rate_limiter(self) -> list[str]:
        """Valida backend e janelas de rate limiting."""
        errors: list[str] = []
        backend = self.rate_limiter_backend.lower()
        if backend not in _RATE_LIMITER_BACKENDS:
            errors.append("RATE_LIMITER_BACKEND inválido: use memory | redis")
        if backend == "redis" and not self.redis_url:
            errors.append("RATE_LIMITER_BACKEND=redis requer REDIS_URL configurado")
        windows = (
            self.chat_rate_points,
            self.chat_rate_window_seconds,
            self.emergency_rate_points,
            self.emergency_rate_window_seconds,
            self.user_chat_rate_points,
            self.user_chat_rate_window_seconds,
            self.generation_rate_points,
            self.generation_rate_window_seconds,
            self.user_generation_rate_points,
            self.user_generation_rate_window_seconds,
        )
        if any(value <= 0 for value in windows):
            errors.append("Pontos e janelas de rate limit devem ser > 0")
        return errors

    def validate_cost_limits(self) -> list[str]:
        """Valida tetos de custo."""
        errors: list[str] = []
        if self.user_daily_cost_limit <= 0 or self.global_daily_cost_limit <= 0:
            errors.append("Tetos diários de custo devem ser > 0")
        if self.user_daily_cost_limit > self.global_daily_cost_limit:
            errors.append("USER_DAILY_COST_LIMIT não pode exceder GLOBAL_DAILY_COST_LIMIT")
        if self.session_max_cost <= 0 or self.session_max_exchanges <= 0:
            errors.append("Limites por sessão devem ser > 0")
        return errors

    def validate_all(self) -> list[str]:
        """Agrega todas as validações (lista vazia = OK)."""
        return [
            *self.validate_llm_config(),
            *self.validate_storage_backends(),
            *self.validate_rate_limiter(),
            *self.validate_cost_limits(),
        ]

    @property
    def firestore_project(self) -> str | None:
        return self.firestore_project_id or self.gcp_project

    @property
    def is_production(self) -> bool:
        """Retorna True se ambiente é produção."""
        return self.environment.lower() in ("production", "prod")

    @property
    def is_staging(self) -> bool:
        """Retorna True se ambiente é staging."""
        return self.environment.lower() in ("staging", "stage")

    @property
    def is_development(self) -> bool:
        """Retorna True se ambiente é desenvolvimento."""
        return self.environment.lower() in ("development", "dev", "local", "test")

    def model_post_init(self, __context: Any) -> None:
        """Carrega secrets do Secret Manager em staging/production.

        - Nunca loga valores de secrets
        - Fail-closed: falta de secret obrigatório derruba o startup
        """
        logger: logging.Logger = get_logger(__name__)

        if not (self.is_staging or self.is_production):
            return

        # Pytest seta PYTEST_CURRENT_TEST; evitamos chamada real ao Secret Manager.
        if os.getenv("PYTEST_CURRENT_TEST"):
            return

        project_id = os.getenv("GOOGLE_CLOUD_PROJECT") or self.gcp_project
        if not project_id:
            raise RuntimeError("GOOGLE_CLOUD_PROJECT obrigatório em staging/production")

        provider = create_secret_provider(backend="secret_manager", project_id=project_id)
        secret_mappings = {
            "OPENAI_API_KEY": ("openai_api_key", True),
            "INTERNAL_TASK_TOKEN": ("internal_task_token", False),
        }
        for secret_name, (attr_name, required) in secret_mappings.items():
            if getattr(self, attr_name):
                continue
            if not provider.secret_exists(secret_name):
                if required:
                    raise RuntimeError(f"Secret obrigatório ausente: {secret_name}")
                logger.warning(
                    "Secret opcional não encontrado no Secret Manager",
                    extra={"secret_name": secret_name, "environment": self.environment},
                )
                continue
            setattr(self, attr_name, provider.get_secret(secret_name))
            logger.info(
                "Secret carregado do Secret Manager",
                extra={"secret_name": secret_name, "environment": self.environment},
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Retorna uma instância cacheada de Settings."""
    return Settings()
