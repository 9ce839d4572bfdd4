"""Fábrica da aplicação FastAPI."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wbso_chat.ai.knowledge_base import build_knowledge_base
from wbso_chat.ai.llm_client import ResilientLLMClient, RetryConfig
from wbso_chat.ai.openai_provider import OpenAIProvider
from wbso_chat.ai.tokens import TokenCounter
from wbso_chat.api.errors import register_exception_handlers
from wbso_chat.api.routes import router
from wbso_chat.application.admission import AdmissionController
from wbso_chat.application.orchestrator import ConversationOrchestrator, OrchestratorConfig
from wbso_chat.config.settings import Settings, get_settings
from wbso_chat.domain.protocols.identity import IdentityVerifier
from wbso_chat.domain.protocols.llm_provider import LLMProvider
from wbso_chat.infra.cost_ledger import create_cost_ledger
from wbso_chat.infra.identity import FirebaseIdentityVerifier
from wbso_chat.infra.rate_limiter import create_rate_limiters_from_settings
from wbso_chat.infra.session_store import create_session_store
from wbso_chat.observability.logging import configure_logging, get_logger
from wbso_chat.observability.middleware import CorrelationIdMiddleware

logger = get_logger(__name__)


def _create_firestore_client(settings: Settings) -> Any | None:
    """Client compartilhado entre sessão e ledger quando algum usa Firestore."""
    backends = {settings.session_store_backend.lower(), settings.cost_ledger_backend.lower()}
    if "firestore" not in backends:
        return None

    from google.cloud import firestore

    return firestore.Client(
        project=settings.firestore_project,
        database=settings.firestore_database_id,
    )


def _retry_config(settings: Settings) -> RetryConfig:
    return RetryConfig(
        max_retries=settings.llm_max_retries,
        base_delay_seconds=settings.llm_backoff_base_seconds,
        max_delay_seconds=settings.llm_backoff_max_seconds,
        jitter_seconds=settings.llm_backoff_jitter_seconds,
        timeout_seconds=settings.llm_timeout_seconds,
    )


def create_app(
    settings: Settings | None = None,
    *,
    provider: LLMProvider | None = None,
    identity_verifier: IdentityVerifier | None = None,
    firestore_client: Any | None = None,
    redis_client: Any | None = None,
) -> FastAPI:
    """Cria a aplicação FastAPI.

    Os colaboradores externos (provider LLM, verificador de identidade,
    clients de Firestore/Redis) podem ser injetados; sem injeção são
    criados a partir de Settings.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.service_name, settings.log_format)

    validation_errors = settings.validate_all()
    if validation_errors:
        error_msg = "; ".join(validation_errors)
        raise ValueError(f"Configuração inválida: {error_msg}")

    app = FastAPI(title=settings.service_name, version=settings.version)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", settings.correlation_id_header],
    )
    app.add_middleware(CorrelationIdMiddleware, header_name=settings.correlation_id_header)
    register_exception_handlers(app)
    app.include_router(router)

    if firestore_client is None:
        firestore_client = _create_firestore_client(settings)

    provider = provider or OpenAIProvider(
        api_key=settings.openai_api_key,
        timeout_seconds=settings.llm_timeout_seconds,
    )
    session_store = create_session_store(settings, firestore_client=firestore_client)
    knowledge_base = build_knowledge_base(settings.default_language)

    app.state.settings = settings
    app.state.session_store = session_store
    app.state.knowledge_base = knowledge_base
    app.state.orchestrator = ConversationOrchestrator(
        store=session_store,
        llm=ResilientLLMClient(provider, _retry_config(settings)),
        knowledge_base=knowledge_base,
        token_counter=TokenCounter(),
        config=OrchestratorConfig.from_settings(settings),
    )
    app.state.admission = AdmissionController(
        limiters=create_rate_limiters_from_settings(settings, redis_client=redis_client),
        ledger=create_cost_ledger(settings, firestore_client=firestore_client),
    )
    app.state.identity_verifier = identity_verifier or FirebaseIdentityVerifier(
        project_id=settings.firebase_project_id or settings.gcp_project
    )

    logger.info(
        "Application created",
        extra={
            "environment": settings.environment,
            "session_store_backend": settings.session_store_backend,
            "cost_ledger_backend": settings.cost_ledger_backend,
            "rate_limiter_backend": settings.rate_limiter_backend,
            "model": settings.llm_model,
        },
    )
    return app
