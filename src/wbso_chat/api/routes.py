"""Rotas HTTP do chat WBSO.

Ordem em cada rota autenticada:
1. identidade (bearer token)
2. rate limiting
3. sessão + verificação de dono
4. reserva de custo, operação e reconciliação

O passo 4 roda sob asyncio.shield: se o cliente desconectar, as chamadas
ao provider em andamento terminam e o custo delas entra no ledger.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, Path, Request

from wbso_chat.api.dependencies import (
    client_address,
    ensure_owner,
    get_admission,
    get_identity,
    get_orchestrator,
    get_settings,
    require_internal_token,
)
from wbso_chat.api.schemas import (
    SESSION_ID_PATTERN,
    ChatMessageRequest,
    ChatMessageResponse,
    ChatStartResponse,
    CleanupResponse,
    GenerateRequest,
    HealthResponse,
    StartChatRequest,
)
from wbso_chat.application.admission import AdmissionController
from wbso_chat.application.orchestrator import ConversationOrchestrator
from wbso_chat.application.usage import UsageMeter
from wbso_chat.config.settings import Settings
from wbso_chat.domain.models import GrantApplication, SessionStats
from wbso_chat.domain.protocols.identity import Identity
from wbso_chat.observability.logging import get_logger, short_id

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health(settings: Settings = Depends(get_settings)) -> HealthResponse:
    """Healthcheck simples para Cloud Run."""
    return HealthResponse(status="ok", service=settings.service_name, version=settings.version)


@router.post("/chat/start", response_model=ChatStartResponse)
async def start_chat(
    body: StartChatRequest,
    request: Request,
    identity: Identity = Depends(get_identity),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    admission: AdmissionController = Depends(get_admission),
) -> ChatStartResponse:
    """Cria a sessão e devolve a mensagem de abertura."""
    await admission.check_chat_rate(client_address(request), identity.uid)

    user_context = body.to_user_context(identity)
    estimate = orchestrator.estimate_start_cost(user_context)
    logger.info(
        "Starting conversation",
        extra={"session_id": short_id(body.session_id), "user_id": short_id(identity.uid)},
    )

    async def _operation(meter: UsageMeter):
        return await orchestrator.start(body.session_id, user_context, meter)

    result = await asyncio.shield(admission.run_metered(identity.uid, estimate, _operation))
    return ChatStartResponse(
        message=result.message,
        session_id=result.session_id,
        phase=result.phase,
        completeness=result.completeness,
        ready_for_generation=result.ready_for_generation,
    )


@router.post("/chat/message", response_model=ChatMessageResponse)
async def send_message(
    body: ChatMessageRequest,
    request: Request,
    identity: Identity = Depends(get_identity),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    admission: AdmissionController = Depends(get_admission),
) -> ChatMessageResponse:
    """Processa um turno do usuário."""
    await admission.check_chat_rate(client_address(request), identity.uid)

    session = await orchestrator.load_session(body.session_id)
    ensure_owner(session, identity)
    estimate = orchestrator.estimate_message_cost(session, body.message)

    async def _operation(meter: UsageMeter):
        return await orchestrator.process_message(body.session_id, body.message, meter)

    result = await asyncio.shield(admission.run_metered(identity.uid, estimate, _operation))
    return ChatMessageResponse(
        message=result.message,
        session_id=result.session_id,
        phase=result.phase,
        completeness=result.completeness,
        ready_for_generation=result.ready_for_generation,
        cost=result.cost,
        extracted_info=result.extracted_info,
    )


@router.post("/chat/generate", response_model=GrantApplication)
async def generate_application(
    body: GenerateRequest,
    request: Request,
    identity: Identity = Depends(get_identity),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    admission: AdmissionController = Depends(get_admission),
) -> GrantApplication:
    """Gera o documento WBSO final."""
    await admission.check_generation_rate(client_address(request), identity.uid)

    session = await orchestrator.load_session(body.session_id)
    ensure_owner(session, identity)
    estimate = orchestrator.estimate_generation_cost(session)

    async def _operation(meter: UsageMeter):
        return await orchestrator.generate_application(body.session_id, meter)

    return await asyncio.shield(admission.run_metered(identity.uid, estimate, _operation))


@router.get("/chat/stats/{session_id}", response_model=SessionStats)
async def session_stats(
    session_id: str = Path(pattern=SESSION_ID_PATTERN),
    identity: Identity = Depends(get_identity),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
) -> SessionStats:
    """Estatísticas de monitoramento da sessão (apenas o dono)."""
    session = await orchestrator.load_session(session_id)
    ensure_owner(session, identity)
    return await orchestrator.session_stats(session_id)


@router.post("/internal/cleanup_sessions", response_model=CleanupResponse)
async def cleanup_sessions(
    request: Request,
    settings: Settings = Depends(get_settings),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
) -> CleanupResponse:
    """Varredura de sessões expiradas (Cloud Scheduler)."""
    require_internal_token(request, settings)
    deleted = await orchestrator.cleanup_expired_sessions(settings.cleanup_batch_size)
    return CleanupResponse(deleted=deleted)
