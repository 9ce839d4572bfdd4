"""Dependências injetadas nas rotas."""

from __future__ import annotations

from fastapi import Header, Request

from wbso_chat.application.admission import AdmissionController
from wbso_chat.application.orchestrator import ConversationOrchestrator
from wbso_chat.config.settings import Settings
from wbso_chat.domain.errors import AuthenticationError, SessionOwnershipError
from wbso_chat.domain.models import Session
from wbso_chat.domain.protocols.identity import Identity, IdentityVerifier
from wbso_chat.observability.logging import get_logger, short_id

logger = get_logger(__name__)


def get_settings(request: Request) -> Settings:
    """Retorna settings da aplicação."""

    return request.app.state.settings


def get_orchestrator(request: Request) -> ConversationOrchestrator:
    """Retorna o orquestrador da conversa."""

    return request.app.state.orchestrator


def get_admission(request: Request) -> AdmissionController:
    """Retorna o controle de admissão (rate + custo)."""

    return request.app.state.admission


def get_identity_verifier(request: Request) -> IdentityVerifier:
    return request.app.state.identity_verifier


def extract_bearer_token(authorization: str | None) -> str:
    """Extrai o token de 'Authorization: Bearer <token>'.

    Raises:
        AuthenticationError: Header ausente ou fora do formato.
    """
    if not authorization:
        raise AuthenticationError("missing authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("invalid authorization header")
    return token.strip()


async def get_identity(
    request: Request,
    authorization: str | None = Header(None),
) -> Identity:
    """Autentica o chamador (todas as rotas exceto /health)."""
    token = extract_bearer_token(authorization)
    return await get_identity_verifier(request).verify(token)


def client_address(request: Request) -> str:
    """IP do cliente atrás do Cloud Run.

    O front end do Cloud Run acrescenta o IP de quem conectou ao final de
    X-Forwarded-For; os saltos anteriores vêm do próprio cliente e não
    servem de chave de rate limit.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        last = forwarded.split(",")[-1].strip()
        if last:
            return last
    return request.client.host if request.client else "unknown"


def ensure_owner(session: Session, identity: Identity) -> None:
    """Sessão sem dono registrado é aceita; dono diferente é 403."""
    owner = session.owner_id
    if owner and owner != identity.uid:
        logger.warning(
            "Session ownership violation attempt",
            extra={
                "session_id": short_id(session.id),
                "requesting_user": short_id(identity.uid),
            },
        )
        raise SessionOwnershipError(f"session {short_id(session.id)} owned by another user")


def require_internal_token(request: Request, settings: Settings) -> None:
    """Valida token interno enviado pelo Cloud Scheduler/worker."""
    expected = settings.internal_task_token
    provided = request.headers.get(settings.internal_token_header)

    if expected and provided == expected:
        return

    raise AuthenticationError("unauthorized internal call")
