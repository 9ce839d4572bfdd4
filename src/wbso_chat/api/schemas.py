"""Schemas HTTP (camelCase no fio) e validação de entrada.

Toda string de entrada passa por:
- limite de tamanho (MAX_TEXT_LENGTH)
- rejeição de marcadores óbvios de script/markup
"""

from __future__ import annotations

import re
from typing import Any, Literal

from pydantic import Field, field_validator

from wbso_chat.domain.models import CamelModel, LeadData, Phase, UserContext
from wbso_chat.domain.protocols.identity import Identity

SESSION_ID_PATTERN = r"^[A-Za-z0-9_-]{8,128}$"
MAX_TEXT_LENGTH = 5000

_MARKUP_MARKERS = re.compile(
    r"<\s*/?\s*(script|iframe|object|embed|style|svg|img|link|meta)\b"
    r"|javascript\s*:"
    r"|data\s*:\s*text/html"
    r"|<[a-z][^>]*\bon[a-z]+\s*=",
    re.IGNORECASE,
)


def check_text(value: str) -> str:
    """Valida um campo de texto livre; retorna o valor sem espaços nas pontas."""
    value = value.strip()
    if len(value) > MAX_TEXT_LENGTH:
        raise ValueError(f"text longer than {MAX_TEXT_LENGTH} characters")
    if _MARKUP_MARKERS.search(value):
        raise ValueError("text contains script or markup markers")
    return value


def _check_nested(value: Any) -> Any:
    if isinstance(value, str):
        return check_text(value)
    if isinstance(value, list):
        return [_check_nested(item) for item in value]
    if isinstance(value, dict):
        return {key: _check_nested(item) for key, item in value.items()}
    return value


class UserContextIn(CamelModel):
    """userContext enviado pelo frontend (userId/email vêm sempre do token)."""

    language: Literal["nl", "en"] = "nl"
    is_pre_filled: bool = False
    company_name: str | None = Field(default=None, max_length=200)
    lead_data: dict[str, Any] | None = None

    @field_validator("company_name")
    @classmethod
    def _check_company(cls, value: str | None) -> str | None:
        return check_text(value) if value is not None else None

    @field_validator("lead_data")
    @classmethod
    def _check_lead(cls, value: dict[str, Any] | None) -> dict[str, Any] | None:
        return _check_nested(value) if value is not None else None


class StartChatRequest(CamelModel):
    session_id: str = Field(pattern=SESSION_ID_PATTERN)
    user_context: UserContextIn | None = None

    def to_user_context(self, identity: Identity) -> UserContext:
        """Contexto imutável da sessão com o dono vindo da identidade verificada."""
        raw = self.user_context or UserContextIn()
        return UserContext(
            user_id=identity.uid,
            user_email=identity.email,
            language=raw.language,
            is_pre_filled=raw.is_pre_filled,
            company_name=raw.company_name,
            lead_data=LeadData.model_validate(raw.lead_data) if raw.lead_data else None,
        )


class ChatMessageRequest(CamelModel):
    session_id: str = Field(pattern=SESSION_ID_PATTERN)
    message: str = Field(min_length=1)

    @field_validator("message")
    @classmethod
    def _check_message(cls, value: str) -> str:
        value = check_text(value)
        if not value:
            raise ValueError("message must not be empty")
        return value


class GenerateRequest(CamelModel):
    session_id: str = Field(pattern=SESSION_ID_PATTERN)


class ChatStartResponse(CamelModel):
    message: str
    session_id: str
    phase: Phase
    completeness: int
    ready_for_generation: bool


class ChatMessageResponse(ChatStartResponse):
    cost: float
    extracted_info: dict[str, Any] = Field(default_factory=dict)


class CleanupResponse(CamelModel):
    deleted: int


class HealthResponse(CamelModel):
    status: str
    service: str
    version: str
