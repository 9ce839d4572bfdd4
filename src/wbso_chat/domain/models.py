"""Modelos de domínio: sessão, mensagens, contexto do usuário e documento final."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class Phase(StrEnum):
    """Fases da coleta de informação."""

    DISCOVERY = "discovery"
    CLARIFICATION = "clarification"
    GENERATION = "generation"
    COMPLETE = "complete"


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class CamelModel(BaseModel):
    """Base com aliases camelCase (formato do frontend e do Firestore)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatMessage(CamelModel):
    """Mensagem da conversa (imutável depois de anexada)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))


class LeadData(BaseModel):
    """Dados pré-preenchidos vindos da WBSO Check (lead magnet)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    company_name: str | None = None
    sbi_description: str | None = None
    technical_staff_count: int | str | None = None
    technical_problems: list[str] = Field(default_factory=list)
    calculated_subsidy: float | None = None


class UserContext(CamelModel):
    """Contexto do chamador; imutável depois da criação da sessão."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="ignore"
    )

    user_id: str | None = None
    user_email: str | None = None
    language: str = "nl"
    is_pre_filled: bool = False
    company_name: str | None = None
    lead_data: LeadData | None = None

    @property
    def display_company_name(self) -> str | None:
        if self.company_name:
            return self.company_name
        if self.lead_data and self.lead_data.company_name:
            return self.lead_data.company_name
        return None


class Session(CamelModel):
    """Estado completo de uma conversa.

    Invariantes:
    - messages é append-only
    - token_count e cost nunca diminuem
    - completeness é sempre derivado de extracted_info
    - expires_at é fixo (created_at + TTL), nunca estendido por atividade
    """

    id: str
    phase: Phase = Phase.DISCOVERY
    messages: list[ChatMessage] = Field(default_factory=list)
    extracted_info: dict[str, Any] = Field(default_factory=dict)
    token_count: int = 0
    cost: float = 0.0
    completeness: int = 0
    user_context: UserContext = Field(default_factory=UserContext)
    created_at: datetime
    updated_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        current = now or datetime.now(tz=UTC)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return current >= expires_at

    @property
    def owner_id(self) -> str | None:
        return self.user_context.user_id

    def to_document(self) -> dict[str, Any]:
        """Serializa para armazenamento (datetimes preservados)."""
        return self.model_dump(by_alias=True)


class SessionStats(CamelModel):
    """Estatísticas de monitoramento de uma sessão."""

    message_count: int
    total_cost: float
    token_count: int
    duration_seconds: int
    completeness: int


# --- Documento final --------------------------------------------------------


class Activity(CamelModel):
    name: str
    description: str
    duration: str
    hours: int = Field(ge=0)


class CostBreakdown(CamelModel):
    """Resumo de custos; net_costs sempre = labor_costs - deduction."""

    total_hours: int = Field(ge=0)
    labor_costs: float = Field(ge=0)
    deduction: float = Field(
        ge=0, validation_alias=AliasChoices("deduction", "wbsoDeduction")
    )
    net_costs: float = 0.0

    @model_validator(mode="after")
    def _derive_net_costs(self) -> CostBreakdown:
        self.net_costs = round(self.labor_costs - self.deduction, 2)
        return self


class GrantApplication(CamelModel):
    """Aanvraag WBSO estruturada."""

    project_description: str = Field(min_length=1)
    technical_challenge: str = Field(min_length=1)
    innovative_aspects: str = Field(min_length=1)
    expected_results: str = Field(min_length=1)
    activities: list[Activity] = Field(min_length=1)
    cost_breakdown: CostBreakdown
