"""Ledger diário de custos (por usuário e global).

Uma entrada por (usuário, dia UTC) e uma por (global, dia UTC), criadas
sob demanda e nunca removidas. Toda mutação é read-check-write atômica:
reserve() verifica os dois tetos e incrementa as duas entradas na mesma
transação; adjust() aplica a diferença entre custo real e reservado.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from wbso_chat.domain.errors import GlobalCostLimitExceeded, UserCostLimitExceeded
from wbso_chat.observability.logging import get_logger, short_id

if TYPE_CHECKING:
    from wbso_chat.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

COST_DECIMALS = 6


def utc_day(now: datetime | None = None) -> str:
    """Chave do dia corrente em UTC (YYYY-MM-DD)."""
    return (now or datetime.now(tz=UTC)).strftime("%Y-%m-%d")


@dataclass(frozen=True, slots=True)
class Reservation:
    """Valor reservado antes de uma chamada ao provider.

    day fixa a entrada do ledger: a reconciliação cai no mesmo dia mesmo
    que a chamada atravesse a meia-noite UTC.
    """

    user_id: str
    amount: float
    day: str


def check_limits(
    user_total: float,
    global_total: float,
    amount: float,
    user_limit: float,
    global_limit: float,
) -> None:
    """Levanta o erro de admissão adequado se a reserva estourar um teto."""
    if round(user_total + amount, COST_DECIMALS) > user_limit:
        raise UserCostLimitExceeded(
            f"user daily cost {user_total:.4f} + {amount:.4f} exceeds {user_limit:.2f}"
        )
    if round(global_total + amount, COST_DECIMALS) > global_limit:
        raise GlobalCostLimitExceeded(
            f"global daily cost {global_total:.4f} + {amount:.4f} exceeds {global_limit:.2f}"
        )


def apply_delta(total: float, delta: float) -> float:
    return max(0.0, round(total + delta, COST_DECIMALS))


class CostLedger(ABC):
    """Contrato do ledger de custos."""

    def __init__(self, user_daily_limit: float, global_daily_limit: float) -> None:
        self.user_daily_limit = user_daily_limit
        self.global_daily_limit = global_daily_limit

    @abstractmethod
    async def reserve(self, user_id: str, amount: float) -> Reservation:
        """Reserva `amount` nos dois ledgers do dia.

        Raises:
            UserCostLimitExceeded: Teto diário do usuário seria ultrapassado.
            GlobalCostLimitExceeded: Teto diário global seria ultrapassado.
        """

    @abstractmethod
    async def adjust(self, reservation: Reservation, delta: float) -> None:
        """Aplica `delta` (pode ser negativo) às entradas da reserva."""

    @abstractmethod
    async def user_total(self, user_id: str, day: str | None = None) -> float:
        """Total gasto pelo usuário no dia."""

    @abstractmethod
    async def global_total(self, day: str | None = None) -> float:
        """Total global gasto no dia."""


def log_rejection(error: Exception, user_id: str, amount: float) -> None:
    """Rejeição de custo é esperada: warning, nunca error."""
    logger.warning(
        "Cost ceiling reached",
        extra={
            "error_type": type(error).__name__,
            "user_id": short_id(user_id),
            "estimated_cost": round(amount, COST_DECIMALS),
        },
    )


def create_cost_ledger(settings: Settings, firestore_client: Any | None = None) -> CostLedger:
    """Cria o CostLedger conforme COST_LEDGER_BACKEND.

    Raises:
        ValueError: Backend desconhecido.
    """
    backend = settings.cost_ledger_backend.lower()

    if backend == "memory":
        from wbso_chat.infra.cost_ledger_memory import InMemoryCostLedger

        logger.warning("Using in-memory cost ledger (dev only, unsuitable for Cloud Run)")
        return InMemoryCostLedger(
            user_daily_limit=settings.user_daily_cost_limit,
            global_daily_limit=settings.global_daily_cost_limit,
        )

    if backend == "firestore":
        from wbso_chat.infra.cost_ledger_firestore import FirestoreCostLedger

        if firestore_client is None:
            from google.cloud import firestore

            firestore_client = firestore.Client(
                project=settings.firestore_project,
                database=settings.firestore_database_id,
            )
        return FirestoreCostLedger(
            firestore_client,
            user_daily_limit=settings.user_daily_cost_limit,
            global_daily_limit=settings.global_daily_cost_limit,
            user_collection=settings.user_costs_collection,
            system_collection=settings.system_costs_collection,
        )

    raise ValueError(f"Unknown cost ledger backend: {backend}")
