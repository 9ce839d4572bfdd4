"""Configuração de logging estruturado (JSON)."""

from __future__ import annotations

import logging

from pythonjsonlogger.json import JsonFormatter

from wbso_chat.observability.middleware import get_correlation_id

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(correlation_id)s] %(message)s"


class CorrelationIdFilter(logging.Filter):
    """Insere correlation_id e service no record de log.

    Importante: nunca adicionar texto do usuário nem respostas da LLM nos logs.
    """

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        existing = getattr(record, "correlation_id", None)
        record.correlation_id = existing if existing else get_correlation_id()
        record.service = self._service_name
        return True


def configure_logging(level: str, service_name: str, log_format: str = "json") -> None:
    """Configura logging (JSON em Cloud Run, texto para desenvolvimento local)."""

    if log_format.lower() == "text":
        formatter: logging.Formatter = logging.Formatter(_TEXT_FORMAT)
    else:
        formatter = JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s %(correlation_id)s %(service)s",
            rename_fields={"levelname": "level", "name": "logger"},
        )

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter(service_name))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]


def get_logger(name: str) -> logging.Logger:
    """Retorna logger simples; o filtro injeta service/correlation_id."""

    return logging.getLogger(name)


def short_id(value: str | None) -> str:
    """Trunca identificadores (sessão, usuário) antes de irem para o log."""

    if not value:
        return ""
    return value[:8] + "..." if len(value) > 8 else value


def log_fallback(
    logger: logging.Logger,
    component: str,
    reason: str | None = None,
    session_id: str | None = None,
) -> None:
    """Log observável de fallback usado (sem conteúdo da conversa).

    Args:
        logger: Logger instance
        component: Nome do componente (ex: "extraction", "application_parser")
        reason: Razão do fallback (ex: "invalid_json", "schema_mismatch")
        session_id: Sessão afetada (truncada no log)

    Exemplo:
        log_fallback(logger, "application_parser", reason="invalid_json")
    """
    extra: dict[str, object] = {
        "fallback_used": True,
        "component": component,
    }
    if reason:
        extra["reason"] = reason
    if session_id:
        extra["session_id"] = short_id(session_id)

    logger.info(
        f"Fallback applied for {component}",
        extra=extra,
    )
