"""Mapeamento de exceções para respostas HTTP.

Só a mensagem curada (user_message) cruza a fronteira; detalhe técnico
fica no log, junto do correlation_id que também volta no corpo.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from wbso_chat.domain.errors import InvalidRequest, RateLimitExceeded, WbsoChatError
from wbso_chat.observability.logging import get_logger
from wbso_chat.observability.middleware import get_correlation_id

logger: logging.Logger = get_logger(__name__)

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again later."


def error_body(message: str, code: str) -> dict[str, object]:
    return {
        "success": False,
        "error": message,
        "code": code,
        "correlationId": get_correlation_id(),
    }


async def handle_domain_error(request: Request, exc: WbsoChatError) -> JSONResponse:
    extra = {
        "path": request.url.path,
        "code": exc.code,
        "status_code": exc.status_code,
        "error_type": type(exc).__name__,
        "error": str(exc),
    }
    if exc.status_code >= 500:
        logger.error("Request failed", extra=extra)
    else:
        logger.info("Request rejected", extra=extra)

    headers: dict[str, str] = {}
    if isinstance(exc, RateLimitExceeded):
        headers["Retry-After"] = str(exc.retry_after_seconds)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.user_message, exc.code),
        headers=headers,
    )


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Corpo genérico: detalhes do pydantic ficam fora da resposta
    return await handle_domain_error(
        request, InvalidRequest(f"{len(exc.errors())} validation errors")
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error",
        extra={"path": request.url.path, "error_type": type(exc).__name__},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(GENERIC_ERROR_MESSAGE, "internal_error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WbsoChatError, handle_domain_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, handle_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, handle_unexpected_error)
