from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from salesflow.context import get_correlation_id
from salesflow.platform.security.errors import (
    Conflict,
    Forbidden,
    InvalidTransition,
    NotFoundError,
    PipelineError,
    Unauthorized,
    UnknownStage,
    ValidationError,
)


logger = logging.getLogger("salesflow.errors")

GENERIC_FAILURE_MESSAGE = "The request could not be completed."

STATUS_BY_ERROR: tuple[tuple[type[PipelineError], int], ...] = (
    (Unauthorized, status.HTTP_401_UNAUTHORIZED),
    (Forbidden, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (Conflict, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__, headers=headers)


def status_for(exc: PipelineError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(
            "pipeline.failure",
            extra={"path": request.url.path, "reason": exc.reason, "error": type(exc).__name__},
        )
        return error_response(request, status_code=status_code, code=exc.code, message=GENERIC_FAILURE_MESSAGE)

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return error_response(request, status_code=status_code, code=exc.code, message=exc.reason, headers=headers)


async def unknown_stage_handler(request: Request, exc: UnknownStage) -> JSONResponse:
    logger.error(
        "pipeline.unknown_stage",
        extra={"path": request.url.path, "stage": str(exc.raw), "reason": exc.reason},
    )
    return error_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code=exc.code,
        message=GENERIC_FAILURE_MESSAGE,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(UnknownStage, unknown_stage_handler)  # type: ignore[arg-type]
    app.add_exception_handler(PipelineError, pipeline_error_handler)  # type: ignore[arg-type]
