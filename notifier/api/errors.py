"""Maps engine errors to HTTP responses."""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from notifier.config import ConfigurationError
from notifier.domain.exceptions import (
    InvalidStateError,
    NotFoundError,
    NotifierError,
    SignatureError,
    UpstreamError,
    ValidationError,
)
from notifier.logging import get_logger

logger = get_logger(__name__, component="api")

STATUS_CODES = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (SignatureError, status.HTTP_401_UNAUTHORIZED),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (UpstreamError, status.HTTP_502_BAD_GATEWAY),
    (ConfigurationError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_code_for(error: Exception) -> int:
    for error_type, code in STATUS_CODES:
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def handle_notifier_error(request: Request, exc: NotifierError) -> JSONResponse:
    code = status_code_for(exc)
    log = logger.error if code >= 500 else logger.info
    log(
        f"{request.method} {request.url.path} -> {code}: {exc}",
        extra={
            "event": "api.request.error",
            "error_type": type(exc).__name__,
            "status_code": code,
            "path": request.url.path,
        },
    )
    body = {"success": False, "error": str(exc)}
    if isinstance(exc, ConfigurationError):
        body["error"] = exc.message
        body["details"] = list(exc.errors)
    return JSONResponse(status_code=code, content=body)


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": "Invalid request", "details": errors},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(NotifierError, handle_notifier_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
