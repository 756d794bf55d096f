"""Translate service errors, HTTP errors and validation failures into the response envelope."""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from marketplace.config import get_settings
from marketplace.schemas.common import error_envelope
from marketplace.services.errors import ServiceError

logger = logging.getLogger(__name__)

# Kinds for plain HTTPExceptions raised by FastAPI itself (404 route, 405 method, ...)
_STATUS_TO_KIND = {
    400: "InvalidInput",
    401: "Unauthorized",
    403: "Forbidden",
    404: "NotFound",
    405: "InvalidInput",
    409: "Conflict",
}


def _error_response(status_code: int, message: str, kind: str, data=None, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_envelope(message, kind, data), headers=headers)


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request."
    first = errors[0]
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    msg = str(first.get("msg", "Invalid value")).removeprefix("Value error, ")
    return f"{field}: {msg}" if field else msg


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        log_fn = logger.error if exc.status_code >= 500 else logger.info
        log_fn("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.kind)
        return _error_response(exc.status_code, exc.message, exc.kind, exc.data)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in e.get("loc", ())), "message": str(e.get("msg", ""))}
            for e in exc.errors()
        ]
        return _error_response(400, _validation_message(exc), "InvalidInput", {"errors": errors})

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException):
        kind = _STATUS_TO_KIND.get(exc.status_code, "Internal")
        message = exc.detail if isinstance(exc.detail, str) else "Request failed."
        return _error_response(exc.status_code, message, kind, headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        data = {"detail": f"{type(exc).__name__}: {exc}"} if get_settings().debug else None
        return _error_response(500, "Internal server error.", "Internal", data)
