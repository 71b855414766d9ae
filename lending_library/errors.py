"""
Error mapping for the web service.

Domain errors arrive as Result data and are mapped to an HTTP status here.
Framework-level failures are caught by the handlers registered on the app;
their details are logged but never sent to clients.
"""

import json
import logging
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from lending_library.result import (
    AUTH,
    BAD_REQ,
    DB,
    EXISTS,
    INTERNAL,
    NOT_FOUND,
    UNKNOWN,
    Err,
    Error,
)

logger = logging.getLogger(__name__)

HTTP_400 = 400
HTTP_401 = 401
HTTP_404 = 404
HTTP_409 = 409
HTTP_500 = 500

SYNTAX = "SYNTAX"

# Domain error codes to HTTP statuses; unlisted codes do not pick a status.
ERROR_MAP: Dict[str, int] = {
    EXISTS: HTTP_409,
    NOT_FOUND: HTTP_404,
    BAD_REQ: HTTP_400,
    AUTH: HTTP_401,
    DB: HTTP_500,
    INTERNAL: HTTP_500,
}


def get_http_status(errors: List[Error]) -> int:
    """Return the status for the first mapped error code.

    A 500 anywhere in the list wins over every other status; 400 is used
    when no code is mapped.
    """
    status = 0
    for error in errors:
        error_status = ERROR_MAP.get(error.code, -1)
        if error_status > 0 and status == 0:
            status = error_status
        if error_status == HTTP_500:
            status = error_status
    return status or HTTP_400


def map_result_errors(failure: Any) -> Dict[str, Any]:
    """Map a failed Result, or an exception raised by the domain, to an error envelope."""
    if isinstance(failure, Err):
        errors = failure.errors
    else:
        message = str(failure) or type(failure).__name__
        errors = [Error(message, UNKNOWN)]
    status = get_http_status(errors)
    if status == HTTP_500:
        logger.error("internal errors: %s", [e.to_dict() for e in errors])
    return {
        "isOk": False,
        "status": status,
        "errors": [e.to_dict() for e in errors],
    }


def error_response(failure: Any) -> JSONResponse:
    """Build the JSON response for a failed Result or domain exception."""
    envelope = map_result_errors(failure)
    return JSONResponse(status_code=envelope["status"], content=envelope)


def _error_envelope(status_code: int, code: str, message: str) -> JSONResponse:
    body = {
        "isOk": False,
        "status": status_code,
        "errors": [{"message": message, "code": code}],
    }
    return JSONResponse(status_code=status_code, content=body)


def register_error_handlers(app: FastAPI) -> None:
    """Register the terminal error handlers on the FastAPI application.

    Args:
        app: The FastAPI application instance.
    """

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """Unknown paths and unsupported methods both report NOT_FOUND."""
        if exc.status_code in (404, 405):
            message = f"{request.method} not supported for {request.url}"
            return _error_envelope(HTTP_404, NOT_FOUND, message)
        code = UNKNOWN if exc.status_code < HTTP_500 else INTERNAL
        return _error_envelope(exc.status_code, code, str(exc.detail))

    @app.exception_handler(json.JSONDecodeError)
    async def handle_bad_json(
        _request: Request, exc: json.JSONDecodeError
    ) -> JSONResponse:
        """Handle request bodies which are not valid JSON."""
        logger.warning("Malformed request body: %s", exc.msg)
        return _error_envelope(HTTP_400, SYNTAX, f"bad JSON request body: {exc.msg}")

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request shapes rejected before reaching a route handler."""
        logger.warning("Request validation failed: %s", exc.errors())
        return _error_envelope(HTTP_400, SYNTAX, "malformed request")

    @app.exception_handler(Exception)
    async def handle_unexpected(
        _request: Request, exc: Exception
    ) -> JSONResponse:
        """Catch-all for unexpected errors. Never exposes internals."""
        logger.exception("Unexpected error: %s", type(exc).__name__)
        return _error_envelope(HTTP_500, INTERNAL, "internal server error")
