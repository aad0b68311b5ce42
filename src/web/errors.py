"""
Exception handlers: render every error as ``{error, code, timestamp}``.

In production, messages of 5xx responses are replaced with a generic string.
In development, a ``stack`` field carries the formatted traceback.
"""

from __future__ import annotations

import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from domain.errors import RelayError, ValidationError

GENERIC_MESSAGE = "Internal server error"


def error_body(code: str, message: str, status_code: int, exc: BaseException, production: bool) -> Dict[str, Any]:
    if production and status_code >= 500:
        message = GENERIC_MESSAGE
    body: Dict[str, Any] = {
        "error": message,
        "code": code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if not production:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


def install_error_handlers(app: FastAPI, production: bool = False) -> None:
    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError):
        if exc.status_code >= 500:
            logging.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
        else:
            logging.info(f"{request.method} {request.url.path} rejected: {exc.code}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.code, exc.message, exc.status_code, exc, production),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg', 'invalid value')}" if field else "Invalid request body"
        return JSONResponse(
            status_code=ValidationError.status_code,
            content=error_body(ValidationError.code, message, ValidationError.status_code, exc, production),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logging.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content=error_body(RelayError.code, str(exc), 500, exc, production),
        )
