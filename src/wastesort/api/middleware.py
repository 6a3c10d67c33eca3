"""Middleware: API key authentication and session error mapping."""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from wastesort.errors import (
    DecodeError,
    InferenceError,
    InvalidCodeError,
    ModelNotReadyError,
    NoBinCodeError,
    SessionBusyError,
    SessionCompleteError,
    WasteSortError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI

    from wastesort.config import Settings

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)

ERROR_STATUS: dict[type[WasteSortError], int] = {
    DecodeError: status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    InvalidCodeError: status.HTTP_400_BAD_REQUEST,
    ModelNotReadyError: status.HTTP_503_SERVICE_UNAVAILABLE,
    InferenceError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    NoBinCodeError: status.HTTP_409_CONFLICT,
    SessionBusyError: status.HTTP_409_CONFLICT,
    SessionCompleteError: status.HTTP_409_CONFLICT,
}


def _get_settings_from_request(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


async def verify_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> None:
    """Check the Bearer token against the configured API key.

    If no API key is configured (WASTESORT_API_KEY not set), all requests pass.
    If configured, requests must include 'Authorization: Bearer <key>'.
    """
    settings = _get_settings_from_request(request)
    if settings.api_key is None:
        return

    if credentials is None or not secrets.compare_digest(credentials.credentials.encode(), settings.api_key.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )


def status_for_error(exc: WasteSortError) -> int:
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def _handle_wastesort_error(request: Request, exc: WasteSortError) -> JSONResponse:
    code = status_for_error(exc)
    logger.info("%s %s -> %d %s", request.method, request.url.path, code, type(exc).__name__)
    return JSONResponse(status_code=code, content={"detail": str(exc)})


def register_error_handlers(app: FastAPI) -> None:
    """Report session errors as ``{"detail": ...}`` with a matching status code."""
    app.add_exception_handler(WasteSortError, _handle_wastesort_error)  # type: ignore[arg-type]
