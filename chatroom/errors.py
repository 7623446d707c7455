"""
Domain errors raised by the presence registry and the session gateway.

Each error carries the HTTP status it maps to; `register_exception_handlers`
translates them into `{"detail": ...}` responses at the FastAPI boundary.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ChatError(Exception):
    """Base class for chat room domain errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    # Outcome label used in metrics and request logs
    result: str = "error"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class ValidationError(ChatError):
    """Malformed, missing or empty input, or an unknown sender."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    result = "validation_error"


class NameConflict(ChatError):
    """An active participant already holds the requested name."""

    status_code = status.HTTP_409_CONFLICT
    result = "name_conflict"


class NotFound(ChatError):
    """The message or participant does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    result = "not_found"


class Forbidden(ChatError):
    """
    The caller is not the author of the message.

    Mapped to 401 to stay compatible with existing clients of the chat API.
    """

    status_code = status.HTTP_401_UNAUTHORIZED
    result = "forbidden"


def register_exception_handlers(app: FastAPI) -> None:
    """Register the chat error handler on a FastAPI app."""

    @app.exception_handler(ChatError)
    async def _chat_error_handler(_request: Request, exc: ChatError) -> JSONResponse:
        logger.info(f"{exc.__class__.__name__}: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )
