import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from pythonjsonlogger import jsonlogger

from chatroom.metrics import record_http_request


# Set by RequestLoggingMiddleware for the lifetime of one request
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

LOG_FORMAT = "%(ts)s %(level)s %(name)s %(message)s"

# Routed through our JSON handler; the access log is replaced by RequestLoggingMiddleware
UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-01-01T00:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ChatJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter adding `ts`, `level` and the active `request_id` to each record."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record.setdefault("ts", utc_timestamp())
        log_record["level"] = record.levelname

        request_id = request_id_ctx.get()
        if request_id and "request_id" not in log_record:
            log_record["request_id"] = request_id


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """
    Send all application and uvicorn logs to stdout as JSON lines.

    Calling it again replaces the previous handlers instead of stacking them.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ChatJsonFormatter(LOG_FORMAT))

    root = logging.getLogger()
    root.setLevel(log_level.upper())
    root.handlers = [handler]

    for name in UVICORN_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers = [handler]
        server_logger.propagate = False
    logging.getLogger("uvicorn.access").disabled = True

    return root


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log all HTTP requests in structured JSON format.

    Logged keys:
    - ts, level, request_id
    - method, path (route template when matched), status, latency_ms

    Chat routes may also attach:
    - sender: identity claimed through the User header
    - message_id: message targeted by an edit or delete
    - result: operation outcome (ok, not_found, forbidden, ...)
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        token = request_id_ctx.set(request_id)
        start_time = time.time()

        try:
            response = await call_next(request)

            response.headers["X-Request-ID"] = request_id

            latency_seconds = time.time() - start_time
            latency_ms = round(latency_seconds * 1000, 2)

            # Label by route template to keep /messages/{message_id} low-cardinality
            route = request.scope.get("route")
            path = getattr(route, "path", request.url.path)

            if path != "/metrics":
                record_http_request(
                    method=request.method,
                    path=path,
                    status=response.status_code,
                    latency_seconds=latency_seconds
                )

            log_data = {
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "latency_ms": latency_ms,
            }

            if hasattr(request.state, "chat_log_data"):
                log_data.update(request.state.chat_log_data)

            logger = logging.getLogger("chatroom.requests")

            if response.status_code >= 500:
                logger.error("Request completed", extra=log_data)
            elif response.status_code >= 400:
                logger.warning("Request completed", extra=log_data)
            else:
                logger.info("Request completed", extra=log_data)

            return response
        finally:
            request_id_ctx.reset(token)


def log_chat_data(request: Request, sender: str = None, message_id: str = None, result: str = None):
    """
    Attach chat-specific logging data to the request state.
    This data will be included in the request log by the middleware.

    Args:
        request: FastAPI request object
        sender: Identity from the User header
        message_id: Message targeted by the request
        result: Operation outcome
    """
    chat_data = getattr(request.state, "chat_log_data", {})

    if sender is not None:
        chat_data["sender"] = sender

    if message_id is not None:
        chat_data["message_id"] = message_id

    if result is not None:
        chat_data["result"] = result

    request.state.chat_log_data = chat_data
