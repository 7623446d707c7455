import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import FastAPI, Response, Request, Depends, Header, status, Query
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from chatroom.config import settings
from chatroom.errors import ChatError, register_exception_handlers
from chatroom.gateway import SessionGateway
from chatroom.presence import PresenceRegistry
from chatroom.storage import init_db, check_db_health, get_db
from chatroom.sweeper import EvictionSweeper
from chatroom.logging_utils import setup_logging, RequestLoggingMiddleware, log_chat_data
from chatroom.metrics import record_chat_operation, get_metrics, get_metrics_content_type
from chatroom.utils import parse_limit
from chatroom.schemas import (
    ErrorResponse,
    HealthResponse,
    MessageRequest,
    MessageResponse,
    ParticipantRequest,
    ParticipantResponse,
    StatusResponse,
)


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

registry = PresenceRegistry()
gateway = SessionGateway(registry)
sweeper = EvictionSweeper(registry)


def get_gateway() -> SessionGateway:
    """Dependency returning the gateway shared by all requests."""
    return gateway


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and start the eviction sweeper
    - Shutdown: Stop the sweeper
    """
    init_db()
    if settings.SWEEPER_ENABLED:
        sweeper.start()
    yield
    await sweeper.stop()


app = FastAPI(
    title="Chat Room API",
    description="Chat session coordinator with presence tracking and a shared message log",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(RequestLoggingMiddleware)
register_exception_handlers(app)

# Identity the caller claims, sent in the User header
UserHeader = Annotated[str | None, Header(alias="User")]


def _message_response(message) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        from_name=message.from_name,
        to_name=message.to_name,
        text=message.text,
        type=message.type,
        time=message.time,
    )


def _participant_response(participant) -> ParticipantResponse:
    return ParticipantResponse(name=participant.name, last_heartbeat=participant.last_heartbeat)


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness probe - always returns 200 once the app is running.
    """
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if:
    1. DB is reachable and schema is applied
    2. The eviction sweeper is running (when enabled)

    Otherwise returns 503 (Service Unavailable).
    """
    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    if settings.SWEEPER_ENABLED and not sweeper.running:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Eviction sweeper not running"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Participant Routes
# =============================================================================

@app.post(
    "/participants",
    status_code=status.HTTP_201_CREATED,
    response_model=ParticipantResponse,
    responses={
        409: {"model": ErrorResponse, "description": "Name already in use"},
        422: {"description": "Empty or invalid name"},
    }
)
def join(
    body: ParticipantRequest,
    request: Request,
    db: Session = Depends(get_db),
    gateway: SessionGateway = Depends(get_gateway),
) -> ParticipantResponse:
    """
    Enter the room under a unique display name.

    The name is stripped of markup and whitespace. An arrival status
    message is broadcast to everyone.
    """
    try:
        participant = gateway.join(db, body.name)
    except ChatError as exc:
        record_chat_operation("join", exc.result)
        log_chat_data(request, result=exc.result)
        raise

    record_chat_operation("join", "ok")
    log_chat_data(request, sender=participant.name, result="ok")
    return _participant_response(participant)


@app.get("/participants", response_model=list[ParticipantResponse])
def list_participants(
    db: Session = Depends(get_db),
    gateway: SessionGateway = Depends(get_gateway),
) -> list[ParticipantResponse]:
    """List the participants currently in the room."""
    participants = gateway.list_participants(db)
    logger.debug(f"GET /participants: {len(participants)} active")
    return [_participant_response(p) for p in participants]


# =============================================================================
# Message Routes
# =============================================================================

@app.post(
    "/messages",
    status_code=status.HTTP_201_CREATED,
    response_model=MessageResponse,
    responses={422: {"description": "Invalid message or unknown sender"}},
)
def post_message(
    body: MessageRequest,
    request: Request,
    user: UserHeader = None,
    db: Session = Depends(get_db),
    gateway: SessionGateway = Depends(get_gateway),
) -> MessageResponse:
    """
    Post a message as the participant named in the User header.

    Body:
        - to: recipient name or the broadcast target
        - text: message content
        - type: "message" (public) or "private_message"
    """
    log_chat_data(request, sender=user)
    try:
        message = gateway.post_message(db, user, body)
    except ChatError as exc:
        record_chat_operation("post", exc.result)
        log_chat_data(request, result=exc.result)
        raise

    record_chat_operation("post", "ok")
    log_chat_data(request, message_id=message.id, result="ok")
    return _message_response(message)


@app.get("/messages", response_model=list[MessageResponse])
def list_messages(
    user: UserHeader = None,
    limit: Annotated[str | None, Query(description="Return only the last N visible messages")] = None,
    db: Session = Depends(get_db),
    gateway: SessionGateway = Depends(get_gateway),
) -> list[MessageResponse]:
    """
    List the messages visible to the participant named in the User header.

    Query Parameters:
        - limit: keep only the last N visible messages; values that are not
          positive integers are ignored

    Ordering:
        - Insertion order, oldest first
    """
    messages = gateway.list_messages(db, user, parse_limit(limit))
    logger.debug(f"GET /messages: returned {len(messages)} messages (limit={limit})")
    return [_message_response(m) for m in messages]


@app.put(
    "/messages/{message_id}",
    response_model=MessageResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Caller is not the author"},
        404: {"model": ErrorResponse, "description": "Message not found"},
        422: {"description": "Invalid message or unknown sender"},
    }
)
def edit_message(
    message_id: str,
    body: MessageRequest,
    request: Request,
    user: UserHeader = None,
    db: Session = Depends(get_db),
    gateway: SessionGateway = Depends(get_gateway),
) -> MessageResponse:
    """
    Edit the text of a message authored by the caller.

    The body is validated like a new post, but only the text is applied.
    """
    log_chat_data(request, sender=user, message_id=message_id)
    try:
        message = gateway.edit_message(db, user, message_id, body)
    except ChatError as exc:
        record_chat_operation("edit", exc.result)
        log_chat_data(request, result=exc.result)
        raise

    record_chat_operation("edit", "ok")
    log_chat_data(request, result="ok")
    return _message_response(message)


@app.delete(
    "/messages/{message_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        401: {"model": ErrorResponse, "description": "Caller is not the author"},
        404: {"model": ErrorResponse, "description": "Message not found"},
    }
)
def delete_message(
    message_id: str,
    request: Request,
    user: UserHeader = None,
    db: Session = Depends(get_db),
    gateway: SessionGateway = Depends(get_gateway),
) -> Response:
    """Delete a message authored by the caller."""
    log_chat_data(request, sender=user, message_id=message_id)
    try:
        gateway.delete_message(db, user, message_id)
    except ChatError as exc:
        record_chat_operation("delete", exc.result)
        log_chat_data(request, result=exc.result)
        raise

    record_chat_operation("delete", "ok")
    log_chat_data(request, result="ok")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Status Route
# =============================================================================

@app.post(
    "/status",
    response_model=StatusResponse,
    responses={404: {"model": ErrorResponse, "description": "Participant not found"}},
)
def refresh_status(
    request: Request,
    user: UserHeader = None,
    db: Session = Depends(get_db),
    gateway: SessionGateway = Depends(get_gateway),
) -> StatusResponse:
    """Heartbeat: keep the participant named in the User header in the room."""
    log_chat_data(request, sender=user)
    try:
        gateway.refresh_status(db, user)
    except ChatError as exc:
        record_chat_operation("heartbeat", exc.result)
        log_chat_data(request, result=exc.result)
        raise

    record_chat_operation("heartbeat", "ok")
    return StatusResponse(status="ok")


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
