"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming data validation
- Response models for API responses
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from chatroom.utils import sanitize_text


# =============================================================================
# Pydantic Request Models
# =============================================================================

class ParticipantRequest(BaseModel):
    """
    Request body for joining the room.

    The name is sanitized and checked for emptiness by the presence registry,
    so the raw value is accepted here as-is.
    """
    name: str = Field(..., description="Display name of the participant")

    model_config = {
        "json_schema_extra": {"examples": [{"name": "Ana"}]}
    }


class MessageRequest(BaseModel):
    """
    Pydantic model for validating posted and edited messages.

    Validates:
    - to: non-empty after stripping markup and whitespace
    - text: non-empty after stripping markup and whitespace
    - type: exactly "message" or "private_message"

    Any client-supplied `from` or `time` is ignored.
    """
    to: str = Field(..., min_length=1, description="Recipient name or the broadcast target")
    text: str = Field(..., min_length=1, description="Message content")
    type: Literal["message", "private_message"] = Field(..., description="Message visibility")

    @field_validator("to", "text", "type", mode="before")
    @classmethod
    def strip_markup(cls, v):
        """Sanitize string input before length and enum checks run."""
        if isinstance(v, str):
            return sanitize_text(v)
        return v

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"to": "Todos", "text": "hi", "type": "message"}
            ]
        }
    }


# =============================================================================
# Pydantic Response Models
# =============================================================================

class StatusResponse(BaseModel):
    """Response model for simple acknowledgements."""
    status: str = Field(default="ok", description="Operation status")


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class ParticipantResponse(BaseModel):
    """A participant currently in the room."""
    name: str = Field(..., description="Unique display name")
    last_heartbeat: int = Field(
        ...,
        alias="lastStatus",
        serialization_alias="lastStatus",
        description="Last heartbeat in milliseconds since epoch"
    )

    model_config = {
        "populate_by_name": True,
        "from_attributes": True,
    }


class MessageResponse(BaseModel):
    """
    Response model for a single chat event.
    Maps database fields to API response format.
    """
    id: str = Field(..., description="Opaque message identifier")
    from_name: str = Field(
        ...,
        alias="from",
        serialization_alias="from",
        description="Author of the message"
    )
    to_name: str = Field(
        ...,
        alias="to",
        serialization_alias="to",
        description="Recipient or broadcast target"
    )
    text: str = Field(..., description="Message content")
    type: str = Field(..., description="message, private_message or status")
    time: str = Field(..., description="Creation time (HH:MM:SS)")

    model_config = {
        "populate_by_name": True,
        "from_attributes": True,  # Allow creating from ORM objects
    }


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
