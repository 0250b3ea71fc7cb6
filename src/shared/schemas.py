"""
Shared Schemas - Pydantic Models for Validation and Serialization
Request and response models used by the Portfolio Guard API.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatRole(str, Enum):
    """Roles accepted in a chat transcript."""
    USER = "user"
    ASSISTANT = "assistant"


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        use_enum_values=True,
        validate_assignment=True,
        extra="ignore"
    )


# Chat schemas
class ChatMessage(BaseSchema):
    """One turn of the conversation."""
    role: ChatRole = Field(..., description="Who wrote the message")
    content: str = Field(..., description="Message text")


class ChatRequest(BaseSchema):
    """Body of POST /api/chat."""
    messages: List[ChatMessage] = Field(..., min_length=1, description="Conversation so far, oldest first")


class ChatReply(BaseSchema):
    """Assistant reply returned by the upstream service."""
    reply: str
    model: str
    stop_reason: Optional[str] = None


# CSRF schemas
class CSRFValidateRequest(BaseSchema):
    """Body of POST /api/csrf/token."""
    token: Optional[str] = None


# Debug schemas
class DebugActionRequest(BaseSchema):
    """Body of POST /api/debug/security."""
    action: Optional[str] = None
