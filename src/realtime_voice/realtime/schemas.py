"""Wire schemas for the realtime conversational API (JSON over WebSocket)."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ServerEventType(str, Enum):
    """Inbound event kinds this client understands."""
    SESSION_CREATED = "session.created"
    ITEM_CREATED = "conversation.item.created"
    RESPONSE_CREATED = "response.created"
    RESPONSE_DONE = "response.done"
    AUDIO_DELTA = "response.audio.delta"
    AUDIO_DONE = "response.audio.done"
    TRANSCRIPT_DELTA = "response.audio_transcript.delta"
    TRANSCRIPT_DONE = "response.audio_transcript.done"
    CONTENT_PART_ADDED = "response.content_part.added"
    CONTENT_PART_DONE = "response.content_part.done"
    OUTPUT_ITEM_ADDED = "response.output_item.added"
    OUTPUT_ITEM_DONE = "response.output_item.done"
    RATE_LIMITS_UPDATED = "rate_limits.updated"
    ERROR = "error"


# -- outbound ------------------------------------------------------------------

class InputAudioContent(BaseModel):
    type: Literal["input_audio"] = "input_audio"
    audio: str  # base64 PCM16


class ConversationItem(BaseModel):
    type: Literal["message"] = "message"
    role: Literal["user"] = "user"
    content: List[InputAudioContent]


class ConversationItemCreate(BaseModel):
    """Submits one utterance as a user message."""
    type: Literal["conversation.item.create"] = "conversation.item.create"
    item: ConversationItem

    @classmethod
    def from_audio(cls, audio_base64: str) -> "ConversationItemCreate":
        return cls(item=ConversationItem(content=[InputAudioContent(audio=audio_base64)]))


class ResponseOptions(BaseModel):
    modalities: List[str] = Field(default_factory=lambda: ["audio", "text"])
    instructions: str


class ResponseCreate(BaseModel):
    type: Literal["response.create"] = "response.create"
    response: ResponseOptions


class ResponseCancel(BaseModel):
    type: Literal["response.cancel"] = "response.cancel"


# -- inbound -------------------------------------------------------------------

class ErrorDetail(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: str = ""
    type: Optional[str] = None
    code: Optional[str] = None


class ServerEvent(BaseModel):
    """
    Any inbound event. Only the fields this client reads are typed; everything
    else the server sends is kept as extra attributes.
    """
    model_config = ConfigDict(extra="allow")

    type: str
    event_id: Optional[str] = None
    delta: Optional[str] = None
    error: Optional[ErrorDetail] = None
    response: Optional[Dict[str, Any]] = None
