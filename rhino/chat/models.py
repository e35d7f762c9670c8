"""Chat Service — request/response models."""

import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _message_id() -> str:
    return str(time.time_ns())


class Sender(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_message_id)
    content: str
    sender: Sender
    timestamp: datetime = Field(default_factory=_utcnow)


class WebhookPayload(BaseModel):
    """What a send carries. Only chatInput/sessionId go over the wire."""

    model_config = ConfigDict(populate_by_name=True)

    chat_input: str = Field(alias="chatInput")
    session_id: str = Field(alias="sessionId")
    user_id: Optional[str] = Field(None, alias="userId")
    user_email: Optional[str] = Field(None, alias="userEmail")
    user_name: Optional[str] = Field(None, alias="userName")
    timestamp: Optional[datetime] = None

    def wire_body(self) -> dict:
        return {"chatInput": self.chat_input, "sessionId": self.session_id}


class MailboxEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    timestamp: datetime = Field(default_factory=_utcnow)
    raw_data: Optional[Any] = Field(None, alias="rawData")
    session_id: Optional[str] = Field(None, alias="sessionId")


class ChatRequest(BaseModel):
    message: str
    session_id: Optional[str] = None


class ChatResponse(BaseModel):
    response: Optional[str] = None
    session_id: str
    pending: bool = False
