from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Sender(BaseModel):
    id: Optional[int] = None
    username: Optional[str] = None
    first_name: Optional[str] = None


class IncomingMessage(BaseModel):
    """Transport-neutral view of one chat message.

    Only the fields the context pipeline reads are modelled; transports may
    attach anything else as extra fields.
    """

    model_config = ConfigDict(extra="allow")

    message_id: Optional[int] = None
    date: Optional[int] = Field(default=None, description="Unix seconds")
    sender: Optional[Sender] = None
    chat_id: Optional[int] = None

    # Payload shapes
    text: Optional[str] = None
    photo: Optional[list[Any]] = None
    document: Optional[dict[str, Any]] = None
    voice: Optional[dict[str, Any]] = None

    @property
    def message_type(self) -> str:
        if self.text:
            return "text"
        if self.photo:
            return "photo"
        if self.document:
            return "document"
        if self.voice:
            return "voice"
        return "unknown"
