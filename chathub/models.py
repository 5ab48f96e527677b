from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, model_validator

SYSTEM_SENDER = "System"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# Pydantic schemas

class ChatMessage(BaseModel):
    """A chat line as it travels over the socket.

    ``timestamp`` is whatever the client sent until the hub stamps it on
    acceptance. Unknown keys are carried through untouched.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    text: str = ""
    sender: str
    timestamp: Any = None
    image: Optional[str] = None

    @model_validator(mode="after")
    def _needs_text_or_image(self):
        if not self.text and not self.image:
            raise ValueError("message must carry text or an image")
        return self

    def stamped(self, when: datetime | None = None) -> "ChatMessage":
        return self.model_copy(update={"timestamp": (when or utc_now()).isoformat()})

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", exclude={"image"} if self.image is None else None)


def system_message(text: str) -> ChatMessage:
    return ChatMessage(text=text, sender=SYSTEM_SENDER).stamped()


class UsersResponse(BaseModel):
    users: list[str]
    connections: int


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str = "chathub"
