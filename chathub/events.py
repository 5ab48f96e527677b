"""
Event kinds carried over the chat socket, and the JSON envelope around them.

Every frame is ``{"event_type": ..., "data": ...}``; frames sent by the hub
also carry an ISO-8601 ``ts``.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

from .errors import MalformedEventError
from .models import utc_now


class InboundKind(str, Enum):
    JOIN = "user_joined"
    MESSAGE = "send_message"


class OutboundKind(str, Enum):
    CONNECTED = "connected"
    USER_LIST = "user_list"
    MESSAGE = "message"
    USERNAME_TAKEN = "username_taken"
    PONG = "pong"


def envelope(kind: OutboundKind, data: Any) -> dict:
    return {
        "event_type": kind.value,
        "data": data,
        "ts": utc_now().isoformat(),
    }


def parse_frame(raw: str) -> tuple[InboundKind, Any]:
    """Decode one client frame into its kind and payload."""
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedEventError(f"Frame is not JSON: {exc}") from exc

    if not isinstance(frame, dict) or "event_type" not in frame:
        raise MalformedEventError("Frame must be an object with an event_type")

    try:
        kind = InboundKind(frame["event_type"])
    except ValueError as exc:
        raise MalformedEventError(f"Unknown event_type {frame['event_type']!r}") from exc
    return kind, frame.get("data")
