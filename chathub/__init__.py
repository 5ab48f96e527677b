"""Chat Hub: realtime group chat server."""

from .hub import ChatHub
from .registry import SessionRegistry

__all__ = ["ChatHub", "SessionRegistry"]
