"""Chat Hub Python SDK."""

from .chat_sdk import (
    ChatClient,
    ChatError,
    ChatSession,
    NotFoundError,
    ServerError,
    image_to_data_uri,
)

__all__ = [
    "ChatClient",
    "ChatSession",
    "ChatError",
    "NotFoundError",
    "ServerError",
    "image_to_data_uri",
]
