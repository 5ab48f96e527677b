"""
Errors raised by the session registry and the chat hub.

None of these are fatal to the hub: the dispatcher logs them and moves on.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ChatHubError(Exception):
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class NameTakenError(ChatHubError):
    name: str = ""


@dataclass
class UnknownConnectionError(ChatHubError):
    connection_id: str = ""


class MalformedEventError(ChatHubError):
    pass
