"""
Shared test fixtures for the Chat Hub test suite.

Provides:
- DummyWebSocket sinks that record every frame sent to them
- A fresh ChatHub per test, closed afterwards
- settle() to let writer tasks flush their outboxes
"""

import asyncio
import os
import sys

import pytest
import pytest_asyncio

# Repo root on the path so `chathub` and `chatsdk` import without installing
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from chathub.hub import ChatHub


class DummyWebSocket:
    def __init__(self):
        self.messages: list[dict] = []
        self.closed = False

    async def send_json(self, payload):
        self.messages.append(payload)

    async def close(self):
        self.closed = True

    def events(self, event_type: str) -> list:
        return [m["data"] for m in self.messages if m["event_type"] == event_type]

    def texts(self) -> list[str]:
        return [m["text"] for m in self.events("message")]


class BrokenWebSocket(DummyWebSocket):
    async def send_json(self, payload):
        raise ConnectionResetError("peer went away")


class StalledWebSocket(DummyWebSocket):
    """Accepts one frame and then never finishes sending."""

    def __init__(self):
        super().__init__()
        self._never = asyncio.Event()

    async def send_json(self, payload):
        self.messages.append(payload)
        await self._never.wait()


async def settle(hub: ChatHub, rounds: int = 5):
    for _ in range(rounds):
        await asyncio.sleep(0.01)
    await hub.wait_idle()


@pytest_asyncio.fixture
async def hub():
    chat_hub = ChatHub()
    yield chat_hub
    await chat_hub.aclose()
