"""
Unit tests for chatsdk.chat_sdk with mocked HTTP calls and a fake socket.
"""

import json
import os
import sys

import httpx
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from chatsdk.chat_sdk import ChatClient, ChatError, ChatSession, image_to_data_uri


def make_response(method: str, path: str, payload: dict | list, status_code: int = 200) -> httpx.Response:
    req = httpx.Request(method, f"http://test.local{path}")
    return httpx.Response(status_code=status_code, json=payload, request=req)


class FakeSocket:
    def __init__(self):
        self.sent: list[str] = []

    async def send(self, frame: str):
        self.sent.append(frame)

    def frames(self) -> list:
        return [json.loads(f) for f in self.sent if f != "ping"]


def test_health(monkeypatch):
    client = ChatClient("http://test.local")

    def fake_request(method, path, **kwargs):
        assert method == "GET"
        assert path == "/api/health"
        return make_response(method, path, {"status": "ok", "service": "chathub"})

    monkeypatch.setattr(client._http, "request", fake_request)
    assert client.health()["status"] == "ok"


def test_users(monkeypatch):
    client = ChatClient("http://test.local/")

    def fake_request(method, path, **kwargs):
        assert path == "/api/users"
        return make_response(method, path, {"users": ["alice", "bob"], "connections": 3})

    monkeypatch.setattr(client._http, "request", fake_request)
    assert client.users() == ["alice", "bob"]


def test_socket_url():
    assert ChatClient("http://chat.local:3000")._socket_url() == "ws://chat.local:3000/ws"
    assert ChatClient("https://chat.example.com/")._socket_url() == "wss://chat.example.com/ws"


def test_image_to_data_uri(tmp_path):
    path = tmp_path / "cat.png"
    path.write_bytes(b"\x89PNG\r\n")
    assert image_to_data_uri(path) == "data:image/png;base64,iVBORw0K"


def test_image_to_data_uri_rejects_non_images(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("hello")
    with pytest.raises(ChatError):
        image_to_data_uri(path)


@pytest.mark.asyncio
async def test_session_join_and_send():
    ws = FakeSocket()
    session = ChatSession(ws)

    await session.join("alice")
    await session.send_message("hi")
    await session.send_message("", image="data:image/png;base64,AA==")
    await session.ping()

    join, text, image = ws.frames()
    assert join == {"event_type": "user_joined", "data": "alice"}
    assert text["event_type"] == "send_message"
    assert text["data"]["text"] == "hi"
    assert text["data"]["sender"] == "alice"
    assert "timestamp" in text["data"]
    assert "image" not in text["data"]
    assert image["data"]["image"] == "data:image/png;base64,AA=="
    assert ws.sent[-1] == "ping"


@pytest.mark.asyncio
async def test_send_before_join_needs_sender():
    session = ChatSession(FakeSocket())
    with pytest.raises(ChatError):
        await session.send_message("hi")
    await session.send_message("hi", sender="anon")
