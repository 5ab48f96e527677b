"""
Chat Hub SDK client.

Provides a thin Python wrapper around the Chat Hub HTTP and WebSocket APIs.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import mimetypes
from contextlib import asynccontextmanager
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable
from urllib.parse import urlparse

import httpx
import websockets

logger = logging.getLogger("chathub.sdk")


@dataclass
class ChatError(Exception):
    message: str
    status_code: int | None = None

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.status_code}: {self.message}"


class NotFoundError(ChatError):
    pass


class ServerError(ChatError):
    pass


def image_to_data_uri(path: str | Path) -> str:
    """Read an image file into a ``data:`` URI suitable for ``send_message``."""
    path = Path(path)
    mime, _ = mimetypes.guess_type(path.name)
    if mime is None or not mime.startswith("image/"):
        raise ChatError(f"Not an image file: {path.name}")
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime};base64,{encoded}"


class ChatSession:
    """An open chat socket. Obtained from ``ChatClient.connect``."""

    def __init__(self, ws):
        self.ws = ws
        self.username: str | None = None

    async def _emit(self, event_type: str, data: Any):
        await self.ws.send(json.dumps({"event_type": event_type, "data": data}))

    async def join(self, username: str):
        self.username = username
        await self._emit("user_joined", username)

    async def send_message(
        self,
        text: str,
        sender: str | None = None,
        image: str | None = None,
    ):
        sender = sender or self.username
        if not sender:
            raise ChatError("Join the chat (or pass sender) before sending")
        payload: dict[str, Any] = {
            "text": text,
            "sender": sender,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if image is not None:
            payload["image"] = image
        await self._emit("send_message", payload)

    async def ping(self):
        await self.ws.send("ping")


class ChatClient:
    def __init__(self, base_url: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self._http = httpx.Client(base_url=self.base_url, timeout=timeout)

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = self._http.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise self._map_http_error(exc) from exc
        except httpx.RequestError as exc:
            raise ServerError(str(exc), status_code=None) from exc
        if response.content:
            return response.json()
        return None

    def _error_detail(self, response: httpx.Response) -> str:
        try:
            payload = response.json()
            if isinstance(payload, dict) and "detail" in payload:
                detail = payload["detail"]
                if isinstance(detail, str):
                    return detail
                return json.dumps(detail)
        except ValueError:
            pass
        if response.text:
            return response.text
        return response.reason_phrase or "Request failed"

    def _map_http_error(self, exc: httpx.HTTPStatusError) -> ChatError:
        status_code = exc.response.status_code
        detail = self._error_detail(exc.response)
        if status_code == 404:
            return NotFoundError(detail, status_code=status_code)
        if status_code >= 500:
            return ServerError(detail, status_code=status_code)
        return ChatError(detail, status_code=status_code)

    # ── Status ───────────────────────────────────────────────

    def health(self) -> dict:
        return self._request("GET", "/api/health")

    def users(self) -> list[str]:
        data = self._request("GET", "/api/users")
        return list(data.get("users", []))

    # ── Chat socket ──────────────────────────────────────────

    def _socket_url(self) -> str:
        parsed = urlparse(self.base_url)
        scheme = "wss" if parsed.scheme == "https" else "ws"
        return f"{scheme}://{parsed.netloc}/ws"

    @asynccontextmanager
    async def connect(self, on_event: Callable[[dict], Any]):
        """
        Open the chat socket and invoke `on_event` for each incoming event.

        Usage:
            async with client.connect(handler) as session:
                await session.join("alice")
                await session.send_message("hi")
        """
        ws = await websockets.connect(self._socket_url())
        logger.info(f"Connected to {self._socket_url()}")

        async def _listener():
            async for raw in ws:
                try:
                    event = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning(f"Dropping non-JSON frame: {raw!r}")
                    continue
                result = on_event(event)
                if asyncio.iscoroutine(result):
                    await result

        task = asyncio.create_task(_listener())
        try:
            yield ChatSession(ws)
        finally:
            task.cancel()
            with suppress(asyncio.CancelledError, websockets.ConnectionClosed):
                await task
            await ws.close()
