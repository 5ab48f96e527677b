"""
Chat hub: owns the live connections and the session registry, and fans
events out to every connected client.
"""

from __future__ import annotations

import asyncio
import logging
from asyncio import Lock
from contextlib import suppress
from typing import Any, Awaitable, Callable, Optional, Protocol

from pydantic import ValidationError

from .errors import (
    ChatHubError,
    MalformedEventError,
    NameTakenError,
    UnknownConnectionError,
)
from .events import InboundKind, OutboundKind, envelope, parse_frame
from .models import ChatMessage, system_message
from .registry import SessionRegistry

logger = logging.getLogger("chathub.hub")

DEFAULT_OUTBOX_SIZE = 256
SINK_CLOSE_TIMEOUT = 1.0


class Sink(Protocol):
    async def send_json(self, data: Any) -> None:
        ...

    async def close(self) -> None:
        ...


class Connection:
    """A client sink fed in FIFO order from a bounded outbox by its own task."""

    def __init__(
        self,
        connection_id: str,
        sink: Sink,
        outbox_size: int,
        on_failure: Callable[[str], Awaitable[Any]],
    ):
        self.id = connection_id
        self.sink = sink
        self.outbox: asyncio.Queue[dict] = asyncio.Queue(maxsize=outbox_size)
        self._on_failure = on_failure
        self._writer: Optional[asyncio.Task] = None

    def start(self):
        self._writer = asyncio.create_task(self._pump())

    def offer(self, message: dict) -> bool:
        """Queue a frame without waiting. False means the outbox is full."""
        try:
            self.outbox.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    async def _pump(self):
        while True:
            message = await self.outbox.get()
            try:
                await self.sink.send_json(message)
            except Exception as exc:
                logger.info(f"Send to {self.id} failed, dropping connection: {exc}")
                break
            finally:
                self.outbox.task_done()
        self._discard_pending()
        await self._on_failure(self.id)

    def _discard_pending(self):
        while not self.outbox.empty():
            self.outbox.get_nowait()
            self.outbox.task_done()

    def close(self):
        if self._writer is not None and self._writer is not asyncio.current_task():
            self._writer.cancel()
        self._discard_pending()

    async def wait_closed(self):
        if self._writer is None or self._writer is asyncio.current_task():
            return
        with suppress(asyncio.CancelledError):
            await self._writer

    async def close_sink(self):
        """Close the client's transport; it may already be gone."""
        try:
            await asyncio.wait_for(self.sink.close(), timeout=SINK_CLOSE_TIMEOUT)
        except Exception as exc:
            logger.debug(f"Closing {self.id} transport: {exc}")


class ChatHub:
    """Tracks connections and participants; broadcasts chat and presence events.

    Every state change runs under one lock, and broadcasting only ever
    enqueues, so a slow client cannot hold up anyone else.
    """

    def __init__(self, outbox_size: int = DEFAULT_OUTBOX_SIZE):
        self._connections: dict[str, Connection] = {}
        self._registry = SessionRegistry()
        self._lock = Lock()
        self._outbox_size = outbox_size
        self._closing: list[Connection] = []

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    @property
    def outbox_size(self) -> int:
        return self._outbox_size

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._connections

    async def participants(self) -> list[str]:
        async with self._lock:
            return self._registry.snapshot()

    # ── Inbound events ─────────────────────────────────────

    async def on_connect(self, connection_id: str, sink: Sink):
        async with self._lock:
            if connection_id in self._connections:
                logger.warning(f"Connection {connection_id} is already registered")
                return
            conn = Connection(connection_id, sink, self._outbox_size, self.on_disconnect)
            conn.start()
            self._connections[connection_id] = conn
        logger.info(f"User connected: {connection_id}")

    async def on_join_request(self, connection_id: str, requested_name: Any) -> bool:
        if not isinstance(requested_name, str) or not requested_name:
            raise MalformedEventError("Username must be a non-empty string")

        async with self._lock:
            conn = self._require(connection_id)
            try:
                previous = self._registry.try_join(connection_id, requested_name)
            except NameTakenError as exc:
                logger.info(f"Rejected join from {connection_id}: {exc}")
                self._offer(conn, envelope(OutboundKind.USERNAME_TAKEN, exc.name))
                accepted = False
            else:
                if previous is not None and previous != requested_name:
                    logger.info(f"{connection_id} renamed from {previous} to {requested_name}")
                logger.info(f"Active users: {self._registry.snapshot()}")

                self._broadcast_user_list()
                self._broadcast_message(system_message(f"{requested_name} has joined the chat!"))
                accepted = True
        await self._reap()
        return accepted

    async def on_chat_message(self, connection_id: str, message: ChatMessage | dict) -> ChatMessage:
        if not isinstance(message, ChatMessage):
            try:
                message = ChatMessage.model_validate(message)
            except ValidationError as exc:
                raise MalformedEventError(f"Invalid chat message: {exc}") from exc

        async with self._lock:
            self._require(connection_id)
            accepted = message.stamped()
            logger.info(f"Message received from {accepted.sender}: {accepted.text!r}")
            self._broadcast_message(accepted)
        await self._reap()
        return accepted

    async def on_disconnect(self, connection_id: str) -> Optional[str]:
        """Forget a connection. Safe to call more than once."""
        async with self._lock:
            known = connection_id in self._connections
            name = self._drop(connection_id)
        await self._reap()
        if known:
            logger.info(f"User disconnected: {name} ({connection_id})")
        return name

    async def dispatch(self, connection_id: str, event_type: Any, data: Any):
        """Route one inbound event. Bad input is logged and ignored."""
        try:
            kind = InboundKind(event_type)
        except ValueError:
            logger.warning(f"Ignoring unknown event {event_type!r} from {connection_id}")
            return

        try:
            if kind is InboundKind.JOIN:
                await self.on_join_request(connection_id, data)
            elif kind is InboundKind.MESSAGE:
                await self.on_chat_message(connection_id, data)
        except UnknownConnectionError as exc:
            logger.debug(f"Ignoring {kind.value}: {exc}")
        except ChatHubError as exc:
            logger.warning(f"Ignoring {kind.value} from {connection_id}: {exc}")

    async def receive(self, connection_id: str, raw: str):
        """Decode a raw socket frame and dispatch it."""
        try:
            kind, data = parse_frame(raw)
        except MalformedEventError as exc:
            logger.warning(f"Ignoring frame from {connection_id}: {exc}")
            return
        await self.dispatch(connection_id, kind, data)

    # ── Outbound helpers ───────────────────────────────────

    async def send(self, connection_id: str, kind: OutboundKind, data: Any) -> bool:
        """Queue a frame for one connection only."""
        async with self._lock:
            conn = self._connections.get(connection_id)
            if conn is None:
                return False
            self._offer(conn, envelope(kind, data))
        await self._reap()
        return True

    async def wait_idle(self):
        """Block until every queued frame has been handed to its sink."""
        async with self._lock:
            queues = [conn.outbox for conn in self._connections.values()]
        await asyncio.gather(*(queue.join() for queue in queues))

    async def aclose(self):
        async with self._lock:
            conns = list(self._connections.values())
            self._connections.clear()
            self._registry.clear()
            for conn in conns:
                conn.close()
            self._closing.extend(conns)
        await self._reap()

    # ── Internals (lock held) ──────────────────────────────

    def _require(self, connection_id: str) -> Connection:
        conn = self._connections.get(connection_id)
        if conn is None:
            raise UnknownConnectionError(
                f"Unknown connection {connection_id}",
                connection_id=connection_id,
            )
        return conn

    def _offer(self, conn: Connection, message: dict):
        if not conn.offer(message):
            self._drop_slow([conn.id])

    def _broadcast(self, message: dict):
        slow = [conn.id for conn in self._connections.values() if not conn.offer(message)]
        if slow:
            self._drop_slow(slow)

    def _drop_slow(self, connection_ids: list[str]):
        for connection_id in connection_ids:
            logger.warning(f"Outbox full for {connection_id}, dropping slow consumer")
            self._drop(connection_id)

    def _broadcast_user_list(self):
        self._broadcast(envelope(OutboundKind.USER_LIST, self._registry.snapshot()))

    def _broadcast_message(self, message: ChatMessage):
        self._broadcast(envelope(OutboundKind.MESSAGE, message.to_wire()))

    def _drop(self, connection_id: str) -> Optional[str]:
        conn = self._connections.pop(connection_id, None)
        name = self._registry.remove(connection_id)
        if conn is not None:
            conn.close()
            self._closing.append(conn)
        if name is not None:
            self._broadcast_user_list()
            self._broadcast_message(system_message(f"{name} has left the chat."))
        return name

    async def _reap(self):
        closing, self._closing = self._closing, []
        for conn in closing:
            await conn.wait_closed()
            await conn.close_sink()
