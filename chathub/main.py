"""
Chat Hub — FastAPI service exposing the realtime chat socket.
"""

import logging
import os
import uuid

import uvicorn
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from .events import OutboundKind
from .hub import DEFAULT_OUTBOX_SIZE, ChatHub
from .models import HealthResponse, UsersResponse

logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger("chathub.app")


# ── Server Configuration ──────────────────────────────────────────

def _load_cors_origins() -> list[str]:
    """Allowed origins from CORS_ORIGINS (comma separated)."""
    raw = os.environ.get("CORS_ORIGINS", "http://localhost:5173")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def create_app(hub: ChatHub | None = None) -> FastAPI:
    app = FastAPI(title="Chat Hub", version="0.1.0")
    app.state.hub = hub or ChatHub(
        outbox_size=int(os.environ.get("CHAT_OUTBOX_SIZE", str(DEFAULT_OUTBOX_SIZE))),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_load_cors_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.on_event("shutdown")
    async def _shutdown_hub():
        await app.state.hub.aclose()

    @app.websocket("/ws")
    async def chat_socket(ws: WebSocket):
        hub: ChatHub = ws.app.state.hub
        connection_id = uuid.uuid4().hex
        await ws.accept()
        await hub.on_connect(connection_id, ws)
        await hub.send(connection_id, OutboundKind.CONNECTED, {"connection_id": connection_id})
        try:
            while hub.is_connected(connection_id):
                msg = await ws.receive_text()
                if msg.strip().lower() == "ping":
                    await hub.send(connection_id, OutboundKind.PONG, {"ok": True})
                    continue
                await hub.receive(connection_id, msg)
        except WebSocketDisconnect:
            pass
        except Exception as exc:
            logger.warning(f"Socket {connection_id} closed on error: {exc}")
        finally:
            await hub.on_disconnect(connection_id)

    # ── Public Status ───────────────────────────────────────────

    @app.get("/api/health", response_model=HealthResponse)
    def health():
        return HealthResponse()

    @app.get("/api/users", response_model=UsersResponse)
    async def users():
        hub: ChatHub = app.state.hub
        return UsersResponse(
            users=await hub.participants(),
            connections=hub.connection_count,
        )

    return app


app = create_app()


def run():
    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "3000"))
    logger.info(f"Server is running on port {port}")
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run()
