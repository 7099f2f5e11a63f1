from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from backend import create_stores
from broadcaster import Broadcaster
from connection import WebSocketConnection
from constants import CORS_ORIGINS, LOG_FILE, LOG_LEVEL
from errors import InvalidHandshake, TransportError
from logging_config import get_logger, setup_logging
from registry import RoomRegistry
from routers.rooms import rooms_router
from session import ChatSession

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def create_app(registry: RoomRegistry = None, history_store=None, user_store=None) -> FastAPI:
    """Build the chat relay application.

    Collaborators that are not passed in are created from configuration.
    """
    app = FastAPI(title="Chat Relay")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if history_store is None or user_store is None:
        default_history_store, default_user_store = create_stores()
        history_store = history_store or default_history_store
        user_store = user_store or default_user_store

    app.state.registry = registry if registry is not None else RoomRegistry()
    app.state.broadcaster = Broadcaster(app.state.registry)
    app.state.history_store = history_store
    app.state.user_store = user_store

    app.include_router(rooms_router)

    @app.get("/health")
    async def health():
        return {"ok": True}

    @app.websocket("/chat/{username}/{room}")
    async def chat_endpoint(websocket: WebSocket, username: str, room: str):
        """Relay chat messages between every client connected to the same room."""
        await websocket.accept()
        connection = WebSocketConnection(websocket)
        logger.info(f"WebSocket connection {connection.connection_id} accepted: {username} -> {room}")

        session = ChatSession(
            connection,
            app.state.registry,
            app.state.broadcaster,
            app.state.history_store,
            app.state.user_store,
        )
        try:
            await session.on_open(username, room)

            while True:
                try:
                    text = await connection.receive()
                except WebSocketDisconnect:
                    logger.info(f"WebSocket {connection.connection_id} disconnected normally")
                    break
                await session.on_message(text)
        except InvalidHandshake as e:
            logger.info(f"Handshake rejected for connection {connection.connection_id}: {e}")
        except Exception as e:
            transport_error = TransportError(f"Connection {connection.connection_id} failed: {e}")
            transport_error.__cause__ = e
            session.on_error(transport_error)
        finally:
            await session.on_close()
            await connection.close()

    logger.info("FastAPI application initialized")
    return app


app = create_app()
