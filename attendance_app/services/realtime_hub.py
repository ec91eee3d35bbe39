"""WebSocket hub: handshake, connection registry, message routing.

Clients connect to ``/ws?token=<jwt>``.  A bad or missing token gets one
``ERROR`` frame and the socket is closed.  Otherwise every text frame is
parsed as ``{"event": ..., "data": {...}}`` and handed to the event handlers,
which decide whether the answer is broadcast or sent back to the caller only.

The registry is guarded by its own lock.  Broadcasts iterate over a snapshot
so no lock is held while frames are being written.
"""
from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import TYPE_CHECKING, Any

from fastapi import WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, ValidationError
from starlette.websockets import WebSocketState

from attendance_app.exceptions import AuthenticationError, ProtocolError
from attendance_app.schemas.events import ERROR_EVENT, Envelope, ErrorPayload, EventType, Role
from attendance_app.services.auth_service import Identity, TokenService

if TYPE_CHECKING:  # import for type checking only
    from attendance_app.services.event_handlers import AttendanceEventHandlers

logger = logging.getLogger(__name__)

UNAUTHORIZED_MESSAGE = "Unauthorized or invalid token"
INVALID_FORMAT_MESSAGE = "Invalid message format"
UNKNOWN_EVENT_MESSAGE = "Unknown event"
INTERNAL_ERROR_MESSAGE = "Internal server error"


def encode_frame(event: str, payload: BaseModel | dict[str, Any]) -> str:
    data = payload.model_dump() if isinstance(payload, BaseModel) else payload
    return json.dumps({"event": event, "data": data})


def parse_frame(raw: str) -> tuple[EventType, dict[str, Any]]:
    """Decode one inbound frame.  Raises :class:`ProtocolError`."""
    try:
        envelope = Envelope.model_validate_json(raw)
    except ValidationError as exc:
        raise ProtocolError(INVALID_FORMAT_MESSAGE) from exc

    try:
        event_type = EventType(envelope.event)
    except ValueError as exc:
        raise ProtocolError(UNKNOWN_EVENT_MESSAGE) from exc

    return event_type, envelope.data or {}


# ─────────────────────────────────────────────────────────────────────────────
#  Connections
# ─────────────────────────────────────────────────────────────────────────────

class Connection:
    """One authenticated socket.  Its identity never changes."""

    def __init__(self, websocket: WebSocket, identity: Identity) -> None:
        self.id = uuid.uuid4().hex[:12]
        self._websocket = websocket
        self._identity = identity

    @property
    def identity(self) -> Identity:
        return self._identity

    @property
    def user_id(self) -> str:
        return self._identity.user_id

    @property
    def role(self) -> Role:
        return self._identity.role

    @property
    def is_open(self) -> bool:
        return (
            self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, event: str, payload: BaseModel | dict[str, Any]) -> bool:
        """Write one frame.  Returns False if the socket is already gone."""
        if not self.is_open:
            return False
        try:
            await self._websocket.send_text(encode_frame(event, payload))
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            logger.debug("[%s] Send of %s failed: %s", self.id, event, exc)
            return False
        return True

    def __repr__(self) -> str:
        return f"Connection(id={self.id!r}, user_id={self.user_id!r}, role={self.role.value!r})"


class ConnectionRegistry:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._connections: set[Connection] = set()

    async def add(self, connection: Connection) -> None:
        async with self._lock:
            self._connections.add(connection)

    async def remove(self, connection: Connection) -> None:
        async with self._lock:
            self._connections.discard(connection)

    async def snapshot(self) -> list[Connection]:
        async with self._lock:
            return list(self._connections)

    def __len__(self) -> int:
        return len(self._connections)


# ─────────────────────────────────────────────────────────────────────────────
#  Hub
# ─────────────────────────────────────────────────────────────────────────────

class RealtimeHub:
    def __init__(self, tokens: TokenService, registry: ConnectionRegistry | None = None) -> None:
        self._tokens = tokens
        self.registry = registry if registry is not None else ConnectionRegistry()
        self._handlers: AttendanceEventHandlers | None = None

    def attach(self, handlers: AttendanceEventHandlers) -> None:
        self._handlers = handlers

    # ── delivery primitives ─────────────────────────────────────────────
    async def unicast(self, connection: Connection, event: str, payload: BaseModel | dict[str, Any]) -> bool:
        return await connection.send(event, payload)

    async def broadcast(self, event: str, payload: BaseModel | dict[str, Any]) -> int:
        """Send to every open connection; closed ones are skipped."""
        delivered = 0
        for connection in await self.registry.snapshot():
            if await connection.send(event, payload):
                delivered += 1
        logger.debug("Broadcast %s to %d connection(s)", event, delivered)
        return delivered

    async def send_error(self, connection: Connection, message: str) -> bool:
        return await self.unicast(connection, ERROR_EVENT, ErrorPayload(message=message))

    # ── connection lifecycle ────────────────────────────────────────────
    async def authenticate(self, websocket: WebSocket) -> Identity | None:
        token = websocket.query_params.get("token")
        try:
            return self._tokens.verify(token)
        except AuthenticationError as exc:
            logger.warning("Rejected realtime handshake from %s: %s", websocket.client, exc.message)
            await websocket.send_text(encode_frame(ERROR_EVENT, ErrorPayload(message=UNAUTHORIZED_MESSAGE)))
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return None

    async def serve(self, websocket: WebSocket) -> None:
        """Run one client socket from handshake to disconnect."""
        await websocket.accept()

        identity = await self.authenticate(websocket)
        if identity is None:
            return

        connection = Connection(websocket, identity)
        await self.registry.add(connection)
        logger.info("[%s] Connected: user=%s role=%s (%d open)",
                    connection.id, connection.user_id, connection.role.value, len(self.registry))

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None and message.get("bytes") is not None:
                    raw = message["bytes"].decode("utf-8", errors="replace")
                await self.handle_message(connection, raw or "")
        except WebSocketDisconnect:
            pass
        finally:
            await self.registry.remove(connection)
            logger.info("[%s] Disconnected (%d open)", connection.id, len(self.registry))

    async def handle_message(self, connection: Connection, raw: str) -> None:
        try:
            event_type, data = parse_frame(raw)
        except ProtocolError as exc:
            await self.send_error(connection, exc.message)
            return

        if self._handlers is None:
            raise RuntimeError("RealtimeHub has no event handlers attached")

        try:
            await self._handlers.handle(event_type, connection, data)
        except Exception:
            logger.exception("[%s] Unhandled error while processing %s", connection.id, event_type.value)
            await self.send_error(connection, INTERNAL_ERROR_MESSAGE)
