"""
WebSocket Hub: real-time session gateway.

URL: /ws

Connection flow:
  1. Accept connection → assign a transient connection id (uuid4 hex)
  2. Send private "connected" message carrying that id
  3. Message loop (SessionGateway.handle dispatcher)
  4. On disconnect (socket closed or heartbeat timeout): close hosted rooms,
     drop the connection from every roster it joined

Client → server frames are {"type": ..., "data": {...}}:
  create_room     host creates a room from settings
  join_room       join by roomId with a player name
  get_room        fetch a room snapshot (full for host, sanitized otherwise)
  start_game      host deals roles (manual playerRoles map, or random)
  start_voting    host opens voting
  vote            cast/overwrite a vote (voting only)
  end_voting      host closes voting and resolves the round
  guess_word      alive player guesses the good word (playing only)
  restart_game    host resets the room to waiting
  heartbeat       keep-alive → "heartbeat_ack"
  ping            keep-alive → "pong"

Server → client frames are {"type": <event>, ...payload}. Errors go to the
originating connection only as {"type": "error", "message", "code"}.
"""
import json
import logging
import uuid
from typing import Callable, Dict, Optional, Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from agents.game_master import GameMaster, game_master as default_game_master
from models.errors import GameError, NotFound
from models.game import (
    GuessWordRequest,
    JoinRoomRequest,
    Room,
    RoomRequest,
    RoomSettings,
    StartGameRequest,
    Transition,
    VoteRequest,
)
from services.presence import PresenceMonitor
from services.room_store import RoomStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])

# Close code used when the presence monitor drops a silent connection
HEARTBEAT_TIMEOUT_CLOSE_CODE = 4408


# ── Connection Manager ─────────────────────────────────────────────────────────

class ConnectionManager:
    """
    Tracks active WebSocket connections by connection id.
    Room membership lives in the RoomStore, not here.
    """

    def __init__(self):
        # {connection_id: WebSocket}
        self._connections: Dict[str, WebSocket] = {}

    # ── Lifecycle ──────────────────────────────────────────────────────────────

    async def connect(self, ws: WebSocket) -> str:
        await ws.accept()
        connection_id = uuid.uuid4().hex
        self._connections[connection_id] = ws
        logger.debug(f"{connection_id} connected ({self.count()} total)")
        return connection_id

    def disconnect(self, connection_id: str) -> Optional[WebSocket]:
        return self._connections.pop(connection_id, None)

    def get(self, connection_id: str) -> Optional[WebSocket]:
        return self._connections.get(connection_id)

    def count(self) -> int:
        return len(self._connections)

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._connections

    # ── Sending ────────────────────────────────────────────────────────────────

    async def send_to(self, connection_id: str, message: Dict) -> None:
        """Send a private message to a single connection."""
        ws = self._connections.get(connection_id)
        if ws:
            try:
                await ws.send_json(message)
            except Exception as exc:
                logger.warning(f"send_to {connection_id} failed: {exc}")
                self.disconnect(connection_id)


# ── Session Gateway ────────────────────────────────────────────────────────────

class SessionGateway:
    """
    Validates inbound commands, runs them through the game master, persists
    the resulting room and fans the notifications out.

    Every room-addressed command runs under that room's lock, so a
    transition's notifications are all sent before the next command on the
    same room is looked at.
    """

    def __init__(
        self,
        store: RoomStore,
        manager: Optional[ConnectionManager] = None,
        presence: Optional[PresenceMonitor] = None,
        engine: Optional[GameMaster] = None,
    ):
        self.store = store
        self.manager = manager or ConnectionManager()
        self.presence = presence or PresenceMonitor()
        self.engine = engine or default_game_master
        self._handlers: Dict[str, Callable] = {
            "create_room": self._on_create_room,
            "join_room": self._on_join_room,
            "get_room": self._on_get_room,
            "start_game": self._on_start_game,
            "start_voting": self._on_start_voting,
            "vote": self._on_vote,
            "end_voting": self._on_end_voting,
            "guess_word": self._on_guess_word,
            "restart_game": self._on_restart_game,
        }

    # ── Connection lifecycle ──────────────────────────────────────────────────

    async def open(self, ws: WebSocket) -> str:
        connection_id = await self.manager.connect(ws)
        self.presence.touch(connection_id)
        await self.manager.send_to(connection_id, {
            "type": "connected",
            "connectionId": connection_id,
        })
        return connection_id

    async def close(self, connection_id: str) -> None:
        """
        Disconnect sweep: every room hosted by this connection is closed,
        every roster containing it loses that entry. Safe to call twice.
        """
        self.manager.disconnect(connection_id)
        self.presence.forget(connection_id)
        for room_id, _ in self.store.items():
            lock = self.store.lock_existing(room_id)
            if lock is None:
                continue
            async with lock:
                room = self.store.get(room_id)
                if not room:
                    self.store.discard_lock(room_id)
                    continue
                transition = self.engine.remove_connection(room, connection_id)
                if transition is None:
                    continue
                self._commit(room_id, transition)
                await self.deliver(transition)

    async def expire(self, connection_id: str) -> None:
        """Presence timeout: run the disconnect sweep, then drop the socket."""
        ws = self.manager.get(connection_id)
        await self.close(connection_id)
        if ws:
            try:
                await ws.close(code=HEARTBEAT_TIMEOUT_CLOSE_CODE, reason="Heartbeat timeout")
            except Exception as exc:
                logger.debug(f"Closing timed-out socket {connection_id} failed: {exc}")

    # ── Dispatch ──────────────────────────────────────────────────────────────

    async def handle(self, connection_id: str, msg_type: str, data: Dict[str, Any]) -> None:
        self.presence.touch(connection_id)
        try:
            await self._dispatch(connection_id, msg_type, data)
        except WebSocketDisconnect:
            raise
        except ValidationError as exc:
            await self.manager.send_to(connection_id, {
                "type": "error",
                "message": _validation_message(exc),
                "code": "INVALID_PAYLOAD",
            })
        except GameError as exc:
            logger.info(f"{connection_id} {msg_type} rejected: {exc.code} {exc.message}")
            await self.manager.send_to(connection_id, exc.to_message())
        except Exception:
            logger.exception("Unhandled error in handle (type=%s)", msg_type)
            await self.manager.send_to(connection_id, {
                "type": "error", "message": "Internal server error", "code": "SERVER_ERROR"
            })

    async def _dispatch(self, connection_id: str, msg_type: str, data: Dict[str, Any]) -> None:
        if msg_type == "ping":
            await self.manager.send_to(connection_id, {"type": "pong"})
            return
        if msg_type == "heartbeat":
            await self.manager.send_to(connection_id, {"type": "heartbeat_ack"})
            return

        handler = self._handlers.get(msg_type)
        if handler is None:
            await self.manager.send_to(connection_id, {
                "type": "error",
                "message": f"Unknown message type: '{msg_type}'",
                "code": "UNKNOWN_TYPE",
            })
            return
        await handler(connection_id, data)

    # ── Delivery ──────────────────────────────────────────────────────────────

    def _commit(self, room_id: str, transition: Transition) -> None:
        if transition.closed:
            self.store.delete(room_id)
        elif transition.room is not None:
            self.store.put(transition.room)

    async def deliver(self, transition: Transition) -> None:
        for note in transition.notifications:
            for recipient in note.recipients:
                await self.manager.send_to(recipient, note.to_message())

    async def _apply(self, room_id: str, step: Callable[[Room], Transition]) -> Transition:
        lock = self.store.lock_existing(room_id)
        if lock is None:
            raise NotFound("Room not found")
        async with lock:
            room = self.store.get(room_id)
            if not room:
                # Closed while we waited on its lock
                self.store.discard_lock(room_id)
                raise NotFound("Room not found")
            transition = step(room)
            self._commit(room_id, transition)
            await self.deliver(transition)
            return transition

    # ── Handlers ──────────────────────────────────────────────────────────────

    async def _on_create_room(self, connection_id: str, data: Dict) -> None:
        room_settings = RoomSettings.model_validate(data)
        room_id = self.store.new_room_id()
        async with self.store.lock(room_id):
            transition = self.engine.create_room(connection_id, room_settings, room_id)
            self._commit(room_id, transition)
            await self.deliver(transition)

    async def _on_join_room(self, connection_id: str, data: Dict) -> None:
        req = JoinRoomRequest.model_validate(data)
        await self._apply(
            req.room_id,
            lambda room: self.engine.join_room(room, connection_id, req.player_name),
        )

    async def _on_get_room(self, connection_id: str, data: Dict) -> None:
        req = RoomRequest.model_validate(data)
        await self._apply(req.room_id, lambda room: self.engine.view_room(room, connection_id))

    async def _on_start_game(self, connection_id: str, data: Dict) -> None:
        req = StartGameRequest.model_validate(data)
        await self._apply(
            req.room_id,
            lambda room: self.engine.start_game(room, connection_id, req.player_roles),
        )

    async def _on_start_voting(self, connection_id: str, data: Dict) -> None:
        req = RoomRequest.model_validate(data)
        await self._apply(req.room_id, lambda room: self.engine.start_voting(room, connection_id))

    async def _on_vote(self, connection_id: str, data: Dict) -> None:
        req = VoteRequest.model_validate(data)
        await self._apply(
            req.room_id,
            lambda room: self.engine.cast_vote(room, connection_id, req.target_id),
        )

    async def _on_end_voting(self, connection_id: str, data: Dict) -> None:
        req = RoomRequest.model_validate(data)
        await self._apply(req.room_id, lambda room: self.engine.end_voting(room, connection_id))

    async def _on_guess_word(self, connection_id: str, data: Dict) -> None:
        req = GuessWordRequest.model_validate(data)
        await self._apply(
            req.room_id,
            lambda room: self.engine.guess_word(room, connection_id, req.word),
        )

    async def _on_restart_game(self, connection_id: str, data: Dict) -> None:
        req = RoomRequest.model_validate(data)
        await self._apply(req.room_id, lambda room: self.engine.restart_game(room, connection_id))


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "payload"
    return f"Invalid {field}: {first.get('msg', 'invalid value')}"


# ── WebSocket endpoint ─────────────────────────────────────────────────────────

@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    gateway: SessionGateway = ws.app.state.gateway
    connection_id = await gateway.open(ws)

    # ── Message loop ───────────────────────────────────────────────────────────
    try:
        while True:
            raw = await ws.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await gateway.manager.send_to(connection_id, {
                    "type": "error",
                    "message": "Invalid JSON",
                    "code": "PARSE_ERROR",
                })
                continue
            if not isinstance(data, dict):
                data = {}

            msg_type = data.get("type", "")
            # Frontend sends { type, data: { ... } }; unwrap inner payload for handlers
            inner_data = data.get("data") if isinstance(data.get("data"), dict) else {}
            await gateway.handle(connection_id, msg_type, inner_data)

    except WebSocketDisconnect:
        pass
    finally:
        await gateway.close(connection_id)
        logger.debug(f"{connection_id} disconnected")
