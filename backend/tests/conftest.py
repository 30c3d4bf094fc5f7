import asyncio
import random
from typing import Dict, List, Optional

import pytest

from agents.game_master import GameMaster
from models.game import PlayerState, PlayerStatus, Role, Room, RoomSettings, RoomState
from routers.ws_router import SessionGateway
from services.presence import PresenceMonitor
from services.room_store import RoomStore

HOST = "host"


def make_settings(good: int = 2, evil: int = 1, blank: int = 0) -> RoomSettings:
    return RoomSettings(
        good_count=good,
        evil_count=evil,
        blank_count=blank,
        good_word="apple",
        evil_word="pear",
    )


def make_room(
    roles: Optional[List[Optional[Role]]] = None,
    state: RoomState = RoomState.PLAYING,
    good: int = 2,
    evil: int = 1,
    blank: int = 0,
) -> Room:
    """Room with players p1..pN carrying the given roles (and matching words)."""
    settings = make_settings(good, evil, blank)
    room = Room(room_id="123456", host=HOST, state=state, **settings.model_dump())
    for index, role in enumerate(roles or []):
        room.players.append(PlayerState(
            id=f"p{index + 1}",
            name=f"Player {index + 1}",
            role=role,
            word=room.word_for(role),
        ))
    return room


def with_votes(room: Room, votes: Dict[str, str]) -> Room:
    for p in room.players:
        if p.id in votes:
            p.vote = votes[p.id]
    return room


def eliminate(room: Room, *player_ids: str) -> Room:
    for p in room.players:
        if p.id in player_ids:
            p.status = PlayerStatus.ELIMINATED
    return room


class FakeWebSocket:
    """Records everything the server sends."""

    def __init__(self):
        self.accepted = False
        self.sent: List[dict] = []
        self.closed_with: Optional[int] = None

    async def accept(self):
        self.accepted = True

    async def send_json(self, message):
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: Optional[str] = None):
        self.closed_with = code

    def of_type(self, msg_type: str) -> List[dict]:
        return [m for m in self.sent if m["type"] == msg_type]

    def last(self, msg_type: str) -> dict:
        matches = self.of_type(msg_type)
        assert matches, f"no {msg_type!r} message in {[m['type'] for m in self.sent]}"
        return matches[-1]


class YieldingWebSocket(FakeWebSocket):
    """Gives up the event loop on every send, like a real socket write."""

    async def send_json(self, message):
        await asyncio.sleep(0)
        self.sent.append(message)


@pytest.fixture
def engine() -> GameMaster:
    return GameMaster()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def store() -> RoomStore:
    return RoomStore(room_id_attempts=20)


@pytest.fixture
def gateway(store) -> SessionGateway:
    return SessionGateway(store, presence=PresenceMonitor(timeout=30, interval=25))
