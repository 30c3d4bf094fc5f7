from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict, Any
from enum import Enum
from datetime import datetime, timezone


def _utcnow() -> datetime:
    """Timezone-aware UTC datetime (replaces deprecated datetime.utcnow)."""
    return datetime.now(timezone.utc)


class Role(str, Enum):
    GOOD = "good"
    EVIL = "evil"
    BLANK = "blank"  # No word; wins by guessing the good word


class PlayerStatus(str, Enum):
    ALIVE = "alive"
    ELIMINATED = "eliminated"


class RoomState(str, Enum):
    WAITING = "waiting"     # lobby: players joining
    PLAYING = "playing"     # describing words / guessing
    VOTING = "voting"
    ENDED = "ended"


class PlayerState(BaseModel):
    id: str
    name: str
    role: Optional[Role] = None
    word: Optional[str] = None
    status: PlayerStatus = PlayerStatus.ALIVE
    vote: Optional[str] = None

    @property
    def alive(self) -> bool:
        return self.status == PlayerStatus.ALIVE

    def to_public(self) -> Dict[str, Any]:
        """Safe representation: omits role, word and vote."""
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
        }

    def to_full(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role.value if self.role else None,
            "word": self.word,
            "status": self.status.value,
            "vote": self.vote,
        }


class RoomSettings(BaseModel):
    """Host-chosen settings, fixed for the lifetime of the room."""

    model_config = ConfigDict(populate_by_name=True)

    good_count: int = Field(alias="goodCount", ge=1)
    evil_count: int = Field(alias="evilCount", ge=1)
    blank_count: int = Field(default=0, alias="blankCount", ge=0)
    good_word: str = Field(alias="goodWord")
    evil_word: str = Field(alias="evilWord")

    @field_validator("good_word", "evil_word")
    @classmethod
    def _word_not_blank(cls, value: str) -> str:
        # Words are compared verbatim on guesses, so they are not stripped here
        if not value.strip():
            raise ValueError("word must not be empty")
        return value

    @property
    def total_slots(self) -> int:
        return self.good_count + self.evil_count + self.blank_count


class Room(RoomSettings):
    room_id: str = Field(alias="roomId")
    host: str
    players: List[PlayerState] = Field(default_factory=list)
    state: RoomState = RoomState.WAITING
    winner: Optional[Role] = None
    created_at: datetime = Field(default_factory=_utcnow, alias="createdAt")

    def get_player(self, player_id: str) -> Optional[PlayerState]:
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def alive_players(self) -> List[PlayerState]:
        return [p for p in self.players if p.alive]

    def member_ids(self) -> List[str]:
        """Host first, then players in join order (the host may also play)."""
        ids = [self.host]
        ids.extend(p.id for p in self.players if p.id != self.host)
        return ids

    def non_host_ids(self) -> List[str]:
        return [p.id for p in self.players if p.id != self.host]

    def word_for(self, role: Optional[Role]) -> Optional[str]:
        if role == Role.GOOD:
            return self.good_word
        if role == Role.EVIL:
            return self.evil_word
        return None

    def to_full(self) -> Dict[str, Any]:
        """Host view: every role, word and vote."""
        data = self._base_view()
        data["goodWord"] = self.good_word
        data["evilWord"] = self.evil_word
        data["players"] = [p.to_full() for p in self.players]
        return data

    def to_public(self) -> Dict[str, Any]:
        """Non-host view: words stripped, players reduced to id/name/status."""
        data = self._base_view()
        data["players"] = [p.to_public() for p in self.players]
        return data

    def _base_view(self) -> Dict[str, Any]:
        return {
            "roomId": self.room_id,
            "host": self.host,
            "state": self.state.value,
            "goodCount": self.good_count,
            "evilCount": self.evil_count,
            "blankCount": self.blank_count,
            "winner": self.winner.value if self.winner else None,
            "createdAt": self.created_at.isoformat(),
        }


# ── Engine output ─────────────────────────────────────────────────────────────

class Notification(BaseModel):
    """One outbound message and the connection ids that must receive it."""
    event: str
    recipients: List[str]
    payload: Dict[str, Any] = {}

    def to_message(self) -> Dict[str, Any]:
        return {"type": self.event, **self.payload}


class Transition(BaseModel):
    room: Optional[Room] = None
    notifications: List[Notification] = []
    closed: bool = False  # True when the room must be deleted from the store

    def messages_for(self, recipient: str) -> List[Dict[str, Any]]:
        return [
            n.to_message() for n in self.notifications
            if recipient in n.recipients
        ]


# ── WebSocket message shapes ──────────────────────────────────────────────────

class RoomRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(alias="roomId")


class JoinRoomRequest(RoomRequest):
    player_name: str = Field(alias="playerName")

    @field_validator("player_name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("player name must not be empty")
        return value


class StartGameRequest(RoomRequest):
    player_roles: Optional[Dict[str, Role]] = Field(default=None, alias="playerRoles")


class VoteRequest(RoomRequest):
    target_id: str = Field(alias="targetId")


class GuessWordRequest(RoomRequest):
    word: str


# ── HTTP response models ──────────────────────────────────────────────────────

class RoomCountResponse(BaseModel):
    count: int
