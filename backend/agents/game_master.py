"""
Game Master: Pure deterministic Python, no I/O.

Responsibilities:
- Room creation and roster changes (join, disconnect)
- Role/word assignment on game start
- Vote recording, tallying and majority elimination
- Word-guess resolution
- Win condition checks
- Restart

Every operation takes the current Room, works on a deep copy and returns a
Transition: the new Room plus the notifications to fan out, each addressed to
explicit connection ids. Rule violations raise GameError before anything is
changed, so a transition either fully applies or not at all.
"""
import logging
import random
from datetime import datetime
from typing import Optional, Dict, Any, List

from agents.role_assigner import role_assigner
from models.errors import InvalidActor, PreconditionFailed, Unauthorized
from models.game import (
    Notification,
    PlayerState,
    PlayerStatus,
    Role,
    Room,
    RoomSettings,
    RoomState,
    Transition,
)

logger = logging.getLogger(__name__)

GUESS_FAILED_REASON = "Wrong guess"
HOST_LEFT_MESSAGE = "The host has left, the room is closed"


class GameMaster:
    """
    Deterministic game logic engine.
    Holds no state of its own; the Room passed in is never mutated.
    """

    # ── Notification helpers ──────────────────────────────────────────────────

    @staticmethod
    def _notify(event: str, recipients: List[str], payload: Optional[Dict[str, Any]] = None) -> Notification:
        return Notification(event=event, recipients=list(recipients), payload=payload or {})

    def _room_views(self, event: str, room: Room, **extra: Any) -> List[Notification]:
        """
        The same room event twice: full snapshot to the host, sanitized
        snapshot to every other member.
        """
        notes = [self._notify(event, [room.host], {**extra, "room": room.to_full()})]
        others = room.non_host_ids()
        if others:
            notes.append(self._notify(event, others, {**extra, "room": room.to_public()}))
        return notes

    @staticmethod
    def _require_host(room: Room, caller_id: str, action: str) -> None:
        if room.host != caller_id:
            raise Unauthorized(f"Only the host can {action}")

    @staticmethod
    def _require_state(room: Room, state: RoomState, message: str) -> None:
        if room.state != state:
            raise PreconditionFailed(message)

    @staticmethod
    def _require_alive_member(room: Room, caller_id: str) -> PlayerState:
        player = room.get_player(caller_id)
        if not player or not player.alive:
            raise InvalidActor("Player is not in this room or has been eliminated")
        return player

    # ── Room lifecycle ────────────────────────────────────────────────────────

    def create_room(
        self,
        host_id: str,
        settings: RoomSettings,
        room_id: str,
        now: Optional[datetime] = None,
    ) -> Transition:
        fields: Dict[str, Any] = {"room_id": room_id, "host": host_id, **settings.model_dump()}
        if now is not None:
            fields["created_at"] = now
        room = Room(**fields)
        logger.info(f"[{room_id}] Room created by host {host_id}")
        return Transition(
            room=room,
            notifications=[self._notify("room_created", [host_id], {"room": room.to_full()})],
        )

    def join_room(self, room: Room, player_id: str, name: str) -> Transition:
        """Append a fresh alive player. Not gated on room state."""
        if room.get_player(player_id):
            raise PreconditionFailed("Already joined this room")

        updated = room.model_copy(deep=True)
        updated.players.append(PlayerState(id=player_id, name=name))
        logger.info(f"[{room.room_id}] Player {player_id} ({name}) joined")

        notes = self._room_views("room_updated", updated)
        notes.append(self._notify("joined_room", [player_id], {
            "roomId": updated.room_id,
            "playerId": player_id,
        }))
        return Transition(room=updated, notifications=notes)

    def view_room(self, room: Room, caller_id: str) -> Transition:
        view = room.to_full() if room.host == caller_id else room.to_public()
        return Transition(
            room=room,
            notifications=[self._notify("room_updated", [caller_id], {"room": view})],
        )

    def remove_connection(self, room: Room, connection_id: str) -> Optional[Transition]:
        """
        Handle a dropped connection. Returns None when the connection has
        nothing to do with this room.

        Host loss closes the room. A player leaving is simply removed; win
        conditions are not re-evaluated.
        """
        if room.host == connection_id:
            logger.info(f"[{room.room_id}] Host left: closing room")
            recipients = room.non_host_ids()
            notes = []
            if recipients:
                notes.append(self._notify("room_closed", recipients, {
                    "roomId": room.room_id,
                    "message": HOST_LEFT_MESSAGE,
                }))
            return Transition(room=None, notifications=notes, closed=True)

        if not room.get_player(connection_id):
            return None

        updated = room.model_copy(deep=True)
        updated.players = [p for p in updated.players if p.id != connection_id]
        logger.info(f"[{room.room_id}] Player {connection_id} left")
        return Transition(
            room=updated,
            notifications=self._room_views("player_left", updated, playerId=connection_id),
        )

    # ── Game start ────────────────────────────────────────────────────────────

    def start_game(
        self,
        room: Room,
        caller_id: str,
        player_roles: Optional[Dict[str, Role]] = None,
        rng: Optional[random.Random] = None,
    ) -> Transition:
        """
        waiting → playing. Roles come from player_roles when given (manual),
        otherwise from a shuffled pool (random).

        Each player is told only their own role and word.
        """
        self._require_host(room, caller_id, "start the game")
        self._require_state(room, RoomState.WAITING, "The game has already started")
        if len(room.players) < room.total_slots:
            raise PreconditionFailed(f"At least {room.total_slots} players are needed to start")

        if player_roles is not None:
            players = role_assigner.assign_manual(room.players, player_roles, room.word_for)
            mode = "manual"
        else:
            players = role_assigner.assign_random(room.players, room, room.word_for, rng)
            mode = "random"

        updated = room.model_copy(deep=True)
        updated.players = players
        updated.state = RoomState.PLAYING
        updated.winner = None

        notes = [
            self._notify("game_started", [p.id], {
                "role": p.role.value if p.role else None,
                "word": p.word,
            })
            for p in players
        ]
        notes.extend(self._room_views("room_updated", updated))
        logger.info(f"[{room.room_id}] Game started ({mode} roles, {len(players)} players)")
        return Transition(room=updated, notifications=notes)

    # ── Voting ────────────────────────────────────────────────────────────────

    def start_voting(self, room: Room, caller_id: str) -> Transition:
        self._require_host(room, caller_id, "start voting")
        self._require_state(room, RoomState.PLAYING, "Voting can only start while the game is playing")

        updated = room.model_copy(deep=True)
        updated.state = RoomState.VOTING
        logger.info(f"[{room.room_id}] Voting started")
        return Transition(room=updated, notifications=self._room_views("voting_started", updated))

    def cast_vote(self, room: Room, caller_id: str, target_id: str) -> Transition:
        """
        Record or overwrite the caller's vote. The target is not validated:
        self-votes and unknown ids are accepted.

        Once every alive player has voted the host is told, but the round is
        only closed by end_voting.
        """
        self._require_state(room, RoomState.VOTING, "Votes can only be cast during voting")
        self._require_alive_member(room, caller_id)

        updated = room.model_copy(deep=True)
        for p in updated.players:
            if p.id == caller_id:
                p.vote = target_id

        notes = [self._notify("player_voted", updated.member_ids(), {
            "playerId": caller_id,
            "targetId": target_id,
        })]
        if all(p.vote for p in updated.alive_players()):
            notes.append(self._notify("all_voted", [updated.host]))
            logger.info(f"[{room.room_id}] All alive players have voted")
        return Transition(room=updated, notifications=notes)

    def tally_votes(self, players: List[PlayerState]) -> Dict[str, int]:
        """Return {target_id: votes} counting alive voters only."""
        tally: Dict[str, int] = {}
        for p in players:
            if p.vote and p.alive:
                tally[p.vote] = tally.get(p.vote, 0) + 1
        return tally

    def pick_eliminated(self, tally: Dict[str, int], alive_count: int) -> Optional[str]:
        """
        The candidate with strictly the most votes, provided that count is a
        strict majority of alive players. Otherwise None (invalid round).
        """
        leader: Optional[str] = None
        max_votes = 0
        for target, count in tally.items():
            if count > max_votes:
                leader, max_votes = target, count
        if leader is not None and max_votes > alive_count / 2:
            return leader
        return None

    def end_voting(self, room: Room, caller_id: str) -> Transition:
        """
        Close the round. Votes are cleared whatever the outcome; the room
        returns to playing, or ends if the elimination decides the game.
        """
        self._require_host(room, caller_id, "end voting")

        tally = self.tally_votes(room.players)
        alive_count = len(room.alive_players())
        eliminated_id = self.pick_eliminated(tally, alive_count)

        updated = room.model_copy(deep=True)
        for p in updated.players:
            p.vote = None

        if eliminated_id is None:
            updated.state = RoomState.PLAYING
            notes = self._room_views("room_updated", updated)
            notes.append(self._notify("voting_invalid", updated.member_ids(), {"voteCounts": tally}))
            logger.info(f"[{room.room_id}] Vote invalid: no majority ({tally}, {alive_count} alive)")
            return Transition(room=updated, notifications=notes)

        eliminated_role: Optional[Role] = None
        for p in updated.players:
            if p.id == eliminated_id:
                p.status = PlayerStatus.ELIMINATED
                eliminated_role = p.role

        winner = self.check_win_condition(updated.players)
        self._apply_outcome(updated, winner)

        notes = [self._notify("voting_result", updated.member_ids(), {
            "eliminated": eliminated_id,
            "eliminatedPlayerRole": eliminated_role.value if eliminated_role else None,
            "canGuess": winner is None,
            "gameEnded": winner is not None,
            "winner": winner.value if winner else None,
            "voteCounts": tally,
        })]
        notes.extend(self._room_views("room_updated", updated))
        logger.info(f"[{room.room_id}] Eliminated {eliminated_id} (role={eliminated_role}, winner={winner})")
        return Transition(room=updated, notifications=notes)

    # ── Word guessing ─────────────────────────────────────────────────────────

    def guess_word(self, room: Room, caller_id: str, word: str) -> Transition:
        """
        Evil or blank naming the good word exactly wins on the spot and
        stays alive. A good player guessing is always eliminated. Any other
        wrong guess eliminates the guesser too.
        """
        self._require_state(room, RoomState.PLAYING, "Guessing is only allowed while the game is playing")
        player = self._require_alive_member(room, caller_id)

        updated = room.model_copy(deep=True)

        if player.role in (Role.EVIL, Role.BLANK) and word == room.good_word:
            updated.state = RoomState.ENDED
            updated.winner = player.role
            notes = [self._notify("guess_result", updated.member_ids(), {
                "playerId": caller_id,
                "correct": True,
                "word": word,
                "gameEnded": True,
                "winner": player.role.value,
            })]
            notes.extend(self._room_views("room_updated", updated))
            logger.info(f"[{room.room_id}] {caller_id} guessed the good word, {player.role.value} wins")
            return Transition(room=updated, notifications=notes)

        for p in updated.players:
            if p.id == caller_id:
                p.status = PlayerStatus.ELIMINATED
        winner = self.check_win_condition(updated.players)
        self._apply_outcome(updated, winner)

        if player.role == Role.GOOD:
            notes = [self._notify("player_eliminated", updated.member_ids(), {
                "playerId": caller_id,
                "reason": GUESS_FAILED_REASON,
                "gameEnded": winner is not None,
                "winner": winner.value if winner else None,
            })]
        else:
            notes = [self._notify("guess_result", updated.member_ids(), {
                "playerId": caller_id,
                "correct": False,
                "word": word,
                "gameEnded": winner is not None,
                "winner": winner.value if winner else None,
            })]
        notes.extend(self._room_views("room_updated", updated))
        logger.info(f"[{room.room_id}] {caller_id} guessed wrong and is eliminated (winner={winner})")
        return Transition(room=updated, notifications=notes)

    # ── Win condition check ───────────────────────────────────────────────────

    def check_win_condition(self, players: List[PlayerState]) -> Optional[Role]:
        """
        Good wins once no evil or blank player is alive. Evil wins once alive
        good players no longer outnumber alive evil players. The good check
        runs first, so an empty table is a good win.
        """
        alive = [p for p in players if p.alive]
        alive_good = sum(1 for p in alive if p.role == Role.GOOD)
        alive_evil = sum(1 for p in alive if p.role == Role.EVIL)
        alive_blank = sum(1 for p in alive if p.role == Role.BLANK)

        if alive_evil == 0 and alive_blank == 0:
            return Role.GOOD
        if alive_good <= alive_evil:
            return Role.EVIL
        return None

    @staticmethod
    def _apply_outcome(room: Room, winner: Optional[Role]) -> None:
        room.state = RoomState.ENDED if winner else RoomState.PLAYING
        room.winner = winner

    # ── Restart ───────────────────────────────────────────────────────────────

    def restart_game(self, room: Room, caller_id: str) -> Transition:
        """Back to waiting from any state; roster kept, every role wiped."""
        self._require_host(room, caller_id, "restart the game")

        updated = room.model_copy(deep=True)
        updated.players = [
            p.model_copy(update={
                "role": None,
                "word": None,
                "vote": None,
                "status": PlayerStatus.ALIVE,
            })
            for p in updated.players
        ]
        updated.state = RoomState.WAITING
        updated.winner = None
        logger.info(f"[{room.room_id}] Game restarted")
        return Transition(room=updated, notifications=self._room_views("game_restarted", updated))


# Module-level singleton
game_master = GameMaster()
