"""
Role Assignment: deterministic role shuffling.

Two policies, chosen by the host when starting the game:
- Manual: the host hands in an explicit {player_id: role} mapping.
- Random: the configured role multiset is shuffled (Fisher–Yates) and dealt
  to players in join order.

Both return new PlayerState copies; the caller's list is left untouched.
"""
import logging
import random
from typing import Dict, List, Optional

from models.game import PlayerState, Role, RoomSettings

logger = logging.getLogger(__name__)


class RoleAssigner:

    def build_role_pool(self, settings: RoomSettings) -> List[Role]:
        """good×goodCount, evil×evilCount, blank×blankCount, in that order."""
        return (
            [Role.GOOD] * settings.good_count
            + [Role.EVIL] * settings.evil_count
            + [Role.BLANK] * settings.blank_count
        )

    def shuffle(self, roles: List[Role], rng: Optional[random.Random] = None) -> List[Role]:
        """Uniform permutation, swapping from the last slot down to the second."""
        rng = rng or random.SystemRandom()
        shuffled = list(roles)
        for i in range(len(shuffled) - 1, 0, -1):
            j = rng.randint(0, i)
            shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
        return shuffled

    def assign_random(
        self,
        players: List[PlayerState],
        settings: RoomSettings,
        word_for,
        rng: Optional[random.Random] = None,
    ) -> List[PlayerState]:
        """
        Deal the shuffled pool to players by roster order.

        The room may hold more players than configured slots; anyone past
        the end of the pool is left without a role or word.
        """
        roles = self.shuffle(self.build_role_pool(settings), rng)
        assigned: List[PlayerState] = []
        for index, player in enumerate(players):
            if index < len(roles):
                role = roles[index]
                assigned.append(player.model_copy(update={"role": role, "word": word_for(role)}))
            else:
                assigned.append(player.model_copy())
        return assigned

    def assign_manual(
        self,
        players: List[PlayerState],
        player_roles: Dict[str, Role],
        word_for,
    ) -> List[PlayerState]:
        """
        Attach the host-chosen role to each named player.

        Players missing from the mapping keep no role; ids in the mapping that
        match nobody are ignored.
        """
        unknown = set(player_roles) - {p.id for p in players}
        if unknown:
            logger.info(f"Manual role mapping names unknown players: {sorted(unknown)}")
        assigned: List[PlayerState] = []
        for player in players:
            role = player_roles.get(player.id)
            assigned.append(player.model_copy(update={"role": role, "word": word_for(role)}))
        return assigned


# Module-level singleton
role_assigner = RoleAssigner()
