import random
from collections import Counter

import pytest

from agents.role_assigner import RoleAssigner
from conftest import make_settings
from models.game import PlayerState, Role


def _players(n):
    return [PlayerState(id=f"p{i}", name=f"P{i}") for i in range(n)]


def _word_for(role):
    return {Role.GOOD: "apple", Role.EVIL: "pear"}.get(role)


@pytest.mark.parametrize("good,evil,blank,extra", [
    (1, 1, 0, 0),
    (2, 1, 0, 0),
    (3, 1, 1, 2),
    (4, 2, 1, 0),
    (5, 2, 2, 3),
])
def test_random_assignment_deals_exact_counts(good, evil, blank, extra):
    assigner = RoleAssigner()
    settings = make_settings(good, evil, blank)
    slots = good + evil + blank

    for seed in range(20):
        players = assigner.assign_random(_players(slots + extra), settings, _word_for, random.Random(seed))
        dealt = Counter(p.role for p in players[:slots])
        assert dealt[Role.GOOD] == good
        assert dealt[Role.EVIL] == evil
        assert dealt[Role.BLANK] == blank
        assert all(p.role is None for p in players[slots:])


def test_random_assignment_attaches_matching_words():
    players = RoleAssigner().assign_random(_players(4), make_settings(2, 1, 1), _word_for, random.Random(7))
    for p in players:
        assert p.word == _word_for(p.role)


def test_shuffle_is_a_permutation_and_leaves_input_alone():
    assigner = RoleAssigner()
    pool = assigner.build_role_pool(make_settings(3, 2, 1))
    before = list(pool)

    shuffled = assigner.shuffle(pool, random.Random(42))

    assert pool == before
    assert Counter(shuffled) == Counter(pool)


def test_shuffle_reaches_every_position():
    assigner = RoleAssigner()
    pool = [Role.EVIL, Role.GOOD, Role.GOOD]
    rng = random.Random(0)
    positions = {assigner.shuffle(pool, rng).index(Role.EVIL) for _ in range(200)}
    assert positions == {0, 1, 2}


def test_build_role_pool_order():
    pool = RoleAssigner().build_role_pool(make_settings(2, 1, 1))
    assert pool == [Role.GOOD, Role.GOOD, Role.EVIL, Role.BLANK]


def test_manual_assignment_returns_copies():
    players = _players(2)
    assigned = RoleAssigner().assign_manual(players, {"p0": Role.BLANK}, _word_for)
    assert assigned[0].role == Role.BLANK and assigned[0].word is None
    assert assigned[1].role is None
    assert players[0].role is None
