"""Tests for the pure upkeep predicate."""

import pytest

from raffle.lottery.models import RaffleState
from raffle.lottery.upkeep import evaluate_upkeep

READY = dict(now=130, last_timestamp=100, interval=30, state=RaffleState.OPEN, balance=1, entrant_count=1)


def test_all_conditions_hold():
    check = evaluate_upkeep(**READY)

    assert check.needed is True
    assert (check.time_passed, check.is_open, check.has_balance, check.has_players) == (True, True, True, True)


@pytest.mark.parametrize(
    "override,failing",
    [
        ({"now": 129}, "time_passed"),
        ({"state": RaffleState.CALCULATING}, "is_open"),
        ({"balance": 0}, "has_balance"),
        ({"entrant_count": 0}, "has_players"),
    ],
)
def test_each_condition_alone_blocks_upkeep(override, failing):
    check = evaluate_upkeep(**{**READY, **override})

    assert check.needed is False
    assert getattr(check, failing) is False
