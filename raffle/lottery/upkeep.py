"""Draw-eligibility predicate polled by the automation keeper."""

from __future__ import annotations

from dataclasses import dataclass

from raffle.lottery.models import RaffleState


@dataclass(frozen=True)
class UpkeepCheck:
    time_passed: bool
    is_open: bool
    has_balance: bool
    has_players: bool

    @property
    def needed(self) -> bool:
        return self.time_passed and self.is_open and self.has_balance and self.has_players


def evaluate_upkeep(
    *,
    now: int,
    last_timestamp: int,
    interval: int,
    state: RaffleState,
    balance: int,
    entrant_count: int,
) -> UpkeepCheck:
    """Evaluate the four draw conditions. Pure: no clock reads, no mutation."""
    return UpkeepCheck(
        time_passed=(now - last_timestamp) >= interval,
        is_open=state == RaffleState.OPEN,
        has_balance=balance > 0,
        has_players=entrant_count > 0,
    )
