"""Ordered list of the current round's entrants."""

from __future__ import annotations

from typing import List, Tuple


class EntryLedger:
    """Append/clear-only entrant sequence.

    The same player may appear more than once; each entry is one slot in the
    draw, and slot order decides which index a random word maps to.
    """

    def __init__(self) -> None:
        self._entrants: List[str] = []

    def __len__(self) -> int:
        return len(self._entrants)

    def __getitem__(self, index: int) -> str:
        if index < 0:
            raise IndexError("entrant index must not be negative")
        return self._entrants[index]

    def append(self, player: str) -> None:
        self._entrants.append(player)

    def clear(self) -> None:
        self._entrants = []

    def entrants(self) -> Tuple[str, ...]:
        return tuple(self._entrants)

    def snapshot(self) -> Tuple[str, ...]:
        return self.entrants()

    def restore(self, entrants: Tuple[str, ...]) -> None:
        self._entrants = list(entrants)
