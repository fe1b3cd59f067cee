"""In-process account balances used as the raffle's holding account."""

from __future__ import annotations

from threading import RLock
from typing import Dict, Set, Tuple

from raffle.lottery.errors import ValidationError
from raffle.utils.common import normalize_address
from raffle.utils.logger import get_logger

logger = get_logger(__name__)


class AccountBook:
    """Wei balances keyed by checksum address.

    ``send`` reports failure with a boolean the way a low-level value call
    does, so the caller decides how to fail.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._balances: Dict[str, int] = {}
        self._refusing: Set[str] = set()

    def credit(self, address: str, amount: int) -> None:
        if amount < 0:
            raise ValidationError("Cannot credit a negative amount")
        address = normalize_address(address)
        with self._lock:
            self._balances[address] = self._balances.get(address, 0) + amount

    def balance_of(self, address: str) -> int:
        address = normalize_address(address)
        with self._lock:
            return self._balances.get(address, 0)

    def refuse_payments(self, address: str, refuse: bool = True) -> None:
        """Make ``address`` reject incoming value, like a contract without a receive hook."""
        address = normalize_address(address)
        with self._lock:
            if refuse:
                self._refusing.add(address)
            else:
                self._refusing.discard(address)

    def send(self, sender: str, recipient: str, amount: int) -> bool:
        if amount < 0:
            raise ValidationError("Cannot send a negative amount")
        sender = normalize_address(sender)
        recipient = normalize_address(recipient)
        with self._lock:
            available = self._balances.get(sender, 0)
            if available < amount:
                logger.debug("Send of %s wei from %s failed: balance %s", amount, sender, available)
                return False
            if recipient in self._refusing:
                logger.debug("Send of %s wei to %s refused by recipient", amount, recipient)
                return False
            self._balances[sender] = available - amount
            self._balances[recipient] = self._balances.get(recipient, 0) + amount
            return True

    def snapshot(self) -> Tuple[Dict[str, int], Set[str]]:
        with self._lock:
            return dict(self._balances), set(self._refusing)

    def restore(self, state: Tuple[Dict[str, int], Set[str]]) -> None:
        balances, refusing = state
        with self._lock:
            self._balances = dict(balances)
            self._refusing = set(refusing)
