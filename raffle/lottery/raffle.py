"""
Raffle state machine.

One round at a time: players enter while the raffle is OPEN, the keeper asks
``check_upkeep`` whether a draw is due and calls ``perform_upkeep`` to request
randomness, and the randomness coordinator answers through
``raw_fulfill_random_words``, which picks the winner, resets the round and
pays out the whole balance.

Every state-mutating operation runs as a transaction: if anything raises,
entrants, state, clock, winner and account balances are restored and the
events it produced are dropped. Inside a transaction the order is always
checks, then internal effects, then the external call (outbound request or
payout), so a reentrant call never sees half-updated state.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from threading import RLock
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from eth_account import Account

from raffle.blockchain.vrf import RandomnessProvider, encode_extra_args
from raffle.lottery.accounts import AccountBook
from raffle.lottery.errors import (
    InsufficientBalance,
    InvariantViolation,
    NoDrawInProgress,
    OnlyCoordinatorCanFulfill,
    RaffleNotOpen,
    SendMoreToEnterRaffle,
    TransferFailed,
    UnknownRequest,
    UpkeepNotNeeded,
    ValidationError,
)
from raffle.lottery.event_manager import EventLog
from raffle.lottery.ledger import EntryLedger
from raffle.lottery.models import (
    EntryRecorded,
    RaffleConfig,
    RaffleEvent,
    RaffleSnapshot,
    RaffleState,
    RandomWordsRequest,
    RequestSubmitted,
    WinnerPicked,
)
from raffle.lottery.upkeep import UpkeepCheck, evaluate_upkeep
from raffle.utils.common import normalize_address, shorten_eth_address
from raffle.utils.logger import get_logger

logger = get_logger(__name__)


def _system_clock() -> int:
    return int(time.time())


class Raffle:
    """Single-instance raffle coordinator."""

    def __init__(
        self,
        config: RaffleConfig,
        provider: RandomnessProvider,
        accounts: AccountBook,
        events: Optional[EventLog] = None,
        clock: Optional[Callable[[], int]] = None,
        address: Optional[str] = None,
    ) -> None:
        self._config = config
        self._provider = provider
        self._accounts = accounts
        self._events = events if events is not None else EventLog()
        self._clock = clock or _system_clock
        self.address = normalize_address(address) if address else Account.create().address

        self._lock = RLock()
        self._depth = 0
        self._pending_events: List[RaffleEvent] = []

        self._ledger = EntryLedger()
        self._state = RaffleState.OPEN
        self._last_timestamp = int(self._clock())
        self._recent_winner: Optional[str] = None
        self._outstanding_request: Optional[int] = None

        logger.info(
            "Raffle %s created: entrance fee %s wei, interval %ss, coordinator %s",
            self.address,
            config.entrance_fee,
            config.interval,
            config.vrf_coordinator,
        )

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    def _save(self) -> tuple:
        return (
            self._ledger.snapshot(),
            self._state,
            self._last_timestamp,
            self._recent_winner,
            self._outstanding_request,
            self._accounts.snapshot(),
            len(self._pending_events),
        )

    def _rollback(self, saved: tuple) -> None:
        entrants, state, last_timestamp, recent_winner, outstanding, balances, mark = saved
        self._ledger.restore(entrants)
        self._state = state
        self._last_timestamp = last_timestamp
        self._recent_winner = recent_winner
        self._outstanding_request = outstanding
        self._accounts.restore(balances)
        del self._pending_events[mark:]

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """Run the block atomically; nested blocks are savepoints.

        Events are published only when the outermost block commits. An inner
        block that raises is undone back to its own entry even if the caller
        catches the error.
        """
        with self._lock:
            saved = self._save()
            self._depth += 1
            try:
                yield
            except BaseException:
                self._rollback(saved)
                raise
            finally:
                self._depth -= 1
            if self._depth:
                return
            committed, self._pending_events = self._pending_events, []
        self._events.publish(committed)

    def _record(self, event: RaffleEvent) -> None:
        self._pending_events.append(event)

    # ------------------------------------------------------------------
    # Entry
    # ------------------------------------------------------------------
    def enter(self, player: str, value: int) -> None:
        """Enter ``player`` into the current round, paying ``value`` wei.

        The payment must be strictly greater than the entrance fee; paying
        exactly the fee is rejected. It moves from the player's account to the
        raffle's, so a player who cannot cover it is rejected too.
        """
        try:
            player = normalize_address(player)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        with self._transaction():
            if value <= self._config.entrance_fee:
                logger.warning("Entry from %s rejected: sent %s wei", shorten_eth_address(player), value)
                raise SendMoreToEnterRaffle(value, self._config.entrance_fee)
            if self._state != RaffleState.OPEN:
                logger.warning("Entry from %s rejected: raffle %s", shorten_eth_address(player), self._state.name)
                raise RaffleNotOpen(self._state)

            if not self._accounts.send(player, self.address, value):
                balance = self._accounts.balance_of(player)
                logger.warning("Entry from %s rejected: balance %s wei", shorten_eth_address(player), balance)
                raise InsufficientBalance(player, balance, value)
            self._ledger.append(player)
            self._record(EntryRecorded(timestamp=self._clock(), player=player))
            logger.info("Player %s entered with %s wei (%d entrants)", player, value, len(self._ledger))

    # ------------------------------------------------------------------
    # Upkeep
    # ------------------------------------------------------------------
    def _evaluate(self) -> UpkeepCheck:
        return evaluate_upkeep(
            now=int(self._clock()),
            last_timestamp=self._last_timestamp,
            interval=self._config.interval,
            state=self._state,
            balance=self.balance,
            entrant_count=len(self._ledger),
        )

    def check_upkeep(self, perform_data: bytes = b"") -> Tuple[bool, bytes]:
        """Return whether a draw is due. Read-only; safe to poll."""
        with self._lock:
            return self._evaluate().needed, perform_data

    def perform_upkeep(self, perform_data: bytes = b"") -> int:
        """Move to CALCULATING and submit one randomness request.

        Returns the provider's request id.
        """
        with self._transaction():
            if not self._evaluate().needed:
                error = UpkeepNotNeeded(self.balance, len(self._ledger), self._state)
                logger.warning("%s", error)
                raise error

            self._state = RaffleState.CALCULATING
            request = RandomWordsRequest(
                key_hash=self._config.key_hash,
                subscription_id=self._config.subscription_id,
                request_confirmations=self._config.request_confirmations,
                callback_gas_limit=self._config.callback_gas_limit,
                num_words=self._config.num_words,
                extra_args=encode_extra_args(native_payment=False),
            )
            request_id = self._provider.request_random_words(request)
            if self._state == RaffleState.CALCULATING:
                # unless the provider already called back with the result
                self._outstanding_request = request_id
            self._record(RequestSubmitted(timestamp=self._clock(), request_id=request_id))
            logger.info("Requested randomness: request %s, %d entrants", request_id, len(self._ledger))
            return request_id

    # ------------------------------------------------------------------
    # Fulfillment
    # ------------------------------------------------------------------
    def raw_fulfill_random_words(self, sender: str, request_id: int, random_words: Sequence[int]) -> str:
        """Entry point for the randomness coordinator's callback.

        Only the configured coordinator may call it, and only while a draw is
        in progress. Once the outstanding request id is known, a callback for
        any other id is refused.
        """
        try:
            sender = normalize_address(sender)
        except ValueError as exc:
            raise OnlyCoordinatorCanFulfill(str(sender), self._config.vrf_coordinator) from exc
        if sender != self._config.vrf_coordinator:
            logger.warning("Rejected fulfillment from %s", sender)
            raise OnlyCoordinatorCanFulfill(sender, self._config.vrf_coordinator)

        with self._transaction():
            if self._state != RaffleState.CALCULATING:
                logger.warning("Rejected fulfillment of request %s: raffle %s", request_id, self._state.name)
                raise NoDrawInProgress(self._state)
            outstanding = self._outstanding_request
            if outstanding is not None and request_id != outstanding:
                logger.warning("Rejected fulfillment of request %s: waiting for %s", request_id, outstanding)
                raise UnknownRequest(request_id, outstanding)
            return self.fulfill_random_words(request_id, random_words)

    def fulfill_random_words(self, request_id: int, random_words: Sequence[int]) -> str:
        """Pick the winner, reset the round and pay out. Returns the winner.

        The winner index is ``random_words[0] % entrants``, which carries a
        small modulo bias when the entrant count does not divide 2**256.
        """
        with self._transaction():
            count = len(self._ledger)
            if count == 0:
                raise InvariantViolation("Fulfillment with no entrants")
            if not random_words:
                raise InvariantViolation("Fulfillment without random words")

            winner = self._ledger[int(random_words[0]) % count]
            self._recent_winner = winner
            self._outstanding_request = None
            self._ledger.clear()
            self._state = RaffleState.OPEN
            self._last_timestamp = max(self._last_timestamp, int(self._clock()))
            prize = self.balance
            self._record(
                WinnerPicked(timestamp=self._clock(), winner=winner, request_id=request_id, prize=prize)
            )

            if not self._accounts.send(self.address, winner, prize):
                logger.error("Payout of %s wei to %s failed; request %s rolled back", prize, winner, request_id)
                raise TransferFailed(winner, prize)

            logger.info("Request %s: winner %s paid %s wei", request_id, winner, prize)
            return winner

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def config(self) -> RaffleConfig:
        return self._config

    @property
    def events(self) -> EventLog:
        return self._events

    @property
    def entrance_fee(self) -> int:
        return self._config.entrance_fee

    @property
    def interval(self) -> int:
        return self._config.interval

    @property
    def raffle_state(self) -> RaffleState:
        return self._state

    @property
    def last_timestamp(self) -> int:
        return self._last_timestamp

    @property
    def recent_winner(self) -> Optional[str]:
        return self._recent_winner

    @property
    def outstanding_request(self) -> Optional[int]:
        return self._outstanding_request

    @property
    def number_of_entrants(self) -> int:
        return len(self._ledger)

    @property
    def balance(self) -> int:
        return self._accounts.balance_of(self.address)

    def get_entrant(self, index: int) -> str:
        return self._ledger[index]

    def get_all_entrants(self) -> Tuple[str, ...]:
        return self._ledger.entrants()

    def snapshot(self) -> RaffleSnapshot:
        with self._lock:
            return RaffleSnapshot(
                address=self.address,
                state=self._state,
                entrance_fee=self._config.entrance_fee,
                interval=self._config.interval,
                entrants=self._ledger.entrants(),
                balance=self.balance,
                last_timestamp=self._last_timestamp,
                recent_winner=self._recent_winner,
            )
