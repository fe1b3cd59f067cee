"""Error types raised by the raffle state machine.

Errors are grouped by how a caller should react to them:

- ValidationError: the caller sent bad input; nothing changed, fix and retry.
- StateError: the raffle is not in a state that allows the operation.
- TransferError: a payout could not be delivered and the operation rolled back.
- AccessError: the caller is not allowed to invoke the operation.
- InvariantViolation: an internal guarantee did not hold.

Every error exposes ``code`` (its class name) and ``to_dict()`` so the HTTP
layer can report the diagnostic payload without knowing each class.
"""

from __future__ import annotations

from typing import Any, Dict


class ConfigError(ValueError):
    """Raised when configuration is missing or malformed."""


class RaffleError(Exception):
    """Base class for all raffle operation failures."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)

    @property
    def code(self) -> str:
        return self.__class__.__name__

    def payload(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        data = {"error": self.code, "detail": str(self)}
        data.update(self.payload())
        return data


class ValidationError(RaffleError):
    pass


class StateError(RaffleError):
    pass


class TransferError(RaffleError):
    pass


class AccessError(RaffleError):
    pass


class InvariantViolation(RaffleError):
    pass


class SendMoreToEnterRaffle(ValidationError):
    """Entry payment did not exceed the entrance fee."""

    def __init__(self, sent: int, required: int) -> None:
        self.sent = sent
        self.required = required
        super().__init__(f"Sent {sent} wei, must send more than {required} wei to enter")

    def payload(self) -> Dict[str, Any]:
        return {"sent": self.sent, "required": self.required}


class InsufficientBalance(ValidationError):
    """The entrant's account cannot cover the payment."""

    def __init__(self, account: str, balance: int, required: int) -> None:
        self.account = account
        self.balance = balance
        self.required = required
        super().__init__(f"Account {account} holds {balance} wei, cannot pay {required} wei")

    def payload(self) -> Dict[str, Any]:
        return {"account": self.account, "balance": self.balance, "required": self.required}


class RaffleNotOpen(StateError):
    def __init__(self, state) -> None:
        self.state = state
        super().__init__(f"Raffle is not open (state={state.name})")

    def payload(self) -> Dict[str, Any]:
        return {"state": int(self.state)}


class UpkeepNotNeeded(StateError):
    """Upkeep was forced while the draw predicate is false."""

    def __init__(self, balance: int, entrant_count: int, state) -> None:
        self.balance = balance
        self.entrant_count = entrant_count
        self.state = state
        super().__init__(
            f"Upkeep not needed (balance={balance}, entrants={entrant_count}, state={state.name})"
        )

    def payload(self) -> Dict[str, Any]:
        return {
            "balance": self.balance,
            "entrantCount": self.entrant_count,
            "state": int(self.state),
        }


class NoDrawInProgress(StateError):
    """A fulfillment arrived while no randomness request is outstanding."""

    def __init__(self, state) -> None:
        self.state = state
        super().__init__(f"No randomness request outstanding (state={state.name})")

    def payload(self) -> Dict[str, Any]:
        return {"state": int(self.state)}


class UnknownRequest(StateError):
    def __init__(self, request_id: int, outstanding: int) -> None:
        self.request_id = request_id
        self.outstanding = outstanding
        super().__init__(f"Request {request_id} is not the outstanding request {outstanding}")

    def payload(self) -> Dict[str, Any]:
        return {"requestId": self.request_id, "outstanding": self.outstanding}


class TransferFailed(TransferError):
    def __init__(self, recipient: str, amount: int) -> None:
        self.recipient = recipient
        self.amount = amount
        super().__init__(f"Transfer of {amount} wei to {recipient} failed")

    def payload(self) -> Dict[str, Any]:
        return {"recipient": self.recipient, "amount": self.amount}


class OnlyCoordinatorCanFulfill(AccessError):
    def __init__(self, have: str, want: str) -> None:
        self.have = have
        self.want = want
        super().__init__(f"Only coordinator {want} can fulfill, called by {have}")

    def payload(self) -> Dict[str, Any]:
        return {"have": self.have, "want": self.want}
