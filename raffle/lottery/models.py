"""Core data models for the raffle coordinator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Mapping, Optional, Tuple

from raffle.lottery.errors import ConfigError
from raffle.utils.common import normalize_address

NUM_WORDS = 1
DEFAULT_REQUEST_CONFIRMATIONS = 3


class RaffleState(IntEnum):
    """Raffle states; CALCULATING means a randomness request is outstanding."""

    OPEN = 0
    CALCULATING = 1


def _as_int(section: Mapping[str, Any], key: str, default: Optional[int] = None) -> int:
    value = section.get(key, default)
    if value is None or value == "":
        raise ConfigError(f"Missing configuration value '{key}'")
    try:
        if isinstance(value, str) and value.lower().startswith("0x"):
            return int(value, 16)
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid integer for '{key}': {value!r}") from exc


def _as_key_hash(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        text = value[2:] if value.lower().startswith("0x") else value
        try:
            raw = bytes.fromhex(text)
        except ValueError as exc:
            raise ConfigError(f"Invalid key hash: {value!r}") from exc
    else:
        raise ConfigError("Missing configuration value 'key_hash'")
    if len(raw) != 32:
        raise ConfigError(f"Key hash must be 32 bytes, got {len(raw)}")
    return raw


@dataclass(frozen=True)
class RaffleConfig:
    """Immutable raffle parameters, fixed at construction."""

    entrance_fee: int
    interval: int
    vrf_coordinator: str
    key_hash: bytes
    subscription_id: int
    callback_gas_limit: int
    request_confirmations: int = DEFAULT_REQUEST_CONFIRMATIONS
    num_words: int = field(default=NUM_WORDS, init=False)

    def __post_init__(self) -> None:
        if self.entrance_fee < 0:
            raise ConfigError("entrance_fee must not be negative")
        if self.interval <= 0:
            raise ConfigError("interval must be positive")
        if self.callback_gas_limit <= 0:
            raise ConfigError("callback_gas_limit must be positive")
        if self.request_confirmations < 0:
            raise ConfigError("request_confirmations must not be negative")
        try:
            coordinator = normalize_address(self.vrf_coordinator)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
        object.__setattr__(self, "vrf_coordinator", coordinator)
        object.__setattr__(self, "key_hash", _as_key_hash(self.key_hash))

    @classmethod
    def from_dict(cls, config: Mapping[str, Any]) -> "RaffleConfig":
        """Build from the ``raffle`` and ``vrf`` sections of a loaded config."""
        raffle_cfg = config.get("raffle", {}) or {}
        vrf_cfg = config.get("vrf", {}) or {}
        return cls(
            entrance_fee=_as_int(raffle_cfg, "entrance_fee"),
            interval=_as_int(raffle_cfg, "interval"),
            vrf_coordinator=vrf_cfg.get("coordinator", ""),
            key_hash=vrf_cfg.get("key_hash"),
            subscription_id=_as_int(vrf_cfg, "subscription_id"),
            callback_gas_limit=_as_int(vrf_cfg, "callback_gas_limit"),
            request_confirmations=_as_int(
                vrf_cfg, "request_confirmations", DEFAULT_REQUEST_CONFIRMATIONS
            ),
        )


@dataclass(frozen=True)
class RandomWordsRequest:
    """Outbound randomness request parameters."""

    key_hash: bytes
    subscription_id: int
    request_confirmations: int
    callback_gas_limit: int
    num_words: int
    extra_args: bytes = b""


@dataclass(frozen=True)
class RaffleEvent:
    timestamp: int

    @property
    def name(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "timestamp": self.timestamp}


@dataclass(frozen=True)
class EntryRecorded(RaffleEvent):
    player: str

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["player"] = self.player
        return data


@dataclass(frozen=True)
class RequestSubmitted(RaffleEvent):
    request_id: int

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["requestId"] = self.request_id
        return data


@dataclass(frozen=True)
class WinnerPicked(RaffleEvent):
    winner: str
    request_id: int
    prize: int

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"winner": self.winner, "requestId": self.request_id, "prizeWei": self.prize})
        return data


@dataclass(frozen=True)
class RaffleSnapshot:
    """Read-only view of the raffle for status endpoints."""

    address: str
    state: RaffleState
    entrance_fee: int
    interval: int
    entrants: Tuple[str, ...]
    balance: int
    last_timestamp: int
    recent_winner: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "state": self.state.value,
            "stateLabel": self.state.name,
            "entranceFeeWei": self.entrance_fee,
            "interval": self.interval,
            "entrants": list(self.entrants),
            "entrantCount": len(self.entrants),
            "balanceWei": self.balance,
            "lastTimestamp": self.last_timestamp,
            "recentWinner": self.recent_winner,
        }
