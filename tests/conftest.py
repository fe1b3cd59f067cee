"""Shared fixtures for the raffle tests."""

from typing import List

import pytest
from eth_account import Account
from web3 import Web3

from raffle.lottery.accounts import AccountBook
from raffle.lottery.event_manager import EventLog
from raffle.lottery.models import RaffleConfig, RandomWordsRequest
from raffle.lottery.raffle import Raffle

ENTRANCE_FEE = 10**16
INTERVAL = 30
START_TIME = 1_700_000_000
COORDINATOR_KEY = "0x" + "c0" * 32
COORDINATOR = Account.from_key(COORDINATOR_KEY).address
KEY_HASH = "0x" + "ab" * 32
FUNDING = 10**18


def make_address(n: int) -> str:
    return Web3.to_checksum_address(f"0x{n:040x}")


class FakeClock:
    def __init__(self, now: int = START_TIME) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class RecordingProvider:
    """Randomness provider that hands out sequential request ids."""

    def __init__(self) -> None:
        self.requests: List[RandomWordsRequest] = []
        self.fail_with = None

    def request_random_words(self, request: RandomWordsRequest) -> int:
        if self.fail_with is not None:
            raise self.fail_with
        self.requests.append(request)
        return len(self.requests)

    @property
    def last_request_id(self) -> int:
        return len(self.requests)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return RecordingProvider()


@pytest.fixture
def accounts():
    return AccountBook()


@pytest.fixture
def event_log():
    return EventLog()


@pytest.fixture
def raffle_config():
    return RaffleConfig(
        entrance_fee=ENTRANCE_FEE,
        interval=INTERVAL,
        vrf_coordinator=COORDINATOR,
        key_hash=KEY_HASH,
        subscription_id=42,
        callback_gas_limit=500_000,
    )


@pytest.fixture
def raffle(raffle_config, provider, accounts, event_log, clock):
    return Raffle(
        raffle_config,
        provider=provider,
        accounts=accounts,
        events=event_log,
        clock=clock,
        address=make_address(0xAFF1E),
    )


@pytest.fixture
def players(accounts):
    addresses = [make_address(i) for i in range(1, 4)]
    for address in addresses:
        accounts.credit(address, FUNDING)
    return addresses


@pytest.fixture
def entry_value():
    return ENTRANCE_FEE + 1
