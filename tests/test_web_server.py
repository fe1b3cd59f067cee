"""HTTP surface tests using FastAPI's TestClient."""

import inspect

import pytest
from eth_account import Account
from fastapi.testclient import TestClient

from conftest import COORDINATOR_KEY, ENTRANCE_FEE, FUNDING, INTERVAL
from raffle.blockchain.vrf import sign_fulfillment
from raffle.lottery.keeper import UpkeepKeeper
from raffle.web_server import RaffleWebServer


@pytest.fixture
def client(raffle):
    server = RaffleWebServer({}, raffle, UpkeepKeeper(raffle, poll_interval=1))
    return TestClient(server.app)


def callback_body(raffle, request_id, words, key=COORDINATOR_KEY):
    return {
        "request_id": request_id,
        "random_words": words,
        "signature": sign_fulfillment(key, raffle.address, request_id, words),
    }


def enter_everyone(client, players):
    for player in players:
        client.post("/api/enter", json={"player": player, "value": ENTRANCE_FEE + 1})


def test_health(client, raffle):
    response = client.get("/api/health")

    assert response.status_code == 200
    body = response.json()
    assert body["raffle"] == raffle.address
    assert body["state"] == "OPEN"
    assert body["keeper"]["status"] == "stopped"


def test_enter_and_read_back(client, players, accounts):
    response = client.post("/api/enter", json={"player": players[0], "value": ENTRANCE_FEE + 1})

    assert response.status_code == 200
    assert response.json()["entrantCount"] == 1
    assert client.get("/api/entrants/0").json()["player"] == players[0]
    assert client.get("/api/entrants").json() == {"entrants": [players[0]], "entrantCount": 1}
    status = client.get("/api/raffle").json()
    assert status["balanceWei"] == ENTRANCE_FEE + 1
    assert status["stateLabel"] == "OPEN"
    assert accounts.balance_of(players[0]) == FUNDING - ENTRANCE_FEE - 1


def test_underpaid_entry_is_400(client, players):
    response = client.post("/api/enter", json={"player": players[0], "value": ENTRANCE_FEE})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "SendMoreToEnterRaffle"
    assert body["sent"] == ENTRANCE_FEE
    assert body["required"] == ENTRANCE_FEE


def test_entry_beyond_balance_is_400(client, players):
    response = client.post("/api/enter", json={"player": players[0], "value": FUNDING + 1})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "InsufficientBalance"
    assert (body["balance"], body["required"]) == (FUNDING, FUNDING + 1)
    assert client.get("/api/raffle").json()["balanceWei"] == 0


def test_missing_entrant_is_404(client):
    assert client.get("/api/entrants/3").status_code == 404


def test_upkeep_not_needed_is_409(client):
    assert client.get("/api/upkeep").json() == {"upkeepNeeded": False, "performData": "0x"}

    response = client.post("/api/upkeep", json={})

    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "UpkeepNotNeeded"
    assert (body["balance"], body["entrantCount"], body["state"]) == (0, 0, 0)


def test_full_round_over_http(client, raffle, clock, players):
    enter_everyone(client, players)
    clock.advance(INTERVAL)

    assert client.get("/api/upkeep").json()["upkeepNeeded"] is True
    request_id = client.post("/api/upkeep", json={"perform_data": "0x"}).json()["requestId"]

    response = client.post("/api/fulfill", json=callback_body(raffle, request_id, [4]))

    assert response.status_code == 200
    assert response.json()["winner"] == players[1]
    names = [event["name"] for event in client.get("/api/events").json()["events"]]
    assert names == ["EntryRecorded"] * 3 + ["RequestSubmitted", "WinnerPicked"]
    assert len(client.get("/api/events", params={"name": "WinnerPicked"}).json()["events"]) == 1


class TestFulfillAuthentication:
    """Only a callback signed with the coordinator key for the outstanding draw is applied."""

    def test_fulfill_from_stranger_is_403(self, client, raffle, clock, players):
        enter_everyone(client, players)
        clock.advance(INTERVAL)
        request_id = client.post("/api/upkeep", json={}).json()["requestId"]
        stranger = Account.create()

        response = client.post("/api/fulfill", json=callback_body(raffle, request_id, [1], key=stranger.key))

        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "OnlyCoordinatorCanFulfill"
        assert body["have"] == stranger.address
        assert raffle.number_of_entrants == 3

    def test_claimed_coordinator_sender_is_not_enough(self, client, raffle, players, accounts):
        enter_everyone(client, players)

        response = client.post(
            "/api/fulfill",
            json={"sender": raffle.config.vrf_coordinator, "request_id": 999, "random_words": [2]},
        )

        assert response.status_code == 422
        assert raffle.get_all_entrants() == tuple(players)
        assert accounts.balance_of(players[2]) == FUNDING - ENTRANCE_FEE - 1

    def test_signature_for_other_words_is_403(self, client, raffle, clock, players):
        enter_everyone(client, players)
        clock.advance(INTERVAL)
        request_id = client.post("/api/upkeep", json={}).json()["requestId"]
        body = callback_body(raffle, request_id, [0])
        body["random_words"] = [2]

        response = client.post("/api/fulfill", json=body)

        assert response.status_code == 403
        assert client.get("/api/raffle").json()["stateLabel"] == "CALCULATING"

    @pytest.mark.parametrize("signature", ["0x1234", "0xzz"])
    def test_malformed_signature_is_400(self, client, signature):
        response = client.post(
            "/api/fulfill",
            json={"request_id": 1, "random_words": [1], "signature": signature},
        )

        assert response.status_code == 400

    def test_signed_callback_while_open_is_409(self, client, raffle, players, accounts):
        enter_everyone(client, players)

        response = client.post("/api/fulfill", json=callback_body(raffle, 999, [2]))

        assert response.status_code == 409
        assert response.json()["error"] == "NoDrawInProgress"
        assert raffle.get_all_entrants() == tuple(players)
        assert raffle.recent_winner is None
        assert accounts.balance_of(players[2]) == FUNDING - ENTRANCE_FEE - 1

    def test_callback_for_other_request_is_409(self, client, raffle, clock, players):
        enter_everyone(client, players)
        clock.advance(INTERVAL)
        request_id = client.post("/api/upkeep", json={}).json()["requestId"]

        response = client.post("/api/fulfill", json=callback_body(raffle, request_id + 1, [0]))

        assert response.status_code == 409
        assert response.json()["error"] == "UnknownRequest"


def test_failed_payout_is_502(client, raffle, clock, players, accounts):
    client.post("/api/enter", json={"player": players[0], "value": ENTRANCE_FEE + 1})
    clock.advance(INTERVAL)
    request_id = client.post("/api/upkeep", json={}).json()["requestId"]
    accounts.refuse_payments(players[0])

    response = client.post("/api/fulfill", json=callback_body(raffle, request_id, [0]))

    assert response.status_code == 502
    assert response.json()["error"] == "TransferFailed"
    assert client.get("/api/raffle").json()["stateLabel"] == "CALCULATING"


def test_bad_perform_data_is_400(client):
    assert client.post("/api/upkeep", json={"perform_data": "0xzz"}).status_code == 400


@pytest.mark.parametrize("path", ["/api/health", "/api/raffle", "/api/upkeep", "/api/entrants", "/api/events"])
def test_reads_run_in_threadpool(client, path):
    """Reads may wait on the raffle lock, so they must not run on the event loop."""
    endpoints = [
        route.endpoint
        for route in client.app.routes
        if getattr(route, "path", None) == path and "GET" in (getattr(route, "methods", None) or ())
    ]

    assert len(endpoints) == 1
    assert not inspect.iscoroutinefunction(endpoints[0])
