"""Configuration loading and RaffleConfig validation."""

import dataclasses
import json
import os

import pytest

from conftest import COORDINATOR, KEY_HASH
from raffle.lottery.errors import ConfigError
from raffle.lottery.models import RaffleConfig
from raffle.utils.config import ENV_SECTIONS, get_config_value, load_config


def base_config():
    return {
        "raffle": {"entrance_fee": 100, "interval": 30},
        "vrf": {
            "coordinator": COORDINATOR.lower(),
            "key_hash": KEY_HASH,
            "subscription_id": "7",
            "callback_gas_limit": "500000",
        },
    }


def test_from_dict_coerces_values():
    config = RaffleConfig.from_dict(base_config())

    assert config.entrance_fee == 100
    assert config.interval == 30
    assert config.vrf_coordinator == COORDINATOR
    assert config.key_hash == bytes.fromhex("ab" * 32)
    assert config.subscription_id == 7
    assert config.callback_gas_limit == 500_000
    assert config.request_confirmations == 3
    assert config.num_words == 1


def test_config_is_immutable():
    config = RaffleConfig.from_dict(base_config())

    with pytest.raises(dataclasses.FrozenInstanceError):
        config.entrance_fee = 0


@pytest.mark.parametrize(
    "section,key,value",
    [
        ("raffle", "interval", 0),
        ("raffle", "entrance_fee", -1),
        ("raffle", "interval", "soon"),
        ("vrf", "coordinator", "0x1234"),
        ("vrf", "key_hash", "0xabcd"),
        ("vrf", "callback_gas_limit", None),
    ],
)
def test_invalid_values_raise_config_error(section, key, value):
    config = base_config()
    config[section][key] = value

    with pytest.raises(ConfigError):
        RaffleConfig.from_dict(config)


def test_load_config_applies_env_overrides(tmp_path, monkeypatch):
    path = tmp_path / "raffle.conf"
    path.write_text(json.dumps(base_config()))
    monkeypatch.setenv("RAFFLE_INTERVAL", "60")
    monkeypatch.setenv("KEEPER_POLL_INTERVAL", "5")

    config = load_config(path)

    assert config["raffle"]["interval"] == "60"
    assert get_config_value(config, "keeper.poll_interval") == "5"
    assert RaffleConfig.from_dict(config).interval == 60


def test_log_settings_come_from_log_prefix(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "raffle.log"))

    config = load_config(tmp_path / "absent.conf")

    assert get_config_value(config, "logging.level") == "debug"
    assert get_config_value(config, "logging.file") == str(tmp_path / "raffle.log")


def test_load_config_missing_file(tmp_path, monkeypatch):
    for name in ENV_SECTIONS:
        for key in [k for k in os.environ if k.startswith(name)]:
            monkeypatch.delenv(key)

    assert load_config(tmp_path / "absent.conf") == {}


def test_load_config_bad_json(tmp_path):
    path = tmp_path / "raffle.conf"
    path.write_text("{not json")

    with pytest.raises(ConfigError):
        load_config(path)
