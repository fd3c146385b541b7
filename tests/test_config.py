from __future__ import annotations

import argparse

import pytest

from difficulty_exporter.config import (
    DEFAULTS,
    load_config,
    merge_args,
    normalize_config,
    validate_config,
)
from difficulty_exporter.errors import ConfigError


def test_defaults_are_filled():
    config = normalize_config({"rpc": "http://node", "dsn": "sqlite://"})

    assert config["interval"] == 3.0
    assert config["start"] == -1
    assert config["pushgateway"] is None
    assert config["namespace"] == "quai_network"
    assert config["connect_attempts"] == 5


def test_load_config_from_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "rpc: http://node:9001\n"
        "dsn: sqlite:///x.db\n"
        "interval: 5\n"
        "start: '1200'\n"
        "grouping:\n"
        "  instance: 1\n"
    )

    config = load_config(path)

    assert config["interval"] == 5.0
    assert config["start"] == 1200
    assert config["grouping"] == {"instance": "1"}


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")

    assert load_config(path) == normalize_config({})


def test_unknown_option_rejected():
    with pytest.raises(ConfigError, match="Unknown"):
        normalize_config({"rpc_url": "http://node"})


def test_non_numeric_option_rejected():
    with pytest.raises(ConfigError):
        normalize_config({"interval": "fast"})


def test_args_override_file_values():
    config = normalize_config({"rpc": "http://file", "dsn": "sqlite://", "interval": 10})
    args = argparse.Namespace(rpc="http://flag", interval=None, start=50, resume=None)

    merged = merge_args(config, args)

    assert merged["rpc"] == "http://flag"
    assert merged["interval"] == 10.0
    assert merged["start"] == 50
    assert merged["resume"] is False


@pytest.mark.parametrize(
    "overrides,message",
    [
        ({"rpc": None}, "required"),
        ({"dsn": ""}, "required"),
        ({"interval": 0}, "interval"),
        ({"rpc_timeout": -1}, "rpc_timeout"),
        ({"connect_attempts": 0}, "connect_attempts"),
        ({"connect_delay": -1}, "connect_delay"),
    ],
)
def test_validate_rejects_bad_config(overrides, message):
    raw = {"rpc": "http://node", "dsn": "sqlite://"}
    raw.update(overrides)

    with pytest.raises(ConfigError, match=message):
        validate_config(normalize_config(raw))


def test_validate_accepts_minimal_config():
    config = normalize_config({"rpc": "http://node", "dsn": "sqlite://"})

    assert validate_config(config) is config
    assert set(config) == set(DEFAULTS)
