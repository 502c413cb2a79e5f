"""
ExporterConfig: defaults, JSON file, environment and explicit overrides.
"""

from __future__ import annotations

import json

import pytest

from replikator_exporter.core.config import DEFAULT_LIST_ARGS, DEFAULT_LIST_BACKUPS_ARGS, ExporterConfig
from replikator_exporter.core.errors import ConfigError

pytestmark = [pytest.mark.unit]

_ENV = (
    "REPLIKATOR_EXPORTER_ADDRESS",
    "REPLIKATOR_EXPORTER_PORT",
    "REPLIKATOR_COMMAND",
    "REPLIKATOR_WORKDIR",
    "REPLIKATOR_LOCK_KEY",
    "REPLIKATOR_TIMEOUT_SEC",
    "OTEL_EXPORTER_OTLP_ENDPOINT",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    cfg = ExporterConfig.load()
    assert cfg.listen_port == 9876
    assert cfg.metrics_path == "/metrics"
    assert cfg.command == ["replikator"]
    assert cfg.list_args == DEFAULT_LIST_ARGS == "--output json --list"
    assert cfg.list_backups_args == DEFAULT_LIST_BACKUPS_ARGS == "--output json --list-backups"
    assert cfg.namespace == "replikator"
    assert cfg.otlp_endpoint is None


def test_file_then_env_then_overrides(tmp_path, monkeypatch):
    path = tmp_path / "exporter.json"
    path.write_text(json.dumps({"listen_port": 9100, "lock_key": "from-file", "workdir": "/srv"}), encoding="utf-8")
    monkeypatch.setenv("REPLIKATOR_LOCK_KEY", "from-env")
    monkeypatch.setenv("REPLIKATOR_COMMAND", "sudo -n replikator")

    cfg = ExporterConfig.load(path, overrides={"listen_port": 9200, "workdir": None})

    assert cfg.listen_port == 9200
    assert cfg.lock_key == "from-env"
    assert cfg.workdir == "/srv"
    assert cfg.command == ["sudo", "-n", "replikator"]


def test_missing_file_uses_defaults(tmp_path):
    cfg = ExporterConfig.load(tmp_path / "absent.json")
    assert cfg.listen_port == 9876


def test_env_numbers_are_coerced(monkeypatch):
    monkeypatch.setenv("REPLIKATOR_EXPORTER_PORT", "9300")
    monkeypatch.setenv("REPLIKATOR_TIMEOUT_SEC", "2.5")
    cfg = ExporterConfig.load()
    assert cfg.listen_port == 9300
    assert cfg.invoke_timeout_sec == 2.5


def test_command_string_is_split():
    assert ExporterConfig(command="replikator --profile prod").command == ["replikator", "--profile", "prod"]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"listen_port": 0},
        {"listen_port": "http"},
        {"invoke_timeout_sec": 0},
        {"command": []},
        {"metrics_path": "metrics"},
        {"metrics_path": "/healthz"},
        {"namespace": ""},
    ],
)
def test_invalid_values(kwargs):
    with pytest.raises(ConfigError):
        ExporterConfig(**kwargs)


def test_unknown_keys_are_rejected(tmp_path):
    path = tmp_path / "exporter.json"
    path.write_text(json.dumps({"scrape_interval": 15}), encoding="utf-8")
    with pytest.raises(ConfigError, match="unknown config key"):
        ExporterConfig.load(path)


def test_malformed_file_is_an_error(tmp_path):
    path = tmp_path / "exporter.json"
    path.write_text("{", encoding="utf-8")
    with pytest.raises(ConfigError):
        ExporterConfig.load(path)
