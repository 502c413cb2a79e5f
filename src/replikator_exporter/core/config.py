from __future__ import annotations

"""
replikator_exporter.core.config
===============================

Typed exporter configuration.
- Defaults, then an optional JSON file, then environment, then explicit overrides.
- Validation happens in `__post_init__` and raises `ConfigError`.

If a config file path is not provided or not found, defaults are used.
"""

import json
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigError

DEFAULT_LIST_ARGS = "--output json --list"
DEFAULT_LIST_BACKUPS_ARGS = "--output json --list-backups"


def _try_load_json(path: Path | None) -> dict[str, Any]:
    if not path:
        return {}
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a JSON object")
    return data


def _env_overrides() -> dict[str, Any]:
    data: dict[str, Any] = {}
    if os.getenv("REPLIKATOR_EXPORTER_ADDRESS"):
        data["listen_address"] = os.environ["REPLIKATOR_EXPORTER_ADDRESS"]
    if os.getenv("REPLIKATOR_EXPORTER_PORT"):
        data["listen_port"] = os.environ["REPLIKATOR_EXPORTER_PORT"]
    if os.getenv("REPLIKATOR_COMMAND"):
        data["command"] = shlex.split(os.environ["REPLIKATOR_COMMAND"])
    if os.getenv("REPLIKATOR_WORKDIR"):
        data["workdir"] = os.environ["REPLIKATOR_WORKDIR"]
    if os.getenv("REPLIKATOR_LOCK_KEY"):
        data["lock_key"] = os.environ["REPLIKATOR_LOCK_KEY"]
    if os.getenv("REPLIKATOR_TIMEOUT_SEC"):
        data["invoke_timeout_sec"] = os.environ["REPLIKATOR_TIMEOUT_SEC"]
    if os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"):
        data["otlp_endpoint"] = os.environ["OTEL_EXPORTER_OTLP_ENDPOINT"]
    return data


@dataclass
class ExporterConfig:
    """Exporter configuration loaded from JSON/env with validation."""

    # ---- HTTP
    listen_address: str = "0.0.0.0"
    listen_port: int = 9876
    metrics_path: str = "/metrics"
    disable_compression: bool = False

    # ---- External tool
    command: list[str] = field(default_factory=lambda: ["replikator"])
    workdir: str | None = None
    lock_key: str = "replikator"
    invoke_timeout_sec: float = 30.0
    list_args: str = DEFAULT_LIST_ARGS
    list_backups_args: str = DEFAULT_LIST_BACKUPS_ARGS

    # ---- Metrics
    namespace: str = "replikator"

    # ---- Tracing
    service_name: str = "replikator-exporter"
    otlp_endpoint: str | None = None

    # ---- Methods ------------------------------------------------------------

    def __post_init__(self) -> None:
        try:
            self.listen_port = int(self.listen_port)
            self.invoke_timeout_sec = float(self.invoke_timeout_sec)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid numeric setting: {e}") from e
        if isinstance(self.command, str):
            self.command = shlex.split(self.command)
        if not isinstance(self.command, list) or not self.command or not all(
            isinstance(x, str) and x for x in self.command
        ):
            raise ConfigError("command must be a non-empty list of non-empty strings")
        if not 0 < self.listen_port < 65536:
            raise ConfigError(f"listen_port out of range: {self.listen_port}")
        if self.invoke_timeout_sec <= 0:
            raise ConfigError("invoke_timeout_sec must be positive")
        if not self.metrics_path.startswith("/"):
            raise ConfigError("metrics_path must start with '/'")
        if self.metrics_path in ("/", "/healthz"):
            raise ConfigError(f"metrics_path must not shadow a built-in route: {self.metrics_path}")
        if not self.namespace:
            raise ConfigError("namespace must be a non-empty string")

    # Loader
    @classmethod
    def load(cls, path: Path | str | None = None, *, overrides: dict[str, Any] | None = None) -> ExporterConfig:
        """
        Load config from JSON file (if provided), then apply env and overrides.

        Env overrides:
          - REPLIKATOR_EXPORTER_ADDRESS, REPLIKATOR_EXPORTER_PORT
          - REPLIKATOR_COMMAND (shell-split), REPLIKATOR_WORKDIR
          - REPLIKATOR_LOCK_KEY, REPLIKATOR_TIMEOUT_SEC
          - OTEL_EXPORTER_OTLP_ENDPOINT
        """
        data: dict[str, Any] = {}
        data.update(_try_load_json(Path(path) if path else None))
        data.update(_env_overrides())
        if overrides:
            data.update({k: v for k, v in overrides.items() if v is not None})

        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"unknown config key(s): {unknown}")
        return cls(**data)
