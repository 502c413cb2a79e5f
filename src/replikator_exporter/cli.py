from __future__ import annotations

"""
Command-line entry point: `replikator-exporter` / `python -m replikator_exporter`.

Builds config -> logging -> tracing -> registry -> invoker -> pipeline -> app,
then serves until SIGINT/SIGTERM. `--once` runs a single collection and
prints the exposition to stdout instead.
"""

import argparse
import signal
import sys
import threading
from typing import Any

from .collector.invoker import CommandInvoker
from .collector.pipeline import CollectionPipeline
from .core.config import ExporterConfig
from .core.errors import ConfigError
from .core.logging import bind_context, configure_from_env, get_logger
from .core.tracing import setup_tracing
from .metrics.registry import ReplikatorMetrics
from .server.app import ExporterApp, make_server_for

_log = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="replikator-exporter",
        description="Expose replikator replication state as Prometheus metrics.",
    )
    ap.add_argument("--config", help="Path to a JSON config file")
    ap.add_argument("--address", dest="listen_address", help="Listen address (default: 0.0.0.0)")
    ap.add_argument("--port", dest="listen_port", type=int, help="Listen port (default: 9876)")
    ap.add_argument("--metrics-path", dest="metrics_path", help="Metrics path (default: /metrics)")
    ap.add_argument("--command", help="replikator command line, shell-split (default: replikator)")
    ap.add_argument("--workdir", help="Working directory for the replikator command")
    ap.add_argument("--lock-key", dest="lock_key", help="Lock key passed to every invocation")
    ap.add_argument("--timeout", dest="invoke_timeout_sec", type=float, help="Per-invocation timeout in seconds")
    ap.add_argument("--log-level", default=None, help="Log level (default: $REPLIKATOR_LOG_LEVEL or INFO)")
    ap.add_argument("--log-pretty", action="store_true", help="Human-readable logs instead of JSON")
    ap.add_argument("--once", action="store_true", help="Collect once, print the exposition and exit")
    return ap


def _overrides(ns: argparse.Namespace) -> dict[str, Any]:
    keys = ("listen_address", "listen_port", "metrics_path", "command", "workdir", "lock_key", "invoke_timeout_sec")
    return {k: getattr(ns, k) for k in keys if getattr(ns, k) is not None}


def build_app(cfg: ExporterConfig) -> ExporterApp:
    metrics = ReplikatorMetrics(namespace=cfg.namespace)
    invoker = CommandInvoker(cfg.command, workdir=cfg.workdir, timeout_sec=cfg.invoke_timeout_sec)
    pipeline = CollectionPipeline(
        metrics,
        invoker,
        lock_key=cfg.lock_key,
        list_args=cfg.list_args,
        list_backups_args=cfg.list_backups_args,
    )
    return ExporterApp(
        pipeline,
        metrics,
        metrics_path=cfg.metrics_path,
        disable_compression=cfg.disable_compression,
    )


def main(argv: list[str] | None = None) -> int:
    ns = build_parser().parse_args(argv)

    # --once writes the exposition to stdout; logs go there only when asked for
    configure_from_env(stdout_default=not ns.once, level=ns.log_level, pretty=True if ns.log_pretty else None)
    bind_context(service="replikator-exporter")

    try:
        cfg = ExporterConfig.load(ns.config, overrides=_overrides(ns))
    except ConfigError as e:
        _log.error("invalid configuration", event="config.invalid", error=str(e))
        return 2

    setup_tracing(service_name=cfg.service_name, otlp_endpoint=cfg.otlp_endpoint)
    app = build_app(cfg)

    if ns.once:
        result = app.pipeline.collect()
        body, _ = app.metrics.render()
        sys.stdout.write(body.decode("utf-8"))
        return 0 if result.main_ok else 1

    server = make_server_for(app, cfg.listen_address, cfg.listen_port)

    def _stop(signum: int, _frame: Any) -> None:
        _log.info("shutdown requested", event="server.stopping", signal=signum)
        threading.Thread(target=server.shutdown, daemon=True).start()

    signal.signal(signal.SIGTERM, _stop)
    signal.signal(signal.SIGINT, _stop)

    _log.info(
        "exporter listening",
        event="server.started",
        address=cfg.listen_address,
        port=cfg.listen_port,
        metrics_path=cfg.metrics_path,
    )
    try:
        server.serve_forever()
    finally:
        server.server_close()
    _log.info("exporter stopped", event="server.stopped")
    return 0
