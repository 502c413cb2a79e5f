from __future__ import annotations

"""
replikator_exporter.collector.pipeline
======================================

One scrape = one synchronous collection:

    fetch main -> decode -> publish main -> fetch backups -> decode -> publish backups

Failure policy:
- Main listing cannot be fetched or decoded: stop here. The registry is left
  exactly as the previous scrape published it, so the response shows stale
  but internally consistent label sets.
- Backup listing cannot be fetched or decoded: log and keep the previous
  backup series. Live replication health has already been published.

Every per-entity series is reset and repopulated inside one registry
transaction, so its label set always equals the entities of the snapshot
that was last published.
"""

from dataclasses import dataclass

from ..core.config import DEFAULT_LIST_ARGS, DEFAULT_LIST_BACKUPS_ARGS
from ..core.errors import DecodeError, InvocationError
from ..core.logging import get_logger, log_context, swallow, warn_once
from ..core.tracing import trace
from ..metrics import registry as m
from ..metrics.registry import ReplikatorMetrics
from ..state.coercion import lag_value, metric_value
from ..state.decoder import Snapshot, decode_snapshot
from .invoker import Invoker

__all__ = ["CollectionPipeline", "CollectionResult", "publish_backups", "publish_main"]

_log = get_logger("collector.pipeline")

_REPLICA_SERIES = (m.REPLICA_DISK_USAGE, m.REPLICA_MEMORY_ALLOCATED, m.REPLICA_MEMORY_USED)


@dataclass
class CollectionResult:
    main_ok: bool = False
    backups_ok: bool = False
    replicas: int = 0
    channels: int = 0
    backups: int = 0
    error: str | None = None


def publish_main(metrics: ReplikatorMetrics, snapshot: Snapshot) -> None:
    """Replace replication, capacity and per-replica series with `snapshot`."""
    gs = snapshot.global_state
    state = gs.state_label
    if not state:
        warn_once(
            _log,
            "collect.main.no_state",
            "replikator output carries no replication state; publishing with an empty state label",
        )

    with metrics.transaction():
        metrics.reset(m.REPLICATION_LAG)
        metrics.observe(m.REPLICATION_LAG, {"state": state}, lag_value(gs.replication_lag))

        metrics.reset(m.REPLICATION_LAGS)
        for channel, lag in gs.replication_lags.items():
            metrics.observe(m.REPLICATION_LAGS, {"channel": channel}, metric_value(lag))

        metrics.reset(m.REPLICATION_DISK_USAGE)
        metrics.observe(m.REPLICATION_DISK_USAGE, {"state": state}, metric_value(gs.replication_disk_usage))

        # unlabeled totals: overwrite
        metrics.observe(m.DISK_CAPACITY, (), metric_value(gs.disk_capacity))
        metrics.observe(m.DISK_FREE, (), metric_value(gs.disk_free))
        metrics.observe(m.MEMORY_CAPACITY, (), metric_value(gs.memory_capacity))
        metrics.observe(m.MEMORY_FREE, (), metric_value(gs.memory_free))

        for series in _REPLICA_SERIES:
            metrics.reset(series)
        for replica in gs.instances:
            labels = {"replica": replica.instance_id, "state": replica.state_label}
            metrics.observe(m.REPLICA_DISK_USAGE, labels, metric_value(replica.disk_usage))
            metrics.observe(m.REPLICA_MEMORY_ALLOCATED, labels, metric_value(replica.memory_allocated))
            metrics.observe(m.REPLICA_MEMORY_USED, labels, metric_value(replica.memory_used))


def publish_backups(metrics: ReplikatorMetrics, snapshot: Snapshot) -> None:
    """Replace the backup timestamp series with the entries of `snapshot`."""
    with metrics.transaction():
        metrics.reset(m.BACKUP_TIMESTAMP)
        for backup in snapshot.backups:
            metrics.observe(
                m.BACKUP_TIMESTAMP,
                {"backup": backup.instance_id},
                metric_value(backup.properties.creation_time),
            )


class CollectionPipeline:
    """
    Demand-driven collector; `collect()` is called once per scrape.

    Never raises for tool or decode failures: those are reflected in the
    returned `CollectionResult` and in the logs.
    """

    def __init__(
        self,
        metrics: ReplikatorMetrics,
        invoke: Invoker,
        *,
        lock_key: str = "replikator",
        list_args: str = DEFAULT_LIST_ARGS,
        list_backups_args: str = DEFAULT_LIST_BACKUPS_ARGS,
    ) -> None:
        self.metrics = metrics
        self.invoke = invoke
        self.lock_key = lock_key
        self.list_args = list_args
        self.list_backups_args = list_backups_args

    def _fetch(self, args: str) -> Snapshot:
        raw = self.invoke(self.lock_key, args)
        return decode_snapshot(raw)

    @trace("replikator.collect.main")
    def _collect_main(self, result: CollectionResult) -> None:
        snapshot = self._fetch(self.list_args)
        publish_main(self.metrics, snapshot)
        gs = snapshot.global_state
        result.main_ok = True
        result.replicas = len(gs.instances)
        result.channels = len(gs.replication_lags)

    @trace("replikator.collect.backups")
    def _collect_backups(self, result: CollectionResult) -> None:
        snapshot = self._fetch(self.list_backups_args)
        publish_backups(self.metrics, snapshot)
        result.backups_ok = True
        result.backups = len(snapshot.backups)

    @trace("replikator.collect")
    def collect(self) -> CollectionResult:
        result = CollectionResult()

        with log_context(step="main"):
            try:
                self._collect_main(result)
            except (InvocationError, DecodeError) as e:
                result.error = str(e)
                _log.warning(
                    "main state unavailable; keeping previous series",
                    event="collect.main.failed",
                    error_type=type(e).__name__,
                    error=str(e),
                )
                return result

        with log_context(step="backups"):
            with swallow(
                logger=_log,
                code="collect.backups.failed",
                msg="backup listing unavailable; keeping previous backup series",
                catch=(InvocationError, DecodeError),
            ):
                self._collect_backups(result)

        _log.debug(
            "collection finished",
            event="collect.done",
            replicas=result.replicas,
            channels=result.channels,
            backups=result.backups,
            backups_ok=result.backups_ok,
        )
        return result
