# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
replikator_exporter.metrics.registry
====================================

The process-wide set of replikator gauges, held on a dedicated
`prometheus_client.CollectorRegistry`.

Collection rebuilds per-entity series on every scrape with
reset-then-repopulate; `transaction()` holds the registry lock so that
sequence is atomic with respect to concurrent scrapes and to exposition.
Unlabeled totals are simply overwritten and cannot be reset.
"""

import threading
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Union

from prometheus_client import CollectorRegistry, Gauge
from prometheus_client.exposition import choose_encoder

from ..core.logging import get_logger

__all__ = [
    "BACKUP_TIMESTAMP",
    "DISK_CAPACITY",
    "DISK_FREE",
    "MEMORY_CAPACITY",
    "MEMORY_FREE",
    "REPLICATION_DISK_USAGE",
    "REPLICATION_LAG",
    "REPLICATION_LAGS",
    "REPLICA_DISK_USAGE",
    "REPLICA_MEMORY_ALLOCATED",
    "REPLICA_MEMORY_USED",
    "SERIES",
    "ReplikatorMetrics",
    "SeriesSpec",
]

_log = get_logger("metrics.registry")

Labels = Union[Mapping[str, str], Sequence[str]]

REPLICATION_LAG = "replication_lag"
REPLICATION_LAGS = "replication_lags"
REPLICATION_DISK_USAGE = "replication_disk_usage"
DISK_CAPACITY = "disk_capacity"
DISK_FREE = "disk_free"
MEMORY_CAPACITY = "memory_capacity"
MEMORY_FREE = "memory_free"
REPLICA_DISK_USAGE = "replica_disk_usage"
REPLICA_MEMORY_ALLOCATED = "replica_memory_allocated"
REPLICA_MEMORY_USED = "replica_memory_used"
BACKUP_TIMESTAMP = "backup_timestamp_seconds"


@dataclass(frozen=True)
class SeriesSpec:
    name: str
    documentation: str
    label_names: tuple[str, ...] = ()


SERIES: tuple[SeriesSpec, ...] = (
    # Replication
    SeriesSpec(REPLICATION_LAG, "Replication lag from master server", ("state",)),
    SeriesSpec(REPLICATION_LAGS, "Replication lag per channel", ("channel",)),
    SeriesSpec(REPLICATION_DISK_USAGE, "Disk usage by the replication process", ("state",)),
    SeriesSpec(DISK_CAPACITY, "Disk capacity"),
    SeriesSpec(DISK_FREE, "Free disk space"),
    SeriesSpec(MEMORY_CAPACITY, "Memory capacity"),
    SeriesSpec(MEMORY_FREE, "Free memory"),
    # Replicas
    SeriesSpec(REPLICA_DISK_USAGE, "Disk usage by a replica", ("replica", "state")),
    SeriesSpec(REPLICA_MEMORY_ALLOCATED, "Memory allocated for a replica", ("replica", "state")),
    SeriesSpec(REPLICA_MEMORY_USED, "Memory used by a replica", ("replica", "state")),
    # Backups
    SeriesSpec(BACKUP_TIMESTAMP, "Backup timestamp in seconds", ("backup",)),
)


class ReplikatorMetrics:
    """
    Named gauges addressed by series name.

    Example:
        metrics = ReplikatorMetrics()
        with metrics.transaction():
            metrics.reset("replication_lags")
            metrics.observe("replication_lags", {"channel": "aurora"}, 0.0)
    """

    def __init__(self, *, namespace: str = "replikator", registry: CollectorRegistry | None = None) -> None:
        self.namespace = namespace
        self.registry = registry if registry is not None else CollectorRegistry()
        self._lock = threading.RLock()
        self._specs: dict[str, SeriesSpec] = {s.name: s for s in SERIES}
        self._gauges: dict[str, Gauge] = {
            s.name: Gauge(
                s.name,
                s.documentation,
                labelnames=s.label_names,
                namespace=namespace,
                registry=self.registry,
            )
            for s in SERIES
        }

    # ---- lookup --------------------------------------------------------------

    def spec(self, series: str) -> SeriesSpec:
        try:
            return self._specs[series]
        except KeyError:
            raise KeyError(f"unknown series: {series!r}") from None

    def full_name(self, series: str) -> str:
        return f"{self.namespace}_{self.spec(series).name}"

    # ---- mutation ------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Hold the registry lock for a reset-then-repopulate sequence."""
        with self._lock:
            yield

    def reset(self, series: str) -> None:
        """Drop every label combination of a labeled series."""
        spec = self.spec(series)
        if not spec.label_names:
            raise ValueError(f"series {series!r} has no labels; overwrite it instead of resetting")
        with self._lock:
            self._gauges[series].clear()

    def observe(self, series: str, labels: Labels, value: float) -> None:
        """Insert or overwrite the value of one label combination."""
        spec = self.spec(series)
        gauge = self._gauges[series]
        with self._lock:
            if not spec.label_names:
                if labels:
                    raise ValueError(f"series {series!r} takes no labels, got {labels!r}")
                gauge.set(value)
            elif isinstance(labels, Mapping):
                gauge.labels(**labels).set(value)
            else:
                gauge.labels(*labels).set(value)

    # ---- reading -------------------------------------------------------------

    def _samples(self, series: str) -> dict[tuple[str, ...], float]:
        spec = self.spec(series)
        out: dict[tuple[str, ...], float] = {}
        with self._lock:
            for family in self._gauges[series].collect():
                for sample in family.samples:
                    out[tuple(sample.labels[n] for n in spec.label_names)] = sample.value
        return out

    def label_sets(self, series: str) -> set[tuple[str, ...]]:
        """Label tuples currently populated for a series (in label-name order)."""
        return set(self._samples(series))

    def value(self, series: str, labels: Labels = ()) -> float | None:
        spec = self.spec(series)
        if isinstance(labels, Mapping):
            key = tuple(labels[n] for n in spec.label_names)
        else:
            key = tuple(labels)
        return self._samples(series).get(key)

    def snapshot(self) -> dict[str, dict[tuple[str, ...], float]]:
        """Consistent copy of every replikator series, taken under the lock."""
        with self._lock:
            return {name: self._samples(name) for name in self._specs}

    # ---- exposition ----------------------------------------------------------

    def render(self, accept: str | None = None) -> tuple[bytes, str]:
        """Serialize the whole registry; returns (body, content_type)."""
        encoder, content_type = choose_encoder(accept or "")
        with self._lock:
            body = encoder(self.registry)
        return body, content_type
