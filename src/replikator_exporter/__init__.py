from __future__ import annotations

try:
    from importlib.metadata import version as _pkg_version

    __version__ = _pkg_version("replikator-exporter")
except Exception:  # pragma: no cover
    # running from a source tree without an installed distribution
    __version__ = "0.0.0"

from .collector.pipeline import CollectionPipeline, CollectionResult
from .core.config import ExporterConfig
from .core.errors import ConfigError, DecodeError, ExporterError, InvocationError
from .metrics.registry import ReplikatorMetrics
from .server.app import ExporterApp

__all__ = [
    "CollectionPipeline",
    "CollectionResult",
    "ConfigError",
    "DecodeError",
    "ExporterApp",
    "ExporterConfig",
    "ExporterError",
    "InvocationError",
    "ReplikatorMetrics",
    "__version__",
]
