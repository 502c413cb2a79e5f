# conftest.py
from __future__ import annotations

import os
import uuid

import pytest

from replikator_exporter.collector.pipeline import CollectionPipeline
from replikator_exporter.core.logging import (
    bind_context,
    configure_from_env,
    enable_stdout_logging,
    get_logger,
    log_context,
)
from replikator_exporter.metrics.registry import ReplikatorMetrics
from replikator_exporter.server.app import ExporterApp
from tests.helpers import FakeInvoker


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast, in-process tests of a single module")
    config.addinivalue_line("markers", "integration: pipeline/app tests wired end to end with a fake tool")
    config.addinivalue_line("markers", "subprocess: tests that spawn real child processes")


def pytest_addoption(parser):
    parser.addoption(
        "--log-json",
        action="store_true",
        default=False,
        help="Emit exporter logs in JSON format during tests",
    )


@pytest.fixture(scope="session", autouse=True)
def _configure_exporter_logging(request):
    configure_from_env(level="DEBUG")
    prefer_json = request.config.getoption("--log-json")
    if os.getenv("REPLIKATOR_LOG_STDOUT", "").lower() not in ("1", "true", "yes", "on"):
        enable_stdout_logging(
            level="DEBUG",
            json_output=prefer_json,
            pretty=not prefer_json,
            route_errors_to_stderr=True,
        )
    bind_context(role="pytest")


@pytest.fixture(autouse=True)
def _test_log_context(request):
    log = get_logger("test")
    with log_context(test=request.node.name, test_run=uuid.uuid4().hex[:8]):
        log.debug("pytest.test.start", event="pytest.test.start")
        yield


@pytest.fixture
def metrics() -> ReplikatorMetrics:
    """Fresh registry per test (own CollectorRegistry, no global state)."""
    return ReplikatorMetrics()


@pytest.fixture
def invoker() -> FakeInvoker:
    return FakeInvoker.from_assets("with-replication-lags.json")


@pytest.fixture
def pipeline(metrics, invoker) -> CollectionPipeline:
    return CollectionPipeline(metrics, invoker, lock_key="test-lock")


@pytest.fixture
def app(pipeline, metrics) -> ExporterApp:
    return ExporterApp(pipeline, metrics)
