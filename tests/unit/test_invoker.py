"""
CommandInvoker runs the tool as a child process; failures surface as InvocationError.
"""

from __future__ import annotations

import os
import sys
import threading
import time

import pytest

from replikator_exporter.collector.invoker import CommandInvoker, KeyedLocks
from replikator_exporter.collector.pipeline import CollectionPipeline
from replikator_exporter.core.errors import DecodeError, InvocationError
from replikator_exporter.metrics.registry import ReplikatorMetrics
from replikator_exporter.state.decoder import decode_snapshot
from tests.helpers.invoker import ASSETS

pytestmark = [pytest.mark.unit, pytest.mark.subprocess]


def _py(code: str) -> list[str]:
    return [sys.executable, "-c", code]


def test_arguments_are_split_and_appended():
    invoke = CommandInvoker(_py("import sys; print(' | '.join(sys.argv[1:]))"))
    out = invoke("k", "--output json --list-backups")
    assert out.strip() == "--output | json | --list-backups"


def test_runs_in_workdir(tmp_path):
    invoke = CommandInvoker(_py("import os; print(os.getcwd())"), workdir=str(tmp_path))
    assert os.path.samefile(invoke("k", "").strip(), tmp_path)


def test_nonzero_exit_raises_with_stderr():
    invoke = CommandInvoker(_py("import sys; sys.stderr.write('lock busy'); sys.exit(3)"))
    with pytest.raises(InvocationError) as ei:
        invoke("k", "--list")
    assert ei.value.returncode == 3
    assert "lock busy" in ei.value.stderr
    assert ei.value.tool_args == "--list"


def test_timeout_raises():
    invoke = CommandInvoker(_py("import time; time.sleep(10)"), timeout_sec=0.3)
    with pytest.raises(InvocationError, match="timed out"):
        invoke("k", "")


def test_missing_binary_raises(tmp_path):
    invoke = CommandInvoker([str(tmp_path / "no-such-replikator")])
    with pytest.raises(InvocationError, match="cannot run"):
        invoke("k", "--list")


def test_empty_command_is_rejected():
    with pytest.raises(ValueError):
        CommandInvoker([])


def test_same_lock_key_serializes_invocations():
    invoke = CommandInvoker(_py("import time; time.sleep(0.3)"))
    started = time.perf_counter()
    threads = [threading.Thread(target=invoke, args=("shared", "")) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert time.perf_counter() - started >= 0.6


def test_keyed_locks_are_stable_per_key():
    locks = KeyedLocks()
    assert locks.get("a") is locks.get("a")
    assert locks.get("a") is not locks.get("b")


_BINARY_GARBAGE = "import sys; sys.stdout.buffer.write(b'\\xff\\xfe not json')"


def test_invalid_utf8_output_is_replaced_not_raised():
    out = CommandInvoker(_py(_BINARY_GARBAGE))("k", "--list")
    assert out.startswith("\ufffd\ufffd not json")
    with pytest.raises(DecodeError):
        decode_snapshot(out)


def test_invalid_utf8_backup_listing_keeps_previous_backups():
    main = str(ASSETS / "with-replication-lags.json")
    tool = (
        "import sys\n"
        "if '--list-backups' in sys.argv:\n"
        "    sys.stdout.buffer.write(b'\\xff\\xfe not json')\n"
        "else:\n"
        f"    sys.stdout.write(open({main!r}, encoding='utf-8').read())\n"
    )
    metrics = ReplikatorMetrics()
    metrics.observe("backup_timestamp_seconds", {"backup": "old"}, 1.0)

    result = CollectionPipeline(metrics, CommandInvoker(_py(tool))).collect()

    assert result.main_ok
    assert not result.backups_ok
    assert metrics.value("backup_timestamp_seconds", {"backup": "old"}) == 1.0
