from __future__ import annotations

"""
Running the replikator CLI.

The pipeline only depends on the `Invoker` signature `(lock_key, args) -> str`;
`CommandInvoker` is the production implementation. Invocations that share a
lock key are serialized in-process, and each one is bounded by a timeout so a
hung tool cannot block a scrape forever. Output that is not valid UTF-8 is
decoded with replacement characters and left for the decoder to reject.
"""

import shlex
import subprocess
import threading
import time
from collections.abc import Sequence
from typing import Callable

from ..core.errors import InvocationError
from ..core.logging import get_logger

__all__ = ["CommandInvoker", "Invoker", "KeyedLocks"]

Invoker = Callable[[str, str], str]

_log = get_logger("collector.invoker")

_STDERR_TAIL = 500


class KeyedLocks:
    """Lazily created mutex per key."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def get(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock


class CommandInvoker:
    """
    Callable invoker backed by `subprocess.run`.

    Example:
        invoke = CommandInvoker(["sudo", "replikator"], workdir="/var/lib/replikator")
        raw = invoke("replikator", "--output json --list")
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        workdir: str | None = None,
        timeout_sec: float = 30.0,
        locks: KeyedLocks | None = None,
    ) -> None:
        if not command:
            raise ValueError("command must not be empty")
        self.command = list(command)
        self.workdir = workdir
        self.timeout_sec = timeout_sec
        self._locks = locks or KeyedLocks()

    def __call__(self, lock_key: str, args: str) -> str:
        argv = [*self.command, *shlex.split(args)]
        with self._locks.get(lock_key):
            started = time.perf_counter()
            try:
                proc = subprocess.run(
                    argv,
                    cwd=self.workdir,
                    capture_output=True,
                    encoding="utf-8",
                    errors="replace",
                    timeout=self.timeout_sec,
                    check=False,
                )
            except subprocess.TimeoutExpired as e:
                raise InvocationError(f"{argv[0]} timed out after {self.timeout_sec}s", args=args) from e
            except OSError as e:
                raise InvocationError(f"cannot run {argv[0]}: {e}", args=args) from e
            elapsed_ms = int((time.perf_counter() - started) * 1000)

        if proc.returncode != 0:
            stderr = (proc.stderr or "")[-_STDERR_TAIL:]
            raise InvocationError(
                f"{argv[0]} exited with status {proc.returncode}",
                args=args,
                returncode=proc.returncode,
                stderr=stderr,
            )
        _log.debug("tool invoked", event="invoke.ok", tool_args=args, duration_ms=elapsed_ms, bytes=len(proc.stdout))
        return proc.stdout
