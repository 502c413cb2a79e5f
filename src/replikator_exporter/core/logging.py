from __future__ import annotations

"""
replikator_exporter.core.logging
================================

Structured logging on top of the stdlib `logging` module:
- Per-scrape context propagation via contextvars (scrape_id, step, ...).
- JSON formatter for containers; human formatter for local runs.
- LoggerAdapter that accepts arbitrary keyword fields.
- Helpers to attach/detach stdout handlers and to swallow expected errors.

The package logger is silent until an application calls
`enable_stdout_logging()` or `configure_from_env()`.
"""

import contextvars
import json
import logging
import os
import sys
import threading
from collections.abc import Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, ClassVar, Final

__all__ = [
    "bind_context",
    "configure_from_env",
    "disable_stdout_logging",
    "enable_stdout_logging",
    "get_logger",
    "log_context",
    "set_level",
    "swallow",
    "warn_once",
]

ROOT_LOGGER_NAME: Final[str] = "replikator_exporter"

# ---------- Context ----------

_log_context: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "replikator_exporter_log_ctx", default=None
)


def _ctx_copy() -> dict[str, Any]:
    ctx = _log_context.get()
    return dict(ctx) if ctx else {}


def bind_context(**fields: Any) -> None:
    """Merge fields into the current log context (process/thread lifetime)."""
    ctx = _ctx_copy()
    ctx.update({k: v for k, v in fields.items() if v is not None})
    _log_context.set(ctx)


@contextmanager
def log_context(**fields: Any):
    """
    Temporarily add fields to the log context, e.g. for the duration of one scrape.
    Restores the previous context on exit.
    """
    token = _log_context.set({**_ctx_copy(), **{k: v for k, v in fields.items() if v is not None}})
    try:
        yield
    finally:
        _log_context.reset(token)


# ---------- Formatters ----------

_STD_ATTRS: Final[frozenset[str]] = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "asctime",
        "message",
    }
)


def _iso_utc_ms(ts: float) -> str:
    dt = datetime.fromtimestamp(ts, tz=UTC)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _exc_tuple(exc_info: Any) -> tuple | None:
    if not exc_info:
        return None
    if isinstance(exc_info, BaseException):
        return (type(exc_info), exc_info, exc_info.__traceback__)
    if exc_info is True:
        return sys.exc_info()
    if isinstance(exc_info, tuple):
        return exc_info
    return None


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line with:
      - ts, level, logger, message
      - the current log context (scrape_id, ...)
      - extra=... fields
      - error.type / error.message (and error.stack when include_stack=True)
    """

    def __init__(self, *, include_stack: bool = False) -> None:
        super().__init__()
        self.include_stack = include_stack

    def format(self, record: logging.LogRecord) -> str:
        out: dict[str, Any] = {
            "ts": _iso_utc_ms(record.created),
            "level": record.levelname,
            "logger": record.name,
        }

        msg = record.getMessage()
        if msg:
            out["message"] = msg

        ctx = _log_context.get()
        if ctx:
            out.update(ctx)

        for k, v in record.__dict__.items():
            if k in _STD_ATTRS or k in out:
                continue
            out[k] = v

        exc = _exc_tuple(record.exc_info)
        if exc:
            out["error"] = {
                "type": exc[0].__name__ if exc[0] else "Exception",
                "message": str(exc[1]) if exc[1] else None,
            }
            if self.include_stack:
                out["error"]["stack"] = self.formatException(exc)
        elif record.exc_text:
            out["error"] = {"stack": record.exc_text}

        return json.dumps(out, ensure_ascii=False, separators=(",", ":"), default=str)


class HumanFormatter(logging.Formatter):
    """Compact single-line formatter for local debugging."""

    default_time_format = "%Y-%m-%d %H:%M:%S"
    default_msec_format = "%s.%03d"

    _context_keys: ClassVar[tuple[str, ...]] = ("scrape_id", "step", "path")

    def format(self, record: logging.LogRecord) -> str:
        s = f"{self.formatTime(record)} {record.levelname:<5} {record.name}: {record.getMessage()}"
        ctx = _log_context.get()
        if ctx:
            compact = {k: ctx.get(k) for k in self._context_keys if ctx.get(k) is not None}
            if compact:
                s += "  [" + ", ".join(f"{k}={v}" for k, v in compact.items()) + "]"
        exc = _exc_tuple(record.exc_info)
        if exc:
            s += "\n" + self.formatException(exc)
        return s


# ---------- Filters / adapter ----------


class ContextFilter(logging.Filter):
    """Copy the current log context onto each LogRecord for downstream handlers."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = _log_context.get()
        if ctx:
            for k, v in ctx.items():
                record.__dict__.setdefault(k, v)
        return True


class _LevelBand(logging.Filter):
    def __init__(self, *, low: int = logging.NOTSET, high: int = logging.CRITICAL) -> None:
        super().__init__()
        self.low = low
        self.high = high

    def filter(self, record: logging.LogRecord) -> bool:
        return self.low <= record.levelno <= self.high


class _KwExtraAdapter(logging.LoggerAdapter):
    """
    Moves unknown keyword arguments into `extra={...}`, so callers can write

        log.warning("main state decode failed", event="collect.main.failed", error=str(e))
    """

    _passthrough: ClassVar[frozenset[str]] = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})

    def process(self, msg, kwargs):
        extra = kwargs.get("extra")
        if not isinstance(extra, dict):
            extra = {}
        for k in [k for k in kwargs if k not in self._passthrough]:
            v = kwargs.pop(k)
            key = f"field_{k}" if k in _STD_ATTRS else k
            extra.setdefault(key, v)
        kwargs["extra"] = extra
        return msg, kwargs


_WARN_ONCE_SEEN: set[str] = set()
_WARN_ONCE_LOCK = threading.Lock()


def warn_once(
    logger: logging.Logger | logging.LoggerAdapter,
    code: str,
    msg: str,
    *,
    level: int = logging.WARNING,
    **extra: Any,
) -> None:
    """Log a message only once per process for the given code."""
    with _WARN_ONCE_LOCK:
        if code in _WARN_ONCE_SEEN:
            return
        _WARN_ONCE_SEEN.add(code)
    adapter = logger if isinstance(logger, logging.LoggerAdapter) else _KwExtraAdapter(logger, {})
    adapter.log(level, msg, code=code, **extra)


# ---------- Configuration ----------

_configured = False
_HANDLER_NAMES: Final[tuple[str, str]] = ("_replikator_stdout_handler", "_replikator_stderr_handler")


def _bootstrap_minimal() -> None:
    global _configured
    if _configured:
        return
    lg = logging.getLogger(ROOT_LOGGER_NAME)
    lg.setLevel(logging.DEBUG)
    if not any(isinstance(h, logging.NullHandler) for h in lg.handlers):
        lg.addHandler(logging.NullHandler())
    _configured = True


def get_logger(name: str | None = None) -> logging.LoggerAdapter:
    """Return a namespaced logger adapter that accepts arbitrary keyword fields."""
    _bootstrap_minimal()
    base = logging.getLogger(ROOT_LOGGER_NAME)
    return _KwExtraAdapter(base.getChild(name) if name else base, {})


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    val = getattr(logging, str(level).upper(), None)
    if isinstance(val, int):
        return val
    raise ValueError(f"Invalid log level: {level!r}")


def set_level(level: int | str) -> None:
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(_resolve_level(level))


def enable_stdout_logging(
    *,
    level: int | str = logging.INFO,
    json_output: bool = True,
    include_stack: bool = False,
    pretty: bool = False,
    route_errors_to_stderr: bool = False,
) -> None:
    """
    Attach stream handlers to the package logger.

    - pretty=True -> HumanFormatter, else JsonFormatter when json_output=True
    - route_errors_to_stderr=True -> ERROR+ to stderr, the rest to stdout
    """
    lvl = _resolve_level(level)
    _bootstrap_minimal()
    lg = logging.getLogger(ROOT_LOGGER_NAME)
    disable_stdout_logging()

    fmt: logging.Formatter
    if pretty:
        fmt = HumanFormatter()
    elif json_output:
        fmt = JsonFormatter(include_stack=include_stack)
    else:
        fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    out = logging.StreamHandler(sys.stdout)
    out.set_name(_HANDLER_NAMES[0])
    out.setLevel(lvl)
    out.setFormatter(fmt)
    out.addFilter(ContextFilter())
    lg.addHandler(out)

    if route_errors_to_stderr:
        out.addFilter(_LevelBand(high=logging.WARNING))
        err = logging.StreamHandler(sys.stderr)
        err.set_name(_HANDLER_NAMES[1])
        err.setLevel(max(lvl, logging.ERROR))
        err.addFilter(_LevelBand(low=logging.ERROR))
        err.setFormatter(fmt)
        err.addFilter(ContextFilter())
        lg.addHandler(err)


def disable_stdout_logging() -> None:
    lg = logging.getLogger(ROOT_LOGGER_NAME)
    for h in list(lg.handlers):
        if h.get_name() in _HANDLER_NAMES:
            lg.removeHandler(h)


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").lower() in ("1", "true", "yes", "on")


def configure_from_env(
    *,
    stdout_default: bool = False,
    level: int | str | None = None,
    pretty: bool | None = None,
) -> None:
    """
    Env:
      - REPLIKATOR_LOG_STDOUT=1|true   (unset -> `stdout_default`)
      - REPLIKATOR_LOG_LEVEL=DEBUG|INFO|...
      - REPLIKATOR_LOG_PRETTY=1
      - REPLIKATOR_LOG_STACK=1

    Explicit `level`/`pretty` arguments (command-line flags) win over the env.
    """
    if level is None:
        level = os.getenv("REPLIKATOR_LOG_LEVEL", "INFO")
    if pretty is None:
        pretty = _env_flag("REPLIKATOR_LOG_PRETTY")
    stdout = _env_flag("REPLIKATOR_LOG_STDOUT") if "REPLIKATOR_LOG_STDOUT" in os.environ else stdout_default

    _bootstrap_minimal()
    set_level(level)
    if stdout:
        enable_stdout_logging(
            level=level, json_output=not pretty, include_stack=_env_flag("REPLIKATOR_LOG_STACK"), pretty=pretty
        )
    else:
        disable_stdout_logging()


@contextmanager
def swallow(
    *,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
    level: int = logging.DEBUG,
    code: str,
    msg: str | None = None,
    catch: tuple[type[BaseException], ...] = (Exception,),
    reraise: bool = False,
    extra: Mapping[str, Any] | None = None,
):
    """
    Replace `try/except: pass` with structured logging.

    Only exceptions in `catch` are suppressed; anything else propagates.

    Example:
        with swallow(logger=log, code="collect.backups", catch=(DecodeError,)):
            publish_backups(...)
    """
    base_logger = logger or get_logger("swallow")
    adapter = base_logger if isinstance(base_logger, logging.LoggerAdapter) else _KwExtraAdapter(base_logger, {})
    try:
        yield
    except catch:
        payload: dict[str, Any] = {"code": code}
        if extra:
            payload.update(dict(extra))
        adapter.log(level, msg or "Suppressed exception", exc_info=True, **payload)
        if reraise:
            raise


_bootstrap_minimal()
