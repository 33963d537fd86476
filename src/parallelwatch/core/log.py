from __future__ import annotations

"""
parallelwatch.core.log
======================

Structured logging for the library:
- Context propagation via contextvars (group_id, type, watcher_id).
- JSON formatter for production; human formatter for local debugging.
- LoggerAdapter that accepts arbitrary keyword fields:
      log.info("group.created", event="group.created", group_id=gid)
- `swallow` / `warn_once` helpers to replace silent `try/except`.

Importing this module is silent (NullHandler only).
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

# ---------- Context ----------

_log_context: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "parallelwatch_log_ctx", default=None
)


def _ctx_copy() -> dict[str, Any]:
    ctx = _log_context.get()
    return dict(ctx) if ctx else {}


def bind_context(**fields: Any) -> None:
    """Merge fields into the current structured log context (None values are dropped)."""
    ctx = _ctx_copy()
    ctx.update({k: v for k, v in fields.items() if v is not None})
    _log_context.set(ctx)


@contextmanager
def log_context(**fields: Any):
    """Temporarily add fields to the log context; restores the previous one on exit."""
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
        "asctime",
        "taskName",
    }
)

# Context keys shown by the human formatter.
_HUMAN_CTX_KEYS: Final[tuple[str, ...]] = ("watcher_id", "group_id", "type", "task_id")


def _iso_utc_ms(ts: float) -> str:
    dt = datetime.fromtimestamp(ts, tz=UTC)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line: ts, level, logger, message, context fields,
    keyword extras and (optionally) the exception stack.
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

        if record.exc_info:
            exc_type = record.exc_info[0].__name__ if record.exc_info[0] else "Exception"
            err = out.setdefault("error", {})
            err["type"] = exc_type
            err["message"] = str(record.exc_info[1]) if record.exc_info[1] else None
            if self.include_stack:
                err["stack"] = self.formatException(record.exc_info)

        return json.dumps(out, ensure_ascii=False, separators=(",", ":"), default=str)


class HumanFormatter(logging.Formatter):
    """Compact one-line formatter for local debugging."""

    default_time_format = "%Y-%m-%d %H:%M:%S"
    default_msec_format = "%s.%03d"

    def format(self, record: logging.LogRecord) -> str:
        s = f"{self.formatTime(record)} {record.levelname:<5} {record.name}: {record.getMessage()}"
        ctx = {**_ctx_copy(), **{k: v for k, v in record.__dict__.items() if k in _HUMAN_CTX_KEYS}}
        compact = {k: ctx[k] for k in _HUMAN_CTX_KEYS if ctx.get(k) is not None}
        if compact:
            s += "  [" + ", ".join(f"{k}={v}" for k, v in compact.items()) + "]"
        if record.exc_info:
            s += "\n" + self.formatException(record.exc_info)
        return s


# ---------- Filters / adapter ----------


class ContextFilter(logging.Filter):
    """Copy contextvars into the record so handlers can route on them."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = _log_context.get()
        if ctx:
            for k, v in ctx.items():
                record.__dict__.setdefault(k, v)
        return True


class _LevelBand(logging.Filter):
    def __init__(self, lo: int = logging.NOTSET, hi: int = logging.CRITICAL) -> None:
        super().__init__()
        self.lo = lo
        self.hi = hi

    def filter(self, record: logging.LogRecord) -> bool:
        return self.lo <= record.levelno <= self.hi


class _KwExtraAdapter(logging.LoggerAdapter):
    """
    Moves unknown keyword arguments into `extra={...}` so call sites can pass
    structured fields directly. Names clashing with LogRecord attributes are
    prefixed with `field_`.
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
    """Log `msg` only the first time `code` is seen in this process."""
    with _WARN_ONCE_LOCK:
        if code in _WARN_ONCE_SEEN:
            return
        _WARN_ONCE_SEEN.add(code)
    adapter = logger if isinstance(logger, logging.LoggerAdapter) else _KwExtraAdapter(logger, {})
    adapter.log(level, msg, code=code, **extra)


# ---------- Public configuration API ----------

_ROOT_LOGGER_NAME = "parallelwatch"
_configured = False
_STREAM_HANDLER_NAMES: Final[tuple[str, str]] = ("_parallelwatch_stdout", "_parallelwatch_stderr")


def _coerce_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    lvl = logging.getLevelName(level.upper())
    if not isinstance(lvl, int):
        raise ValueError(f"Invalid level name: {level!r}")
    return lvl


def _truthy_env(name: str) -> bool:
    return os.getenv(name, "").lower() in ("1", "true", "yes", "on")


def get_logger(name: str | None = None) -> logging.LoggerAdapter:
    """Namespaced logger adapter that accepts keyword fields. Silent by default."""
    _bootstrap_minimal()
    base = logging.getLogger(_ROOT_LOGGER_NAME)
    return _KwExtraAdapter(base.getChild(name) if name else base, {})


def _bootstrap_minimal() -> None:
    global _configured
    if _configured:
        return
    lg = logging.getLogger(_ROOT_LOGGER_NAME)
    lg.setLevel(logging.DEBUG)
    if not any(isinstance(h, logging.NullHandler) for h in lg.handlers):
        lg.addHandler(logging.NullHandler())
    if not any(isinstance(f, ContextFilter) for f in lg.filters):
        lg.addFilter(ContextFilter())
    _configured = True


def set_level(level: int | str) -> None:
    logging.getLogger(_ROOT_LOGGER_NAME).setLevel(_coerce_level(level))


def enable_stdout_logging(
    *,
    level: int | str = logging.DEBUG,
    json_output: bool = True,
    include_stack: bool = False,
    pretty: bool = False,
    route_errors_to_stderr: bool = False,
) -> None:
    """
    Attach stream handlers (tests, local runs, containers).
    pretty=True wins over json_output. With route_errors_to_stderr, ERROR+
    goes to stderr and everything below to stdout.
    """
    lvl = _coerce_level(level)
    _bootstrap_minimal()
    lg = logging.getLogger(_ROOT_LOGGER_NAME)
    disable_stdout_logging()

    fmt: logging.Formatter
    if pretty:
        fmt = HumanFormatter()
    elif json_output:
        fmt = JsonFormatter(include_stack=include_stack)
    else:
        fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    out = logging.StreamHandler(sys.stdout)
    out.set_name(_STREAM_HANDLER_NAMES[0])
    out.setLevel(lvl)
    out.setFormatter(fmt)
    lg.addHandler(out)

    if route_errors_to_stderr:
        out.addFilter(_LevelBand(hi=logging.WARNING))
        err = logging.StreamHandler(sys.stderr)
        err.set_name(_STREAM_HANDLER_NAMES[1])
        err.setLevel(max(lvl, logging.ERROR))
        err.addFilter(_LevelBand(lo=logging.ERROR))
        err.setFormatter(fmt)
        lg.addHandler(err)


def disable_stdout_logging() -> None:
    lg = logging.getLogger(_ROOT_LOGGER_NAME)
    for h in list(lg.handlers):
        if h.get_name() in _STREAM_HANDLER_NAMES:
            lg.removeHandler(h)


def configure_from_env() -> None:
    """
    Call once from entrypoints/tests. Honors:
      - PARALLELWATCH_LOG_STDOUT=1 -> enable stdout
      - PARALLELWATCH_LOG_LEVEL=DEBUG|INFO|...
      - PARALLELWATCH_LOG_PRETTY=1 -> human formatter instead of JSON
      - PARALLELWATCH_LOG_STACK=1 -> include stack in JSON logs
    """
    level = os.getenv("PARALLELWATCH_LOG_LEVEL", "INFO")
    pretty = _truthy_env("PARALLELWATCH_LOG_PRETTY")

    _bootstrap_minimal()
    set_level(level)

    if _truthy_env("PARALLELWATCH_LOG_STDOUT"):
        enable_stdout_logging(
            level=level,
            json_output=not pretty,
            include_stack=_truthy_env("PARALLELWATCH_LOG_STACK"),
            pretty=pretty,
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
    reraise: bool = False,
    extra: Mapping[str, Any] | None = None,
    expected: bool = True,
):
    """
    Replace `try/except: pass` with a structured log line:

        with swallow(logger=log, code="store.close", msg="close failed"):
            await store.aclose()
    """
    base = logger or get_logger("swallow")
    adapter = base if isinstance(base, logging.LoggerAdapter) else _KwExtraAdapter(base, {})
    try:
        yield
    except Exception as e:
        payload: dict[str, Any] = {"code": code, "expected": expected}
        if extra:
            payload.update(extra)
        adapter.log(level, msg or "Suppressed exception", exc_info=e, **payload)
        if reraise:
            raise


_bootstrap_minimal()
