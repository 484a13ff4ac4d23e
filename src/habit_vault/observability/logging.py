"""
habit-vault — session log sink.

File: src/habit_vault/observability/logging.py

Purpose
- Write one JSON object per line to ``<log_dir>/<session_id>/session.jsonl``
  for everything the coordinators, cipher guard and ledger adapter log.

Functional requirements
- Sinks, level and directory come from ``ClientConfig`` via ``logging_config_for``.
- Emitting never blocks a coordinator: records go through a bounded queue and
  are dropped (and counted) when it is full.
- ``record_id``, ``operation`` and ``tx_hash`` bound by ``correlation_scope``
  are lifted to top-level keys.
- Proofs, cipher payloads and key material never reach a sink.
"""

from __future__ import annotations

import contextvars
import json
import logging
import logging.handlers
import queue
import re
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

import structlog

from habit_vault.config.loader import ClientConfig

LOG_FILENAME: Final[str] = "session.jsonl"
ROOT_LOGGER_NAME: Final[str] = "habit_vault"
REDACTED: Final[str] = "***REDACTED***"

_CORRELATION_KEYS: Final[tuple[str, ...]] = ("operation", "record_id", "tx_hash")

# Encrypted material, proofs and signing keys.
_REDACTED_KEY_TERMS: Final[tuple[str, ...]] = (
    "proof",
    "cipher_payload",
    "clear_values",
    "private_key",
    "raw_transaction",
)
_KEY_ASSIGNMENT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(private[_-]?key)\s*([:=])\s*\S+"
)

_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "correlation"}

_CORRELATION: contextvars.ContextVar[tuple[tuple[str, str], ...]] = contextvars.ContextVar(
    "habit_vault_correlation", default=()
)


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Where and how one session's log lines are written."""

    session_id: str
    log_dir: Path = Path("logs")
    level: str = "INFO"
    log_to_stdout: bool = False
    logger_name: str = ROOT_LOGGER_NAME
    queue_size: int = 4096


def logging_config_for(config: ClientConfig, session_id: str) -> LoggingConfig:
    return LoggingConfig(
        session_id=session_id,
        log_dir=Path(config.log_dir),
        level=config.log_level,
        log_to_stdout=config.log_to_stdout,
    )


class _SessionQueueHandler(logging.handlers.QueueHandler):
    def __init__(self, log_queue: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(log_queue)
        self._lock = threading.Lock()
        self.dropped = 0

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # The context var is only visible on the emitting task, not the listener thread.
        record.correlation = get_correlation_context()
        return super().prepare(record)

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._lock:
                self.dropped += 1


class _JsonLineFormatter(logging.Formatter):
    def __init__(self, session_id: str) -> None:
        super().__init__()
        self._session_id = session_id

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "event": redact_text(record.getMessage()),
            "session_id": self._session_id,
        }
        event.update(getattr(record, "correlation", {}))

        fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
        }
        for key in _CORRELATION_KEYS:
            value = fields.pop(key, None)
            if isinstance(value, str) and value:
                event[key] = value
        if fields:
            event["fields"] = redact_fields(fields)
        return json.dumps(event, sort_keys=True, separators=(",", ":"), default=repr)


class SessionLogging:
    """Running log sinks for one session; ``close`` is idempotent."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        log_path: Path,
        queue_handler: _SessionQueueHandler,
        sinks: tuple[logging.Handler, ...],
        listener: logging.handlers.QueueListener,
    ) -> None:
        self.logger = logger
        self.log_path = log_path
        self.sinks = sinks
        self._queue_handler = queue_handler
        self._listener = listener
        self._closed = False

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # stop() drains the queue before joining the listener thread.
        self._listener.stop()
        self.logger.removeHandler(self._queue_handler)
        for sink in self.sinks:
            sink.close()
        structlog.reset_defaults()


def setup_structured_logging(config: LoggingConfig) -> SessionLogging:
    """Attach the session sinks to ``config.logger_name`` and route structlog into them."""
    session_id = config.session_id.strip()
    if not session_id or Path(session_id).name != session_id:
        raise ValueError(f"invalid session_id: {config.session_id!r}")
    if config.queue_size <= 0:
        raise ValueError("queue_size must be > 0")
    level = logging.getLevelNamesMapping().get(config.level.strip().upper())
    if level is None:
        raise ValueError(f"unsupported logging level {config.level!r}")

    session_dir = config.log_dir / session_id
    session_dir.mkdir(parents=True, exist_ok=True)
    log_path = session_dir / LOG_FILENAME

    formatter = _JsonLineFormatter(session_id)
    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stdout:
        sinks.append(logging.StreamHandler(sys.stdout))
    for sink in sinks:
        sink.setFormatter(formatter)

    logger = logging.getLogger(config.logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    log_queue: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=config.queue_size)
    queue_handler = _SessionQueueHandler(log_queue)
    listener = logging.handlers.QueueListener(log_queue, *sinks)
    listener.start()
    logger.addHandler(queue_handler)

    configure_structlog()
    return SessionLogging(
        logger=logger,
        log_path=log_path,
        queue_handler=queue_handler,
        sinks=tuple(sinks),
        listener=listener,
    )


def configure_structlog() -> None:
    """Send structlog events to stdlib logging; event keys arrive as record extras."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def get_correlation_context() -> dict[str, str]:
    return dict(_CORRELATION.get())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation keys for records emitted in scope; ``None`` unbinds a key."""
    unknown = set(fields) - set(_CORRELATION_KEYS)
    if unknown:
        raise ValueError(f"unknown correlation keys: {sorted(unknown)}")
    state = get_correlation_context()
    for key, value in fields.items():
        if value is None:
            state.pop(key, None)
        else:
            state[key] = value
    token = _CORRELATION.set(tuple(state.items()))
    try:
        yield
    finally:
        _CORRELATION.reset(token)


def redact_fields(value: object, key: str | None = None) -> object:
    """Deep copy of ``value`` that is JSON-ready, with sensitive keys masked."""
    if key is not None and any(term in key.lower() for term in _REDACTED_KEY_TERMS):
        return REDACTED
    if isinstance(value, Mapping):
        return {str(k): redact_fields(v, str(k)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact_fields(item) for item in value]
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, str):
        return redact_text(value)
    if value is None or isinstance(value, (bool, int, float)):
        return value
    return repr(value)


def redact_text(text: str) -> str:
    return _KEY_ASSIGNMENT_PATTERN.sub(lambda m: f"{m.group(1)}{m.group(2)}{REDACTED}", text)


__all__ = [
    "LOG_FILENAME",
    "REDACTED",
    "LoggingConfig",
    "SessionLogging",
    "configure_structlog",
    "correlation_scope",
    "get_correlation_context",
    "logging_config_for",
    "redact_fields",
    "redact_text",
    "setup_structured_logging",
]
