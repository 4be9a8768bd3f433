"""Structured logging and in-process operational metrics."""

import json
import logging
import threading
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Iterator

LOGGER_NAME = "grocery.pickup"

_request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

# Fields log_event attaches to every record
_CONTEXT_FIELDS = ("order_id", "staff_id", "detail")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None) or _request_id_ctx.get(),
        }
        for name in _CONTEXT_FIELDS:
            payload[name] = getattr(record, name, None)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(level: int = logging.INFO) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)


def set_request_id(request_id: str) -> None:
    _request_id_ctx.set(request_id)


def get_request_id() -> str | None:
    return _request_id_ctx.get()


def log_event(
    message: str,
    *,
    level: int = logging.INFO,
    order_id: str | None = None,
    staff_id: str | None = None,
    detail: str | None = None,
) -> None:
    logging.getLogger(LOGGER_NAME).log(
        level,
        message,
        extra={
            "request_id": get_request_id(),
            "order_id": order_id,
            "staff_id": staff_id,
            "detail": detail,
        },
    )


@dataclass
class TimingStats:
    """Running aggregate of a latency metric; samples themselves are not kept."""

    count: int = 0
    total_s: float = 0.0
    max_s: float = 0.0
    last_s: float = 0.0

    def record(self, value_s: float) -> None:
        self.count += 1
        self.total_s += value_s
        self.max_s = max(self.max_s, value_s)
        self.last_s = value_s

    def summary(self) -> dict[str, float]:
        return {
            "count": self.count,
            "avg_s": self.total_s / self.count if self.count else 0.0,
            "max_s": self.max_s,
            "last_s": self.last_s,
        }


@dataclass
class MetricsSnapshot:
    counters: dict[str, int]
    timings: dict[str, dict[str, float]]


@dataclass
class MetricsStore:
    """Counters and timings shared by request handlers and worker threads."""

    _counters: dict[str, int] = field(default_factory=dict)
    _timings: dict[str, TimingStats] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + amount

    def observe(self, name: str, value_s: float) -> None:
        with self._lock:
            self._timings.setdefault(name, TimingStats()).record(value_s)

    def count(self, name: str) -> int:
        return self._counters.get(name, 0)

    def timing(self, name: str) -> TimingStats | None:
        return self._timings.get(name)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._timings.clear()

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                counters=dict(self._counters),
                timings={
                    name: stats.summary() for name, stats in self._timings.items() if stats.count
                },
            )


metrics_store = MetricsStore()


@contextmanager
def observe_timing(metric_name: str) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    finally:
        metrics_store.observe(metric_name, time.perf_counter() - start)
