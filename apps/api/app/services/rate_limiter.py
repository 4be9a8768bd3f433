from __future__ import annotations

import math
import socket
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol
from urllib.parse import urlparse

from app.config import settings


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_after_s: int
    reset_at_s: int


class RateLimitStore(Protocol):
    def hit(
        self, key: str, *, now: float, max_requests: int, window_s: int
    ) -> tuple[bool, int, float]:
        """Record a request; return (allowed, requests in window, window reset deadline)."""

    def reset(self) -> None: ...


class InMemoryRateLimitStore:
    """Per-process sliding window; each worker process enforces its own quota."""

    def __init__(self) -> None:
        self._buckets: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def hit(
        self, key: str, *, now: float, max_requests: int, window_s: int
    ) -> tuple[bool, int, float]:
        with self._lock:
            history = [value for value in self._buckets.get(key, []) if value > now - window_s]

            if len(history) >= max_requests:
                self._buckets[key] = history
                return False, len(history), history[0] + window_s

            history.append(now)
            self._buckets[key] = history
            return True, len(history), history[0] + window_s

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()


class RedisProtocolError(RuntimeError):
    pass


class RedisClient:
    def __init__(self, redis_url: str, timeout_s: float = 1.0) -> None:
        parsed = urlparse(redis_url)
        if parsed.scheme != "redis" or not parsed.hostname:
            raise ValueError("REDIS_URL must use redis:// scheme and include a host")

        self.host = parsed.hostname
        self.port = parsed.port or 6379
        self.db = int(parsed.path.removeprefix("/") or 0)
        self.password = parsed.password
        self.timeout_s = timeout_s

    def execute(self, *parts: str) -> object:
        with socket.create_connection((self.host, self.port), timeout=self.timeout_s) as conn:
            reader = conn.makefile("rb")
            if self.password:
                conn.sendall(encode_command("AUTH", self.password))
                read_reply(reader)
            if self.db:
                conn.sendall(encode_command("SELECT", str(self.db)))
                read_reply(reader)

            conn.sendall(encode_command(*parts))
            return read_reply(reader)


class RedisRateLimitStore:
    """Shared sliding window backed by a Redis sorted set per key."""

    _SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local max_requests = tonumber(ARGV[3])

redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local allowed = 0
if redis.call('ZCARD', key) < max_requests then
  redis.call('ZADD', key, now, ARGV[4])
  redis.call('EXPIRE', key, math.max(window, 1))
  allowed = 1
end

local count = redis.call('ZCARD', key)
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
local reset_at = now + window
if oldest[2] then
  reset_at = tonumber(oldest[2]) + window
end
return {allowed, count, tostring(reset_at)}
""".strip()

    def __init__(self, client: RedisClient, key_prefix: str = "grocery:ratelimit:") -> None:
        self._client = client
        self._key_prefix = key_prefix

    def hit(
        self, key: str, *, now: float, max_requests: int, window_s: int
    ) -> tuple[bool, int, float]:
        member = f"{now}:{time.time_ns()}"
        result = self._client.execute(
            "EVAL",
            self._SCRIPT,
            "1",
            f"{self._key_prefix}{key}",
            str(now),
            str(window_s),
            str(max_requests),
            member,
        )
        if not isinstance(result, list) or len(result) != 3:
            raise RedisProtocolError("Unexpected Redis rate-limiter response")
        return bool(int(result[0])), int(result[1]), float(result[2])

    def reset(self) -> None:
        return None


class WebhookRateLimiter:
    """Sliding-window quota per source key over an injectable store."""

    def __init__(
        self,
        store: RateLimitStore,
        *,
        max_requests: int,
        window_s: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.max_requests = max_requests
        self.window_s = window_s
        self._clock = clock

    def check(self, key: str) -> RateLimitResult:
        now = self._clock()
        allowed, count, reset_deadline_s = self.store.hit(
            key, now=now, max_requests=self.max_requests, window_s=self.window_s
        )
        return _build_result(
            allowed=allowed,
            remaining=max(self.max_requests - count, 0),
            now=now,
            reset_deadline_s=reset_deadline_s,
        )

    def reset(self) -> None:
        self.store.reset()


def _build_result(
    *,
    allowed: bool,
    remaining: int,
    now: float,
    reset_deadline_s: float,
) -> RateLimitResult:
    reset_after_s = max(1, math.ceil(reset_deadline_s - now))
    reset_at_s = max(math.ceil(reset_deadline_s), math.ceil(now))
    return RateLimitResult(
        allowed=allowed,
        remaining=remaining,
        reset_after_s=reset_after_s,
        reset_at_s=reset_at_s,
    )


def encode_command(*parts: str) -> bytes:
    command = f"*{len(parts)}\r\n".encode()
    for part in parts:
        data = str(part).encode()
        command += f"${len(data)}\r\n".encode() + data + b"\r\n"
    return command


def read_reply(reader) -> object:
    line = reader.readline()
    if not line.endswith(b"\r\n"):
        raise RedisProtocolError("Redis connection closed")
    prefix, body = line[:1], line[1:-2]

    if prefix == b"+":
        return body.decode()
    if prefix == b"-":
        raise RedisProtocolError(body.decode())
    if prefix == b":":
        return int(body)
    if prefix == b"$":
        size = int(body)
        if size == -1:
            return None
        data = reader.read(size + 2)
        if len(data) != size + 2 or not data.endswith(b"\r\n"):
            raise RedisProtocolError("Redis bulk response truncated")
        return data[:-2].decode()
    if prefix == b"*":
        length = int(body)
        if length == -1:
            return []
        return [read_reply(reader) for _ in range(length)]

    raise RedisProtocolError("Unsupported Redis response type")


_webhook_rate_limiter: WebhookRateLimiter | None = None


def _build_store() -> RateLimitStore:
    if settings.rate_limit_backend == "redis":
        return RedisRateLimitStore(RedisClient(settings.redis_url))
    return InMemoryRateLimitStore()


def get_webhook_rate_limiter() -> WebhookRateLimiter:
    global _webhook_rate_limiter
    if _webhook_rate_limiter is None:
        _webhook_rate_limiter = WebhookRateLimiter(
            _build_store(),
            max_requests=settings.payment_webhook_rate_limit_requests,
            window_s=settings.payment_webhook_rate_limit_window_s,
        )
    return _webhook_rate_limiter


def reset_rate_limiter_state() -> None:
    global _webhook_rate_limiter
    if _webhook_rate_limiter is not None:
        _webhook_rate_limiter.reset()
    _webhook_rate_limiter = None
