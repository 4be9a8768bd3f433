"""Periodic worker that asks the API to cancel orders past their pickup deadline."""

from __future__ import annotations

import json
import logging
import os
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, replace
from typing import Callable

logger = logging.getLogger("grocery.expiration_worker")

SWEEP_PATH = "/api/v1/staff/maintenance/expire-orders"
_ENV_PREFIX = "GROCERY_EXPIRATION_WORKER_"


@dataclass(frozen=True)
class ExpirationWorkerSettings:
    api_base_url: str
    interval_s: int
    timeout_s: float
    auth_token: str | None
    max_retries: int
    retry_backoff_s: float


@dataclass(frozen=True)
class SweepResult:
    ok: bool
    expired_count: int
    status_code: int | None = None
    error: str | None = None
    attempts: int = 1


def _env(source: dict[str, str], name: str, default: str) -> str:
    return source.get(f"{_ENV_PREFIX}{name}", default)


def load_settings(env: dict[str, str] | None = None) -> ExpirationWorkerSettings:
    source = env if env is not None else os.environ
    interval_s = int(_env(source, "INTERVAL_S", "300"))
    timeout_s = float(_env(source, "TIMEOUT_S", "15"))
    max_retries = int(_env(source, "MAX_RETRIES", "3"))
    retry_backoff_s = float(_env(source, "RETRY_BACKOFF_S", "1"))

    if interval_s < 1:
        raise ValueError(f"{_ENV_PREFIX}INTERVAL_S must be >= 1")
    if timeout_s <= 0:
        raise ValueError(f"{_ENV_PREFIX}TIMEOUT_S must be > 0")
    if max_retries < 0:
        raise ValueError(f"{_ENV_PREFIX}MAX_RETRIES must be >= 0")
    if retry_backoff_s < 0:
        raise ValueError(f"{_ENV_PREFIX}RETRY_BACKOFF_S must be >= 0")

    auth_token = _env(source, "AUTH_TOKEN", "").strip() or None
    return ExpirationWorkerSettings(
        api_base_url=_env(source, "API_BASE_URL", "http://localhost:8000").strip().rstrip("/"),
        interval_s=interval_s,
        timeout_s=timeout_s,
        auth_token=auth_token,
        max_retries=max_retries,
        retry_backoff_s=retry_backoff_s,
    )


def _decode_sweep_response(raw: str) -> tuple[bool, int, str | None]:
    if not raw:
        return False, 0, "Empty sweep response"
    try:
        body = json.loads(raw)
    except json.JSONDecodeError:
        return False, 0, "Invalid JSON in sweep response"

    try:
        expired = int(body.get("expired_count", 0))
    except (AttributeError, TypeError, ValueError):
        return False, 0, "Invalid expired_count value in sweep response"

    if expired < 0:
        return False, 0, "expired_count must be >= 0 in sweep response"
    return True, expired, None


def run_sweep_once(
    settings: ExpirationWorkerSettings,
    opener: Callable[..., object] = urllib.request.urlopen,
) -> SweepResult:
    headers = {"Content-Type": "application/json"}
    if settings.auth_token:
        headers["Authorization"] = f"Bearer {settings.auth_token}"
    request = urllib.request.Request(
        url=f"{settings.api_base_url}{SWEEP_PATH}",
        data=b"{}",
        method="POST",
        headers=headers,
    )

    try:
        with opener(request, timeout=settings.timeout_s) as response:
            valid, expired, error = _decode_sweep_response(response.read().decode("utf-8"))
            return SweepResult(
                ok=valid,
                expired_count=expired,
                status_code=getattr(response, "status", 200),
                error=error,
            )
    except urllib.error.HTTPError as exc:
        return SweepResult(
            ok=False, expired_count=0, status_code=exc.code, error=f"HTTPError: {exc.code}"
        )
    except urllib.error.URLError as exc:
        return SweepResult(ok=False, expired_count=0, error=f"URLError: {exc.reason}")


def _is_retryable(result: SweepResult) -> bool:
    if result.ok:
        return False
    if result.status_code is None:
        return True
    return result.status_code in {408, 429} or result.status_code >= 500


def run_sweep_with_retries(
    settings: ExpirationWorkerSettings,
    opener: Callable[..., object] = urllib.request.urlopen,
    sleep: Callable[[float], None] = time.sleep,
) -> SweepResult:
    attempts = 0
    while True:
        attempts += 1
        result = run_sweep_once(settings, opener=opener)
        if result.ok or not _is_retryable(result) or attempts > settings.max_retries:
            break
        delay = settings.retry_backoff_s * (2 ** (attempts - 1))
        logger.warning(
            "expiration sweep attempt %d failed (%s), retrying in %.1fs",
            attempts,
            result.error,
            delay,
        )
        sleep(delay)

    result = replace(result, attempts=attempts)
    if result.ok:
        logger.info("expiration sweep canceled %d order(s)", result.expired_count)
    else:
        logger.error("expiration sweep failed after %d attempt(s): %s", attempts, result.error)
    return result


def run_forever(settings: ExpirationWorkerSettings) -> None:
    while True:
        run_sweep_with_retries(settings)
        time.sleep(settings.interval_s)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_forever(load_settings())
