"""Expiration worker tasks."""

from __future__ import annotations

from workers.expiration_worker.worker import (
    ExpirationWorkerSettings,
    SweepResult,
    load_settings,
    run_sweep_with_retries,
)


def expiration_tick(settings: ExpirationWorkerSettings | None = None) -> SweepResult:
    """Run a single sweep, for cron-style scheduling."""
    return run_sweep_with_retries(settings or load_settings())
