"""Result cache and consecutive-failure tracker over a :class:`HealthStore`."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

from healthwatch.core.exceptions import PersistenceError
from healthwatch.core.types import (
    PLATFORM_KEY,
    HealthCheckRecord,
    HealthStatus,
    ServiceTier,
)
from healthwatch.health.store import CheckKey, HealthStore

logger = structlog.stdlib.get_logger()

T = TypeVar("T")

# TTL used when a record carries no tier.
_FALLBACK_TTL_SECS = 120.0


def check_key(service: str, tenant_id: str | None = None) -> CheckKey:
    return (service, tenant_id or PLATFORM_KEY)


async def with_retries(
    op: Callable[[], Awaitable[T]],
    *,
    what: str,
    attempts: int = 3,
    delay_secs: float = 0.2,
    **context: Any,
) -> T:
    """Run *op*, retrying on any exception; raise PersistenceError when
    every attempt fails."""
    last_exc: Exception | None = None
    for attempt in range(1, max(attempts, 1) + 1):
        try:
            return await op()
        except Exception as exc:
            last_exc = exc
            logger.warning(
                "store_write_retry",
                what=what,
                attempt=attempt,
                attempts=attempts,
                error=str(exc),
                **context,
            )
            if attempt < attempts:
                await asyncio.sleep(delay_secs)
    raise PersistenceError(f"{what} failed after {attempts} attempts: {last_exc}") from last_exc


class ResultTracker:
    """Keyed bookkeeping for the check pipeline.

    - Failure counters increment on ``unhealthy`` and fully reset on anything
      else; writes are retried and surface :class:`PersistenceError`.
    - Cached results expire after ``tier interval x cache_ttl_factor`` so the
      read side falls back to ``unknown`` once a tier stops reporting.
    - History appends are best-effort.
    """

    def __init__(
        self,
        store: HealthStore,
        cache_ttl_factor: float = 2.0,
        retries: int = 3,
        retry_delay_secs: float = 0.2,
    ) -> None:
        self._store = store
        self._cache_ttl_factor = cache_ttl_factor
        self._retries = retries
        self._retry_delay_secs = retry_delay_secs

    @property
    def store(self) -> HealthStore:
        return self._store

    # ── Last-run times ──────────────────────────────────────────

    async def get_last_run_time(self, service: str) -> float | None:
        return await self._store.get_last_run(service)

    async def set_last_run_time(self, service: str, timestamp: float) -> None:
        await self._store.set_last_run(service, timestamp)

    # ── Failure counters ────────────────────────────────────────

    async def get_consecutive_failures(self, service: str, tenant_id: str | None = None) -> int:
        key = check_key(service, tenant_id)
        return await self._retry(lambda: self._store.get_failures(key), "read_failures", key)

    async def set_consecutive_failures(
        self, service: str, tenant_id: str | None, count: int,
    ) -> None:
        key = check_key(service, tenant_id)
        await self._retry(lambda: self._store.set_failures(key, count), "write_failures", key)

    async def record_outcome(
        self, service: str, tenant_id: str | None, status: HealthStatus,
    ) -> tuple[int, int]:
        """Apply one result to the counter. Returns ``(previous, new)``.

        ``previous`` is read before the increment. Increments are not
        idempotent, so a failed increment is reconciled against a fresh
        read rather than retried blindly: if the counter already moved
        past ``previous`` the write is taken as committed.
        """
        key = check_key(service, tenant_id)
        if status != HealthStatus.UNHEALTHY:
            previous = await self._retry(
                lambda: self._store.reset_failures(key), "reset_failures", key,
            )
            return previous, 0

        previous = await self.get_consecutive_failures(service, tenant_id)
        attempts = max(self._retries, 1)
        last_exc: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                new = await self._store.increment_failures(key)
                return previous, new
            except Exception as exc:
                last_exc = exc
                logger.warning(
                    "store_write_retry",
                    what="increment_failures",
                    attempt=attempt,
                    attempts=attempts,
                    error=str(exc),
                    service=key[0],
                    tenant=key[1],
                )
            current = await self.get_consecutive_failures(service, tenant_id)
            if current > previous:
                logger.info(
                    "increment_reconciled",
                    service=key[0],
                    tenant=key[1],
                    previous=previous,
                    current=current,
                )
                return previous, current
            if attempt < attempts:
                await asyncio.sleep(self._retry_delay_secs)
        raise PersistenceError(
            f"increment_failures failed after {attempts} attempts: {last_exc}",
        ) from last_exc

    async def rollback_failures(
        self, service: str, tenant_id: str | None, previous: int,
    ) -> None:
        """Restore the counter to *previous* so the next failure crosses again."""
        await self.set_consecutive_failures(service, tenant_id, previous)

    # ── Result cache ────────────────────────────────────────────

    def ttl_for(self, tier: ServiceTier | None) -> float:
        if tier is None:
            return _FALLBACK_TTL_SECS
        return tier.interval_secs * self._cache_ttl_factor

    async def cache_result(
        self,
        service: str,
        tenant_id: str | None,
        tier: ServiceTier | None,
        record: HealthCheckRecord,
    ) -> None:
        key = check_key(service, tenant_id)
        try:
            await self._store.cache_result(key, record, self.ttl_for(tier))
        except Exception:
            logger.exception("cache_write_failed", service=service, tenant=key[1])

    async def get_cached_result(
        self, service: str, tenant_id: str | None = None,
    ) -> HealthCheckRecord | None:
        return await self._store.get_cached(check_key(service, tenant_id))

    async def snapshot(self) -> dict[CheckKey, HealthCheckRecord]:
        return await self._store.cached_snapshot()

    # ── History ─────────────────────────────────────────────────

    async def append_history(
        self, service: str, tenant_id: str | None, record: HealthCheckRecord,
    ) -> None:
        key = check_key(service, tenant_id)
        try:
            await self._store.append_history(key, record)
        except Exception:
            logger.exception("history_append_failed", service=service, tenant=key[1])

    async def get_history(
        self, service: str, tenant_id: str | None = None, limit: int = 100,
    ) -> list[HealthCheckRecord]:
        return await self._store.get_history(check_key(service, tenant_id), limit)

    # ── Internal ────────────────────────────────────────────────

    async def _retry(self, op: Callable[[], Awaitable[T]], what: str, key: CheckKey) -> T:
        return await with_retries(
            op,
            what=what,
            attempts=self._retries,
            delay_secs=self._retry_delay_secs,
            service=key[0],
            tenant=key[1],
        )
