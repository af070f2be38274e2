"""Persistence interface for check state and alerts, plus an in-memory store.

All methods are coroutines since a real backend blocks on I/O. Keys are
``(service, tenant_key)`` where ``tenant_key`` is the tenant id or
``"platform"``.
"""

from __future__ import annotations

import abc
import time
from collections import defaultdict, deque
from collections.abc import Callable

from healthwatch.core.types import Alert, AlertStatus, HealthCheckRecord

CheckKey = tuple[str, str]
Clock = Callable[[], float]


class HealthStore(abc.ABC):
    """Abstract store for last-run times, failure counters, cached results,
    history and alerts."""

    # ── Last-run bookkeeping ────────────────────────────────────

    @abc.abstractmethod
    async def get_last_run(self, service: str) -> float | None: ...

    @abc.abstractmethod
    async def set_last_run(self, service: str, timestamp: float) -> None: ...

    # ── Failure counters ────────────────────────────────────────

    @abc.abstractmethod
    async def get_failures(self, key: CheckKey) -> int: ...

    @abc.abstractmethod
    async def set_failures(self, key: CheckKey, count: int) -> None: ...

    @abc.abstractmethod
    async def increment_failures(self, key: CheckKey) -> int:
        """Atomically add one and return the new count."""

    @abc.abstractmethod
    async def reset_failures(self, key: CheckKey) -> int:
        """Atomically set to zero and return the previous count."""

    # ── Result cache ────────────────────────────────────────────

    @abc.abstractmethod
    async def cache_result(
        self, key: CheckKey, record: HealthCheckRecord, ttl_secs: float,
    ) -> None: ...

    @abc.abstractmethod
    async def get_cached(self, key: CheckKey) -> HealthCheckRecord | None: ...

    @abc.abstractmethod
    async def cached_snapshot(self) -> dict[CheckKey, HealthCheckRecord]:
        """All unexpired cached records."""

    # ── History ─────────────────────────────────────────────────

    @abc.abstractmethod
    async def append_history(self, key: CheckKey, record: HealthCheckRecord) -> None: ...

    @abc.abstractmethod
    async def get_history(self, key: CheckKey, limit: int = 100) -> list[HealthCheckRecord]:
        """Most recent records first."""

    # ── Alerts ──────────────────────────────────────────────────

    @abc.abstractmethod
    async def create_alert(self, alert: Alert) -> Alert: ...

    @abc.abstractmethod
    async def update_alert(self, alert: Alert) -> Alert: ...

    @abc.abstractmethod
    async def get_alert(self, alert_id: str) -> Alert | None: ...

    @abc.abstractmethod
    async def list_alerts(
        self, status: AlertStatus | None = None, limit: int = 100,
    ) -> list[Alert]:
        """Newest first."""


class MemoryHealthStore(HealthStore):
    """Process-local store.

    Counter operations never yield to the event loop between read and
    write, so increments are atomic within one process. Cached records
    expire lazily on read.
    """

    def __init__(self, history_limit: int = 500, clock: Clock = time.time) -> None:
        self._clock = clock
        self._last_run: dict[str, float] = {}
        self._failures: dict[CheckKey, int] = {}
        self._cache: dict[CheckKey, tuple[HealthCheckRecord, float]] = {}
        self._history: defaultdict[CheckKey, deque[HealthCheckRecord]] = defaultdict(
            lambda: deque(maxlen=history_limit)
        )
        self._alerts: dict[str, Alert] = {}

    async def get_last_run(self, service: str) -> float | None:
        return self._last_run.get(service)

    async def set_last_run(self, service: str, timestamp: float) -> None:
        self._last_run[service] = timestamp

    async def get_failures(self, key: CheckKey) -> int:
        return self._failures.get(key, 0)

    async def set_failures(self, key: CheckKey, count: int) -> None:
        self._failures[key] = count

    async def increment_failures(self, key: CheckKey) -> int:
        count = self._failures.get(key, 0) + 1
        self._failures[key] = count
        return count

    async def reset_failures(self, key: CheckKey) -> int:
        previous = self._failures.get(key, 0)
        self._failures[key] = 0
        return previous

    async def cache_result(
        self, key: CheckKey, record: HealthCheckRecord, ttl_secs: float,
    ) -> None:
        self._cache[key] = (record, self._clock() + ttl_secs)

    async def get_cached(self, key: CheckKey) -> HealthCheckRecord | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        record, expires_at = entry
        if self._clock() >= expires_at:
            del self._cache[key]
            return None
        return record

    async def cached_snapshot(self) -> dict[CheckKey, HealthCheckRecord]:
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._cache.items() if now >= expires_at]
        for key in expired:
            del self._cache[key]
        return {k: record for k, (record, _) in self._cache.items()}

    async def append_history(self, key: CheckKey, record: HealthCheckRecord) -> None:
        self._history[key].append(record)

    async def get_history(self, key: CheckKey, limit: int = 100) -> list[HealthCheckRecord]:
        if key not in self._history:
            return []
        return list(reversed(self._history[key]))[:limit]

    async def create_alert(self, alert: Alert) -> Alert:
        self._alerts[alert.id] = alert.model_copy(deep=True)
        return alert

    async def update_alert(self, alert: Alert) -> Alert:
        self._alerts[alert.id] = alert.model_copy(deep=True)
        return alert

    async def get_alert(self, alert_id: str) -> Alert | None:
        alert = self._alerts.get(alert_id)
        return alert.model_copy(deep=True) if alert is not None else None

    async def list_alerts(
        self, status: AlertStatus | None = None, limit: int = 100,
    ) -> list[Alert]:
        alerts = [
            a for a in self._alerts.values()
            if status is None or a.status == status
        ]
        alerts.sort(key=lambda a: a.created_at, reverse=True)
        return [a.model_copy(deep=True) for a in alerts[:limit]]
