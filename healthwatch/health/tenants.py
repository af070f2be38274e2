"""Active-tenant sources used to fan tenant-scoped monitors out."""

from __future__ import annotations

import abc
from collections.abc import Awaitable, Callable, Iterable


class TenantSource(abc.ABC):
    @abc.abstractmethod
    async def active_tenants(self) -> list[str]:
        """Ids of every tenant that should be checked right now."""


class StaticTenantSource(TenantSource):
    """Fixed tenant list, e.g. from ``settings.tenants``."""

    def __init__(self, tenant_ids: Iterable[str]) -> None:
        self._tenant_ids = list(dict.fromkeys(tenant_ids))

    async def active_tenants(self) -> list[str]:
        return list(self._tenant_ids)


class CallableTenantSource(TenantSource):
    """Delegates to an async callable, e.g. a query against the tenant table."""

    def __init__(self, fn: Callable[[], Awaitable[list[str]]]) -> None:
        self._fn = fn

    async def active_tenants(self) -> list[str]:
        return list(await self._fn())
