"""Probe interface and the generic probes the service ships with.

Service-specific probes live with the systems they test; they only need to
implement :class:`Probe`. The HTTP-based probes here back the declarative
monitors in ``settings.monitors``.
"""

from __future__ import annotations

import abc
import time
from collections.abc import Awaitable, Callable

import httpx
import structlog

from healthwatch.core.types import CheckResult, HealthStatus, ThresholdConfig
from healthwatch.health.evaluator import (
    evaluate,
    evaluate_inverse,
    to_health_status,
)

logger = structlog.stdlib.get_logger()

ProbeFn = Callable[[str | None], Awaitable[CheckResult]]
MetricFn = Callable[[str | None], Awaitable[float]]

# Statuspage ``status.indicator`` values.
_INDICATOR_STATUS: dict[str, HealthStatus] = {
    "none": HealthStatus.HEALTHY,
    "minor": HealthStatus.DEGRADED,
    "major": HealthStatus.UNHEALTHY,
    "critical": HealthStatus.UNHEALTHY,
}


def _elapsed_ms(start: float) -> float:
    return round((time.monotonic() - start) * 1000, 2)


class Probe(abc.ABC):
    """One service-specific health test.

    Implementations should enforce their own timeout and prefer returning
    an ``unhealthy`` result over raising; callers tolerate both.
    """

    @abc.abstractmethod
    async def check(self, tenant_id: str | None = None) -> CheckResult:
        """Run the test, optionally scoped to *tenant_id*."""

    async def close(self) -> None:
        """Release resources (HTTP clients, etc.)."""


class FunctionProbe(Probe):
    """Adapts a plain async callable to the :class:`Probe` interface."""

    def __init__(self, fn: ProbeFn) -> None:
        self._fn = fn

    async def check(self, tenant_id: str | None = None) -> CheckResult:
        return await self._fn(tenant_id)


class _HttpClientMixin:
    """Lazily-created shared ``httpx.AsyncClient``."""

    _http: httpx.AsyncClient | None
    _owns_client: bool
    _timeout_secs: float

    def _get_client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout_secs))
            self._owns_client = True
        return self._http

    async def close(self) -> None:
        if self._http is not None and self._owns_client:
            await self._http.aclose()
            self._http = None


class HttpProbe(_HttpClientMixin, Probe):
    """Requests a URL and reports reachability and latency.

    A ``{tenant}`` placeholder in *url* is filled from the tenant id. An
    expected status leaves the result unclassified so the pipeline grades
    latency against the monitor's bounds.
    """

    def __init__(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        expected_status: list[int] | None = None,
        timeout_secs: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._method = method.upper()
        self._headers = dict(headers or {})
        self._expected_status = set(expected_status or [200])
        self._timeout_secs = timeout_secs
        self._http = client
        self._owns_client = False

    async def check(self, tenant_id: str | None = None) -> CheckResult:
        url = self._url.replace("{tenant}", tenant_id or "")
        start = time.monotonic()
        try:
            response = await self._get_client().request(
                self._method,
                url,
                headers=self._headers,
                timeout=self._timeout_secs,
            )
        except httpx.TimeoutException:
            return CheckResult(
                status=HealthStatus.UNHEALTHY,
                latency_ms=_elapsed_ms(start),
                details={"url": url, "error_type": "timeout"},
                error=f"request timed out after {self._timeout_secs}s",
            )
        except httpx.HTTPError as exc:
            return CheckResult(
                status=HealthStatus.UNHEALTHY,
                latency_ms=_elapsed_ms(start),
                details={"url": url, "error_type": type(exc).__name__},
                error=str(exc) or type(exc).__name__,
            )

        latency_ms = _elapsed_ms(start)
        details = {"url": url, "http_status": response.status_code}

        if response.status_code in self._expected_status:
            return CheckResult(latency_ms=latency_ms, details=details)

        if response.status_code == 429:
            return CheckResult(
                status=HealthStatus.DEGRADED,
                latency_ms=latency_ms,
                details={**details, "rate_limited": True},
                error="rate limited",
            )

        return CheckResult(
            status=HealthStatus.UNHEALTHY,
            latency_ms=latency_ms,
            details=details,
            error=f"unexpected status {response.status_code}",
        )


class StatusPageProbe(_HttpClientMixin, Probe):
    """Reads a third-party Statuspage ``status.json`` indicator.

    Failing to fetch the page is ``unknown``, not ``unhealthy``: the vendor
    may be fine even when its status page is not.
    """

    def __init__(
        self,
        url: str,
        timeout_secs: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._timeout_secs = timeout_secs
        self._http = client
        self._owns_client = False

    async def check(self, tenant_id: str | None = None) -> CheckResult:
        start = time.monotonic()
        try:
            response = await self._get_client().get(self._url, timeout=self._timeout_secs)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            return CheckResult(
                status=HealthStatus.UNKNOWN,
                latency_ms=_elapsed_ms(start),
                details={"url": self._url, "error_type": type(exc).__name__},
                error="could not fetch status page",
            )

        indicator = "none"
        if isinstance(body, dict) and isinstance(body.get("status"), dict):
            indicator = str(body["status"].get("indicator") or "none")

        return CheckResult(
            status=_INDICATOR_STATUS.get(indicator, HealthStatus.UNKNOWN),
            latency_ms=_elapsed_ms(start),
            details={"url": self._url, "indicator": indicator},
        )


class MetricProbe(Probe):
    """Grades a numeric metric against warning/critical thresholds.

    With ``inverse=True`` lower values are worse (e.g. free disk, success
    rate).
    """

    def __init__(
        self,
        metric: str,
        source: MetricFn,
        thresholds: ThresholdConfig,
        inverse: bool = False,
    ) -> None:
        self._metric = metric
        self._source = source
        self._thresholds = thresholds
        self._inverse = inverse

    async def check(self, tenant_id: str | None = None) -> CheckResult:
        start = time.monotonic()
        value = await self._source(tenant_id)
        grade = evaluate_inverse if self._inverse else evaluate
        verdict = grade(value, self._thresholds)
        status = to_health_status(verdict)

        threshold: float | None = None
        if status == HealthStatus.UNHEALTHY:
            threshold = self._thresholds.critical
        elif status == HealthStatus.DEGRADED:
            threshold = self._thresholds.warning

        return CheckResult(
            status=status,
            latency_ms=_elapsed_ms(start),
            details={
                "metric": self._metric,
                "value": value,
                "threshold": threshold,
                "verdict": verdict.value,
            },
            error=None if threshold is None else (
                f"{self._metric}={value} breached {verdict.value} threshold {threshold}"
            ),
        )
