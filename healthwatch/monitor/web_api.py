"""Control-plane HTTP API — read-side rollups, refresh triggers, alert actions.

Runs as an ``aiohttp`` web server alongside the check loop.
Exposes:
- ``GET  /api/health/platform``            → platform summary
- ``GET  /api/health/matrix``              → service x tenant matrix
- ``GET  /api/health/tenants``             → per-tenant summaries
- ``GET  /api/health/services``            → per-service summaries
- ``GET  /api/health/status/{service}``    → cached record (``?tenant=``)
- ``POST /api/health/refresh``             → run every check now
- ``POST /api/health/refresh/{tenant_id}`` → run one tenant's checks now
- ``GET  /api/alerts``                     → alert list (``?status=``)
- ``POST /api/alerts/{alert_id}/acknowledge``
- ``POST /api/alerts/{alert_id}/resolve``
"""

from __future__ import annotations

import base64
import hmac
import json
from typing import Any

import structlog
from aiohttp import web
from pydantic import BaseModel

from healthwatch.core.exceptions import AlertNotFoundError, AlertTransitionError
from healthwatch.core.types import AlertStatus
from healthwatch.monitor.factory import HealthStack

logger = structlog.stdlib.get_logger()


def _check_basic_auth(request: web.Request, username: str, password: str) -> bool:
    """Validate HTTP Basic Auth credentials."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Basic "):
        return False
    try:
        decoded = base64.b64decode(auth_header[6:]).decode("utf-8")
        req_user, req_pass = decoded.split(":", 1)
    except (ValueError, UnicodeDecodeError):
        return False
    user_ok = hmac.compare_digest(req_user, username)
    pass_ok = hmac.compare_digest(req_pass, password)
    return user_ok and pass_ok


@web.middleware
async def _auth_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    """Require HTTP Basic Auth on all routes when credentials are configured."""
    username = request.app.get("auth_username")
    password = request.app.get("auth_password")
    if username and password:
        if not _check_basic_auth(request, username, password):
            return web.Response(
                status=401,
                text="Unauthorized",
                headers={"WWW-Authenticate": 'Basic realm="Platform Health"'},
            )
    return await handler(request)


def _model_response(model: BaseModel | list[BaseModel], status: int = 200) -> web.Response:
    if isinstance(model, list):
        data: Any = [m.model_dump(mode="json") for m in model]
    else:
        data = model.model_dump(mode="json")
    return web.json_response(data, status=status)


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


async def _read_body(request: web.Request) -> dict[str, Any]:
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except json.JSONDecodeError:
        return {}
    return body if isinstance(body, dict) else {}


def _stack(request: web.Request) -> HealthStack:
    return request.app["stack"]


# ── Health read side ───────────────────────────────────────────


async def _handle_platform(request: web.Request) -> web.Response:
    return _model_response(await _stack(request).reader.platform_summary())


async def _handle_matrix(request: web.Request) -> web.Response:
    return _model_response(await _stack(request).reader.matrix())


async def _handle_tenants(request: web.Request) -> web.Response:
    return _model_response(await _stack(request).reader.tenant_summaries())


async def _handle_services(request: web.Request) -> web.Response:
    return _model_response(await _stack(request).reader.service_summaries())


async def _handle_status(request: web.Request) -> web.Response:
    service = request.match_info["service"]
    tenant_id = request.query.get("tenant") or None
    record = await _stack(request).reader.status(service, tenant_id)
    return _model_response(record)


# ── Refresh triggers ───────────────────────────────────────────


async def _handle_refresh(request: web.Request) -> web.Response:
    report = await _stack(request).scheduler.run_all_health_checks()
    logger.info(
        "manual_refresh",
        checks=len(report.records),
        errors=report.errors,
        duration_ms=report.duration_ms,
    )
    return _model_response(report)


async def _handle_refresh_tenant(request: web.Request) -> web.Response:
    tenant_id = request.match_info["tenant_id"]
    report = await _stack(request).scheduler.run_tenant_health_checks(tenant_id)
    logger.info("manual_tenant_refresh", tenant_id=tenant_id, status=report.status)
    return _model_response(report)


# ── Alerts ─────────────────────────────────────────────────────


async def _handle_list_alerts(request: web.Request) -> web.Response:
    raw_status = request.query.get("status")
    status: AlertStatus | None = None
    if raw_status:
        try:
            status = AlertStatus(raw_status)
        except ValueError:
            return _error(400, f"unknown alert status: {raw_status}")
    try:
        limit = int(request.query.get("limit", "100"))
    except ValueError:
        return _error(400, "limit must be an integer")
    if limit < 1:
        return _error(400, "limit must be at least 1")
    alerts = await _stack(request).dispatcher.list_alerts(status=status, limit=limit)
    return _model_response(alerts)


async def _handle_acknowledge(request: web.Request) -> web.Response:
    alert_id = request.match_info["alert_id"]
    body = await _read_body(request)
    by = str(body.get("by") or "api")
    try:
        alert = await _stack(request).dispatcher.acknowledge(alert_id, by)
    except AlertNotFoundError:
        return _error(404, f"alert not found: {alert_id}")
    except AlertTransitionError as exc:
        return _error(409, str(exc))
    return _model_response(alert)


async def _handle_resolve(request: web.Request) -> web.Response:
    alert_id = request.match_info["alert_id"]
    body = await _read_body(request)
    by = str(body.get("by") or "api")
    notes = body.get("notes")
    try:
        alert = await _stack(request).dispatcher.resolve(
            alert_id, by, str(notes) if notes is not None else None,
        )
    except AlertNotFoundError:
        return _error(404, f"alert not found: {alert_id}")
    except AlertTransitionError as exc:
        return _error(409, str(exc))
    return _model_response(alert)


def create_web_app(
    stack: HealthStack,
    username: str | None = None,
    password: str | None = None,
) -> web.Application:
    """Create the aiohttp web application."""
    app = web.Application(middlewares=[_auth_middleware])
    app["stack"] = stack
    app["auth_username"] = username
    app["auth_password"] = password
    app.router.add_get("/api/health/platform", _handle_platform)
    app.router.add_get("/api/health/matrix", _handle_matrix)
    app.router.add_get("/api/health/tenants", _handle_tenants)
    app.router.add_get("/api/health/services", _handle_services)
    app.router.add_get("/api/health/status/{service}", _handle_status)
    app.router.add_post("/api/health/refresh", _handle_refresh)
    app.router.add_post("/api/health/refresh/{tenant_id}", _handle_refresh_tenant)
    app.router.add_get("/api/alerts", _handle_list_alerts)
    app.router.add_post("/api/alerts/{alert_id}/acknowledge", _handle_acknowledge)
    app.router.add_post("/api/alerts/{alert_id}/resolve", _handle_resolve)
    return app


async def start_web_api(
    stack: HealthStack,
    host: str = "0.0.0.0",
    port: int = 8080,
    username: str | None = None,
    password: str | None = None,
) -> web.AppRunner:
    """Start the API server. Returns the runner for cleanup."""
    app = create_web_app(stack, username=username, password=password)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("web_api_started", host=host, port=port, auth=bool(username and password))
    return runner
