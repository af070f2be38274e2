"""Tests for logging setup and per-check log context."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest
import structlog

from healthwatch.core.config import reset_settings
from healthwatch.core.logging import check_context, setup_logging


class TestCheckContext:
    def test_binds_service_and_tenant(self) -> None:
        with check_context("portal", "acme"):
            assert structlog.contextvars.get_contextvars() == {
                "service": "portal",
                "tenant": "acme",
            }
        assert structlog.contextvars.get_contextvars() == {}

    def test_platform_checks_use_platform_tenant(self) -> None:
        with check_context("api"):
            assert structlog.contextvars.get_contextvars()["tenant"] == "platform"

    def test_nested_contexts_restore_outer(self) -> None:
        with check_context("api"):
            with check_context("portal", "globex"):
                assert structlog.contextvars.get_contextvars()["service"] == "portal"
            assert structlog.contextvars.get_contextvars()["service"] == "api"


class TestSetupLogging:
    @pytest.fixture(autouse=True)
    def _restore(self) -> Iterator[None]:
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        structlog.reset_defaults()
        root.handlers[:] = handlers
        root.setLevel(level)
        reset_settings()

    def test_context_rendered_in_json_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(level="INFO", fmt="json")
        with check_context("portal", "acme"):
            structlog.stdlib.get_logger("healthwatch.test").info("check_round")

        err = capsys.readouterr().err
        assert '"service": "portal"' in err
        assert '"tenant": "acme"' in err
        assert '"event": "check_round"' in err

    def test_quiets_http_client_loggers(self) -> None:
        setup_logging(level="DEBUG", fmt="console")
        assert logging.getLogger("httpx").level == logging.WARNING
