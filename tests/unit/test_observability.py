from __future__ import annotations

import logging

import pytest

from wbso_chat.observability.logging import CorrelationIdFilter, log_fallback, short_id
from wbso_chat.observability.timing import timed


def test_short_id_truncates() -> None:
    assert short_id("session-0001-abcdef") == "session-..."
    assert short_id("abc") == "abc"
    assert short_id(None) == ""


def test_filter_sets_service_and_correlation() -> None:
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    record.correlation_id = "corr-1"

    assert CorrelationIdFilter("wbso_chat").filter(record) is True
    assert record.service == "wbso_chat"
    assert record.correlation_id == "corr-1"


def test_log_fallback_fields(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("tests.fallback")
    with caplog.at_level(logging.INFO, logger="tests.fallback"):
        log_fallback(logger, "extraction", reason="invalid_json", session_id="session-0001-xyz")

    record = caplog.records[-1]
    assert record.fallback_used is True
    assert record.component == "extraction"
    assert record.reason == "invalid_json"
    assert record.session_id == "session-..."


def test_timed_logs_latency(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="wbso_chat.observability.timing"):
        with timed("llm_call", purpose="chat"):
            pass

    record = caplog.records[-1]
    assert record.component == "llm_call"
    assert record.purpose == "chat"
    assert record.elapsed_ms >= 0
