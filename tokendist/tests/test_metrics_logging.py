from __future__ import annotations

import io
import json
import logging

import pytest

import tokendist
from tokendist import logging as tlog
from tokendist import metrics, version
from tokendist.errors import AlreadyActive, CalculationError
from tokendist.tests.helpers import AUTHORITY, make_env


def _sample(name, **labels):
    return metrics.REGISTRY.get_sample_value(name, labels) or 0.0


def test_cycle_metrics_move():
    started = _sample("tokendist_cycles_started_total")
    transferred = _sample("tokendist_payouts_total", outcome="transferred")
    zero = _sample("tokendist_payouts_total", outcome="zero")
    counted = _sample("tokendist_holders_counted_total")

    e = make_env(pool=1, balances={"A": 1_000, "B": 9_000})
    e.dist.start(AUTHORITY)
    e.dist.accumulate(AUTHORITY, {"A": 1_000, "B": 9_000})
    e.dist.finalize_total(AUTHORITY)
    e.dist.payout("A")  # floor(1000/10000) = 0
    e.dist.payout("B")  # floor(9000/10000) = 0
    assert _sample("tokendist_cycles_started_total") == started + 1
    assert _sample("tokendist_holders_counted_total") == counted + 2
    assert _sample("tokendist_payouts_total", outcome="zero") == zero + 2
    assert _sample("tokendist_payouts_total", outcome="transferred") == transferred
    assert _sample("tokendist_total_eligible_tokens") == 10_000
    assert _sample("tokendist_reward_pool_units") == 1


def test_errors_counted_by_code():
    before = _sample("tokendist_errors_total", op="start", code="ALREADY_ACTIVE")
    e = make_env()
    e.dist.start(AUTHORITY)
    with pytest.raises(AlreadyActive):
        e.dist.start(AUTHORITY)
    assert _sample("tokendist_errors_total", op="start", code="ALREADY_ACTIVE") == before + 1


def test_malformed_batch_counted_as_accumulate_error():
    before = _sample("tokendist_errors_total", op="accumulate", code="CALCULATION_ERROR")
    e = make_env()
    e.dist.start(AUTHORITY)
    with pytest.raises(CalculationError):
        e.dist.accumulate(AUTHORITY, [("A", "lots")])
    assert _sample("tokendist_errors_total", op="accumulate", code="CALCULATION_ERROR") == before + 1


def test_render_exposition():
    body = metrics.render().decode()
    assert "tokendist_cycles_started_total" in body
    assert "tokendist_operation_seconds_bucket" in body


def test_json_formatter_includes_context_and_extras():
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(tlog.JSONFormatter())
    log = logging.getLogger("tokendist.tests.json")
    log.addHandler(handler)
    log.setLevel(logging.INFO)
    log.propagate = False
    try:
        with tlog.trace_scope("t-1"):
            tlog.bind(component="driver")
            log.info("cycle %d started", 3, extra={"cycle_id": 3})
        assert "component" not in tlog.context()
    finally:
        log.removeHandler(handler)
    payload = json.loads(stream.getvalue())
    assert payload["msg"] == "cycle 3 started"
    assert payload["trace_id"] == "t-1"
    assert payload["component"] == "driver"
    assert payload["cycle_id"] == 3
    assert payload["level"] == "INFO"


def test_text_formatter_line():
    record = logging.LogRecord("tokendist.x", logging.WARNING, __file__, 1, "unpaid=%d", (2,), None)
    line = tlog.TextFormatter().format(record)
    assert "WARNING" in line
    assert line.endswith("unpaid=2")


def test_configure_respects_env(monkeypatch):
    monkeypatch.setenv("TOKENDIST_LOG_FORMAT", "json")
    stream = io.StringIO()
    root = logging.getLogger()
    saved = (root.level, list(root.handlers))
    try:
        tlog.configure(level="DEBUG", stream=stream)
        logging.getLogger("tokendist.tests.cfg").debug("hello")
        assert json.loads(stream.getvalue().splitlines()[-1])["msg"] == "hello"
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
        root.setLevel(saved[0])
        for h in saved[1]:
            root.addHandler(h)


def test_version_env_override(monkeypatch):
    monkeypatch.setenv("TOKENDIST_VERSION", "9.9.9")
    assert version.build_version() == "9.9.9"
    assert tokendist.get_version() == version.__version__
