# tests/test_ops.py
"""
Tests for structured logging and Prometheus metrics.
"""

import json
import sys
import logging
from datetime import date
from decimal import Decimal

import pytest
from prometheus_client import REGISTRY

from accounting.models import Voucher
from ops.logging_config import APP_LOGGERS, JsonFormatter, get_logging_config
from ops.metrics import track_report


def _record(msg="Approved %s", args=("PAY/2025/00001",), **extra):
    record = logging.LogRecord(
        name="accounting.commands",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=msg,
        args=args,
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:

    def test_core_fields(self):
        entry = json.loads(JsonFormatter().format(_record()))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "accounting.commands"
        assert entry["message"] == "Approved PAY/2025/00001"
        assert entry["timestamp"].endswith("Z")
        assert entry["location"]["line"] == 10

    def test_extras_are_stringified_when_needed(self):
        """Decimal extras cannot go through json.dumps and are stored as text."""
        entry = json.loads(JsonFormatter().format(_record(company="acme", difference=Decimal("0.50"))))

        assert entry["extra"] == {"company": "acme", "difference": "0.50"}

    def test_exception_included(self):
        try:
            raise ValueError("bad voucher")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()

        entry = json.loads(JsonFormatter().format(record))

        assert "ValueError: bad voucher" in entry["exception"]


class TestLoggingConfig:

    def test_json_in_production(self, monkeypatch):
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        monkeypatch.delenv("LOG_LEVEL", raising=False)

        config = get_logging_config(debug=False)

        assert config["handlers"]["console"]["formatter"] == "json"
        assert config["loggers"][""]["level"] == "INFO"

    def test_console_in_debug(self, monkeypatch):
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        monkeypatch.delenv("LOG_LEVEL", raising=False)

        config = get_logging_config(debug=True)

        assert config["handlers"]["console"]["formatter"] == "verbose"
        assert config["loggers"]["django.db.backends"]["handlers"] == ["console"]

    def test_app_loggers_do_not_propagate(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "WARNING")

        config = get_logging_config()

        for app_name in APP_LOGGERS:
            assert config["loggers"][app_name]["propagate"] is False
            assert config["loggers"][app_name]["level"] == "WARNING"


@pytest.mark.django_db
class TestMetrics:

    def test_report_duration_observed(self):
        before = REGISTRY.get_sample_value("ledger_report_duration_seconds_count", {"report": "unit_test"}) or 0

        with track_report("unit_test"):
            pass

        after = REGISTRY.get_sample_value("ledger_report_duration_seconds_count", {"report": "unit_test"})
        assert after == before + 1

    def test_duration_observed_when_report_fails(self):
        before = REGISTRY.get_sample_value("ledger_report_duration_seconds_count", {"report": "failing"}) or 0

        with pytest.raises(RuntimeError):
            with track_report("failing"):
                raise RuntimeError("boom")

        assert REGISTRY.get_sample_value("ledger_report_duration_seconds_count", {"report": "failing"}) == before + 1

    def test_voucher_transitions_counted(self, post_approved, cash, sales, entry):
        labels = {"voucher_type": "SALES", "status": "APPROVED"}
        before = REGISTRY.get_sample_value("ledger_vouchers_total", labels) or 0

        post_approved(Voucher.VoucherType.SALES, date(2025, 6, 1), [entry(cash, debit="10"), entry(sales, credit="10")])

        assert REGISTRY.get_sample_value("ledger_vouchers_total", labels) == before + 1

    def test_metrics_endpoint(self, client):
        with track_report("endpoint_check"):
            pass

        response = client.get("/metrics/")

        assert response.status_code == 200
        assert b"ledger_report_duration_seconds" in response.content
