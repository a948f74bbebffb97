"""
Prometheus metrics.

Exposes ledger metrics in Prometheus format for scraping.

Metrics exposed:
- ledger_vouchers_total: Voucher status transitions by type and status
- ledger_report_duration_seconds: Report generation duration histogram
- ledger_report_imbalance_total: Reports returned with a failed consistency check
"""
import logging
import time
from contextlib import contextmanager

from django.http import HttpResponse
from django.views import View
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

_metrics_initialized = False

# Metric references (initialized lazily so re-imports never double-register)
_vouchers_total = None
_report_duration = None
_report_imbalance = None


def _init_prometheus():
    """Initialize Prometheus metrics (lazy)."""
    global _metrics_initialized
    global _vouchers_total, _report_duration, _report_imbalance

    if _metrics_initialized:
        return

    _vouchers_total = Counter(
        "ledger_vouchers_total",
        "Voucher status transitions",
        ["voucher_type", "status"],
    )

    _report_duration = Histogram(
        "ledger_report_duration_seconds",
        "Report generation duration in seconds",
        ["report"],
        buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    )

    _report_imbalance = Counter(
        "ledger_report_imbalance_total",
        "Reports returned with a failed balance or reconciliation check",
        ["report"],
    )

    _metrics_initialized = True
    logger.info("Prometheus metrics initialized")


def record_voucher_transition(voucher_type: str, status: str) -> None:
    """Count a voucher entering a status."""
    _init_prometheus()
    _vouchers_total.labels(voucher_type=voucher_type, status=status).inc()


def record_report_imbalance(report: str) -> None:
    _init_prometheus()
    _report_imbalance.labels(report=report).inc()


@contextmanager
def track_report(report: str):
    """
    Time a report generator.

    Usage:
        with track_report("trial_balance"):
            ...
    """
    _init_prometheus()
    start = time.perf_counter()
    try:
        yield
    finally:
        _report_duration.labels(report=report).observe(time.perf_counter() - start)


def get_prometheus_response():
    """Generate Prometheus metrics response."""
    _init_prometheus()
    return HttpResponse(generate_latest(REGISTRY), content_type=CONTENT_TYPE_LATEST)


class MetricsView(View):
    """
    Prometheus metrics endpoint.

    Exposes metrics in Prometheus format at /metrics/.
    Should be protected in production (internal network only).
    """

    def get(self, request):
        return get_prometheus_response()
