"""Tests for TransactionMonitor."""

import threading
from datetime import timedelta

import pytest

from neo_roles.features.roles.services import TransactionMonitor


class TestTransactionMonitor:
    """Test outcome counters and health evaluation."""

    def test_empty_metrics(self, monitor):
        metrics = monitor.get_metrics()

        assert metrics.total_transactions == 0
        assert metrics.failure_rate == 0.0
        assert metrics.average_duration == timedelta(0)
        assert metrics.min_duration == timedelta(0)
        assert monitor.is_healthy()

    def test_record(self, monitor):
        monitor.record(timedelta(milliseconds=10), True)
        monitor.record(timedelta(milliseconds=30), True)
        monitor.record(timedelta(milliseconds=20), False)

        metrics = monitor.get_metrics()
        assert metrics.total_transactions == 3
        assert metrics.successful_transactions == 2
        assert metrics.failed_transactions == 1
        assert metrics.average_duration == timedelta(milliseconds=20)
        assert metrics.max_duration == timedelta(milliseconds=30)
        assert metrics.min_duration == timedelta(milliseconds=10)
        assert metrics.failure_rate == pytest.approx(1 / 3)

    def test_to_dict(self, monitor):
        monitor.record(timedelta(milliseconds=5), True)

        data = monitor.get_metrics().to_dict()

        assert data["total_transactions"] == 1
        assert data["average_duration_ms"] == pytest.approx(5.0)
        assert data["failure_rate"] == 0.0
        assert isinstance(data["last_reset"], str)

    def test_reset(self, monitor):
        monitor.record(timedelta(milliseconds=5), False)
        before = monitor.get_metrics().last_reset

        monitor.reset()

        metrics = monitor.get_metrics()
        assert metrics.total_transactions == 0
        assert metrics.last_reset >= before

    def test_healthy_below_minimum_sample(self):
        monitor = TransactionMonitor(min_transactions=10)
        for _ in range(5):
            monitor.record(timedelta(milliseconds=1), False)

        assert monitor.is_healthy()

    def test_unhealthy_on_failure_rate(self):
        monitor = TransactionMonitor(min_transactions=10, max_failure_rate=0.05)
        for n in range(10):
            monitor.record(timedelta(milliseconds=1), n != 0)

        assert not monitor.is_healthy()

    def test_unhealthy_on_slow_transactions(self):
        monitor = TransactionMonitor(min_transactions=2, max_average_duration=timedelta(milliseconds=100))
        monitor.record(timedelta(milliseconds=150), True)
        monitor.record(timedelta(milliseconds=150), True)

        assert not monitor.is_healthy()

    def test_concurrent_recording(self, monitor):
        def worker():
            for _ in range(1000):
                monitor.record(timedelta(microseconds=1), True)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        metrics = monitor.get_metrics()
        assert metrics.total_transactions == 8000
        assert metrics.successful_transactions == 8000
