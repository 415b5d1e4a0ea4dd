"""Transaction outcome and duration tracking for role writes."""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from ....config.constants import (
    HEALTH_MAX_AVERAGE_DURATION_SECONDS,
    HEALTH_MAX_FAILURE_RATE,
    HEALTH_MIN_TRANSACTIONS,
)
from ....utils.datetime import format_iso8601, utc_now


@dataclass(frozen=True)
class TransactionMetrics:
    """Snapshot of transaction statistics since the last reset."""
    total_transactions: int
    successful_transactions: int
    failed_transactions: int
    average_duration: timedelta
    max_duration: timedelta
    min_duration: timedelta
    last_reset: datetime

    @property
    def failure_rate(self) -> float:
        if self.total_transactions == 0:
            return 0.0
        return self.failed_transactions / self.total_transactions

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_transactions": self.total_transactions,
            "successful_transactions": self.successful_transactions,
            "failed_transactions": self.failed_transactions,
            "failure_rate": round(self.failure_rate, 4),
            "average_duration_ms": self.average_duration.total_seconds() * 1000,
            "max_duration_ms": self.max_duration.total_seconds() * 1000,
            "min_duration_ms": self.min_duration.total_seconds() * 1000,
            "last_reset": format_iso8601(self.last_reset),
        }


class TransactionMonitor:
    """Thread-safe counters for transaction outcomes.

    Updates run under a short lock with no I/O, so the monitor can be shared
    by every task and thread using a service.
    """

    def __init__(
        self,
        min_transactions: int = HEALTH_MIN_TRANSACTIONS,
        max_failure_rate: float = HEALTH_MAX_FAILURE_RATE,
        max_average_duration: timedelta = timedelta(seconds=HEALTH_MAX_AVERAGE_DURATION_SECONDS),
    ):
        self.min_transactions = min_transactions
        self.max_failure_rate = max_failure_rate
        self.max_average_duration = max_average_duration

        self._lock = threading.Lock()
        self._reset_counters()

    def _reset_counters(self) -> None:
        self._total = 0
        self._successful = 0
        self._failed = 0
        self._total_duration = timedelta(0)
        self._max_duration = timedelta(0)
        self._min_duration: Optional[timedelta] = None
        self._last_reset = utc_now()

    def record(self, duration: timedelta, success: bool) -> None:
        """Record one finished transaction."""
        with self._lock:
            self._total += 1
            self._total_duration += duration
            if success:
                self._successful += 1
            else:
                self._failed += 1

            if duration > self._max_duration:
                self._max_duration = duration
            if self._min_duration is None or duration < self._min_duration:
                self._min_duration = duration

    def get_metrics(self) -> TransactionMetrics:
        with self._lock:
            average = self._total_duration / self._total if self._total else timedelta(0)
            return TransactionMetrics(
                total_transactions=self._total,
                successful_transactions=self._successful,
                failed_transactions=self._failed,
                average_duration=average,
                max_duration=self._max_duration,
                min_duration=self._min_duration if self._min_duration is not None else timedelta(0),
                last_reset=self._last_reset,
            )

    def reset(self) -> None:
        with self._lock:
            self._reset_counters()

    def is_healthy(self) -> bool:
        """Healthy until enough transactions were seen to judge failure rate and latency."""
        metrics = self.get_metrics()
        if metrics.total_transactions < self.min_transactions:
            return True
        if metrics.failure_rate > self.max_failure_rate:
            return False
        if metrics.average_duration > self.max_average_duration:
            return False
        return True
