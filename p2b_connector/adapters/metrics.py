"""
P2B Adapter - Request Metrics.

============================================================
PURPOSE
============================================================
In-process counters for the adapter's HTTP calls.

METRICS TRACKED:
- Request latency (overall and per endpoint)
- Request success/failure counts
- Failures by venue error code and by error category
- Orders submitted and canceled

Nothing here is exported; callers read get_summary().

============================================================
"""

import logging
import threading
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from ..errors import ErrorCategory


logger = logging.getLogger(__name__)


# ============================================================
# LATENCY
# ============================================================

@dataclass
class LatencyStats:
    """Latency statistics."""

    count: int = 0
    total_ms: float = 0.0
    min_ms: float = float("inf")
    max_ms: float = 0.0

    @property
    def avg_ms(self) -> float:
        return self.total_ms / self.count if self.count > 0 else 0.0

    def record(self, latency_ms: float) -> None:
        self.count += 1
        self.total_ms += latency_ms
        self.min_ms = min(self.min_ms, latency_ms)
        self.max_ms = max(self.max_ms, latency_ms)

    def to_dict(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "avg_ms": self.avg_ms,
            "min_ms": self.min_ms if self.count else 0.0,
            "max_ms": self.max_ms,
        }


# ============================================================
# ADAPTER METRICS
# ============================================================

class AdapterMetrics:
    """
    Metrics collector for one adapter instance.

    Thread-safe; every mutation happens under a single lock.
    """

    def __init__(self, exchange_id: str, max_recent: int = 100):
        self._exchange_id = exchange_id
        self._lock = threading.Lock()
        self._max_recent = max_recent
        self.reset()

    # --------------------------------------------------------
    # RECORDING
    # --------------------------------------------------------

    def record_request(
        self,
        endpoint: str,
        latency_ms: float,
        success: bool,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        category: Optional[ErrorCategory] = None,
    ) -> None:
        """
        Record one HTTP call.

        Args:
            endpoint: Endpoint path (e.g. "order/new")
            latency_ms: Wall time of the call
            success: Whether the call produced a usable result
            status_code: HTTP status, None when no response arrived
            error_code: Normalized error code on failure
            category: Error category on failure
        """
        with self._lock:
            self._latency[endpoint].record(latency_ms)
            self._overall.record(latency_ms)

            if success:
                self._success += 1
            else:
                self._failure += 1
                if error_code:
                    self._error_codes[error_code] += 1
                if category is not None:
                    self._categories[category.value] += 1

            self._recent.append({
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "endpoint": endpoint,
                "latency_ms": latency_ms,
                "success": success,
                "status_code": status_code,
                "error_code": error_code,
            })

    def record_order_submitted(self) -> None:
        with self._lock:
            self._orders["submitted"] += 1

    def record_order_canceled(self) -> None:
        with self._lock:
            self._orders["canceled"] += 1

    # --------------------------------------------------------
    # REPORTING
    # --------------------------------------------------------

    def get_summary(self) -> Dict[str, Any]:
        """All metrics as a plain dict."""
        with self._lock:
            total = self._success + self._failure
            return {
                "exchange_id": self._exchange_id,
                "uptime_seconds": (datetime.now(timezone.utc) - self._start_time).total_seconds(),
                "requests": {
                    "total": total,
                    "success": self._success,
                    "failure": self._failure,
                    "success_rate": self._success / total if total > 0 else 1.0,
                },
                "latency": self._overall.to_dict(),
                "orders": dict(self._orders),
                "errors": {
                    "by_code": dict(self._error_codes),
                    "by_category": dict(self._categories),
                },
            }

    def get_latency_by_endpoint(self) -> Dict[str, Dict[str, float]]:
        with self._lock:
            return {endpoint: stats.to_dict() for endpoint, stats in self._latency.items()}

    def get_recent_requests(self, limit: int = 20) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._recent)[-limit:]

    def reset(self) -> None:
        """Reset all metrics."""
        with self._lock:
            self._start_time = datetime.now(timezone.utc)
            self._overall = LatencyStats()
            self._latency: Dict[str, LatencyStats] = defaultdict(LatencyStats)
            self._success = 0
            self._failure = 0
            self._error_codes: Dict[str, int] = defaultdict(int)
            self._categories: Dict[str, int] = defaultdict(int)
            self._orders: Dict[str, int] = {"submitted": 0, "canceled": 0}
            self._recent: Deque[Dict[str, Any]] = deque(maxlen=self._max_recent)
