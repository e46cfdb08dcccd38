"""In-process metrics for transformation backends and HTTP endpoints.

The coordinator records every backend attempt (which operation, which backend,
how long it took and whether it failed) and every remote-to-local fallback.
The HTTP middleware records endpoint latency and status codes. Nothing leaves
the process; summaries are plain dictionaries ready for JSON encoding.

Collected domains:
        * Backend attempts per ``(operation, backend)`` pair with failure counts,
            mean latency and the last error message
        * Fallback counts per operation (remote failed, local took over)
        * Endpoint latency & error rates (rolling sample window + aggregates)
        * Recent failures (fixed-size deque for debugging / introspection)

Example::

        from epcis_transformer.monitoring import get_monitor
        monitor = get_monitor()
        monitor.record_backend_attempt("convert_to_v2", "remote", 0.41, error="timeout")
        monitor.record_fallback("convert_to_v2")
        print(monitor.get_backend_summary()["fallbacks"])  # -> {'convert_to_v2': 1}

Use :meth:`TransformMonitor.reset_metrics` in tests to start from a clean
baseline.
"""

from __future__ import annotations

import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple


@dataclass
class BackendMetrics:
    """Aggregated metrics for one backend serving one operation.

    Attributes:
        attempts: Number of calls made to the backend.
        failures: Calls that raised.
        total_time: Cumulative latency (seconds).
        average_time: Mean latency (seconds).
        last_error: Message of the most recent failure.
        last_attempt: Datetime of the most recent call.
    """

    attempts: int = 0
    failures: int = 0
    total_time: float = 0.0
    average_time: float = 0.0
    last_error: Optional[str] = None
    last_attempt: Optional[datetime] = None


@dataclass
class EndpointMetrics:
    """Aggregated metrics for a single HTTP endpoint.

    Attributes:
        total_requests: Count of invocations.
        total_response_time: Cumulative latency (seconds).
        average_response_time: Mean latency (seconds).
        error_count: Number of requests resulting in error (HTTP >= 400).
        error_rate: error_count / total_requests (0..1).
        response_times: Rolling window of recent latencies.
    """

    total_requests: int = 0
    total_response_time: float = 0.0
    average_response_time: float = 0.0
    error_count: int = 0
    error_rate: float = 0.0
    response_times: deque = field(default_factory=lambda: deque(maxlen=100))


class TransformMonitor:
    """Thread-safe recorder shared by the coordinator and the HTTP layer."""

    def __init__(self) -> None:
        self.start_time = datetime.now()
        self._lock = threading.RLock()
        self.backend_metrics: Dict[Tuple[str, str], BackendMetrics] = defaultdict(
            BackendMetrics
        )
        self.fallbacks: Dict[str, int] = defaultdict(int)
        self.endpoint_metrics: Dict[str, EndpointMetrics] = defaultdict(EndpointMetrics)
        self.recent_failures: deque = deque(maxlen=100)

    def record_backend_attempt(
        self,
        operation: str,
        backend: str,
        elapsed: float,
        error: Optional[str] = None,
    ) -> None:
        """Record one backend call.

        Args:
            operation: Coordinator operation name (e.g. ``convert_to_jsonld``).
            backend: ``"remote"`` or ``"local"``.
            elapsed: Wall-clock seconds spent in the call.
            error: Failure message, ``None`` on success.
        """
        with self._lock:
            metrics = self.backend_metrics[(operation, backend)]
            metrics.attempts += 1
            metrics.total_time += elapsed
            metrics.average_time = metrics.total_time / metrics.attempts
            metrics.last_attempt = datetime.now()
            if error is not None:
                metrics.failures += 1
                metrics.last_error = error
                self.recent_failures.append(
                    {
                        "operation": operation,
                        "backend": backend,
                        "error": error,
                        "timestamp": datetime.now().isoformat(),
                    }
                )

    def record_fallback(self, operation: str) -> None:
        """Record that ``operation`` fell back from the remote to the local backend."""
        with self._lock:
            self.fallbacks[operation] += 1

    def record_endpoint_request(
        self, endpoint: str, response_time: float, status_code: int = 200
    ) -> None:
        """Record an API endpoint invocation.

        Args:
            endpoint: Request path.
            response_time: Time in seconds for handling the request.
            status_code: HTTP status (>=400 counts as error).
        """
        with self._lock:
            metrics = self.endpoint_metrics[endpoint]
            metrics.total_requests += 1
            metrics.total_response_time += response_time
            metrics.average_response_time = (
                metrics.total_response_time / metrics.total_requests
            )
            metrics.response_times.append(response_time)
            if status_code >= 400:
                metrics.error_count += 1
            metrics.error_rate = metrics.error_count / metrics.total_requests

    def get_backend_summary(self) -> Dict[str, Any]:
        """Return a JSON-ready snapshot of backend, fallback and endpoint metrics."""
        with self._lock:
            backends: Dict[str, Dict[str, Any]] = {}
            for (operation, backend), metrics in sorted(self.backend_metrics.items()):
                backends.setdefault(operation, {})[backend] = {
                    "attempts": metrics.attempts,
                    "failures": metrics.failures,
                    "failure_rate": round(metrics.failures / metrics.attempts * 100, 2)
                    if metrics.attempts
                    else 0.0,
                    "avg_time_ms": round(metrics.average_time * 1000, 2),
                    "last_error": metrics.last_error,
                }

            return {
                "timestamp": datetime.now().isoformat(),
                "uptime_seconds": round(
                    (datetime.now() - self.start_time).total_seconds(), 2
                ),
                "backends": backends,
                "fallbacks": dict(self.fallbacks),
                "endpoints": {
                    endpoint: {
                        "requests": metrics.total_requests,
                        "avg_response_time_ms": round(
                            metrics.average_response_time * 1000, 2
                        ),
                        "error_rate": round(metrics.error_rate * 100, 2),
                    }
                    for endpoint, metrics in self.endpoint_metrics.items()
                },
                "recent_failures": list(self.recent_failures)[-20:],
            }

    def reset_metrics(self) -> None:
        """Reset all counters/state (primarily for tests or manual re-baselining)."""
        with self._lock:
            self.backend_metrics.clear()
            self.fallbacks.clear()
            self.endpoint_metrics.clear()
            self.recent_failures.clear()
            self.start_time = datetime.now()


# Global monitor instance
_monitor: Optional[TransformMonitor] = None


def get_monitor() -> TransformMonitor:
    """Return (and lazily initialize) the process-wide monitor singleton."""
    global _monitor
    if _monitor is None:
        _monitor = TransformMonitor()
    return _monitor
