"""CloudWatch custom metrics with background batching.

Every outbound integration (Anthropic, Cal.com, Pipefy) reports request
count, latency and errors; the dispatcher reports one count per executed
function and outcome.

* Data points are buffered in memory under a lock.
* When ``METRICS_ENABLED=true`` a daemon thread pushes the buffer to
  CloudWatch every ``FLUSH_INTERVAL_SECONDS``; otherwise points are only
  logged at DEBUG and discarded on flush.

>>> from lynx_sdr.services.metrics import metrics
>>> with metrics.timed("pipefy", "createCard"):
...     ...
>>> metrics.record_function_call("book_meeting", success=True)
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "LynxSDR"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # PutMetricData limit


def _dims(**pairs: str) -> list[dict[str, str]]:
    return [{"Name": name, "Value": value} for name, value in pairs.items()]


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Public API ────────────────────────────────────────────────────

    def record_success(self, service: str, operation: str, latency_ms: float) -> None:
        now = datetime.now(UTC)
        self._point("ExternalAPI/RequestCount", 1, "Count", now,
                    _dims(Service=service, Status="success"))
        self._point("ExternalAPI/Latency", latency_ms, "Milliseconds", now,
                    _dims(Service=service, Operation=operation))
        logger.debug("Metric: %s %s ok %.1fms", service, operation, latency_ms)

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        now = datetime.now(UTC)
        self._point("ExternalAPI/RequestCount", 1, "Count", now,
                    _dims(Service=service, Status="failure"))
        self._point("ExternalAPI/ErrorCount", 1, "Count", now,
                    _dims(Service=service, ErrorType=error_type))
        if latency_ms > 0:
            self._point("ExternalAPI/Latency", latency_ms, "Milliseconds", now,
                        _dims(Service=service, Operation=operation))
        logger.debug("Metric: %s %s failed (%s)", service, operation, error_type)

    def record_function_call(self, function_name: str, *, success: bool) -> None:
        """Count one dispatched model function call."""
        self._point(
            "Dispatcher/FunctionCall", 1, "Count", datetime.now(UTC),
            _dims(Function=function_name, Status="success" if success else "failure"),
        )

    @contextmanager
    def timed(self, service: str, operation: str) -> Iterator[None]:
        """Record latency and outcome of the wrapped external call."""
        t0 = time.perf_counter()
        try:
            yield
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            self.record_failure(service, operation, type(exc).__name__, latency_ms=elapsed)
            raise
        self.record_success(service, operation, (time.perf_counter() - t0) * 1000)

    def flush(self) -> int:
        """Send buffered metrics to CloudWatch.  Returns count sent."""
        with self._lock:
            if not self._buffer:
                return 0
            batch = self._buffer[:]
            self._buffer.clear()

        if not self._enabled:
            logger.debug("Metrics flush skipped (not enabled): %d items", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    # ── Internal ──────────────────────────────────────────────────────

    def _point(
        self,
        name: str,
        value: float,
        unit: str,
        timestamp: datetime,
        dimensions: list[dict[str, str]],
    ) -> None:
        with self._lock:
            self._buffer.append(
                {
                    "MetricName": name,
                    "Dimensions": dimensions,
                    "Timestamp": timestamp,
                    "Value": value,
                    "Unit": unit,
                }
            )

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        threading.Thread(target=_loop, daemon=True, name="metrics-flush").start()
        atexit.register(self.flush)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


metrics = MetricsClient()
