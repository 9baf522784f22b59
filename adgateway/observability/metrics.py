"""
Facebook Ads Gateway - Metrics
Prometheus metrics for tool calls, credential resolution and live sessions.
"""

import time
import logging
from contextlib import contextmanager
from typing import Optional

from prometheus_client import Counter, Histogram, Gauge, Info, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client.registry import CollectorRegistry

logger = logging.getLogger(__name__)


class GatewayMetrics:
    """
    Centralized metrics collection for the gateway.

    Each instance owns its own CollectorRegistry so tests and multiple
    gateways in one process never collide on metric names.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None, version: str = "2.0.0"):
        self.registry = registry or CollectorRegistry()

        self.info = Info('adgateway_server', 'Gateway server information', registry=self.registry)

        self.calls_total = Counter(
            'adgateway_calls_total',
            'Total number of tool calls',
            ['protocol', 'tool', 'status'],
            registry=self.registry
        )

        self.call_duration = Histogram(
            'adgateway_call_duration_seconds',
            'Tool call duration in seconds',
            ['protocol', 'tool'],
            buckets=[.05, .1, .25, .5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, float('inf')],
            registry=self.registry
        )

        self.errors_total = Counter(
            'adgateway_errors_total',
            'Total errors',
            ['error_code', 'protocol'],
            registry=self.registry
        )

        self.resolutions_total = Counter(
            'adgateway_credential_resolutions_total',
            'Credential resolutions',
            ['tier', 'status'],
            registry=self.registry
        )

        self.active_streams = Gauge(
            'adgateway_active_streams',
            'Number of open session streams',
            registry=self.registry
        )

        self.registered_sessions = Gauge(
            'adgateway_registered_sessions',
            'Number of session to caller mappings',
            registry=self.registry
        )

        self.info.info({'version': version})

    def record_call(self, protocol: str, tool: str, duration: float, success: bool,
                    error_code: Optional[str] = None):
        """Record a completed tool call"""
        status = "success" if success else "failure"
        self.calls_total.labels(protocol=protocol, tool=tool, status=status).inc()
        self.call_duration.labels(protocol=protocol, tool=tool).observe(duration)

        if error_code:
            self.errors_total.labels(error_code=error_code, protocol=protocol).inc()

    def record_error(self, protocol: str, error_code: str):
        self.errors_total.labels(error_code=error_code, protocol=protocol).inc()

    def record_resolution(self, tier: str, success: bool):
        status = "success" if success else "failure"
        self.resolutions_total.labels(tier=tier, status=status).inc()

    @contextmanager
    def measure_call(self, protocol: str, tool: str):
        """Context manager to measure call duration"""
        start = time.time()
        outcome = {"error_code": None}

        try:
            yield outcome
        except Exception:
            outcome["error_code"] = outcome["error_code"] or "INTERNAL_ERROR"
            raise
        finally:
            duration = time.time() - start
            self.record_call(protocol, tool, duration, outcome["error_code"] is None,
                             outcome["error_code"])

    def get_prometheus_metrics(self) -> bytes:
        """Get Prometheus-formatted metrics"""
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        """Get Prometheus content type"""
        return CONTENT_TYPE_LATEST
