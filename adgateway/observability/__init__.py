"""
Facebook Ads Gateway - Observability Module
Structured logging and Prometheus metrics.
"""

from adgateway.observability.logs import (
    configure_logging,
    current_trace_id,
    trace_scope,
)

from adgateway.observability.metrics import GatewayMetrics

__all__ = [
    'configure_logging',
    'current_trace_id',
    'trace_scope',
    'GatewayMetrics',
]
