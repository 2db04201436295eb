"""
Observability Module for the Sankhya core

Provides:
- Structured logging with correlation IDs
- Metrics collection (upstream traffic, cache effectiveness, processing times)
"""

from core.observability.metrics import (
    MetricsCollector,
    get_metrics,
    record_upstream_retry,
    record_processing_time,
)

from core.observability.logging import (
    get_logger,
    configure_logging,
    CorrelationContext,
    with_correlation,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "get_metrics",
    "record_upstream_retry",
    "record_processing_time",
    # Logging
    "get_logger",
    "configure_logging",
    "CorrelationContext",
    "with_correlation",
]
