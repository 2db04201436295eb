"""
Metrics Collection for the Sankhya core

Collects and exposes in-process metrics for:
- Upstream traffic (requests, retries, failures, logins)
- Response cache effectiveness (hits/misses per key namespace)
- Processing times per domain operation (average, p95)
"""

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, List, Optional, Any


# =============================================================================
# Metric Data Classes
# =============================================================================

@dataclass
class UpstreamMetrics:
    """Metrics for calls to the ERP."""
    requests: int = 0
    retries: int = 0
    failures: int = 0
    logins: int = 0
    auth_refreshes: int = 0

    # Failures by error class
    failures_by_type: Dict[str, int] = field(default_factory=lambda: defaultdict(int))


@dataclass
class CacheMetrics:
    """Response cache hits and misses, grouped by key namespace."""
    hits: int = 0
    misses: int = 0

    by_namespace: Dict[str, Dict[str, int]] = field(default_factory=lambda: defaultdict(lambda: {"hits": 0, "misses": 0}))

    @property
    def hit_ratio(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


@dataclass
class TimingMetrics:
    """Processing time metrics."""
    # Raw timing samples (keep last N for percentile calculations)
    samples: List[float] = field(default_factory=list)
    max_samples: int = 1000

    by_stage: Dict[str, List[float]] = field(default_factory=lambda: defaultdict(list))

    def add_sample(self, duration_ms: float, stage: str = None):
        """Add a timing sample."""
        self.samples.append(duration_ms)
        if len(self.samples) > self.max_samples:
            self.samples = self.samples[-self.max_samples:]

        if stage:
            self.by_stage[stage].append(duration_ms)
            if len(self.by_stage[stage]) > self.max_samples:
                self.by_stage[stage] = self.by_stage[stage][-self.max_samples:]

    def get_average(self, stage: str = None) -> float:
        """Get average processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        return statistics.mean(samples) if samples else 0.0

    def get_p95(self, stage: str = None) -> float:
        """Get 95th percentile processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        if not samples:
            return 0.0
        sorted_samples = sorted(samples)
        idx = int(len(sorted_samples) * 0.95)
        return sorted_samples[min(idx, len(sorted_samples) - 1)]


def _namespace(key: str) -> str:
    """Cache key namespace: the part before the first colon."""
    return key.split(":", 1)[0]


# =============================================================================
# Metrics Collector (Singleton)
# =============================================================================

class MetricsCollector:
    """
    Metrics collector for the Sankhya core.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_upstream_request()
        metrics.record_cache_hit("preco:123")
        metrics.record_processing_time("list_products", 120.5)
    """

    _instance: Optional["MetricsCollector"] = None
    _lock = Lock()

    def __init__(self):
        self.upstream = UpstreamMetrics()
        self.cache = CacheMetrics()
        self.timings = TimingMetrics()
        self._lock = Lock()

    @classmethod
    def instance(cls) -> "MetricsCollector":
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def reset(self):
        """Drop every recorded value."""
        with self._lock:
            self.upstream = UpstreamMetrics()
            self.cache = CacheMetrics()
            self.timings = TimingMetrics()

    # =========================================================================
    # Upstream Metrics
    # =========================================================================

    def record_upstream_request(self):
        with self._lock:
            self.upstream.requests += 1

    def record_upstream_retry(self, reason: str = None):
        with self._lock:
            self.upstream.retries += 1

    def record_upstream_failure(self, error_type: str):
        with self._lock:
            self.upstream.failures += 1
            self.upstream.failures_by_type[error_type] += 1

    def record_login(self):
        with self._lock:
            self.upstream.logins += 1

    def record_auth_refresh(self):
        with self._lock:
            self.upstream.auth_refreshes += 1

    # =========================================================================
    # Cache Metrics
    # =========================================================================

    def record_cache_hit(self, key: str):
        with self._lock:
            self.cache.hits += 1
            self.cache.by_namespace[_namespace(key)]["hits"] += 1

    def record_cache_miss(self, key: str):
        with self._lock:
            self.cache.misses += 1
            self.cache.by_namespace[_namespace(key)]["misses"] += 1

    # =========================================================================
    # Timing Metrics
    # =========================================================================

    def record_processing_time(self, stage: str, duration_ms: float):
        """Record a processing time sample."""
        with self._lock:
            self.timings.add_sample(duration_ms, stage)

    def get_timing_stats(self, stage: str = None) -> Dict[str, float]:
        """Get timing statistics for a stage."""
        with self._lock:
            return {
                "average_ms": self.timings.get_average(stage),
                "p95_ms": self.timings.get_p95(stage),
                "sample_count": len(self.timings.by_stage.get(stage, []) if stage else self.timings.samples),
            }

    # =========================================================================
    # Summary
    # =========================================================================

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            return {
                "upstream": {
                    "requests": self.upstream.requests,
                    "retries": self.upstream.retries,
                    "failures": self.upstream.failures,
                    "logins": self.upstream.logins,
                    "auth_refreshes": self.upstream.auth_refreshes,
                    "failures_by_type": dict(self.upstream.failures_by_type),
                },
                "cache": {
                    "hits": self.cache.hits,
                    "misses": self.cache.misses,
                    "hit_ratio": round(self.cache.hit_ratio, 4),
                    "by_namespace": {k: dict(v) for k, v in self.cache.by_namespace.items()},
                },
                "timings": {
                    "overall": {
                        "average_ms": self.timings.get_average(),
                        "p95_ms": self.timings.get_p95(),
                    },
                    "by_stage": {
                        stage: {
                            "average_ms": self.timings.get_average(stage),
                            "p95_ms": self.timings.get_p95(stage),
                        }
                        for stage in self.timings.by_stage.keys()
                    },
                },
            }


# =============================================================================
# Module-level convenience functions
# =============================================================================

def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return MetricsCollector.instance()


def record_upstream_retry(reason: str = None):
    get_metrics().record_upstream_retry(reason)


def record_processing_time(stage: str, duration_ms: float):
    """Record a processing time sample."""
    get_metrics().record_processing_time(stage, duration_ms)
