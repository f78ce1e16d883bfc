"""
Prometheus metrics exporter for the tone guard.

Exports key metrics for monitoring and alerting.
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, REGISTRY, generate_latest


class MetricsExporter:
    """Prometheus metrics exporter.

    Tracks:
    - Guard evaluations by outcome
    - Quick/enhanced latency distributions
    - Risk score distributions per scoring stage
    - Remote service failures and cache hits
    """

    def __init__(self, prefix: str = "biztone", registry: CollectorRegistry | None = None):
        """Initialize metrics.

        Args:
            prefix: Prefix for all metric names.
            registry: Registry to register with (process default if None).
        """
        self.prefix = prefix
        self.registry = registry if registry is not None else REGISTRY

        # Counters
        self.evaluations_total = Counter(
            f"{prefix}_evaluations_total",
            "Guard evaluations by final action",
            ["action"],
            registry=self.registry,
        )

        self.remote_failures_total = Counter(
            f"{prefix}_remote_failures_total",
            "Conversion/decision service failures",
            ["operation"],
            registry=self.registry,
        )

        self.cache_hits_total = Counter(
            f"{prefix}_cache_hits_total",
            "Result cache hits by entry mode",
            ["mode"],
            registry=self.registry,
        )

        # Histograms
        self.latency = Histogram(
            f"{prefix}_assessment_latency_seconds",
            "Assessment latency in seconds",
            ["stage"],
            buckets=[0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
            registry=self.registry,
        )

        self.risk_score = Histogram(
            f"{prefix}_risk_score",
            "Risk score distribution",
            ["stage"],
            buckets=[0, 1, 2, 3, 4, 5, 6, 7, 8, 9, 10],
            registry=self.registry,
        )

        # Gauges
        self.lexicon_degraded = Gauge(
            f"{prefix}_lexicon_degraded",
            "1 when a compiler runs on the emergency lexicon",
            ["compiler"],
            registry=self.registry,
        )

    def record_evaluation(self, action: str) -> None:
        """Record a finished guard evaluation.

        Args:
            action: Final guard action (SEND, REPLACE, ...).
        """
        self.evaluations_total.labels(action=action).inc()

    def record_latency(self, stage: str, latency_ms: float) -> None:
        """Record latency for a scoring stage.

        Args:
            stage: "quick" or "enhanced".
            latency_ms: Latency in milliseconds.
        """
        self.latency.labels(stage=stage).observe(latency_ms / 1000)

    def record_risk_score(self, stage: str, value: float) -> None:
        self.risk_score.labels(stage=stage).observe(value)

    def record_remote_failure(self, operation: str) -> None:
        self.remote_failures_total.labels(operation=operation).inc()

    def record_cache_hit(self, mode: str) -> None:
        self.cache_hits_total.labels(mode=mode).inc()

    def set_lexicon_degraded(self, compiler: str, degraded: bool) -> None:
        self.lexicon_degraded.labels(compiler=compiler).set(1 if degraded else 0)

    def get_metrics(self) -> bytes:
        """Get Prometheus metrics output.

        Returns:
            Metrics in Prometheus format.
        """
        return generate_latest(self.registry)


# Global metrics instance
_metrics: MetricsExporter | None = None


def get_metrics() -> MetricsExporter:
    """Get global metrics instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsExporter()
    return _metrics
