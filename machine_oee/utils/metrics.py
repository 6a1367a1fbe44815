# Machine OEE - Application Metrics
# Prometheus metrics for the OEE analysis service

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram
import structlog

logger = structlog.get_logger()


class ApplicationMetrics:
    """
    Prometheus metrics collected by the OEE analysis service.
    Technical metrics (request outcome, latency, skipped records) and the
    last computed OEE per machine.
    """

    def __init__(self, registry: CollectorRegistry = None):
        """Initialize application metrics collector."""
        self.registry = registry or CollectorRegistry()
        self._initialize_prometheus_metrics()
        logger.info("Application metrics initialized")

    def _initialize_prometheus_metrics(self):
        """Initialize Prometheus metrics."""
        # Analysis Metrics
        self.analysis_requests_total = Counter(
            'oee_analysis_requests_total',
            'Total number of OEE analysis requests',
            ['outcome'],
            registry=self.registry
        )

        self.analysis_duration = Histogram(
            'oee_analysis_duration_seconds',
            'OEE analysis duration in seconds, loads included',
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=self.registry
        )

        # Data quality Metrics
        self.malformed_records_total = Counter(
            'oee_malformed_records_total',
            'Stored records skipped because a numeric field could not be parsed',
            ['kind'],
            registry=self.registry
        )

        # Business Metrics
        self.machine_oee = Gauge(
            'oee_machine_oee_percent',
            'Last computed OEE for a machine',
            ['machine_id'],
            registry=self.registry
        )

    def record_analysis(self, outcome: str, duration: float):
        self.analysis_requests_total.labels(outcome=outcome).inc()
        self.analysis_duration.observe(duration)

    def record_malformed(self, kind: str, count: int = 1):
        if count > 0:
            self.malformed_records_total.labels(kind=kind).inc(count)

    def record_oee(self, machine_id: str, oee: float):
        self.machine_oee.labels(machine_id=machine_id).set(oee)


# Global metrics instance
application_metrics = ApplicationMetrics()
