"""
Core metrics collection for Bandwriter using Prometheus
"""
from prometheus_client import CollectorRegistry, Counter, Histogram, Info, generate_latest

from core.config import settings
from core.logging import get_logger

# Create a global registry for the engine
REGISTRY = CollectorRegistry()

# Application info
app_info = Info("bandwriter_app", "Bandwriter engine information", registry=REGISTRY)

# Run metrics
runs_total = Counter(
    "bandwriter_runs_total",
    "Total band processor runs by final status",
    ["status"],
    registry=REGISTRY,
)

run_duration = Histogram(
    "bandwriter_run_duration_seconds",
    "Wall time between the first and last event of a run",
    buckets=(0.001, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0),
    registry=REGISTRY,
)

records_processed = Counter(
    "bandwriter_records_processed_total",
    "Total driving records consumed",
    registry=REGISTRY,
)

# Event metrics
render_events = Counter(
    "bandwriter_render_events_total",
    "Total render events emitted",
    ["band_type"],
    registry=REGISTRY,
)

page_breaks = Counter(
    "bandwriter_page_breaks_total",
    "Total page breaks inserted",
    ["reason"],
    registry=REGISTRY,
)

# Error metrics
error_count = Counter(
    "bandwriter_errors_total",
    "Total number of fatal run errors",
    ["error_type"],
    registry=REGISTRY,
)

diagnostics_count = Counter(
    "bandwriter_diagnostics_total",
    "Total number of recoverable diagnostics",
    ["kind"],
    registry=REGISTRY,
)


class MetricsCollector:
    """Helper class for collecting metrics"""

    def __init__(self, enabled: bool = True):
        self.logger = get_logger("metrics")
        self.enabled = enabled

        app_info.info({"version": settings.app_version, "environment": settings.environment})

    def track_run(self, status: str, duration: float, records: int = 0):
        """Track a finished, failed or abandoned run"""
        if not self.enabled:
            return
        runs_total.labels(status=status).inc()
        run_duration.observe(duration)
        if records:
            records_processed.inc(records)

    def track_event(self, band_type: str):
        """Track a render event"""
        if self.enabled:
            render_events.labels(band_type=band_type).inc()

    def track_page_break(self, reason: str):
        """Track an inserted page break"""
        if self.enabled:
            page_breaks.labels(reason=reason).inc()

    def track_error(self, error_type: str):
        """Track fatal errors"""
        if self.enabled:
            error_count.labels(error_type=error_type).inc()

    def track_diagnostic(self, kind: str):
        """Track recoverable diagnostics"""
        if self.enabled:
            diagnostics_count.labels(kind=kind).inc()

    def get_metrics(self) -> bytes:
        """Get current metrics in Prometheus format"""
        return generate_latest(REGISTRY)


# Global metrics collector instance
metrics = MetricsCollector(enabled=settings.metrics_enabled)


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance"""
    return metrics
