"""
Prometheus metrics for the retouch worker.
Exposes generation, step, validation and model-call metrics.

Supports two modes:
- Local HTTP server (for local development)
- Pushgateway (for centralized monitoring)
"""
from prometheus_client import (
    Counter, Gauge, Histogram, Info,
    start_http_server, push_to_gateway,
    REGISTRY
)
import threading
import time
import logging

from .config import get_settings

logger = logging.getLogger(__name__)

# Info metrics
worker_info = Info('retouch_worker', 'Worker information')

# Job metrics
jobs_total = Counter('retouch_jobs_total', 'Total jobs processed', ['status'])
jobs_in_progress = Gauge('retouch_jobs_in_progress', 'Currently processing jobs')
generation_duration_seconds = Histogram(
    'retouch_generation_duration_seconds',
    'End-to-end generation request duration',
    buckets=[10, 30, 60, 120, 300, 600, 1200]
)

# Pipeline metrics
step_attempts_total = Counter(
    'retouch_step_attempts_total',
    'Edit attempts per issue type',
    ['edit_type', 'outcome']  # outcome: no_image, rejected, accepted
)
steps_total = Counter('retouch_steps_total', 'Completed sequential steps', ['edit_type', 'status'])
validations_total = Counter('retouch_validations_total', 'Step validation verdicts', ['edit_type', 'verdict'])
naturalness_score = Histogram(
    'retouch_naturalness_score',
    'Validator naturalness scores',
    buckets=[10, 20, 30, 40, 50, 60, 70, 80, 90, 100]
)
variations_total = Counter('retouch_variations_total', 'Variation outcomes', ['status'])
analysis_fallbacks_total = Counter('retouch_analysis_fallbacks_total', 'Analyses replaced by the fallback')

# Model call metrics
model_calls_total = Counter('retouch_model_calls_total', 'Gemini calls', ['stage', 'outcome'])
model_call_duration_seconds = Histogram(
    'retouch_model_call_duration_seconds',
    'Gemini call duration',
    ['stage'],
    buckets=[1, 2, 5, 10, 20, 30, 60, 120]
)

# Progress metrics
generation_progress_percent = Gauge('retouch_generation_progress_percent', 'Current request progress percentage')
generation_eta_seconds = Gauge('retouch_generation_eta_seconds', 'Estimated time remaining for the current request')


class MetricsPusher:
    """Push metrics to Prometheus Pushgateway periodically."""

    def __init__(self, pushgateway_url: str, job_name: str = "retouch-worker",
                 push_interval: float = 15.0):
        self.pushgateway_url = pushgateway_url
        self.job_name = job_name
        self.push_interval = push_interval
        self._pusher_thread = None
        self._running = False

    def start(self, worker_id: str):
        """Start the metrics pusher thread."""
        worker_info.info({'worker_id': worker_id, 'version': '0.1.0'})

        def push_loop():
            self._running = True
            while self._running:
                self.push_now(worker_id)
                time.sleep(self.push_interval)

        self._pusher_thread = threading.Thread(target=push_loop, daemon=True)
        self._pusher_thread.start()
        logger.info(f"Metrics pusher started, pushing to {self.pushgateway_url} every {self.push_interval}s")

    def stop(self):
        """Stop the metrics pusher."""
        self._running = False

    def push_now(self, worker_id: str):
        """Push metrics immediately."""
        try:
            push_to_gateway(
                self.pushgateway_url,
                job=self.job_name,
                grouping_key={'worker_id': worker_id},
                registry=REGISTRY
            )
        except Exception as e:
            logger.warning(f"Failed to push metrics: {e}")


class MetricsServer:
    """HTTP server for Prometheus metrics (local development)."""

    def __init__(self, port: int = 9090):
        self.port = port

    def start(self, worker_id: str):
        """Start the metrics HTTP server (runs in its own daemon thread)."""
        worker_info.info({'worker_id': worker_id, 'version': '0.1.0'})
        start_http_server(self.port)
        logger.info(f"Metrics server started on port {self.port}")

    def stop(self):
        pass


# Global metrics instance
_metrics_handler = None
_worker_id = "unknown"


def start_metrics_server(port: int = 9090, worker_id: str = "unknown"):
    """
    Start metrics collection.

    Uses Pushgateway if PUSHGATEWAY_URL is set, otherwise starts local HTTP server.
    """
    global _metrics_handler, _worker_id
    _worker_id = worker_id

    settings = get_settings()

    if settings.pushgateway_url:
        _metrics_handler = MetricsPusher(
            pushgateway_url=settings.pushgateway_url,
            push_interval=settings.metrics_push_interval
        )
    else:
        _metrics_handler = MetricsServer(port=port)
    _metrics_handler.start(worker_id)


def push_metrics_now():
    """Push metrics immediately (for pushgateway mode)."""
    if isinstance(_metrics_handler, MetricsPusher):
        _metrics_handler.push_now(_worker_id)


def record_model_call(stage: str, outcome: str, duration: float):
    """Record one Gemini call."""
    model_calls_total.labels(stage=stage, outcome=outcome).inc()
    model_call_duration_seconds.labels(stage=stage).observe(duration)


def record_step_attempt(edit_type: str, outcome: str):
    step_attempts_total.labels(edit_type=edit_type, outcome=outcome).inc()


def record_step(edit_type: str, success: bool):
    steps_total.labels(edit_type=edit_type, status="success" if success else "failed").inc()


def record_validation(edit_type: str, can_proceed: bool, naturalness: float):
    validations_total.labels(edit_type=edit_type, verdict="proceed" if can_proceed else "reject").inc()
    naturalness_score.observe(naturalness)


def record_variation(success: bool, fallback: bool):
    status = "success" if success else ("fallback" if fallback else "failed")
    variations_total.labels(status=status).inc()


def record_analysis_fallback():
    analysis_fallbacks_total.inc()


def update_generation_progress(progress_percent: float, eta_seconds: float = 0.0):
    """Update progress gauges for the current request."""
    generation_progress_percent.set(progress_percent)
    generation_eta_seconds.set(eta_seconds)


def record_job(status: str, duration: float | None = None):
    """Record a finished worker job."""
    jobs_total.labels(status=status).inc()
    if duration is not None:
        generation_duration_seconds.observe(duration)
    push_metrics_now()
