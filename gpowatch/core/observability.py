"""
Observability Module
-------------------
This module provides observability features including Prometheus metrics,
component health checks, and OpenTelemetry integration.
"""

import time
import logging
from contextlib import contextmanager
from typing import Dict, Any, Optional, Callable, Generator
import functools
from datetime import datetime

from fastapi import FastAPI
from prometheus_client import Counter, Histogram, Gauge, Info
from starlette_exporter import PrometheusMiddleware, handle_metrics
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from gpowatch.core.config import settings
from gpowatch.core.drift.store import SnapshotStore
from gpowatch.core.drift.types import RunResult
from gpowatch.core.exceptions import SnapshotReadFailure
from gpowatch.models.drift import DriftRun

# Set up logging
logger = logging.getLogger(__name__)

# Prometheus metrics
DRIFT_RUN_COUNTER = Counter(
    'gpowatch_drift_runs_total',
    'Total number of drift detection runs',
    ['outcome']
)

POLICY_CHANGE_COUNTER = Counter(
    'gpowatch_policy_changes_total',
    'Total number of policy changes detected',
    ['change_type']
)

DISPATCH_FAILURE_COUNTER = Counter(
    'gpowatch_dispatch_failures_total',
    'Per-policy backup, report and notification failures',
    ['kind']
)

DRIFT_RUN_DURATION = Histogram(
    'gpowatch_drift_run_duration_seconds',
    'Duration of drift detection runs in seconds',
    buckets=(1, 5, 10, 30, 60, 120, 300, 600)
)

SNAPSHOT_POLICY_GAUGE = Gauge(
    'gpowatch_snapshot_policies',
    'Number of policies in the most recent snapshot'
)

SYSTEM_INFO = Info(
    'gpowatch_system_info',
    'Information about the GPOWatch system'
)

SYSTEM_INFO.info({
    'version': settings.VERSION,
    'environment': settings.ENVIRONMENT,
    'watched_root': settings.WATCHED_ROOT,
    'start_time': datetime.now().isoformat()
})


def setup_tracing() -> Optional[trace.Tracer]:
    """Initialize OpenTelemetry tracing"""
    if not settings.ENABLE_TRACING:
        logger.info("OpenTelemetry tracing is disabled")
        return None

    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

    trace.set_tracer_provider(TracerProvider())
    tracer = trace.get_tracer(__name__)

    otlp_exporter = OTLPSpanExporter(endpoint=settings.OTLP_ENDPOINT, insecure=True)
    trace.get_tracer_provider().add_span_processor(BatchSpanProcessor(otlp_exporter))

    logger.info(f"OpenTelemetry tracing initialized with endpoint {settings.OTLP_ENDPOINT}")
    return tracer


@contextmanager
def timed_execution(
    metric: Histogram,
    labels: Dict[str, str] = None
) -> Generator[None, None, None]:
    """
    Context manager to measure execution time

    Args:
        metric: Prometheus histogram to record duration
        labels: Labels to apply to the metric
    """
    start_time = time.time()
    try:
        yield
    finally:
        duration = time.time() - start_time
        if labels:
            metric.labels(**labels).observe(duration)
        else:
            metric.observe(duration)


def record_run_metrics(result: RunResult) -> None:
    POLICY_CHANGE_COUNTER.labels(change_type="added").inc(len(result.changes.added))
    POLICY_CHANGE_COUNTER.labels(change_type="changed").inc(len(result.changes.changed))
    POLICY_CHANGE_COUNTER.labels(change_type="removed").inc(len(result.changes.removed))
    SNAPSHOT_POLICY_GAUGE.set(result.policy_count)


def track_drift_run(func: Callable) -> Callable:
    """
    Decorator to track drift detection runs

    Args:
        func: Coroutine function returning a RunResult

    Returns:
        Decorated function
    """
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        tracer = trace.get_tracer(__name__)
        with tracer.start_as_current_span("policy_drift_run"):
            with timed_execution(DRIFT_RUN_DURATION):
                try:
                    result = await func(*args, **kwargs)
                except Exception:
                    DRIFT_RUN_COUNTER.labels(outcome="failed").inc()
                    raise

        outcome = "bootstrap" if result.bootstrap else ("changed" if result.changed else "unchanged")
        DRIFT_RUN_COUNTER.labels(outcome=outcome).inc()
        record_run_metrics(result)
        return result

    return wrapper


def initialize_metrics(app: FastAPI) -> None:
    """
    Initialize metrics and expose a /metrics endpoint

    Args:
        app: FastAPI application instance
    """
    app.add_middleware(
        PrometheusMiddleware,
        app_name="gpowatch",
        prefix="gpowatch",
        group_paths=True
    )
    app.add_route("/metrics", handle_metrics)

    logger.info("Prometheus metrics initialized")


async def get_component_health(db: AsyncSession, store: Optional[SnapshotStore] = None) -> Dict[str, Any]:
    """
    Get health status of all components

    Args:
        db: Database session
        store: Snapshot store to check, defaults to the configured snapshot file

    Returns:
        Dictionary with component health status
    """
    health = {
        "status": "ok",
        "components": {
            "api": {"status": "ok"},
            "database": {"status": "checking"},
            "snapshot_store": {"status": "checking"},
        },
        "timestamp": datetime.now().isoformat()
    }

    try:
        await db.execute(select(1))
        health["components"]["database"] = {
            "status": "ok",
            "details": "Connected to database"
        }
    except Exception as e:
        health["components"]["database"] = {
            "status": "error",
            "details": f"Database error: {str(e)}"
        }

    if store is None:
        store = SnapshotStore(settings.SNAPSHOT_FILE)
    try:
        snapshot = store.read()
        health["components"]["snapshot_store"] = {
            "status": "ok",
            "details": "No snapshot yet" if snapshot is None else f"{len(snapshot)} policies",
            "captured_at": snapshot.captured_at.isoformat() if snapshot is not None else None
        }
    except SnapshotReadFailure as e:
        health["components"]["snapshot_store"] = {
            "status": "degraded",
            "details": e.message
        }

    try:
        result = await db.execute(
            select(DriftRun)
            .order_by(DriftRun.started_at.desc())
            .limit(1)
        )
        latest_run = result.scalar_one_or_none()
        if latest_run:
            health["components"]["snapshot_store"]["last_run"] = latest_run.started_at.isoformat()
    except Exception as e:
        logger.warning(f"Could not read latest run for health check: {str(e)}")

    component_statuses = [c["status"] for c in health["components"].values()]
    if "error" in component_statuses or "degraded" in component_statuses:
        health["status"] = "degraded"

    if health["components"]["database"]["status"] == "error":
        health["status"] = "down"

    return health
