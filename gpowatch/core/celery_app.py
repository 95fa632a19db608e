"""
Celery Configuration for Drift Detection
----------------------------------------
A worker runs one policy drift detection pass per beat tick. Runs are not
retried by Celery; a failed run is recorded and the next tick starts over.
"""

from celery import Celery
from gpowatch.core.config import settings

DRIFT_TASK = "gpowatch.tasks.drift_tasks.detect_policy_drift"
DRIFT_QUEUE = "drift_detection"


def build_beat_schedule() -> dict:
    if not settings.DRIFT_DETECTION_ENABLED:
        return {}
    return {
        "policy-drift-detection": {
            "task": DRIFT_TASK,
            "schedule": float(settings.DRIFT_DETECTION_INTERVAL),
            # A tick that waits longer than one interval is superseded by the next
            "options": {"queue": DRIFT_QUEUE, "expires": settings.DRIFT_DETECTION_INTERVAL},
        },
    }


celery_app = Celery(
    "gpowatch",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["gpowatch.tasks.drift_tasks"]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    task_routes={DRIFT_TASK: {"queue": DRIFT_QUEUE}},

    # Runs share one snapshot file
    worker_prefetch_multiplier=1,
    worker_concurrency=1,
    task_acks_late=True,

    task_soft_time_limit=max(60, settings.DRIFT_DETECTION_INTERVAL // 2),
    task_time_limit=settings.DRIFT_DETECTION_INTERVAL,
    result_expires=settings.DRIFT_DETECTION_INTERVAL * 24,

    beat_schedule=build_beat_schedule(),
)
