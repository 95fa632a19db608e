# gpowatch/tasks/drift_tasks.py
"""
Celery Tasks for Drift Detection
-------------------------------
The scheduled entry point of a drift detection run. Each beat tick runs the
orchestrator once and records the run in the history database. Failed runs
are not retried within the tick; the next tick runs again.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from gpowatch.core.celery_app import celery_app
from gpowatch.core.config import settings
from gpowatch.core.database import async_session, create_db_and_tables
from gpowatch.core.exceptions import PolicyDriftError
from gpowatch.core.drift.types import RunResult
from gpowatch.services.drift_service import PolicyDriftService
from gpowatch.services.history import record_failed_run, record_run

logger = logging.getLogger(__name__)


async def run_drift_detection(triggered_by: str = "schedule") -> RunResult:
    """
    Run drift detection once and record the outcome.

    Run-level failures are recorded as failed runs and re-raised.
    """
    await create_db_and_tables()
    service = PolicyDriftService.from_settings()
    started_at = datetime.now(timezone.utc)

    try:
        result = await service.run()
    except PolicyDriftError as e:
        logger.error(f"Drift detection run failed: {e.message}")
        try:
            async with async_session() as session:
                await record_failed_run(session, service.watched_root, started_at, e.message, triggered_by)
        except Exception as history_error:
            logger.error(f"Could not record failed drift run: {str(history_error)}")
        raise

    # History is an audit log; the run itself already completed
    try:
        async with async_session() as session:
            await record_run(session, result, triggered_by)
    except Exception as e:
        logger.error(f"Could not record drift run {result.id}: {str(e)}")
    return result


@celery_app.task(bind=True)
def detect_policy_drift(self) -> Dict[str, Any]:
    """
    Main Celery task for detecting drift in the watched Group Policy links.
    """
    if not settings.DRIFT_DETECTION_ENABLED:
        logger.info("Drift detection is disabled, skipping scheduled run")
        return {"status": "disabled"}

    logger.info(f"Starting drift detection task {self.request.id}")
    try:
        result = asyncio.run(run_drift_detection(triggered_by="schedule"))
    except PolicyDriftError as e:
        return {"status": "failed", "error": e.message}

    summary = result.summary()
    summary["status"] = "succeeded"
    return summary
