"""
Run history persistence.
Records every drift detection run and the policies it classified, so the
API can report on past runs. The snapshot store remains the only comparison
baseline.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from gpowatch.core.drift.types import RunResult
from gpowatch.models.drift import DriftRun, PolicyChange, RunStatus

logger = logging.getLogger(__name__)


async def record_run(
    session: AsyncSession,
    result: RunResult,
    triggered_by: Optional[str] = None
) -> DriftRun:
    """Save a completed run and its classified policies."""
    run = DriftRun(
        id=result.id,
        watched_root=result.watched_root,
        started_at=result.started_at,
        finished_at=result.finished_at,
        status=RunStatus.SUCCEEDED,
        bootstrap=result.bootstrap,
        policy_count=result.policy_count,
        added_count=len(result.changes.added),
        changed_count=len(result.changes.changed),
        removed_count=len(result.changes.removed),
        backup_folder=result.backup_folder,
        snapshot_saved=result.snapshot_saved,
        notification_sent=result.notification_sent,
        failures=[failure.model_dump(mode="json") for failure in result.failures] or None,
        triggered_by=triggered_by,
    )
    session.add(run)

    for change_type, records in result.changes.sections():
        for record in records:
            session.add(PolicyChange(
                run_id=run.id,
                change_type=change_type.value,
                policy_id=record.identifier,
                display_name=record.display_name,
                organizational_path=record.organizational_path,
                modification_time=record.modification_time,
                enabled=record.enabled,
            ))

    try:
        await session.commit()
        logger.info(f"Recorded drift run {run.id} with {result.changes.total} changes")
    except Exception as e:
        await session.rollback()
        logger.error(f"Error recording drift run: {str(e)}")
        raise
    return run


async def record_failed_run(
    session: AsyncSession,
    watched_root: str,
    started_at: datetime,
    error: str,
    triggered_by: Optional[str] = None
) -> DriftRun:
    """Save a run that was aborted by a run-level failure."""
    run = DriftRun(
        watched_root=watched_root,
        started_at=started_at,
        finished_at=datetime.now(timezone.utc),
        status=RunStatus.FAILED,
        error=error,
        triggered_by=triggered_by,
    )
    session.add(run)
    try:
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.error(f"Error recording failed drift run: {str(e)}")
        raise
    return run


async def list_runs(session: AsyncSession, limit: int = 50) -> List[DriftRun]:
    result = await session.execute(
        select(DriftRun)
        .order_by(DriftRun.started_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_run(session: AsyncSession, run_id: UUID) -> Optional[Tuple[DriftRun, List[PolicyChange]]]:
    result = await session.execute(select(DriftRun).where(DriftRun.id == run_id))
    run = result.scalar_one_or_none()
    if run is None:
        return None

    changes_result = await session.execute(
        select(PolicyChange)
        .where(PolicyChange.run_id == run_id)
        .order_by(PolicyChange.change_type, PolicyChange.display_name)
    )
    return run, list(changes_result.scalars().all())
