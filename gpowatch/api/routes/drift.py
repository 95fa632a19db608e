# gpowatch/api/routes/drift.py
import logging
from fastapi import APIRouter, Depends, HTTPException, BackgroundTasks, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import desc, func
from sqlmodel import select
from typing import Dict, Any, List, Optional
from uuid import UUID
from pydantic import BaseModel
from datetime import datetime

from gpowatch.core.config import settings
from gpowatch.core.database import get_db
from gpowatch.core.drift.store import SnapshotStore
from gpowatch.core.drift.types import Snapshot
from gpowatch.core.exceptions import PolicyDriftError, SnapshotReadFailure
from gpowatch.models.drift import DriftRun, RunStatus
from gpowatch.services.history import get_run, list_runs
from gpowatch.tasks.drift_tasks import run_drift_detection

logger = logging.getLogger(__name__)


class DriftStatusResponse(BaseModel):
    """Response model for drift status endpoint"""
    watched_root: str
    detection_enabled: bool
    notifications_enabled: bool
    last_run: Optional[datetime] = None
    last_run_status: Optional[str] = None
    total_runs: int = 0
    failed_runs: int = 0
    snapshot_policies: Optional[int] = None


class DriftRunDetailResponse(BaseModel):
    """Response model for a single run with its classified policies"""
    run: Dict[str, Any]
    changes: List[Dict[str, Any]]


router = APIRouter(prefix="/drift", tags=["Drift Detection"])


def get_snapshot_store() -> SnapshotStore:
    return SnapshotStore(settings.SNAPSHOT_FILE)


@router.get("/status", response_model=DriftStatusResponse)
async def get_drift_status(
    db: AsyncSession = Depends(get_db),
    store: SnapshotStore = Depends(get_snapshot_store)
):
    """Get current status of drift detection"""
    last_run_result = await db.execute(
        select(DriftRun)
        .order_by(desc(DriftRun.started_at))
        .limit(1)
    )
    last_run = last_run_result.scalar_one_or_none()

    total_runs = (await db.execute(select(func.count(DriftRun.id)))).scalar_one() or 0
    failed_runs = (await db.execute(
        select(func.count(DriftRun.id)).where(DriftRun.status == RunStatus.FAILED)
    )).scalar_one() or 0

    snapshot_policies = None
    try:
        snapshot = store.read()
        if snapshot is not None:
            snapshot_policies = len(snapshot)
    except SnapshotReadFailure as e:
        logger.warning(f"Stored snapshot unreadable: {e.message}")

    return DriftStatusResponse(
        watched_root=settings.WATCHED_ROOT,
        detection_enabled=settings.DRIFT_DETECTION_ENABLED,
        notifications_enabled=settings.NOTIFICATIONS_ENABLED,
        last_run=last_run.started_at if last_run else None,
        last_run_status=last_run.status.value if last_run else None,
        total_runs=total_runs,
        failed_runs=failed_runs,
        snapshot_policies=snapshot_policies
    )


@router.get("/runs", response_model=List[DriftRun])
async def get_drift_runs(limit: int = 50, db: AsyncSession = Depends(get_db)):
    """Get the most recent drift detection runs"""
    return await list_runs(db, limit=max(1, min(limit, 500)))


@router.get("/runs/{run_id}", response_model=DriftRunDetailResponse)
async def get_drift_run(run_id: UUID, db: AsyncSession = Depends(get_db)):
    """Get a drift detection run with the policies it classified"""
    found = await get_run(db, run_id)
    if found is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Drift run with ID {run_id} not found"
        )

    run, changes = found
    return DriftRunDetailResponse(
        run=run.model_dump(mode="json"),
        changes=[change.model_dump(mode="json") for change in changes]
    )


@router.get("/snapshot", response_model=Snapshot)
async def get_current_snapshot(store: SnapshotStore = Depends(get_snapshot_store)):
    """Get the snapshot the next run will compare against"""
    try:
        snapshot = store.read()
    except SnapshotReadFailure as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=e.message
        )

    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No snapshot has been stored yet"
        )
    return snapshot


async def _scan_in_background() -> None:
    try:
        await run_drift_detection(triggered_by="api")
    except PolicyDriftError as e:
        logger.error(f"Manual drift scan failed: {e.message}")


@router.post("/scan", status_code=status.HTTP_202_ACCEPTED)
async def trigger_drift_scan(background_tasks: BackgroundTasks) -> Dict[str, Any]:
    """Manually trigger a drift detection scan"""
    background_tasks.add_task(_scan_in_background)
    return {"status": "Drift detection scan started", "watched_root": settings.WATCHED_ROOT}
