"""
Test Fixtures and Configuration
------------------------------
This module contains fixtures and configuration for pytest testing.
"""

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncGenerator, Callable, List
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from gpowatch.core.config import ReportFormat
from gpowatch.core.database import build_engine, create_tables
from gpowatch.core.drift.store import SnapshotStore
from gpowatch.core.drift.types import PolicyRecord, Snapshot
from gpowatch.services.directory import LinkedPolicy
from gpowatch.services.drift_service import PolicyDriftService

ROOT_SUFFIX = "DC=CORP,DC=CONTOSO,DC=COM"
ROOT_LABEL = "CORP.CONTOSO.COM"
WATCHED_ROOT = "OU=Corp,DC=CORP,DC=CONTOSO,DC=COM"
RUN_TIME = datetime(2025, 3, 1, 8, 30, 0, tzinfo=timezone.utc)


def ts(hour: int) -> datetime:
    """Modification time helper: the same day at the given hour"""
    return datetime(2025, 2, 1, hour, 0, 0, tzinfo=timezone.utc)


def make_record(identifier: str, hour: int = 1, **kwargs) -> PolicyRecord:
    values = {
        "display_name": f"Policy {identifier}",
        "organizational_path": f"{ROOT_LABEL}\\Corp",
        "enabled": True,
    }
    values.update(kwargs)
    return PolicyRecord(identifier=identifier, modification_time=ts(hour), **values)


def make_snapshot(*records: PolicyRecord) -> Snapshot:
    return Snapshot.from_records(records, watched_root=WATCHED_ROOT, captured_at=RUN_TIME)


def make_link(identifier: str, hour: int = 1, location: str = f"OU=Corp,{ROOT_SUFFIX}", **kwargs) -> LinkedPolicy:
    values = {"display_name": f"Policy {identifier}", "enabled": True}
    values.update(kwargs)
    return LinkedPolicy(identifier=identifier, modification_time=ts(hour), location=location, **values)


@pytest.fixture
def snapshot_store(tmp_path: Path) -> SnapshotStore:
    return SnapshotStore(tmp_path / "snapshots" / "corp.json")


@pytest.fixture
def directory() -> MagicMock:
    """Directory collaborator returning the links assigned to ``links``"""
    client = MagicMock()
    client.links = []

    async def list_linked_policies(root_path: str) -> List[LinkedPolicy]:
        return list(client.links)

    client.list_linked_policies = AsyncMock(side_effect=list_linked_policies)
    return client


@pytest.fixture
def backup(tmp_path: Path) -> MagicMock:
    client = MagicMock()
    run_folder = tmp_path / "backups" / "2025-03-01_08-30-00"

    def create_run_folder(run_time: datetime) -> Path:
        run_folder.mkdir(parents=True, exist_ok=True)
        return run_folder

    client.create_run_folder = MagicMock(side_effect=create_run_folder)
    client.backup_policy = AsyncMock()
    client.export_report = AsyncMock()
    return client


@pytest.fixture
def notifier() -> MagicMock:
    mock_notifier = MagicMock()
    mock_notifier.enabled = False
    return mock_notifier


@pytest.fixture
def make_service(directory, backup, snapshot_store, notifier) -> Callable[..., PolicyDriftService]:
    def factory(**overrides) -> PolicyDriftService:
        values = {
            "directory": directory,
            "backup": backup,
            "store": snapshot_store,
            "notifier": notifier,
            "watched_root": WATCHED_ROOT,
            "root_suffix": ROOT_SUFFIX,
            "root_label": ROOT_LABEL,
            "report_format": ReportFormat.HTML,
            "clock": lambda: RUN_TIME,
        }
        values.update(overrides)
        return PolicyDriftService(**values)

    return factory


def _history_engine(tmp_path: Path):
    return build_engine(f"sqlite:///{tmp_path / 'history.db'}", poolclass=NullPool)


@pytest.fixture
def session_factory(tmp_path: Path):
    """Session factory on a throwaway SQLite database, for synchronous tests"""
    engine = _history_engine(tmp_path)
    asyncio.run(create_tables(engine))
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def async_session_factory(tmp_path: Path):
    """Session factory on a throwaway SQLite database, for async tests"""
    engine = _history_engine(tmp_path)
    await create_tables(engine)
    yield sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def override_get_db(session_factory):
    async def get_test_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return get_test_db
