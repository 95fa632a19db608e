# gpowatch/services/drift_service.py
import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from gpowatch.core.config import ReportFormat, settings
from gpowatch.core.drift.canonical import canonicalize
from gpowatch.core.drift.classifier import classify
from gpowatch.core.drift.store import SnapshotStore
from gpowatch.core.drift.types import (
    ChangeSet,
    DispatchFailure,
    FailureKind,
    PolicyRecord,
    RunResult,
    Snapshot,
)
from gpowatch.core.exceptions import (
    BackupFailure,
    NotificationFailure,
    ReportExportFailure,
)
from gpowatch.core.observability import DISPATCH_FAILURE_COUNTER, track_drift_run
from gpowatch.services.backup import BackupClient, report_file_name
from gpowatch.services.directory import DirectoryClient
from gpowatch.services.notification import Notifier

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PolicyDriftService:
    """
    Runs one drift detection pass over the watched root: observe the linked
    policies, compare with the stored snapshot, back up what was added or
    changed, persist the new baseline and notify.
    """

    def __init__(
        self,
        directory: DirectoryClient,
        backup: BackupClient,
        store: SnapshotStore,
        notifier: Notifier,
        watched_root: str,
        root_suffix: str,
        root_label: str,
        report_format: ReportFormat = ReportFormat.HTML,
        separator: str = "\\",
        clock: Callable[[], datetime] = utc_now
    ):
        self.directory = directory
        self.backup = backup
        self.store = store
        self.notifier = notifier
        self.watched_root = watched_root
        self.root_suffix = root_suffix
        self.root_label = root_label
        self.report_format = report_format
        self.separator = separator
        self.clock = clock

    @classmethod
    def from_settings(cls) -> "PolicyDriftService":
        return cls(
            directory=DirectoryClient(),
            backup=BackupClient(),
            store=SnapshotStore(settings.SNAPSHOT_FILE),
            notifier=Notifier.from_settings(),
            watched_root=settings.WATCHED_ROOT,
            root_suffix=settings.ROOT_SUFFIX,
            root_label=settings.ROOT_LABEL,
            report_format=settings.REPORT_FORMAT,
            separator=settings.PATH_SEPARATOR,
        )

    async def build_snapshot(self, captured_at: datetime) -> Snapshot:
        """
        Query the directory and build the current snapshot.

        Raises:
            DirectoryQueryFailure: the linked policies could not be enumerated
        """
        links = await self.directory.list_linked_policies(self.watched_root)
        records = [
            PolicyRecord(
                identifier=link.identifier,
                display_name=link.display_name,
                modification_time=link.modification_time,
                enabled=link.enabled,
                organizational_path=canonicalize(
                    link.location, self.root_suffix, self.root_label, self.separator
                ),
            )
            for link in links
        ]
        snapshot = Snapshot.from_records(records, watched_root=self.watched_root, captured_at=captured_at)
        if len(snapshot) < len(records):
            logger.info(
                f"Merged {len(records)} policy links into {len(snapshot)} policies by identifier"
            )
        return snapshot

    @track_drift_run
    async def run(self) -> RunResult:
        """
        Execute one drift detection run.

        Raises:
            DirectoryQueryFailure: nothing could be classified
            SnapshotWriteFailure: the new baseline could not be persisted
        """
        started_at = self.clock()
        logger.info(f"Starting policy drift detection under {self.watched_root}")

        current = await self.build_snapshot(started_at)
        previous = self.store.load()

        result = RunResult(
            watched_root=self.watched_root,
            started_at=started_at,
            policy_count=len(current),
        )

        if previous is None and len(current) > 0:
            logger.info(f"Bootstrap run: backing up all {len(current)} policies")
            result.bootstrap = True
            result.changes = classify(None, current)
            await self._backup_records(current.records, started_at, result)
            self.store.save(current)
            result.snapshot_saved = True
        else:
            result.changes = classify(previous, current)
            if result.changes.is_empty:
                logger.info("No policy changes detected")
            else:
                await self._backup_records(result.changes.affected, started_at, result)
                self.store.save(current)
                result.snapshot_saved = True
                await self._notify(result.changes, started_at, result)

        result.finished_at = self.clock()
        logger.info(f"Policy drift detection completed: {result.summary()}")
        return result

    async def _backup_records(
        self,
        records: List[PolicyRecord],
        run_time: datetime,
        result: RunResult
    ) -> None:
        if not records:
            return

        try:
            folder = self.backup.create_run_folder(run_time)
        except BackupFailure as e:
            for record in records:
                self._record_failure(result, FailureKind.BACKUP, record, e.message)
            return
        result.backup_folder = str(folder)

        for record in records:
            try:
                await self.backup.backup_policy(record.identifier, record.display_name, folder)
                result.backed_up.append(record.identifier)
            except BackupFailure as e:
                self._record_failure(result, FailureKind.BACKUP, record, e.message)

            report_path = Path(folder) / report_file_name(
                record.identifier, record.display_name, self.report_format
            )
            try:
                await self.backup.export_report(
                    record.identifier, record.display_name, self.report_format, report_path
                )
            except ReportExportFailure as e:
                self._record_failure(result, FailureKind.REPORT, record, e.message)

    async def _notify(self, change_set: ChangeSet, run_time: datetime, result: RunResult) -> None:
        if not self.notifier.enabled:
            logger.info("No notification recipient configured, skipping notification")
            return

        try:
            await asyncio.to_thread(self.notifier.notify, change_set, self.watched_root, run_time)
            result.notification_sent = True
        except NotificationFailure as e:
            self._record_failure(result, FailureKind.NOTIFICATION, None, e.message)

    @staticmethod
    def _record_failure(
        result: RunResult,
        kind: FailureKind,
        record: Optional[PolicyRecord],
        message: str
    ) -> None:
        if record is not None:
            logger.error(f"{kind.value.capitalize()} failed for '{record.display_name}' ({record.identifier}): {message}")
        else:
            logger.error(f"{kind.value.capitalize()} failed: {message}")
        DISPATCH_FAILURE_COUNTER.labels(kind=kind.value).inc()
        result.failures.append(DispatchFailure(
            kind=kind,
            message=message,
            identifier=record.identifier if record else None,
            display_name=record.display_name if record else None,
        ))


async def detect_drift() -> RunResult:
    """Run drift detection with collaborators built from settings."""
    service = PolicyDriftService.from_settings()
    return await service.run()
