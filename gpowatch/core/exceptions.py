"""
Policy Drift Errors
-------------------
Failure kinds raised by the drift detection run and its collaborators.

Run-level failures (directory query, snapshot write) abort a run.
Per-record failures (backup, report export, notification) are logged and
collected by the orchestrator without stopping the remaining work.
"""

from typing import Optional


class PolicyDriftError(Exception):
    """Base class for all drift detection errors."""

    def __init__(self, message: str, identifier: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.identifier = identifier


class DirectoryQueryFailure(PolicyDriftError):
    """The linked policies under the watched root could not be enumerated."""


class SnapshotReadFailure(PolicyDriftError):
    """A stored snapshot exists but cannot be read or parsed."""


class SnapshotWriteFailure(PolicyDriftError):
    """The new snapshot could not be persisted."""


class BackupFailure(PolicyDriftError):
    """Backup of a single policy failed."""


class ReportExportFailure(PolicyDriftError):
    """Report export of a single policy failed."""


class NotificationFailure(PolicyDriftError):
    """The change notification could not be delivered."""


class GatewayAuthFailure(PolicyDriftError):
    """No access token could be acquired for a collaborator gateway."""
