"""
Snapshot Store
--------------
Persists the most recent policy snapshot of a watched root as a single
versioned JSON document. Writes go to a temporary file in the same directory
which then replaces the target, so a crash leaves either the old or the new
document intact.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from gpowatch.core.drift.types import Snapshot
from gpowatch.core.exceptions import SnapshotReadFailure, SnapshotWriteFailure

logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT_VERSION = 1


class SnapshotStore:
    """File-backed store holding one snapshot."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> Optional[Snapshot]:
        """
        Read the stored snapshot.

        Returns:
            The snapshot, or None when no snapshot has been stored yet

        Raises:
            SnapshotReadFailure: the file exists but cannot be used
        """
        if not self.exists():
            return None

        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise SnapshotReadFailure(f"Cannot read snapshot {self.path}: {e}") from e

        if not isinstance(document, dict):
            raise SnapshotReadFailure(f"Snapshot {self.path} is not a JSON object")

        version = document.get("version")
        if version != SNAPSHOT_FORMAT_VERSION:
            raise SnapshotReadFailure(
                f"Snapshot {self.path} has unsupported format version {version!r}"
            )

        try:
            return Snapshot.model_validate(
                {key: value for key, value in document.items() if key != "version"}
            )
        except ValidationError as e:
            raise SnapshotReadFailure(f"Snapshot {self.path} is malformed: {e}") from e

    def load(self) -> Optional[Snapshot]:
        """
        Load the stored snapshot, treating an unusable file as absent.
        A missing or corrupt snapshot makes the next run a bootstrap run.
        """
        try:
            snapshot = self.read()
        except SnapshotReadFailure as e:
            logger.warning(f"Ignoring unusable snapshot, next run bootstraps: {e.message}")
            return None

        if snapshot is None:
            logger.info(f"No previous snapshot at {self.path}")
        else:
            logger.info(f"Loaded snapshot of {len(snapshot)} policies from {self.path}")
        return snapshot

    def save(self, snapshot: Snapshot) -> None:
        """
        Atomically replace the stored snapshot.

        Raises:
            SnapshotWriteFailure: the snapshot could not be written
        """
        document = {"version": SNAPSHOT_FORMAT_VERSION}
        document.update(snapshot.model_dump(mode="json"))

        tmp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            logger.error(f"Error saving snapshot to {self.path}: {str(e)}")
            raise SnapshotWriteFailure(f"Cannot write snapshot {self.path}: {e}") from e

        logger.info(f"Saved snapshot of {len(snapshot)} policies to {self.path}")
