"""
Change Classification
---------------------
Partitions the current snapshot against the previous one into added, changed
and removed policies. Identity is the policy identifier; the modification
time is the only signal for changed content.
"""

import logging
from typing import Optional

from gpowatch.core.drift.types import ChangeSet, Snapshot

logger = logging.getLogger(__name__)


def classify(previous: Optional[Snapshot], current: Snapshot) -> ChangeSet:
    """
    Compare two snapshots and classify every affected policy.

    Args:
        previous: Snapshot persisted by the last run, None on the first run
        current: Snapshot observed in this run

    Returns:
        ChangeSet whose added and changed entries come from ``current`` in its
        order, and whose removed entries come from ``previous`` in its order
    """
    if previous is None:
        logger.info(f"No previous snapshot, treating {len(current)} policies as added")
        return ChangeSet(added=list(current.records))

    previous_map = previous.by_identifier()
    current_ids = set(current.identifiers)

    added = []
    changed = []
    for record in current.records:
        old_record = previous_map.get(record.identifier)
        if old_record is None:
            added.append(record)
        elif old_record.modification_time != record.modification_time:
            changed.append(record)

    removed = [record for record in previous.records if record.identifier not in current_ids]

    change_set = ChangeSet(added=added, changed=changed, removed=removed)
    logger.info(
        f"Classified {len(current)} policies: {len(added)} added, "
        f"{len(changed)} changed, {len(removed)} removed"
    )
    return change_set
