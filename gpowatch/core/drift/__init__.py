"""
Policy Drift Detection
----------------------
This module provides the snapshot comparison engine used to detect drift in
Group Policy Objects linked under a watched directory subtree.

A run observes the linked policies, compares them with the snapshot persisted
by the previous run, and classifies each affected policy as added, changed or
removed.
"""

from gpowatch.core.drift.canonical import canonicalize
from gpowatch.core.drift.classifier import classify
from gpowatch.core.drift.store import SnapshotStore
from gpowatch.core.drift.types import (
    ChangeSet,
    ChangeType,
    PolicyRecord,
    RunResult,
    Snapshot,
)

__all__ = [
    'canonicalize',
    'classify',
    'SnapshotStore',
    'ChangeSet',
    'ChangeType',
    'PolicyRecord',
    'RunResult',
    'Snapshot',
]
