"""
Change Classification Tests
---------------------------
Tests for partitioning snapshots into added, changed and removed policies.
"""

import pytest

from gpowatch.core.drift.classifier import classify
from gpowatch.core.drift.types import ChangeSet, Snapshot

from conftest import make_record, make_snapshot


def ids(records):
    return {record.identifier for record in records}


SNAPSHOTS = [
    make_snapshot(),
    make_snapshot(make_record("A")),
    make_snapshot(make_record("A"), make_record("B", 2), make_record("C", 3)),
]


@pytest.mark.parametrize("snapshot", SNAPSHOTS)
def test_no_previous_snapshot_marks_everything_added(snapshot):
    result = classify(None, snapshot)

    assert result.added == snapshot.records
    assert result.changed == []
    assert result.removed == []


@pytest.mark.parametrize("snapshot", SNAPSHOTS)
def test_identical_snapshots_yield_no_changes(snapshot):
    result = classify(snapshot, snapshot)

    assert result.is_empty
    assert result.total == 0


def test_added_and_changed():
    previous = make_snapshot(make_record("A", 1), make_record("B", 1))
    current = make_snapshot(make_record("A", 1), make_record("B", 2), make_record("C", 1))

    result = classify(previous, current)

    assert ids(result.added) == {"C"}
    assert ids(result.changed) == {"B"}
    assert result.removed == []
    # Changed entries carry the current record
    assert result.changed[0].modification_time == current.by_identifier()["B"].modification_time


def test_removed_only():
    previous = make_snapshot(make_record("A", 1), make_record("B", 1))
    current = make_snapshot(make_record("A", 1))

    result = classify(previous, current)

    assert result.added == []
    assert result.changed == []
    assert ids(result.removed) == {"B"}
    assert result.affected == []


def test_older_modification_time_counts_as_changed():
    previous = make_snapshot(make_record("A", 5))
    current = make_snapshot(make_record("A", 3))

    assert ids(classify(previous, current).changed) == {"A"}


def test_name_or_enablement_change_without_new_timestamp_is_ignored():
    previous = make_snapshot(make_record("A", 1, display_name="Old", enabled=True))
    current = make_snapshot(make_record("A", 1, display_name="New", enabled=False))

    assert classify(previous, current).is_empty


def test_everything_replaced():
    previous = make_snapshot(make_record("A"), make_record("B"))
    current = make_snapshot(make_record("C"), make_record("D"))

    result = classify(previous, current)

    assert ids(result.added) == {"C", "D"}
    assert ids(result.removed) == {"A", "B"}
    assert result.changed == []


def test_current_empty_removes_everything():
    previous = make_snapshot(make_record("A"), make_record("B"))

    result = classify(previous, make_snapshot())

    assert ids(result.removed) == {"A", "B"}
    assert result.affected == []


@pytest.mark.parametrize("previous,current", [
    (SNAPSHOTS[2], make_snapshot(make_record("B", 7), make_record("D"), make_record("A"))),
    (SNAPSHOTS[1], SNAPSHOTS[2]),
    (SNAPSHOTS[2], SNAPSHOTS[0]),
    (SNAPSHOTS[0], SNAPSHOTS[2]),
])
def test_result_sets_are_disjoint_and_bounded(previous, current):
    result = classify(previous, current)

    added, changed, removed = ids(result.added), ids(result.changed), ids(result.removed)
    assert not added & changed
    assert not added & removed
    assert not changed & removed
    assert added | changed <= set(current.identifiers)
    assert removed <= set(previous.identifiers) - set(current.identifiers)


def test_order_is_stable():
    previous = make_snapshot(make_record("A"), make_record("B"), make_record("C"))
    current = make_snapshot(make_record("E"), make_record("C", 2), make_record("D"), make_record("A", 2))

    first = classify(previous, current)
    second = classify(previous, current)

    assert first == second
    assert [r.identifier for r in first.added] == ["E", "D"]
    assert [r.identifier for r in first.changed] == ["C", "A"]
    assert [r.identifier for r in first.removed] == ["B"]


def test_duplicate_links_are_merged_by_identifier():
    snapshot = Snapshot.from_records([
        make_record("A", organizational_path="CORP.CONTOSO.COM\\Sales"),
        make_record("B"),
        make_record("A", organizational_path="CORP.CONTOSO.COM\\Finance", enabled=False),
    ])

    assert snapshot.identifiers == ["A", "B"]
    merged = snapshot.by_identifier()["A"]
    assert merged.organizational_path == "CORP.CONTOSO.COM\\Finance"
    assert merged.enabled is False


def test_change_set_helpers():
    change_set = ChangeSet(
        added=[make_record("A")],
        changed=[make_record("B")],
        removed=[make_record("C")]
    )

    assert not change_set.is_empty
    assert change_set.total == 3
    assert ids(change_set.affected) == {"A", "B"}
