"""
Tests for the degraded-write queue.
"""

from types import SimpleNamespace

import pytest

from exceptions import DatabaseError, EntryNotFoundError
from services.write_queue import CREATE, DELETE, UPDATE, PendingWriteQueue


@pytest.fixture
def queue():
    return PendingWriteQueue()


class TestEnqueue:

    def test_create_gets_local_id(self, queue):
        write = queue.enqueue(CREATE, "car-1", {"litres": 40.0})

        assert write.local_id.startswith("local-")
        assert write.target_id == write.local_id
        assert len(queue) == 1

    def test_update_targets_entry(self, queue):
        write = queue.enqueue(UPDATE, "car-1", {"litres": 20.0}, entry_id="abc")
        assert write.target_id == "abc"
        assert write.to_dict()["entry_id"] == "abc"
        assert write.to_dict()["operation"] == "update"

    def test_fields_are_copied(self, queue):
        fields = {"litres": 40.0}
        write = queue.enqueue(CREATE, "car-1", fields)
        fields["litres"] = 1.0
        assert write.fields["litres"] == 40.0

    def test_pending_by_subject(self, queue):
        queue.enqueue(CREATE, "car-1")
        queue.enqueue(CREATE, "van-2")
        queue.enqueue(DELETE, "car-1", entry_id="x")

        assert [w.operation for w in queue.pending("car-1")] == [CREATE, DELETE]
        assert len(queue.pending()) == 3
        assert queue.subjects() == ["car-1", "van-2"]

    def test_clear(self, queue):
        queue.enqueue(CREATE, "car-1")
        queue.clear()
        assert len(queue) == 0


class TestReplay:
    """Tests for in-order replay."""

    def test_applies_in_order(self, queue):
        queue.enqueue(CREATE, "car-1", {"litres": 1})
        queue.enqueue(CREATE, "car-1", {"litres": 2})
        seen = []

        def apply(write):
            seen.append(write.fields["litres"])
            return SimpleNamespace(id=f"db-{write.fields['litres']}")

        applied, dropped = queue.replay(apply)

        assert seen == [1, 2]
        assert len(applied) == 2
        assert dropped == []
        assert len(queue) == 0

    def test_local_ids_resolve_to_persisted(self, queue):
        """Test an update queued against a local id reaches the persisted row."""
        created = queue.enqueue(CREATE, "car-1", {"litres": 40.0})
        queue.enqueue(UPDATE, "car-1", {"litres": 45.0}, entry_id=created.local_id)
        targets = []

        def apply(write):
            targets.append(write.entry_id)
            return SimpleNamespace(id="db-1")

        queue.replay(apply)

        assert targets == [None, "db-1"]
        assert queue.resolve_id(created.local_id) == "db-1"
        assert queue.resolve_id("unrelated") == "unrelated"

    def test_retryable_failure_pauses(self, queue):
        queue.enqueue(CREATE, "car-1", {"litres": 1})
        queue.enqueue(CREATE, "car-1", {"litres": 2})

        def apply(write):
            raise DatabaseError("still down", retryable=True)

        applied, dropped = queue.replay(apply)

        assert applied == []
        assert dropped == []
        assert len(queue) == 2

    def test_non_retryable_failure_drops(self, queue):
        queue.enqueue(CREATE, "car-1", {"litres": 1})
        queue.enqueue(CREATE, "car-1", {"litres": 2})
        outcomes = iter([DatabaseError("constraint"), SimpleNamespace(id="db-2")])

        def apply(write):
            outcome = next(outcomes)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        applied, dropped = queue.replay(apply)

        assert len(dropped) == 1
        assert len(applied) == 1
        assert len(queue) == 0

    def test_missing_entry_drops(self, queue):
        queue.enqueue(DELETE, "car-1", entry_id="gone")

        def apply(write):
            raise EntryNotFoundError("Fuel topup not found", write.entry_id)

        applied, dropped = queue.replay(apply)

        assert [w.entry_id for w in dropped] == ["gone"]
        assert len(queue) == 0

    def test_empty_queue(self, queue):
        assert queue.replay(lambda write: None) == ([], [])
