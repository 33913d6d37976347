"""
Tests for RecordStore: predicate update, upsert and batch update semantics.
"""

from uuid import uuid4

import pytest
from sqlalchemy import update

from operator_kernel.db.record_store import RecordStore
from operator_kernel.exceptions import (
    BatchReferenceError,
    ConcurrentModificationError,
    PersistenceError,
    RecordNotFoundError,
)
from operator_kernel.models.follow_up_status import FollowUpStatus
from operator_kernel.models.operator_cost import OperatorCost


@pytest.fixture
def operator_store(session) -> RecordStore[OperatorCost]:
    return RecordStore(session, OperatorCost)


@pytest.fixture
def status_store(session) -> RecordStore[FollowUpStatus]:
    return RecordStore(session, FollowUpStatus)


class TestFind:
    def test_find_by_id_returns_fresh_state(self, session, operator_store, make_operator):
        operator = make_operator()
        session.execute(
            update(OperatorCost)
            .where(OperatorCost.id == operator.id)
            .values(service_name="Changed elsewhere")
            .execution_options(synchronize_session=False)
        )

        assert operator_store.find_by_id(operator.id).service_name == "Changed elsewhere"

    def test_find_by_id_missing(self, operator_store):
        assert operator_store.find_by_id(uuid4()) is None

    def test_find_many_skips_missing(self, operator_store, make_operator):
        first = make_operator()
        second = make_operator()

        found = operator_store.find_many([first.id, uuid4(), second.id])

        assert set(found) == {first.id, second.id}

    def test_find_many_empty(self, operator_store):
        assert operator_store.find_many([]) == {}


class TestUpdate:
    def test_matching_predicate_applies_patch(self, operator_store, make_operator):
        operator = make_operator()

        row = operator_store.update(
            operator.id,
            {"service_name": "Suite", "version": 2},
            expected={"version": 1},
        )

        assert row.service_name == "Suite"
        assert row.version == 2

    def test_stale_predicate_raises_concurrent_modification(self, operator_store, make_operator):
        operator = make_operator()
        operator_store.update(operator.id, {"version": 2}, expected={"version": 1})

        with pytest.raises(ConcurrentModificationError) as exc_info:
            operator_store.update(operator.id, {"version": 2}, expected={"version": 1})

        assert exc_info.value.entity_type == "OperatorCost"
        assert exc_info.value.entity_id == str(operator.id)

    def test_missing_id_raises_not_found(self, operator_store):
        with pytest.raises(RecordNotFoundError):
            operator_store.update(uuid4(), {"service_name": "x"}, expected={"version": 1})

    def test_database_error_is_wrapped(self, captured_logs, operator_store, make_operator):
        operator = make_operator()

        with pytest.raises(PersistenceError) as exc_info:
            # Violates the lock consistency check constraint
            operator_store.update(operator.id, {"is_locked": True})

        assert exc_info.value.code == "PERSISTENCE_FAILURE"
        failures = [r for r in captured_logs() if r["message"] == "record_store_failure"]
        assert failures[0]["operation"] == "update"


class TestUpsert:
    def test_insert_then_update(self, status_store):
        row, created = status_store.upsert({"key": "NEW"}, {"name": "New", "sort_order": 1})
        assert created

        again, created_again = status_store.upsert({"key": "NEW"}, {"name": "Renamed"})

        assert not created_again
        assert again.id == row.id
        assert again.name == "Renamed"
        assert again.sort_order == 1


class TestTransactionalBatchUpdate:
    def test_applies_all_patches(self, status_store):
        first, _ = status_store.upsert({"key": "A"}, {"name": "A", "sort_order": 1})
        second, _ = status_store.upsert({"key": "B"}, {"name": "B", "sort_order": 2})

        rows = status_store.transactional_batch_update(
            [(first.id, {"sort_order": 20}), (second.id, {"sort_order": 10})]
        )

        assert [r.sort_order for r in rows] == [20, 10]

    def test_missing_id_rejects_before_any_write(self, status_store):
        first, _ = status_store.upsert({"key": "A"}, {"name": "A", "sort_order": 1})
        missing = uuid4()

        with pytest.raises(BatchReferenceError) as exc_info:
            status_store.transactional_batch_update(
                [(first.id, {"sort_order": 5}), (missing, {"sort_order": 6})]
            )

        assert exc_info.value.missing_ids == [str(missing)]
        assert status_store.find_by_id(first.id).sort_order == 1
