"""
Tests for FollowUpStatusService: upsert by key and all-or-nothing reorder.
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from operator_kernel.exceptions import BatchReferenceError
from operator_kernel.models.follow_up_status import FollowUpStatus
from operator_kernel.services.follow_up_status_service import (
    FollowUpStatusService,
    SortOrderItem,
)


@pytest.fixture
def status_service(session) -> FollowUpStatusService:
    return FollowUpStatusService(session)


@pytest.fixture
def three_statuses(status_service):
    return [
        status_service.upsert_status("NEW", "New lead", sort_order=1, color="gray"),
        status_service.upsert_status("QUOTED", "Quote sent", sort_order=2),
        status_service.upsert_status("BOOKED", "Booked", sort_order=3, color="green"),
    ]


class TestUpsertStatus:
    def test_creates_new_status(self, status_service, captured_logs):
        status = status_service.upsert_status("NEW", "New lead", sort_order=1, color="gray")

        assert status.key == "NEW"
        assert status.sort_order == 1
        assert status.is_active
        assert any(r["message"] == "follow_up_status_created" for r in captured_logs())

    def test_updates_existing_status_by_key(self, session, status_service, captured_logs):
        created = status_service.upsert_status("NEW", "New lead", sort_order=1)

        updated = status_service.upsert_status("NEW", "Fresh lead", color="blue")

        assert updated.id == created.id
        assert updated.name == "Fresh lead"
        assert updated.color == "blue"
        assert updated.sort_order == 1
        assert session.scalar(select(func.count()).select_from(FollowUpStatus)) == 1
        assert any(r["message"] == "follow_up_status_updated" for r in captured_logs())

    def test_sort_order_defaults_to_zero(self, status_service):
        assert status_service.upsert_status("LOST", "Lost").sort_order == 0


class TestListStatuses:
    def test_ordered_by_sort_order(self, status_service, three_statuses):
        keys = [s.key for s in status_service.list_statuses()]

        assert keys == ["NEW", "QUOTED", "BOOKED"]

    def test_inactive_hidden_by_default(self, status_service, three_statuses):
        status_service.upsert_status("QUOTED", "Quote sent", is_active=False)

        assert [s.key for s in status_service.list_statuses()] == ["NEW", "BOOKED"]
        assert len(status_service.list_statuses(include_inactive=True)) == 3


class TestReorder:
    def test_reassigns_sort_order(self, status_service, three_statuses):
        new, quoted, booked = three_statuses

        result = status_service.reorder(
            [
                SortOrderItem(id=booked.id, sort_order=1),
                SortOrderItem(id=new.id, sort_order=2),
                SortOrderItem(id=quoted.id, sort_order=3),
            ]
        )

        assert [s.sort_order for s in result] == [1, 2, 3]
        assert [s.key for s in status_service.list_statuses()] == ["BOOKED", "NEW", "QUOTED"]

    def test_unknown_id_leaves_every_status_untouched(self, status_service, three_statuses):
        new, quoted, _ = three_statuses
        missing = uuid4()

        with pytest.raises(BatchReferenceError) as exc_info:
            status_service.reorder(
                [
                    SortOrderItem(id=new.id, sort_order=9),
                    SortOrderItem(id=missing, sort_order=1),
                    SortOrderItem(id=quoted.id, sort_order=8),
                ]
            )

        assert exc_info.value.missing_ids == [str(missing)]
        assert [s.sort_order for s in status_service.list_statuses()] == [1, 2, 3]
