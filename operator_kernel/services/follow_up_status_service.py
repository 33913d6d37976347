"""
FollowUpStatusService -- maintenance of configurable follow-up statuses.

Responsibility:
    Creates or updates follow-up statuses by key and reassigns their display
    order in one all-or-nothing batch.

Architecture position:
    Kernel > Services.  Writes through ``RecordStore``.

Invariants enforced:
    - ``reorder()`` verifies every id before writing any ``sort_order``; an
      unknown id leaves every status untouched.
    - ``key`` is unique; ``upsert_status()`` matches on it.

Failure modes:
    - BatchReferenceError when ``reorder()`` references unknown ids.
    - PersistenceError wrapping database failures.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from operator_kernel.db.record_store import RecordStore
from operator_kernel.logging_config import get_logger
from operator_kernel.models.follow_up_status import FollowUpStatus
from operator_kernel.services.base import BaseService

logger = get_logger("services.follow_up_status")


@dataclass(frozen=True)
class FollowUpStatusInfo:
    id: UUID
    key: str
    name: str
    color: str | None
    sort_order: int
    is_active: bool

    @classmethod
    def from_model(cls, status: FollowUpStatus) -> FollowUpStatusInfo:
        return cls(
            id=status.id,
            key=status.key,
            name=status.name,
            color=status.color,
            sort_order=status.sort_order,
            is_active=status.is_active,
        )


@dataclass(frozen=True)
class SortOrderItem:
    id: UUID
    sort_order: int


class FollowUpStatusService(BaseService[FollowUpStatus]):
    """Follow-up status configuration.  Flushes, never commits."""

    def __init__(self, session: Session):
        super().__init__(session)
        self._store: RecordStore[FollowUpStatus] = RecordStore(session, FollowUpStatus)

    def list_statuses(self, include_inactive: bool = False) -> tuple[FollowUpStatusInfo, ...]:
        query = select(FollowUpStatus).order_by(FollowUpStatus.sort_order, FollowUpStatus.key)
        if not include_inactive:
            query = query.where(FollowUpStatus.is_active.is_(True))
        return tuple(FollowUpStatusInfo.from_model(s) for s in self.session.scalars(query))

    def upsert_status(
        self,
        key: str,
        name: str,
        sort_order: int | None = None,
        color: str | None = None,
        is_active: bool = True,
    ) -> FollowUpStatusInfo:
        """Create the status ``key`` or update its name, color, order and flag."""
        values: dict = {"name": name, "color": color, "is_active": is_active}
        if sort_order is not None:
            values["sort_order"] = sort_order
        status, created = self._store.upsert({"key": key}, values)
        logger.info(
            "follow_up_status_created" if created else "follow_up_status_updated",
            extra={"key": key, "sort_order": status.sort_order},
        )
        return FollowUpStatusInfo.from_model(status)

    def reorder(self, items: Sequence[SortOrderItem]) -> tuple[FollowUpStatusInfo, ...]:
        """
        Reassign ``sort_order`` of several statuses as one unit.

        Raises:
            BatchReferenceError: Some ids do not exist; nothing was written.
        """
        rows = self._store.transactional_batch_update(
            [(item.id, {"sort_order": item.sort_order}) for item in items]
        )
        logger.info("follow_up_statuses_reordered", extra={"count": len(rows)})
        return tuple(FollowUpStatusInfo.from_model(row) for row in rows)
