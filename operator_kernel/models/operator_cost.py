"""
Module: operator_kernel.models.operator_cost
Responsibility: ORM persistence for operator costs, the third-party service
    costs booked against a customer request.
Architecture position: Kernel > Models.  May import from db/base.py, db/types.py
    and domain/ value types only.

Invariants enforced:
    - is_locked = true <=> locked_at and locked_by are both set; enforced by
      ``ck_operator_costs_lock_consistent`` and by ``lock_state`` on read.
    - version starts at 1 and is bumped by every guarded write; writers match
      on it to detect lost updates.
    - Amounts are integer minor units.

Failure modes:
    - IntegrityError on a partial lock written outside the mutation service.
    - ImmutabilityViolationError on DELETE (archive instead).

Audit relevance:
    Every guarded change to a row produces one ``HistoryEntry``.
"""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from operator_kernel.db.base import TrackedBase, UUIDString
from operator_kernel.db.types import MinorUnits
from operator_kernel.domain.dtos import OperatorCostInfo
from operator_kernel.domain.values import (
    LockState,
    PaymentStatus,
    ServiceType,
    lock_state_from_columns,
)


class OperatorCost(TrackedBase):
    """
    One supplier cost line attached to a booking.

    Contract:
        Mutated only through OperatorMutationService (payment approval and
        lock / unlock) or by the out-of-scope booking workflow while unlocked.

    Guarantees:
        - The lock columns are all-or-nothing (CHECK constraint).
        - ``to_dto()`` never returns a half-locked snapshot.

    Non-goals:
        - Does not validate the owning request; request_id is an external key.
    """

    __tablename__ = "operator_costs"

    __table_args__ = (
        CheckConstraint(
            "(is_locked AND locked_at IS NOT NULL AND locked_by IS NOT NULL) OR "
            "(NOT is_locked AND locked_at IS NULL AND locked_by IS NULL)",
            name="ck_operator_costs_lock_consistent",
        ),
        CheckConstraint(
            "payment_status IN ('PENDING', 'PARTIAL', 'PAID')",
            name="ck_operator_costs_payment_status",
        ),
        CheckConstraint("version >= 1", name="ck_operator_costs_version"),
        Index("idx_operator_costs_request", "request_id"),
        Index("idx_operator_costs_supplier", "supplier_id"),
        Index("idx_operator_costs_service_date", "service_date"),
        Index("idx_operator_costs_payment", "payment_status", "payment_deadline"),
    )

    request_id: Mapped[str] = mapped_column(String(50), nullable=False)

    # Catalog supplier, or free-text supplier_name when not in the catalog
    supplier_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("suppliers.id"),
        nullable=True,
    )
    supplier_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    service_type: Mapped[str] = mapped_column(String(20), nullable=False)
    service_name: Mapped[str] = mapped_column(String(255), nullable=False)
    service_date: Mapped[date] = mapped_column(nullable=False)

    cost_before_tax: Mapped[MinorUnits] = mapped_column(nullable=False, default=0)
    vat: Mapped[MinorUnits | None] = mapped_column(nullable=True)
    total_cost: Mapped[MinorUnits] = mapped_column(nullable=False)

    payment_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING.value,
    )
    payment_date: Mapped[date | None] = mapped_column(nullable=True)
    payment_deadline: Mapped[date | None] = mapped_column(nullable=True)

    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    locked_at: Mapped[datetime | None] = mapped_column(nullable=True)
    locked_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    version: Mapped[int] = mapped_column(nullable=False, default=1)

    def __repr__(self) -> str:
        return (
            f"<OperatorCost {self.id} request={self.request_id} "
            f"{self.payment_status} locked={self.is_locked}>"
        )

    @property
    def lock_state(self) -> LockState:
        return lock_state_from_columns(self.is_locked, self.locked_at, self.locked_by)

    def to_dto(self) -> OperatorCostInfo:
        """Convert ORM model to frozen domain DTO."""
        return OperatorCostInfo(
            id=self.id,
            request_id=self.request_id,
            supplier_id=self.supplier_id,
            supplier_name=self.supplier_name,
            service_type=ServiceType(self.service_type),
            service_name=self.service_name,
            service_date=self.service_date,
            cost_before_tax=self.cost_before_tax,
            vat=self.vat,
            total_cost=self.total_cost,
            payment_status=PaymentStatus(self.payment_status),
            payment_date=self.payment_date,
            payment_deadline=self.payment_deadline,
            lock=self.lock_state,
            is_archived=self.is_archived,
            version=self.version,
        )
