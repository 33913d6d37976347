"""
Data transfer objects (``operator_kernel.domain.dtos``).

Responsibility
--------------
Frozen dataclasses returned by services and selectors.  Callers never
receive ORM entities, so nothing outside a session can mutate a record
behind the guard's back.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects, ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from operator_kernel.domain.values import (
    FieldChange,
    HistoryAction,
    LockState,
    Locked,
    OperatorField,
    PaymentStatus,
    ServiceType,
)
from operator_kernel.exceptions import TransitionError


# =========================================================================
# Operator cost snapshot
# =========================================================================


@dataclass(frozen=True)
class OperatorCostInfo:
    """Immutable snapshot of one operator cost record."""

    id: UUID
    request_id: str
    supplier_id: UUID | None
    supplier_name: str | None
    service_type: ServiceType
    service_name: str
    service_date: date
    cost_before_tax: int
    vat: int | None
    total_cost: int
    payment_status: PaymentStatus
    payment_date: date | None
    payment_deadline: date | None
    lock: LockState
    is_archived: bool = False
    version: int = 1

    @property
    def is_locked(self) -> bool:
        return self.lock.is_locked

    @property
    def locked_at(self) -> datetime | None:
        return self.lock.at if isinstance(self.lock, Locked) else None

    @property
    def locked_by(self) -> UUID | None:
        return self.lock.by if isinstance(self.lock, Locked) else None

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID

    def field_value(self, operator_field: OperatorField) -> Any:
        """Current value of a diffable field."""
        return getattr(self, operator_field.value)


# =========================================================================
# History
# =========================================================================


@dataclass(frozen=True)
class HistoryEntryInfo:
    """One immutable history entry, optionally enriched with the actor name."""

    id: UUID
    entity_id: UUID
    seq: int
    action: HistoryAction
    changes: tuple[FieldChange, ...]
    user_id: UUID
    timestamp: datetime
    hash: str
    user_name: str | None = None

    def change_for(self, operator_field: OperatorField) -> FieldChange | None:
        for change in self.changes:
            if change.field == operator_field:
                return change
        return None


# =========================================================================
# Mutation results
# =========================================================================


class FailureKind(str, Enum):
    """Typed failure categories returned to the HTTP layer."""

    NOT_FOUND = "NOT_FOUND"
    ALREADY_LOCKED = "ALREADY_LOCKED"
    ALREADY_PAID = "ALREADY_PAID"
    NOT_LOCKED = "NOT_LOCKED"
    FORBIDDEN = "FORBIDDEN"

    @property
    def is_invalid_transition(self) -> bool:
        return self in (
            FailureKind.ALREADY_LOCKED,
            FailureKind.ALREADY_PAID,
            FailureKind.NOT_LOCKED,
        )


@dataclass(frozen=True)
class TransitionFailure:
    """Why a transition was rejected."""

    kind: FailureKind
    message: str
    operator_id: UUID | None = None

    @classmethod
    def from_error(cls, error: TransitionError, operator_id: UUID | None = None) -> TransitionFailure:
        return cls(kind=FailureKind(error.code), message=str(error), operator_id=operator_id)


@dataclass(frozen=True)
class MutationResult:
    """Outcome of a single guarded transition: the record or a failure."""

    operator: OperatorCostInfo | None = None
    failure: TransitionFailure | None = None
    history_entry: HistoryEntryInfo | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def succeeded(cls, operator: OperatorCostInfo, history_entry: HistoryEntryInfo) -> MutationResult:
        return cls(operator=operator, history_entry=history_entry)

    @classmethod
    def rejected(cls, failure: TransitionFailure) -> MutationResult:
        return cls(failure=failure)


@dataclass(frozen=True)
class BatchResult:
    """Outcome of an all-or-nothing batch of transitions."""

    operators: tuple[OperatorCostInfo, ...] = ()
    failure: TransitionFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def count(self) -> int:
        return len(self.operators)

    @property
    def total_cost(self) -> int:
        return sum(op.total_cost for op in self.operators)


# =========================================================================
# Reports
# =========================================================================


@dataclass(frozen=True)
class BucketTotal:
    """Count and minor-unit total of one report bucket."""

    count: int = 0
    total: int = 0

    def add(self, amount: int) -> BucketTotal:
        return BucketTotal(count=self.count + 1, total=self.total + amount)


@dataclass(frozen=True)
class PaymentStatusReport:
    """Unpaid / overdue / due-soon / paid rollup as of ``as_of``."""

    as_of: date
    pending: BucketTotal = field(default_factory=BucketTotal)
    overdue: BucketTotal = field(default_factory=BucketTotal)
    due_this_week: BucketTotal = field(default_factory=BucketTotal)
    paid_this_month: BucketTotal = field(default_factory=BucketTotal)


@dataclass(frozen=True)
class PendingPayment:
    """
    One unpaid, unlocked operator cost in the pending-payments listing.

    ``days_overdue`` is today minus the deadline in days: positive when
    overdue, 0 on the deadline, negative while days remain.  ``None`` when
    the record has no deadline.
    """

    operator: OperatorCostInfo
    supplier_name: str
    days_overdue: int | None


@dataclass(frozen=True)
class PendingPaymentSummary:
    """Totals over a pending-payments listing."""

    total: BucketTotal = field(default_factory=BucketTotal)
    overdue: BucketTotal = field(default_factory=BucketTotal)
    due_today: BucketTotal = field(default_factory=BucketTotal)
    due_soon: BucketTotal = field(default_factory=BucketTotal)

    @classmethod
    def of(cls, payments: tuple[PendingPayment, ...], due_soon_days: int) -> PendingPaymentSummary:
        """``due_soon`` counts deadlines from today to ``due_soon_days`` ahead, inclusive."""
        total = overdue = due_today = due_soon = BucketTotal()
        for payment in payments:
            amount = payment.operator.total_cost
            total = total.add(amount)
            days = payment.days_overdue
            if days is None:
                continue
            if days > 0:
                overdue = overdue.add(amount)
            if days == 0:
                due_today = due_today.add(amount)
            if -due_soon_days <= days <= 0:
                due_soon = due_soon.add(amount)
        return cls(total=total, overdue=overdue, due_today=due_today, due_soon=due_soon)


@dataclass(frozen=True)
class SupplierBalanceRow:
    """Operator cost rollup of one resolved supplier."""

    supplier_id: UUID | None
    supplier_name: str
    count: int
    total: int
    average: int
    supplier_type: ServiceType | None = None


@dataclass(frozen=True)
class SupplierBalance:
    """Account balance of a catalog supplier."""

    supplier_id: UUID
    deposits: int
    refunds: int
    adjustments: int
    fees: int
    costs: int

    @property
    def balance(self) -> int:
        return self.deposits + self.refunds + self.adjustments - self.fees - self.costs


@dataclass(frozen=True)
class ServiceTypeTotal:
    service_type: ServiceType
    count: int
    total: int


@dataclass(frozen=True)
class MonthTotal:
    month: str
    count: int
    total: int


@dataclass(frozen=True)
class CostBreakdown:
    """Operator costs grouped by service type, supplier and month."""

    by_service_type: tuple[ServiceTypeTotal, ...]
    by_supplier: tuple[SupplierBalanceRow, ...]
    by_month: tuple[MonthTotal, ...]
    total_count: int
    total_cost: int
    average_cost: int


@dataclass(frozen=True)
class PeriodLockStatus:
    """Lock coverage of operator costs serviced in one month."""

    month: str
    total: int
    locked: int
    unlocked: int

    @property
    def is_fully_locked(self) -> bool:
        return self.unlocked == 0 and self.total > 0
