"""
Operator domain value objects (``operator_kernel.domain.values``).

Responsibility
--------------
Enumerations and frozen value types shared by the guard, the services and
the selectors: payment status, roles, history actions, the typed field-change
triple, and the lock state tagged variant.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports from
``db/``, ``models/``, ``services/`` or ``selectors/``.

Invariants enforced
-------------------
* Lock state is ``Locked(at, by)`` or ``Unlocked``; there is no way to
  express a lock timestamp without its actor or vice versa.
* ``FieldChange.field`` is an ``OperatorField`` member, so history entries
  cannot reference columns outside the operator cost field set.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Union
from uuid import UUID


class PaymentStatus(str, Enum):
    """Supplier payment state of an operator cost."""

    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


class ServiceType(str, Enum):
    """Service categories; shared vocabulary with supplier types."""

    HOTEL = "HOTEL"
    RESTAURANT = "RESTAURANT"
    TRANSPORT = "TRANSPORT"
    GUIDE = "GUIDE"
    VISA = "VISA"
    VMB = "VMB"
    CRUISE = "CRUISE"
    ACTIVITY = "ACTIVITY"
    OTHER = "OTHER"


class Role(str, Enum):
    """Back-office user roles."""

    ADMIN = "ADMIN"
    SELLER = "SELLER"
    OPERATOR = "OPERATOR"
    ACCOUNTANT = "ACCOUNTANT"


class HistoryAction(str, Enum):
    """Action tag of a history entry."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOCK = "LOCK"
    UNLOCK = "UNLOCK"
    APPROVE = "APPROVE"
    ARCHIVE = "ARCHIVE"
    UNARCHIVE = "UNARCHIVE"


class Transition(str, Enum):
    """Guarded state transitions of an operator cost."""

    APPROVE = "APPROVE"
    LOCK = "LOCK"
    UNLOCK = "UNLOCK"
    ARCHIVE = "ARCHIVE"
    UNARCHIVE = "UNARCHIVE"


class SupplierTransactionType(str, Enum):
    """Movements on a supplier's prepaid / credit account."""

    DEPOSIT = "DEPOSIT"
    REFUND = "REFUND"
    ADJUSTMENT = "ADJUSTMENT"
    FEE = "FEE"


class PaymentWindow(str, Enum):
    """Deadline filter of the pending-payments listing."""

    ALL = "all"
    TODAY = "today"
    WEEK = "week"
    OVERDUE = "overdue"


class OperatorField(str, Enum):
    """Operator cost fields that may appear in a history diff."""

    REQUEST_ID = "request_id"
    SUPPLIER_ID = "supplier_id"
    SUPPLIER_NAME = "supplier_name"
    SERVICE_TYPE = "service_type"
    SERVICE_NAME = "service_name"
    SERVICE_DATE = "service_date"
    COST_BEFORE_TAX = "cost_before_tax"
    VAT = "vat"
    TOTAL_COST = "total_cost"
    PAYMENT_STATUS = "payment_status"
    PAYMENT_DATE = "payment_date"
    PAYMENT_DEADLINE = "payment_deadline"
    IS_LOCKED = "is_locked"
    LOCKED_AT = "locked_at"
    LOCKED_BY = "locked_by"
    IS_ARCHIVED = "is_archived"


AuditValue = Union[str, int, bool, None]


def to_audit_value(value: Any) -> AuditValue:
    """
    Convert a field value to its JSON-safe history representation.

    Dates and datetimes become ISO strings, UUIDs and enums their string
    value; ``None``, ``bool``, ``int`` and ``str`` pass through unchanged.
    """
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    raise TypeError(f"Unsupported history value type: {type(value).__name__}")


@dataclass(frozen=True)
class FieldChange:
    """One field of a history diff: value before and after the mutation."""

    field: OperatorField
    before: AuditValue
    after: AuditValue

    @classmethod
    def of(cls, field: OperatorField, before: Any, after: Any) -> FieldChange:
        return cls(field=field, before=to_audit_value(before), after=to_audit_value(after))

    def to_dict(self) -> dict[str, AuditValue]:
        return {"field": self.field.value, "before": self.before, "after": self.after}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FieldChange:
        return cls(
            field=OperatorField(data["field"]),
            before=data.get("before"),
            after=data.get("after"),
        )


@dataclass(frozen=True)
class Actor:
    """The resolved caller of a mutation: user id plus effective role."""

    id: UUID
    role: Role


# =========================================================================
# Lock state tagged variant
# =========================================================================


@dataclass(frozen=True)
class Locked:
    """Record is frozen; ``at`` and ``by`` always travel together."""

    at: datetime
    by: UUID

    @property
    def is_locked(self) -> bool:
        return True


@dataclass(frozen=True)
class Unlocked:
    """Record accepts guarded mutations."""

    @property
    def is_locked(self) -> bool:
        return False


LockState = Union[Locked, Unlocked]

UNLOCKED = Unlocked()


def lock_state_from_columns(
    is_locked: bool,
    locked_at: datetime | None,
    locked_by: UUID | None,
) -> LockState:
    """
    Build the tagged lock state from flat persisted columns.

    Raises:
        ValueError: If the columns describe a partial lock (flag set without
            both timestamp and actor, or either set without the flag).
    """
    if is_locked:
        if locked_at is None or locked_by is None:
            raise ValueError("Locked record must carry both locked_at and locked_by")
        return Locked(at=locked_at, by=locked_by)
    if locked_at is not None or locked_by is not None:
        raise ValueError("Unlocked record must not carry locked_at or locked_by")
    return UNLOCKED


def lock_state_columns(state: LockState) -> dict[str, Any]:
    """Flatten a lock state into its persisted column values."""
    if isinstance(state, Locked):
        return {"is_locked": True, "locked_at": state.at, "locked_by": state.by}
    return {"is_locked": False, "locked_at": None, "locked_by": None}
