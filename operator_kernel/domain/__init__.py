"""Pure domain layer: values, DTOs, the transition guard, permissions and clocks."""

from operator_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from operator_kernel.domain.dtos import (
    BatchResult,
    BucketTotal,
    CostBreakdown,
    FailureKind,
    HistoryEntryInfo,
    MonthTotal,
    MutationResult,
    OperatorCostInfo,
    PaymentStatusReport,
    PendingPayment,
    PendingPaymentSummary,
    PeriodLockStatus,
    ServiceTypeTotal,
    SupplierBalance,
    SupplierBalanceRow,
    TransitionFailure,
)
from operator_kernel.domain.values import (
    UNLOCKED,
    Actor,
    FieldChange,
    HistoryAction,
    LockState,
    Locked,
    OperatorField,
    PaymentStatus,
    PaymentWindow,
    Role,
    ServiceType,
    SupplierTransactionType,
    Transition,
    Unlocked,
)

__all__ = [
    "Actor",
    "BatchResult",
    "BucketTotal",
    "Clock",
    "CostBreakdown",
    "DeterministicClock",
    "FailureKind",
    "FieldChange",
    "HistoryAction",
    "HistoryEntryInfo",
    "LockState",
    "Locked",
    "MonthTotal",
    "MutationResult",
    "OperatorCostInfo",
    "OperatorField",
    "PaymentStatus",
    "PaymentStatusReport",
    "PaymentWindow",
    "PendingPayment",
    "PendingPaymentSummary",
    "PeriodLockStatus",
    "Role",
    "ServiceType",
    "ServiceTypeTotal",
    "SupplierBalance",
    "SupplierBalanceRow",
    "SupplierTransactionType",
    "SystemClock",
    "Transition",
    "TransitionFailure",
    "UNLOCKED",
    "Unlocked",
]
