"""Services for the operator kernel (write side)."""

from operator_kernel.services.follow_up_status_service import (
    FollowUpStatusInfo,
    FollowUpStatusService,
    SortOrderItem,
)
from operator_kernel.services.history_recorder import (
    HistoryRecorder,
    SqlUserDirectory,
    UserDirectory,
    diff,
    names_one_by_one,
)
from operator_kernel.services.operator_mutation_service import OperatorMutationService

__all__ = [
    "FollowUpStatusInfo",
    "FollowUpStatusService",
    "HistoryRecorder",
    "OperatorMutationService",
    "SortOrderItem",
    "SqlUserDirectory",
    "UserDirectory",
    "diff",
    "names_one_by_one",
]
