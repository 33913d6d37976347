"""SQLAlchemy ORM models.  Importing this package registers every table."""

from operator_kernel.models.follow_up_status import FollowUpStatus
from operator_kernel.models.history_entry import HistoryEntry
from operator_kernel.models.operator_cost import OperatorCost
from operator_kernel.models.supplier import Supplier, SupplierTransaction
from operator_kernel.models.user import User

__all__ = [
    "FollowUpStatus",
    "HistoryEntry",
    "OperatorCost",
    "Supplier",
    "SupplierTransaction",
    "User",
]
