"""
Typed Exception Hierarchy for the Operator Kernel.

Every error has a typed class, a machine-readable ``code`` class attribute,
and structured attributes instead of a message that callers must parse.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    OperatorKernelError (base)
    |
    +-- TransitionError
    |   +-- OperatorNotFoundError
    |   +-- InvalidTransitionError
    |   |   +-- AlreadyLockedError
    |   |   +-- AlreadyPaidError
    |   |   +-- NotLockedError
    |   +-- ForbiddenTransitionError
    |
    +-- PersistenceError
    |   +-- RecordNotFoundError
    |   +-- ConcurrentModificationError
    |   +-- HistoryAppendError
    |   +-- BatchReferenceError
    |
    +-- ImmutabilityViolationError
    +-- HistoryChainBrokenError
    +-- InvalidPeriodError
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                      | When Raised
----------------|---------------------------|-------------------------------------
Transition      | NOT_FOUND                 | Operator id doesn't exist
                | ALREADY_LOCKED            | Approve/lock on a locked record
                | ALREADY_PAID              | Approve on a PAID record
                | NOT_LOCKED                | Unlock on an unlocked record
                | FORBIDDEN                 | Role lacks the transition permission
----------------|---------------------------|-------------------------------------
Persistence     | RECORD_NOT_FOUND          | Store update on a missing id
                | CONCURRENT_MODIFICATION   | Predicate update matched no row
                | HISTORY_APPEND_FAILED     | History entry could not be written
                | BATCH_REFERENCE_MISSING   | Batch references an unknown id
----------------|---------------------------|-------------------------------------
Audit           | IMMUTABILITY_VIOLATION    | UPDATE/DELETE on append-only rows
                | HISTORY_CHAIN_BROKEN      | Hash chain validation failed
----------------|---------------------------|-------------------------------------
Input           | INVALID_PERIOD            | Month is not YYYY-MM
                | CONFIGURATION_ERROR       | Config file missing keys / bad values

===============================================================================
HANDLING PATTERNS
===============================================================================

Transition errors are expected outcomes.  The mutation service never lets
them escape: it converts them into ``TransitionFailure`` values on the
returned ``MutationResult`` so the HTTP layer can map ``kind`` to a status.

Persistence errors propagate.  The caller's transaction scope rolls back the
state write together with any history entry, and the caller decides whether
to retry.
"""


class OperatorKernelError(Exception):
    """
    Base exception for all operator kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "OPERATOR_KERNEL_ERROR"


# Transition-related exceptions


class TransitionError(OperatorKernelError):
    """Base exception for rejected state transitions."""

    code: str = "TRANSITION_ERROR"


class OperatorNotFoundError(TransitionError):
    """Operator cost record with given ID was not found."""

    code: str = "NOT_FOUND"

    def __init__(self, operator_id: str):
        self.operator_id = operator_id
        super().__init__(f"Operator cost not found: {operator_id}")


class InvalidTransitionError(TransitionError):
    """A guard precondition on the current record state failed."""

    code: str = "INVALID_TRANSITION"


class AlreadyLockedError(InvalidTransitionError):
    """The record is locked; only an unlock may change it."""

    code: str = "ALREADY_LOCKED"

    def __init__(self, operator_id: str):
        self.operator_id = operator_id
        super().__init__(f"Operator cost {operator_id} is already locked")


class AlreadyPaidError(InvalidTransitionError):
    """The record has already been approved for payment."""

    code: str = "ALREADY_PAID"

    def __init__(self, operator_id: str):
        self.operator_id = operator_id
        super().__init__(f"Operator cost {operator_id} is already paid")


class NotLockedError(InvalidTransitionError):
    """Unlock requested on a record that is not locked."""

    code: str = "NOT_LOCKED"

    def __init__(self, operator_id: str):
        self.operator_id = operator_id
        super().__init__(f"Operator cost {operator_id} is not locked")


class ForbiddenTransitionError(TransitionError):
    """The actor's role does not allow the requested transition."""

    code: str = "FORBIDDEN"

    def __init__(self, transition: str, role: str):
        self.transition = transition
        self.role = role
        super().__init__(
            f"Insufficient role: {role} may not perform {transition}"
        )


# Persistence-related exceptions


class PersistenceError(OperatorKernelError):
    """Store read/write failure. Never retried inside the kernel."""

    code: str = "PERSISTENCE_FAILURE"


class RecordNotFoundError(PersistenceError):
    """Update targeted a record id that does not exist."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class ConcurrentModificationError(PersistenceError):
    """The record changed between load and write."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}: "
            "record was changed by another transaction"
        )


class HistoryAppendError(PersistenceError):
    """
    A history entry could not be written.

    The state change it describes must not commit without it.
    """

    code: str = "HISTORY_APPEND_FAILED"

    def __init__(self, entity_id: str, action: str, reason: str):
        self.entity_id = entity_id
        self.action = action
        self.reason = reason
        super().__init__(
            f"Failed to append {action} history for {entity_id}: {reason}"
        )


class BatchReferenceError(PersistenceError):
    """A batch update referenced ids that do not exist; nothing was written."""

    code: str = "BATCH_REFERENCE_MISSING"

    def __init__(self, entity_type: str, missing_ids: list[str]):
        self.entity_type = entity_type
        self.missing_ids = missing_ids
        super().__init__(
            f"Batch update of {entity_type} rejected, unknown ids: "
            f"{', '.join(missing_ids)}"
        )


# Audit-related exceptions


class ImmutabilityViolationError(OperatorKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


class HistoryChainBrokenError(OperatorKernelError):
    """Recomputed history hash does not match the stored chain."""

    code: str = "HISTORY_CHAIN_BROKEN"

    def __init__(self, entity_id: str, seq: int, expected_hash: str, actual_hash: str):
        self.entity_id = entity_id
        self.seq = seq
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"History chain broken for {entity_id} at seq {seq}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# Input-related exceptions


class InvalidPeriodError(OperatorKernelError):
    """Month string is not in YYYY-MM form."""

    code: str = "INVALID_PERIOD"

    def __init__(self, month: str):
        self.month = month
        super().__init__(f"Invalid month format (expected YYYY-MM): {month!r}")


class ConfigurationError(OperatorKernelError):
    """Configuration file is missing keys or carries invalid values."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration for '{key}': {reason}")
