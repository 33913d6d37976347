"""
TransitionGuard -- decision table for operator cost transitions.

Responsibility:
    Decides whether an actor may apply APPROVE, LOCK, UNLOCK, ARCHIVE or
    UNARCHIVE to an operator cost snapshot, and if not, which typed failure
    explains why.

Architecture position:
    Kernel > Domain -- pure functional core, ZERO I/O.  Receives an
    ``OperatorCostInfo`` snapshot (or ``None`` for a missing record) and an
    ``Actor``; never touches a session.

Invariants enforced:
    - Every permission rule lives in ``TRANSITION_RULES``; there is no other
      place in the kernel that decides who may change an operator cost.
    - Role authorization is evaluated before existence and state, so a caller
      without rights learns nothing about whether a record exists.
    - State checks run in table order; the first failing check wins.  For
      APPROVE the lock check precedes the payment check, so a locked record
      always reports ALREADY_LOCKED.

Failure modes:
    - ForbiddenTransitionError when the actor's role does not satisfy the
      rule's role predicate.
    - OperatorNotFoundError when the snapshot is ``None``.
    - AlreadyLockedError / AlreadyPaidError / NotLockedError for state
      preconditions.

    The guard RETURNS these exceptions rather than raising them; the
    mutation service turns them into ``TransitionFailure`` values.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable
from uuid import UUID

from operator_kernel.domain.dtos import OperatorCostInfo
from operator_kernel.domain.permissions import has_permission
from operator_kernel.domain.values import Actor, Role, Transition
from operator_kernel.exceptions import (
    AlreadyLockedError,
    AlreadyPaidError,
    ForbiddenTransitionError,
    InvalidTransitionError,
    NotLockedError,
    OperatorNotFoundError,
    TransitionError,
)

RolePredicate = Callable[[Role], bool]
StateCheck = Callable[[OperatorCostInfo], InvalidTransitionError | None]


def _requires_permission(permission: str) -> RolePredicate:
    def predicate(role: Role) -> bool:
        return has_permission(role, permission)

    predicate.__name__ = f"requires_{permission.replace(':', '_')}"
    return predicate


def _requires_admin(role: Role) -> bool:
    return role == Role.ADMIN


def _not_locked(operator: OperatorCostInfo) -> InvalidTransitionError | None:
    if operator.is_locked:
        return AlreadyLockedError(str(operator.id))
    return None


def _not_paid(operator: OperatorCostInfo) -> InvalidTransitionError | None:
    if operator.is_paid:
        return AlreadyPaidError(str(operator.id))
    return None


def _is_locked(operator: OperatorCostInfo) -> InvalidTransitionError | None:
    if not operator.is_locked:
        return NotLockedError(str(operator.id))
    return None


@dataclass(frozen=True)
class TransitionRule:
    """Who may perform a transition and which state checks it must pass."""

    transition: Transition
    role_predicate: RolePredicate
    state_checks: tuple[StateCheck, ...]


TRANSITION_RULES: dict[Transition, TransitionRule] = {
    Transition.APPROVE: TransitionRule(
        transition=Transition.APPROVE,
        role_predicate=_requires_permission("operator:approve"),
        state_checks=(_not_locked, _not_paid),
    ),
    Transition.LOCK: TransitionRule(
        transition=Transition.LOCK,
        role_predicate=_requires_permission("operator:lock"),
        state_checks=(_not_locked,),
    ),
    Transition.UNLOCK: TransitionRule(
        transition=Transition.UNLOCK,
        role_predicate=_requires_admin,
        state_checks=(_is_locked,),
    ),
    Transition.ARCHIVE: TransitionRule(
        transition=Transition.ARCHIVE,
        role_predicate=_requires_permission("operator:archive"),
        state_checks=(_not_locked,),
    ),
    Transition.UNARCHIVE: TransitionRule(
        transition=Transition.UNARCHIVE,
        role_predicate=_requires_admin,
        state_checks=(_not_locked,),
    ),
}


def authorize(transition: Transition, role: Role) -> ForbiddenTransitionError | None:
    """Role check alone; callers run it before loading the record."""
    rule = TRANSITION_RULES[transition]
    if rule.role_predicate(role):
        return None
    return ForbiddenTransitionError(transition.value, role.value)


def check_state(
    transition: Transition,
    operator: OperatorCostInfo | None,
    operator_id: UUID | None = None,
) -> TransitionError | None:
    """Existence and state checks, in table order."""
    if operator is None:
        return OperatorNotFoundError(str(operator_id))
    for check in TRANSITION_RULES[transition].state_checks:
        error = check(operator)
        if error is not None:
            return error
    return None


def evaluate(
    transition: Transition,
    operator: OperatorCostInfo | None,
    actor: Actor,
    operator_id: UUID | None = None,
) -> TransitionError | None:
    """
    Full guard decision: role, then existence, then state.

    Returns:
        ``None`` if the transition is allowed, otherwise the typed error that
        explains the rejection.
    """
    forbidden = authorize(transition, actor.role)
    if forbidden is not None:
        return forbidden
    if operator is not None:
        operator_id = operator.id
    return check_state(transition, operator, operator_id)
