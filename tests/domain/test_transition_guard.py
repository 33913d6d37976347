"""
Tests for the pure transition guard.

Covers:
- Role authorization per transition
- Existence and state preconditions
- Archive and unarchive roles and the locked-record check
- Locked-before-paid tie-break
- TransitionFailure construction from guard errors
"""

from datetime import date, datetime, timezone
from uuid import uuid4

import pytest

from operator_kernel.domain import guard
from operator_kernel.domain.dtos import FailureKind, OperatorCostInfo, TransitionFailure
from operator_kernel.domain.values import (
    UNLOCKED,
    Actor,
    Locked,
    PaymentStatus,
    Role,
    ServiceType,
    Transition,
)
from operator_kernel.exceptions import (
    AlreadyLockedError,
    AlreadyPaidError,
    ForbiddenTransitionError,
    InvalidTransitionError,
    NotLockedError,
    OperatorNotFoundError,
)

LOCKED_AT = datetime(2025, 1, 10, 8, 0, tzinfo=timezone.utc)


def _snapshot(status=PaymentStatus.PENDING, locked=False) -> OperatorCostInfo:
    return OperatorCostInfo(
        id=uuid4(),
        request_id="REQ-1",
        supplier_id=None,
        supplier_name="NCC-A",
        service_type=ServiceType.HOTEL,
        service_name="Room",
        service_date=date(2025, 1, 20),
        cost_before_tax=500_000,
        vat=None,
        total_cost=500_000,
        payment_status=status,
        payment_date=date(2025, 1, 5) if status == PaymentStatus.PAID else None,
        payment_deadline=None,
        lock=Locked(at=LOCKED_AT, by=uuid4()) if locked else UNLOCKED,
    )


def _actor(role: Role) -> Actor:
    return Actor(id=uuid4(), role=role)


class TestAuthorize:
    """Role checks run before anything about the record is known."""

    @pytest.mark.parametrize("role", [Role.ACCOUNTANT, Role.ADMIN])
    def test_approve_and_lock_allowed_for_finance_roles(self, role):
        assert guard.authorize(Transition.APPROVE, role) is None
        assert guard.authorize(Transition.LOCK, role) is None

    @pytest.mark.parametrize("role", [Role.SELLER, Role.OPERATOR])
    def test_approve_and_lock_forbidden_for_other_roles(self, role):
        assert isinstance(guard.authorize(Transition.APPROVE, role), ForbiddenTransitionError)
        assert isinstance(guard.authorize(Transition.LOCK, role), ForbiddenTransitionError)

    @pytest.mark.parametrize("role", [Role.ACCOUNTANT, Role.SELLER, Role.OPERATOR])
    def test_unlock_is_admin_only(self, role):
        error = guard.authorize(Transition.UNLOCK, role)
        assert isinstance(error, ForbiddenTransitionError)
        assert error.code == "FORBIDDEN"
        assert error.role == role.value

    def test_admin_may_unlock(self):
        assert guard.authorize(Transition.UNLOCK, Role.ADMIN) is None

    @pytest.mark.parametrize("role", [Role.ACCOUNTANT, Role.OPERATOR, Role.ADMIN])
    def test_archive_allowed_for_staff_roles(self, role):
        assert guard.authorize(Transition.ARCHIVE, role) is None

    def test_seller_may_not_archive(self):
        assert isinstance(guard.authorize(Transition.ARCHIVE, Role.SELLER), ForbiddenTransitionError)

    @pytest.mark.parametrize("role", [Role.ACCOUNTANT, Role.SELLER, Role.OPERATOR])
    def test_unarchive_is_admin_only(self, role):
        assert isinstance(guard.authorize(Transition.UNARCHIVE, role), ForbiddenTransitionError)
        assert guard.authorize(Transition.UNARCHIVE, Role.ADMIN) is None

    def test_forbidden_wins_over_missing_record(self):
        error = guard.evaluate(Transition.UNLOCK, None, _actor(Role.ACCOUNTANT), uuid4())
        assert isinstance(error, ForbiddenTransitionError)

    def test_every_transition_has_a_rule(self):
        assert set(guard.TRANSITION_RULES) == set(Transition)


class TestStateChecks:
    """Existence and state preconditions."""

    @pytest.mark.parametrize("transition", list(Transition))
    def test_missing_record_is_not_found(self, transition):
        operator_id = uuid4()
        error = guard.evaluate(transition, None, _actor(Role.ADMIN), operator_id)
        assert isinstance(error, OperatorNotFoundError)
        assert error.operator_id == str(operator_id)

    def test_approve_pending_unlocked_allowed(self):
        assert guard.evaluate(Transition.APPROVE, _snapshot(), _actor(Role.ACCOUNTANT)) is None

    def test_approve_partial_allowed(self):
        snapshot = _snapshot(status=PaymentStatus.PARTIAL)
        assert guard.evaluate(Transition.APPROVE, snapshot, _actor(Role.ACCOUNTANT)) is None

    def test_approve_paid_is_already_paid(self):
        error = guard.evaluate(
            Transition.APPROVE, _snapshot(status=PaymentStatus.PAID), _actor(Role.ACCOUNTANT)
        )
        assert isinstance(error, AlreadyPaidError)
        assert isinstance(error, InvalidTransitionError)

    @pytest.mark.parametrize("status", list(PaymentStatus))
    def test_approve_locked_is_already_locked_whatever_the_status(self, status):
        error = guard.evaluate(
            Transition.APPROVE, _snapshot(status=status, locked=True), _actor(Role.ADMIN)
        )
        assert isinstance(error, AlreadyLockedError)

    def test_lock_locked_is_already_locked(self):
        error = guard.evaluate(Transition.LOCK, _snapshot(locked=True), _actor(Role.ACCOUNTANT))
        assert isinstance(error, AlreadyLockedError)

    def test_lock_paid_record_allowed(self):
        snapshot = _snapshot(status=PaymentStatus.PAID)
        assert guard.evaluate(Transition.LOCK, snapshot, _actor(Role.ACCOUNTANT)) is None

    def test_unlock_unlocked_is_not_locked(self):
        error = guard.evaluate(Transition.UNLOCK, _snapshot(), _actor(Role.ADMIN))
        assert isinstance(error, NotLockedError)

    def test_unlock_locked_allowed_for_admin(self):
        assert guard.evaluate(Transition.UNLOCK, _snapshot(locked=True), _actor(Role.ADMIN)) is None

    @pytest.mark.parametrize("transition", [Transition.ARCHIVE, Transition.UNARCHIVE])
    def test_archive_flags_of_locked_record_are_frozen(self, transition):
        error = guard.evaluate(transition, _snapshot(locked=True), _actor(Role.ADMIN))
        assert isinstance(error, AlreadyLockedError)

    def test_archive_paid_record_allowed(self):
        snapshot = _snapshot(status=PaymentStatus.PAID)
        assert guard.evaluate(Transition.ARCHIVE, snapshot, _actor(Role.OPERATOR)) is None


class TestTransitionFailure:
    def test_from_error_carries_code_and_message(self):
        snapshot = _snapshot(status=PaymentStatus.PAID)
        error = guard.evaluate(Transition.APPROVE, snapshot, _actor(Role.ADMIN))

        failure = TransitionFailure.from_error(error, snapshot.id)

        assert failure.kind == FailureKind.ALREADY_PAID
        assert failure.kind.is_invalid_transition
        assert failure.message == str(error)
        assert failure.operator_id == snapshot.id

    def test_forbidden_is_not_an_invalid_transition(self):
        failure = TransitionFailure.from_error(
            guard.authorize(Transition.UNLOCK, Role.SELLER)
        )
        assert failure.kind == FailureKind.FORBIDDEN
        assert not failure.kind.is_invalid_transition
