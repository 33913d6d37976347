"""
Tests for operator domain values: lock state, field changes, permissions,
month periods and minor-unit averaging.
"""

from datetime import date, datetime, timezone
from uuid import UUID, uuid4

import pytest

from operator_kernel.db.types import average_minor_units
from operator_kernel.domain.period import month_bounds, month_key
from operator_kernel.domain.permissions import get_permissions, has_permission
from operator_kernel.domain.values import (
    UNLOCKED,
    FieldChange,
    Locked,
    OperatorField,
    PaymentStatus,
    Role,
    lock_state_columns,
    lock_state_from_columns,
    to_audit_value,
)
from operator_kernel.exceptions import InvalidPeriodError

AT = datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)


class TestLockState:
    def test_locked_requires_both_columns(self):
        by = uuid4()
        state = lock_state_from_columns(True, AT, by)
        assert state == Locked(at=AT, by=by)
        assert state.is_locked

    def test_unlocked_has_no_columns(self):
        state = lock_state_from_columns(False, None, None)
        assert state is UNLOCKED
        assert not state.is_locked

    @pytest.mark.parametrize(
        "is_locked,locked_at,locked_by",
        [
            (True, None, None),
            (True, AT, None),
            (True, None, UUID(int=1)),
            (False, AT, None),
            (False, None, UUID(int=1)),
        ],
    )
    def test_partial_lock_rejected(self, is_locked, locked_at, locked_by):
        with pytest.raises(ValueError):
            lock_state_from_columns(is_locked, locked_at, locked_by)

    def test_columns_of_locked_state(self):
        by = uuid4()
        assert lock_state_columns(Locked(at=AT, by=by)) == {
            "is_locked": True,
            "locked_at": AT,
            "locked_by": by,
        }

    def test_columns_of_unlocked_state(self):
        assert lock_state_columns(UNLOCKED) == {
            "is_locked": False,
            "locked_at": None,
            "locked_by": None,
        }


class TestFieldChange:
    def test_values_are_json_safe(self):
        user = uuid4()
        change = FieldChange.of(OperatorField.LOCKED_BY, None, user)
        assert change.after == str(user)

    def test_enum_and_date_values(self):
        assert to_audit_value(PaymentStatus.PAID) == "PAID"
        assert to_audit_value(date(2025, 1, 15)) == "2025-01-15"
        assert to_audit_value(AT) == "2025-01-15T09:00:00+00:00"
        assert to_audit_value(True) is True
        assert to_audit_value(800_000) == 800_000

    def test_unsupported_type_rejected(self):
        with pytest.raises(TypeError):
            to_audit_value(1.5)

    def test_dict_round_trip_keeps_field_enum(self):
        change = FieldChange.of(OperatorField.PAYMENT_STATUS, "PENDING", "PAID")
        restored = FieldChange.from_dict(change.to_dict())
        assert restored == change
        assert restored.field is OperatorField.PAYMENT_STATUS

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            FieldChange.from_dict({"field": "password", "before": None, "after": "x"})


class TestPermissions:
    def test_admin_has_wildcard(self):
        assert has_permission(Role.ADMIN, "anything:at_all")

    def test_accountant_permissions(self):
        assert has_permission(Role.ACCOUNTANT, "operator:approve")
        assert has_permission(Role.ACCOUNTANT, "operator:lock")
        assert not has_permission(Role.ACCOUNTANT, "operator:unlock")

    def test_seller_views_only(self):
        assert has_permission(Role.SELLER, "operator:view")
        assert not has_permission(Role.SELLER, "operator:approve")
        assert "operator:lock" not in get_permissions(Role.SELLER)

    def test_archive_permission(self):
        assert has_permission(Role.OPERATOR, "operator:archive")
        assert has_permission(Role.ACCOUNTANT, "operator:archive")
        assert not has_permission(Role.SELLER, "operator:archive")


class TestMonthBounds:
    def test_regular_month(self):
        assert month_bounds("2025-01") == (date(2025, 1, 1), date(2025, 1, 31))

    def test_leap_february(self):
        assert month_bounds("2024-02") == (date(2024, 2, 1), date(2024, 2, 29))

    @pytest.mark.parametrize(
        "month", ["2025-13", "2025-1", "25-01", "2025/01", "", "2025-00", "2025-01\n", " 2025-01"]
    )
    def test_malformed_month(self, month):
        with pytest.raises(InvalidPeriodError) as exc_info:
            month_bounds(month)
        assert exc_info.value.code == "INVALID_PERIOD"

    def test_month_key(self):
        assert month_key(date(2025, 3, 9)) == "2025-03"


class TestAverageMinorUnits:
    def test_exact(self):
        assert average_minor_units(800_000, 2) == 400_000

    def test_half_rounds_up(self):
        assert average_minor_units(5, 2) == 3
        assert average_minor_units(1_000_001, 2) == 500_001

    def test_below_half_rounds_down(self):
        assert average_minor_units(1_000_000, 3) == 333_333

    def test_zero_count(self):
        assert average_minor_units(0, 0) == 0
