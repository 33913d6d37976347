"""
Tests for the kernel's JSON log lines.

Covers:
- Rendering of kernel values (Actor, TransitionFailure, FieldChange, enums)
- Mutation context bound around a transition
- Exception fields of kernel errors
- configure_logging / reset_logging leave foreign handlers alone
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from operator_kernel.domain.dtos import FailureKind, TransitionFailure
from operator_kernel.domain.values import Actor, FieldChange, OperatorField, Role, Transition
from operator_kernel.exceptions import AlreadyLockedError, InvalidPeriodError
from operator_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
    to_log_value,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def kernel_log():
    """Install a JSON handler through configure_logging(); returns a reader of parsed lines."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    configure_logging(handler=handler, level=logging.DEBUG)

    def _lines() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return _lines


class TestToLogValue:
    def test_enums_by_value(self):
        assert to_log_value(Transition.ARCHIVE) == "ARCHIVE"
        assert to_log_value(FailureKind.NOT_LOCKED) == "NOT_LOCKED"

    def test_actor(self):
        actor = Actor(id=uuid4(), role=Role.ACCOUNTANT)
        assert to_log_value(actor) == {"id": str(actor.id), "role": "ACCOUNTANT"}

    def test_transition_failure(self):
        operator_id = uuid4()
        failure = TransitionFailure.from_error(AlreadyLockedError(str(operator_id)), operator_id)

        assert to_log_value(failure) == {
            "kind": "ALREADY_LOCKED",
            "message": f"Operator cost {operator_id} is already locked",
            "operator_id": str(operator_id),
        }

    def test_field_changes(self):
        changes = (FieldChange.of(OperatorField.IS_ARCHIVED, False, True),)
        assert to_log_value(changes) == [{"field": "is_archived", "before": False, "after": True}]

    def test_dates_and_unknown_objects(self):
        assert to_log_value(date(2025, 1, 31)) == "2025-01-31"
        assert to_log_value(Decimal("1.50")) == "1.50"


class TestLogContext:
    def test_actor_expands_to_id_and_role(self):
        actor = Actor(id=uuid4(), role=Role.ADMIN)
        with LogContext.bind(actor=actor, transition=Transition.UNLOCK):
            assert LogContext.get_all() == {
                "actor_id": str(actor.id),
                "actor_role": "ADMIN",
                "transition": "UNLOCK",
            }
        assert LogContext.get_all() == {}

    def test_nested_bind_restores_outer_operator(self):
        outer, inner = uuid4(), uuid4()
        with LogContext.bind(transition=Transition.LOCK, month="2025-01"):
            with LogContext.bind(operator_id=outer):
                with LogContext.bind(operator_id=inner):
                    assert LogContext.get_all()["operator_id"] == str(inner)
                assert LogContext.get_all()["operator_id"] == str(outer)
            assert LogContext.get_all() == {"transition": "LOCK", "month": "2025-01"}

    def test_none_values_not_bound(self):
        with LogContext.bind(operator_id=None, month=None):
            assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(request_id="REQ-1")

    def test_set_merges_until_cleared(self):
        LogContext.set(transition=Transition.APPROVE)
        LogContext.set(month="2025-02")
        assert LogContext.get_all() == {"transition": "APPROVE", "month": "2025-02"}
        LogContext.clear()
        assert LogContext.get_all() == {}


class TestStructuredFormatter:
    def test_rejection_line(self, kernel_log):
        actor = Actor(id=uuid4(), role=Role.SELLER)
        operator_id = uuid4()
        failure = TransitionFailure(
            kind=FailureKind.FORBIDDEN, message="SELLER may not ARCHIVE", operator_id=operator_id
        )

        with LogContext.bind(actor=actor, operator_id=operator_id, transition=Transition.ARCHIVE):
            get_logger("services.operator_mutation").warning(
                "transition_rejected", extra={"failure": failure}
            )

        (line,) = kernel_log()
        assert line["level"] == "WARNING"
        assert line["logger"] == "operator_kernel.services.operator_mutation"
        assert line["message"] == "transition_rejected"
        assert line["actor_role"] == "SELLER"
        assert line["operator_id"] == str(operator_id)
        assert line["transition"] == "ARCHIVE"
        assert line["failure"]["kind"] == "FORBIDDEN"
        assert "ts" in line

    def test_context_wins_over_extra(self, kernel_log):
        with LogContext.bind(month="2025-01"):
            get_logger("test").info("operator_period_locked", extra={"month": "bogus", "count": 3})

        (line,) = kernel_log()
        assert line["month"] == "2025-01"
        assert line["count"] == 3

    def test_kernel_error_fields(self, kernel_log):
        operator_id = str(uuid4())
        try:
            raise AlreadyLockedError(operator_id)
        except AlreadyLockedError:
            get_logger("test").error("transition_failed", exc_info=True)

        (line,) = kernel_log()
        assert line["exc_type"] == "AlreadyLockedError"
        assert line["exc_code"] == "ALREADY_LOCKED"
        assert line["exc_operator_id"] == operator_id
        assert "traceback" in line

    def test_period_error_fields(self, kernel_log):
        try:
            raise InvalidPeriodError("2025-13")
        except InvalidPeriodError:
            get_logger("test").error("period_invalid", exc_info=True)

        (line,) = kernel_log()
        assert line["exc_code"] == "INVALID_PERIOD"
        assert line["exc_month"] == "2025-13"

    def test_plain_exception_has_no_code(self, kernel_log):
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        (line,) = kernel_log()
        assert line["exc_message"] == "boom"
        assert "exc_code" not in line

    def test_no_context_outside_a_mutation(self, kernel_log):
        get_logger("test").info("immutability_listeners_registered")

        (line,) = kernel_log()
        assert "actor_id" not in line
        assert "transition" not in line


class TestConfigureLogging:
    def test_only_first_handler_installed(self):
        h1 = logging.StreamHandler(StringIO())
        h2 = logging.StreamHandler(StringIO())
        configure_logging(handler=h1)
        configure_logging(handler=h2)

        handlers = logging.getLogger("operator_kernel").handlers
        assert h1 in handlers
        assert h2 not in handlers
        assert isinstance(h1.formatter, StructuredFormatter)

    def test_level_filters_debug(self):
        stream = StringIO()
        configure_logging(handler=logging.StreamHandler(stream))
        logger = get_logger("selectors.balance")
        logger.debug("skipped")
        logger.info("kept")

        assert [json.loads(line)["message"] for line in stream.getvalue().splitlines()] == ["kept"]

    def test_reset_keeps_foreign_handlers(self):
        foreign = logging.NullHandler()
        kernel_logger = logging.getLogger("operator_kernel")
        kernel_logger.addHandler(foreign)
        try:
            configure_logging(handler=logging.StreamHandler(StringIO()))
            assert kernel_logger.propagate is False

            reset_logging()

            assert foreign in kernel_logger.handlers
            assert kernel_logger.propagate is True
        finally:
            kernel_logger.removeHandler(foreign)

    def test_get_logger_namespaced(self):
        assert get_logger("db.triggers").name == "operator_kernel.db.triggers"
