"""
Pytest fixtures for the operator kernel test suite.

Provides:
- An in-memory SQLite database per test (tables created, immutability
  listeners registered)
- Deterministic clock, actors and record factories
- Structured log capture

Environment Variables:
- DATABASE_URL: optional database URL.  Defaults to in-memory SQLite.
"""

import json
import logging
import os
from contextlib import contextmanager
from datetime import date, datetime, timezone
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from operator_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from operator_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from operator_kernel.db.triggers import install_immutability_triggers, uninstall_immutability_triggers
from operator_kernel.domain.clock import DeterministicClock
from operator_kernel.domain.values import (
    Actor,
    PaymentStatus,
    Role,
    ServiceType,
    SupplierTransactionType,
)
from operator_kernel.logging_config import LogContext, StructuredFormatter
from operator_kernel.models.operator_cost import OperatorCost
from operator_kernel.models.supplier import Supplier, SupplierTransaction
from operator_kernel.models.user import User
from operator_kernel.services.history_recorder import HistoryRecorder
from operator_kernel.services.operator_mutation_service import OperatorMutationService
from operator_kernel.selectors.balance_selector import BalanceSelector

DEFAULT_DATABASE_URL = "sqlite://"


@pytest.fixture
def captured_logs():
    """
    Capture operator_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, mutation_service):
            mutation_service.lock(...)
            logs = captured_logs()
            assert any(r["message"] == "operator_locked" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("operator_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)
    LogContext.clear()


# Database fixtures


@pytest.fixture
def engine():
    """Fresh database per test."""
    reset_engine()
    engine = init_engine_from_url(os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL))
    create_tables()
    register_immutability_listeners()
    yield engine
    unregister_immutability_listeners()
    drop_tables()
    reset_engine()


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    """Session whose uncommitted work is rolled back after the test."""
    session = get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def disabled_immutability(session):
    """
    Context manager lifting both immutability layers inside ``session``.

    Only for tests that rewrite history on purpose to check that tampering
    is detected.  DDL runs on the session's own connection.
    """

    @contextmanager
    def _disabled():
        unregister_immutability_listeners()
        uninstall_immutability_triggers(session.connection())
        try:
            yield
        finally:
            install_immutability_triggers(session.connection())
            register_immutability_listeners()

    return _disabled


@pytest.fixture
def deterministic_clock():
    """Clock fixed at 2025-01-15 09:00 UTC."""
    return DeterministicClock(datetime(2025, 1, 15, 9, 0, 0, tzinfo=timezone.utc))


# Actors


def _make_user(session: Session, name: str, role: Role) -> Actor:
    user = User(name=name, role=role.value, email=f"{name.lower().replace(' ', '.')}@example.com")
    session.add(user)
    session.flush()
    return Actor(id=user.id, role=role)


@pytest.fixture
def admin(session) -> Actor:
    return _make_user(session, "Admin User", Role.ADMIN)


@pytest.fixture
def accountant(session) -> Actor:
    return _make_user(session, "Kim Accountant", Role.ACCOUNTANT)


@pytest.fixture
def seller(session) -> Actor:
    return _make_user(session, "Sam Seller", Role.SELLER)


@pytest.fixture
def operator_staff(session) -> Actor:
    return _make_user(session, "Olu Operator", Role.OPERATOR)


# Record factories


@pytest.fixture
def make_supplier(session, admin):
    """Factory for catalog suppliers."""
    counter = {"n": 0}

    def _make(name: str = "Hanoi Hotel", supplier_type: ServiceType = ServiceType.HOTEL, code: str | None = None):
        counter["n"] += 1
        supplier = Supplier(
            code=code or f"SUP-{counter['n']:03d}",
            name=name,
            type=supplier_type.value,
        )
        session.add(supplier)
        session.flush()
        return supplier

    return _make


@pytest.fixture
def make_supplier_transaction(session, admin):
    def _make(supplier: Supplier, tx_type: SupplierTransactionType, amount: int, on: date = date(2025, 1, 10)):
        tx = SupplierTransaction(
            supplier_id=supplier.id,
            type=tx_type.value,
            amount=amount,
            transaction_date=on,
            created_by_id=admin.id,
        )
        session.add(tx)
        session.flush()
        return tx

    return _make


@pytest.fixture
def make_operator(session, admin):
    """
    Factory for operator costs.  Defaults: PENDING, unlocked, serviced on
    2025-01-20, total 1 000 000.
    """

    def _make(**overrides) -> OperatorCost:
        values = {
            "request_id": "REQ-2501-0001",
            "service_type": ServiceType.HOTEL.value,
            "service_name": "Deluxe room, 2 nights",
            "service_date": date(2025, 1, 20),
            "cost_before_tax": 1_000_000,
            "vat": None,
            "total_cost": 1_000_000,
            "payment_status": PaymentStatus.PENDING.value,
            "created_by_id": admin.id,
        }
        values.update(overrides)
        for key in ("service_type", "payment_status"):
            if hasattr(values[key], "value"):
                values[key] = values[key].value
        operator = OperatorCost(**values)
        session.add(operator)
        session.flush()
        return operator

    return _make


# Service fixtures


@pytest.fixture
def history_recorder(session, deterministic_clock) -> HistoryRecorder:
    return HistoryRecorder(session, deterministic_clock)


@pytest.fixture
def mutation_service(session, deterministic_clock, history_recorder) -> OperatorMutationService:
    return OperatorMutationService(session, deterministic_clock, history_recorder)


@pytest.fixture
def balance_selector(session, deterministic_clock) -> BalanceSelector:
    return BalanceSelector(session, deterministic_clock)
