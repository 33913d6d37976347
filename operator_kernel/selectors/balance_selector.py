"""
Module: operator_kernel.selectors.balance_selector
Responsibility: Read-only rollups of operator costs: payment-status buckets,
    the pending-payments listing,
    per-supplier totals, supplier account balances, cost breakdowns and
    period lock coverage.
Architecture position: Kernel > Selectors.  Reads models/, returns
    domain/dtos.  MUST NOT import from services/.

Invariants enforced:
    - Archived operator costs never count towards any report.
    - Sums are integer minor units; the only rounding is the half-up average
      in ``average_minor_units()``.
    - An unpaid record lands in at most one of overdue / due_this_week /
      pending, checked in that order.

Failure modes:
    - InvalidPeriodError from ``get_lock_status()`` on a malformed month.
    - Empty input yields zero counts and totals, never an error.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from operator_kernel.db.types import average_minor_units
from operator_kernel.domain.clock import Clock, SystemClock
from operator_kernel.domain.dtos import (
    BucketTotal,
    CostBreakdown,
    MonthTotal,
    PaymentStatusReport,
    PendingPayment,
    PendingPaymentSummary,
    PeriodLockStatus,
    ServiceTypeTotal,
    SupplierBalance,
    SupplierBalanceRow,
)
from operator_kernel.domain.period import month_bounds, month_key, same_month
from operator_kernel.domain.values import (
    PaymentStatus,
    PaymentWindow,
    ServiceType,
    SupplierTransactionType,
)
from operator_kernel.models.operator_cost import OperatorCost
from operator_kernel.models.supplier import Supplier, SupplierTransaction
from operator_kernel.selectors.base import BaseSelector

DEFAULT_DUE_SOON_DAYS = 7
NO_SUPPLIER_LABEL = "No supplier"


# =========================================================================
# Payment buckets
# =========================================================================


OVERDUE = "overdue"
DUE_THIS_WEEK = "due_this_week"
PENDING = "pending"
PAID_THIS_MONTH = "paid_this_month"


def classify_payment(
    payment_status: PaymentStatus,
    payment_date: date | None,
    payment_deadline: date | None,
    today: date,
    due_soon_days: int = DEFAULT_DUE_SOON_DAYS,
) -> str | None:
    """
    Report bucket of one operator cost, or None if it belongs to none.

    Unpaid records: deadline before today is overdue; deadline within
    ``today .. today + due_soon_days`` (both inclusive) is due this week;
    otherwise a PENDING record is pending.  PAID records count as paid this
    month when ``payment_date`` falls in today's calendar month.
    """
    if payment_status == PaymentStatus.PAID:
        if payment_date is not None and same_month(payment_date, today):
            return PAID_THIS_MONTH
        return None
    if payment_deadline is not None:
        if payment_deadline < today:
            return OVERDUE
        if payment_deadline <= today + timedelta(days=due_soon_days):
            return DUE_THIS_WEEK
    if payment_status == PaymentStatus.PENDING:
        return PENDING
    return None


@dataclass(frozen=True)
class _SupplierKey:
    """Grouping key: catalog id, else free-text name, else the no-supplier group."""

    supplier_id: UUID | None
    free_text: str | None


_NO_SUPPLIER = _SupplierKey(supplier_id=None, free_text=None)


class BalanceSelector(BaseSelector[OperatorCost]):
    """
    Read-only operator cost rollups.

    Contract:
        Every method recomputes from current rows; results reflect the
        caller's transaction snapshot.

    Non-goals:
        - Does NOT format currency or dates for display.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        due_soon_days: int = DEFAULT_DUE_SOON_DAYS,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._due_soon_days = due_soon_days

    # ------------------------------------------------------------------
    # Payment status
    # ------------------------------------------------------------------

    def get_payment_status_report(self) -> PaymentStatusReport:
        """Pending / overdue / due-this-week / paid-this-month buckets as of today."""
        today = self._clock.today()
        rows = self.session.execute(
            select(
                OperatorCost.payment_status,
                OperatorCost.payment_date,
                OperatorCost.payment_deadline,
                OperatorCost.total_cost,
            ).where(OperatorCost.is_archived.is_(False))
        ).all()

        buckets: dict[str, BucketTotal] = defaultdict(BucketTotal)
        for row in rows:
            bucket = classify_payment(
                PaymentStatus(row.payment_status),
                row.payment_date,
                row.payment_deadline,
                today,
                self._due_soon_days,
            )
            if bucket is not None:
                buckets[bucket] = buckets[bucket].add(row.total_cost)

        return PaymentStatusReport(
            as_of=today,
            pending=buckets[PENDING],
            overdue=buckets[OVERDUE],
            due_this_week=buckets[DUE_THIS_WEEK],
            paid_this_month=buckets[PAID_THIS_MONTH],
        )

    # ------------------------------------------------------------------
    # Pending payments
    # ------------------------------------------------------------------

    def get_pending_payments(
        self,
        window: PaymentWindow | str = PaymentWindow.ALL,
        service_type: ServiceType | None = None,
        supplier_id: UUID | None = None,
    ) -> tuple[PendingPayment, ...]:
        """
        Unpaid (PENDING or PARTIAL), unlocked, non-archived costs to pay.

        ``window`` narrows by deadline: TODAY is today's deadline, WEEK is
        today through ``due_soon_days`` ahead (inclusive, the same window as
        the due-this-week bucket), OVERDUE is any deadline before today.
        ALL also lists records without a deadline.

        Ordered by deadline (records without one last), then service date.
        """
        window = PaymentWindow(window)
        today = self._clock.today()

        conditions = [
            OperatorCost.payment_status.in_(
                [PaymentStatus.PENDING.value, PaymentStatus.PARTIAL.value]
            ),
            OperatorCost.is_locked.is_(False),
            OperatorCost.is_archived.is_(False),
        ]
        if window == PaymentWindow.TODAY:
            conditions.append(OperatorCost.payment_deadline == today)
        elif window == PaymentWindow.WEEK:
            conditions.append(OperatorCost.payment_deadline >= today)
            conditions.append(
                OperatorCost.payment_deadline <= today + timedelta(days=self._due_soon_days)
            )
        elif window == PaymentWindow.OVERDUE:
            conditions.append(OperatorCost.payment_deadline < today)
        if service_type is not None:
            conditions.append(OperatorCost.service_type == service_type.value)
        if supplier_id is not None:
            conditions.append(OperatorCost.supplier_id == supplier_id)

        rows = self.session.execute(
            select(OperatorCost, Supplier.name.label("catalog_name"))
            .outerjoin(Supplier, Supplier.id == OperatorCost.supplier_id)
            .where(*conditions)
            .order_by(
                OperatorCost.payment_deadline.is_(None),
                OperatorCost.payment_deadline,
                OperatorCost.service_date,
                OperatorCost.created_at,
            )
        ).all()

        payments = []
        for operator, catalog_name in rows:
            deadline = operator.payment_deadline
            payments.append(
                PendingPayment(
                    operator=operator.to_dto(),
                    supplier_name=(
                        catalog_name
                        or (operator.supplier_name or "").strip()
                        or NO_SUPPLIER_LABEL
                    ),
                    days_overdue=(today - deadline).days if deadline is not None else None,
                )
            )
        return tuple(payments)

    def get_pending_payment_summary(
        self,
        window: PaymentWindow | str = PaymentWindow.ALL,
        service_type: ServiceType | None = None,
        supplier_id: UUID | None = None,
    ) -> PendingPaymentSummary:
        """Totals over ``get_pending_payments()`` with the same filters."""
        return PendingPaymentSummary.of(
            self.get_pending_payments(window, service_type, supplier_id),
            self._due_soon_days,
        )

    # ------------------------------------------------------------------
    # Supplier rollups
    # ------------------------------------------------------------------

    def get_supplier_balance_summary(
        self,
        supplier_type: ServiceType | None = None,
    ) -> tuple[SupplierBalanceRow, ...]:
        """
        Count, total and average operator cost per resolved supplier.

        With ``supplier_type`` only catalog suppliers of that type are
        included; free-text and supplier-less groups carry no type.
        Sorted by total descending, then name.
        """
        return self._supplier_rows(supplier_type=supplier_type)

    def _supplier_rows(
        self,
        supplier_type: ServiceType | None = None,
        conditions: tuple = (),
    ) -> tuple[SupplierBalanceRow, ...]:
        query = (
            select(
                OperatorCost.supplier_id,
                OperatorCost.supplier_name,
                Supplier.name.label("catalog_name"),
                Supplier.type.label("catalog_type"),
                func.count(OperatorCost.id).label("count"),
                func.coalesce(func.sum(OperatorCost.total_cost), 0).label("total"),
            )
            .outerjoin(Supplier, Supplier.id == OperatorCost.supplier_id)
            .where(OperatorCost.is_archived.is_(False), *conditions)
            .group_by(
                OperatorCost.supplier_id,
                OperatorCost.supplier_name,
                Supplier.name,
                Supplier.type,
            )
        )
        if supplier_type is not None:
            query = query.where(Supplier.type == supplier_type.value)

        counts: dict[_SupplierKey, int] = defaultdict(int)
        totals: dict[_SupplierKey, int] = defaultdict(int)
        names: dict[_SupplierKey, str] = {}
        types: dict[_SupplierKey, ServiceType | None] = {}

        for row in self.session.execute(query):
            free_text = (row.supplier_name or "").strip() or None
            if row.supplier_id is not None:
                key = _SupplierKey(supplier_id=row.supplier_id, free_text=None)
                name = row.catalog_name or free_text or NO_SUPPLIER_LABEL
            elif free_text is not None:
                key = _SupplierKey(supplier_id=None, free_text=free_text)
                name = free_text
            else:
                key = _NO_SUPPLIER
                name = NO_SUPPLIER_LABEL

            counts[key] += row.count
            totals[key] += int(row.total)
            names.setdefault(key, name)
            types[key] = ServiceType(row.catalog_type) if row.catalog_type else None

        result = [
            SupplierBalanceRow(
                supplier_id=key.supplier_id,
                supplier_name=names[key],
                count=counts[key],
                total=totals[key],
                average=average_minor_units(totals[key], counts[key]),
                supplier_type=types[key],
            )
            for key in counts
        ]
        result.sort(key=lambda r: (-r.total, r.supplier_name))
        return tuple(result)

    def calculate_supplier_balance(self, supplier_id: UUID) -> SupplierBalance:
        """Deposits + refunds + adjustments - fees - operator costs of one supplier."""
        sums = dict(
            self.session.execute(
                select(SupplierTransaction.type, func.sum(SupplierTransaction.amount))
                .where(SupplierTransaction.supplier_id == supplier_id)
                .group_by(SupplierTransaction.type)
            ).all()
        )
        costs = self.session.scalar(
            select(func.coalesce(func.sum(OperatorCost.total_cost), 0)).where(
                OperatorCost.supplier_id == supplier_id,
                OperatorCost.is_archived.is_(False),
            )
        )
        return SupplierBalance(
            supplier_id=supplier_id,
            deposits=int(sums.get(SupplierTransactionType.DEPOSIT.value) or 0),
            refunds=int(sums.get(SupplierTransactionType.REFUND.value) or 0),
            adjustments=int(sums.get(SupplierTransactionType.ADJUSTMENT.value) or 0),
            fees=int(sums.get(SupplierTransactionType.FEE.value) or 0),
            costs=int(costs or 0),
        )

    # ------------------------------------------------------------------
    # Breakdown
    # ------------------------------------------------------------------

    def get_cost_breakdown(
        self,
        from_date: date | None = None,
        to_date: date | None = None,
        service_type: ServiceType | None = None,
        supplier_id: UUID | None = None,
    ) -> CostBreakdown:
        """
        Operator costs by service type, by supplier and by service month.

        Date bounds apply to ``service_date`` and are inclusive.  Service
        types are ordered by total descending, months ascending.
        """
        conditions = []
        if from_date is not None:
            conditions.append(OperatorCost.service_date >= from_date)
        if to_date is not None:
            conditions.append(OperatorCost.service_date <= to_date)
        if service_type is not None:
            conditions.append(OperatorCost.service_type == service_type.value)
        if supplier_id is not None:
            conditions.append(OperatorCost.supplier_id == supplier_id)

        rows = self.session.execute(
            select(
                OperatorCost.service_type,
                OperatorCost.service_date,
                OperatorCost.total_cost,
            ).where(OperatorCost.is_archived.is_(False), *conditions)
        ).all()

        type_counts: dict[ServiceType, int] = defaultdict(int)
        type_totals: dict[ServiceType, int] = defaultdict(int)
        month_counts: dict[str, int] = defaultdict(int)
        month_totals: dict[str, int] = defaultdict(int)
        for row in rows:
            st = ServiceType(row.service_type)
            type_counts[st] += 1
            type_totals[st] += row.total_cost
            key = month_key(row.service_date)
            month_counts[key] += 1
            month_totals[key] += row.total_cost

        by_service_type = sorted(
            (ServiceTypeTotal(st, type_counts[st], type_totals[st]) for st in type_counts),
            key=lambda t: (-t.total, t.service_type.value),
        )
        by_month = [
            MonthTotal(month, month_counts[month], month_totals[month])
            for month in sorted(month_counts)
        ]

        total_count = len(rows)
        total_cost = sum(type_totals.values())
        return CostBreakdown(
            by_service_type=tuple(by_service_type),
            by_supplier=self._supplier_rows(conditions=tuple(conditions)),
            by_month=tuple(by_month),
            total_count=total_count,
            total_cost=total_cost,
            average_cost=average_minor_units(total_cost, total_count),
        )

    # ------------------------------------------------------------------
    # Period locks
    # ------------------------------------------------------------------

    def get_lock_status(self, month: str) -> PeriodLockStatus:
        """Locked / unlocked counts of non-archived costs serviced in ``month``."""
        start, end = month_bounds(month)
        total, locked = self.session.execute(
            select(
                func.count(OperatorCost.id),
                func.coalesce(
                    func.sum(case((OperatorCost.is_locked.is_(True), 1), else_=0)),
                    0,
                ),
            ).where(
                OperatorCost.service_date >= start,
                OperatorCost.service_date <= end,
                OperatorCost.is_archived.is_(False),
            )
        ).one()
        return PeriodLockStatus(
            month=month,
            total=int(total),
            locked=int(locked),
            unlocked=int(total) - int(locked),
        )
