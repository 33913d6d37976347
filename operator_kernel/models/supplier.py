"""
Module: operator_kernel.models.supplier
Responsibility: Supplier catalog and supplier account movements (deposits,
    refunds, adjustments, fees) read by the balance aggregator.
Architecture position: Kernel > Models.  May import from db/base.py and
    db/types.py only.

Invariants enforced:
    - Supplier.code is unique.
    - Transaction amounts are positive integer minor units; the sign of a
      movement comes from its type, never from the amount.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from operator_kernel.db.base import Base, TrackedBase, UUIDString
from operator_kernel.db.types import MinorUnits


class Supplier(Base):
    """
    Catalog supplier (hotel, transport company, guide, ...).

    ``type`` shares the operator ``ServiceType`` vocabulary so the supplier
    summary can filter by it.
    """

    __tablename__ = "suppliers"

    __table_args__ = (
        UniqueConstraint("code", name="uq_supplier_code"),
        Index("idx_supplier_type", "type"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Supplier {self.code}: {self.name}>"


class SupplierTransaction(TrackedBase):
    """One movement on a supplier's prepaid / credit account."""

    __tablename__ = "supplier_transactions"

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_supplier_transaction_amount"),
        Index("idx_supplier_transaction_supplier", "supplier_id", "transaction_date"),
    )

    supplier_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("suppliers.id"),
        nullable=False,
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[MinorUnits] = mapped_column(nullable=False)
    transaction_date: Mapped[date] = mapped_column(nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<SupplierTransaction {self.type} {self.amount} supplier={self.supplier_id}>"
