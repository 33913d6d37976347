"""
Module: operator_kernel.models.follow_up_status
Responsibility: Configurable follow-up statuses for customer requests, shown
    in ``sort_order``.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from sqlalchemy import Boolean, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from operator_kernel.db.base import Base


class FollowUpStatus(Base):
    """A named follow-up stage; ``key`` is the stable identifier."""

    __tablename__ = "follow_up_statuses"

    __table_args__ = (
        UniqueConstraint("key", name="uq_follow_up_status_key"),
    )

    key: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<FollowUpStatus {self.key} #{self.sort_order}>"
