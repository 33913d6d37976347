"""
Module: operator_kernel.models.history_entry
Responsibility: ORM persistence for the operator cost audit trail.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value types only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (ORM listeners in db/immutability.py).
    - (entity_id, seq) is unique; seq starts at 1 per operator cost.
    - hash = H(entity_id | seq | action | payload_hash | prev_hash); the
      first entry of an entity has prev_hash = NULL.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - IntegrityError if two writers allocate the same seq for one entity.

Audit relevance:
    This table IS the operator audit trail.  Each row is one logical
    mutation stored as typed before/after field changes.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from operator_kernel.db.base import Base, UUIDString
from operator_kernel.db.types import PayloadHash
from operator_kernel.domain.dtos import HistoryEntryInfo
from operator_kernel.domain.values import FieldChange, HistoryAction


class HistoryEntry(Base):
    """
    One immutable history record for an operator cost.

    Contract:
        Written only by HistoryRecorder, inside the transaction of the
        mutation it describes.

    Guarantees:
        - ``changes`` holds ``FieldChange.to_dict()`` items in diff order.
        - ``timestamp`` comes from the injected clock, not the database.

    Non-goals:
        - Does not verify its own hash; see HistoryRecorder.verify_chain().
    """

    __tablename__ = "operator_history"

    __table_args__ = (
        UniqueConstraint("entity_id", "seq", name="uq_operator_history_entity_seq"),
        Index("idx_operator_history_entity_ts", "entity_id", "timestamp"),
        Index("idx_operator_history_user", "user_id"),
    )

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    seq: Mapped[int] = mapped_column(nullable=False)

    action: Mapped[str] = mapped_column(String(20), nullable=False)

    changes: Mapped[list] = mapped_column(JSON, nullable=False)

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    timestamp: Mapped[datetime] = mapped_column(nullable=False)

    payload_hash: Mapped[PayloadHash] = mapped_column(String(64), nullable=False)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # hash = H(entity_id | seq | action | payload_hash | prev_hash)
    hash: Mapped[PayloadHash] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<HistoryEntry {self.action} on {self.entity_id} seq={self.seq}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None

    @property
    def field_changes(self) -> tuple[FieldChange, ...]:
        return tuple(FieldChange.from_dict(item) for item in self.changes)

    def to_dto(self, user_name: str | None = None) -> HistoryEntryInfo:
        """Convert ORM model to frozen domain DTO."""
        return HistoryEntryInfo(
            id=self.id,
            entity_id=self.entity_id,
            seq=self.seq,
            action=HistoryAction(self.action),
            changes=self.field_changes,
            user_id=self.user_id,
            timestamp=self.timestamp,
            hash=self.hash,
            user_name=user_name,
        )
