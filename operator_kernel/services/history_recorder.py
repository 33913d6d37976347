"""
HistoryRecorder -- append-only, hash-chained operator audit trail.

Responsibility:
    Appends one immutable ``HistoryEntry`` per logical mutation of an
    operator cost, reads the trail back newest first with actor display
    names, recomputes the per-entity hash chain, and computes field-level
    diffs between two operator snapshots.

Architecture position:
    Kernel > Services -- imperative shell, called by OperatorMutationService
    inside the same transaction as the state write it describes.

Invariants enforced:
    - Append-only: entries are never updated or deleted (ORM listeners on
      the HistoryEntry model).
    - Per-entity ``seq`` starts at 1 and increases by one per entry.
    - ``hash = H(entity_id | seq | action | payload_hash | prev_hash)`` where
      ``prev_hash`` is the hash of the entity's previous entry.
    - ``changes`` only reference ``OperatorField`` members.

Failure modes:
    - HistoryAppendError when the entry cannot be flushed.  The caller's
      transaction must roll back; the state write it describes is discarded
      with it.
    - HistoryChainBrokenError from ``verify_chain()`` on any mismatch.

Audit relevance:
    This IS the operator audit trail.  The timestamp comes from the injected
    clock and the actor from the explicit ``Actor``, never from ambient state.
"""

from __future__ import annotations

from datetime import timezone
from typing import Iterable, Protocol, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from operator_kernel.domain.clock import Clock, SystemClock
from operator_kernel.domain.dtos import HistoryEntryInfo, OperatorCostInfo
from operator_kernel.domain.values import (
    FieldChange,
    HistoryAction,
    OperatorField,
    to_audit_value,
)
from operator_kernel.exceptions import HistoryAppendError, HistoryChainBrokenError
from operator_kernel.logging_config import get_logger
from operator_kernel.models.history_entry import HistoryEntry
from operator_kernel.models.user import User
from operator_kernel.services.base import BaseService
from operator_kernel.utils.hashing import hash_history_entry, hash_payload, history_payload

logger = get_logger("services.history_recorder")

DEFAULT_UNKNOWN_USER_LABEL = "Unknown"


class UserDirectory(Protocol):
    """Read-only lookup of user display names."""

    def display_name_of(self, user_id: UUID) -> str | None:
        ...

    def display_names_of(self, user_ids: Iterable[UUID]) -> dict[UUID, str]:
        """Names of every known id in ``user_ids``; unknown ids are left out."""
        ...


def names_one_by_one(directory: UserDirectory, user_ids: Iterable[UUID]) -> dict[UUID, str]:
    """``display_names_of`` for directories that can only look up one id at a time."""
    names = {}
    for user_id in set(user_ids):
        name = directory.display_name_of(user_id)
        if name is not None:
            names[user_id] = name
    return names


class SqlUserDirectory:
    """UserDirectory backed by the ``users`` table."""

    def __init__(self, session: Session):
        self._session = session

    def display_name_of(self, user_id: UUID) -> str | None:
        return self._session.scalar(select(User.name).where(User.id == user_id))

    def display_names_of(self, user_ids: Iterable[UUID]) -> dict[UUID, str]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        rows = self._session.execute(select(User.id, User.name).where(User.id.in_(ids)))
        return {row.id: row.name for row in rows}


def diff(before: OperatorCostInfo, after: OperatorCostInfo) -> tuple[FieldChange, ...]:
    """
    Field-level diff of two snapshots of the same operator cost.

    Only ``OperatorField`` members are compared; bookkeeping such as
    ``version`` never shows up.  Order follows the ``OperatorField`` enum.
    """
    changes = []
    for operator_field in OperatorField:
        old = to_audit_value(before.field_value(operator_field))
        new = to_audit_value(after.field_value(operator_field))
        if old != new:
            changes.append(FieldChange(field=operator_field, before=old, after=new))
    return tuple(changes)


class HistoryRecorder(BaseService[HistoryEntry]):
    """
    Writes and reads the operator history.

    Contract:
        ``record()`` appends exactly one entry and flushes it within the
        caller's transaction.  Reads are ordered timestamp descending with
        ``seq`` descending as tie-break.

    Guarantees:
        - No dedup and no merge: two calls produce two entries.
        - Unknown actors are labelled ``unknown_user_label`` on read.

    Non-goals:
        - Does NOT decide whether a mutation is allowed.
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        user_directory: UserDirectory | None = None,
        unknown_user_label: str = DEFAULT_UNKNOWN_USER_LABEL,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._users = user_directory or SqlUserDirectory(session)
        self._unknown_user_label = unknown_user_label

    def _last_entry(self, entity_id: UUID) -> HistoryEntry | None:
        return self.session.scalars(
            select(HistoryEntry)
            .where(HistoryEntry.entity_id == entity_id)
            .order_by(HistoryEntry.seq.desc())
            .limit(1)
        ).one_or_none()

    def record(
        self,
        entity_id: UUID,
        action: HistoryAction,
        changes: Sequence[FieldChange],
        actor_id: UUID,
    ) -> HistoryEntryInfo:
        """
        Append one history entry for ``entity_id``.

        Postconditions:
            - A new ``HistoryEntry`` is flushed with the next per-entity seq
              and a valid chain link to the previous entry.

        Raises:
            HistoryAppendError: The entry could not be written.
        """
        timestamp = self._clock.now().astimezone(timezone.utc)
        change_dicts = [change.to_dict() for change in changes]

        try:
            last = self._last_entry(entity_id)
            seq = last.seq + 1 if last is not None else 1
            prev_hash = last.hash if last is not None else None

            payload_hash = hash_payload(
                history_payload(entity_id, action.value, change_dicts, actor_id, timestamp)
            )
            entry_hash = hash_history_entry(
                entity_id=entity_id,
                seq=seq,
                action=action.value,
                payload_hash=payload_hash,
                prev_hash=prev_hash,
            )

            entry = HistoryEntry(
                entity_id=entity_id,
                seq=seq,
                action=action.value,
                changes=change_dicts,
                user_id=actor_id,
                timestamp=timestamp,
                payload_hash=payload_hash,
                prev_hash=prev_hash,
                hash=entry_hash,
            )
            self.session.add(entry)
            self.session.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "history_append_failed",
                extra={
                    "entity_id": str(entity_id),
                    "action": action.value,
                    "error": str(exc),
                },
            )
            raise HistoryAppendError(str(entity_id), action.value, str(exc)) from exc

        logger.info(
            "history_recorded",
            extra={
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
                "fields": [change.field.value for change in changes],
            },
        )
        return entry.to_dto()

    def get_history(
        self,
        entity_id: UUID,
        limit: int | None = None,
    ) -> tuple[HistoryEntryInfo, ...]:
        """Entries for ``entity_id``, newest first, with actor display names."""
        query = (
            select(HistoryEntry)
            .where(HistoryEntry.entity_id == entity_id)
            .order_by(HistoryEntry.timestamp.desc(), HistoryEntry.seq.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        entries = self.session.scalars(query).all()

        names = self._users.display_names_of({entry.user_id for entry in entries})
        return tuple(
            entry.to_dto(user_name=names.get(entry.user_id, self._unknown_user_label))
            for entry in entries
        )

    def count(self, entity_id: UUID) -> int:
        return self.session.scalar(
            select(func.count()).select_from(HistoryEntry).where(HistoryEntry.entity_id == entity_id)
        )

    def verify_chain(self, entity_id: UUID) -> bool:
        """
        Recompute the hash chain of one operator cost.

        Postconditions:
            - Returns ``True`` only if every entry's payload hash and chain
              hash match the recomputed values, seqs run 1..n without gaps,
              and every ``prev_hash`` equals its predecessor's ``hash``.

        Raises:
            HistoryChainBrokenError: At the first entry that fails.
        """
        entries = self.session.scalars(
            select(HistoryEntry)
            .where(HistoryEntry.entity_id == entity_id)
            .order_by(HistoryEntry.seq)
        ).all()

        prev_hash: str | None = None
        for expected_seq, entry in enumerate(entries, start=1):
            if entry.seq != expected_seq:
                self._chain_broken(entry, str(expected_seq), str(entry.seq))

            if entry.prev_hash != prev_hash:
                self._chain_broken(entry, prev_hash or "None", entry.prev_hash or "None")

            payload_hash = hash_payload(
                history_payload(
                    entry.entity_id,
                    entry.action,
                    entry.changes,
                    entry.user_id,
                    entry.timestamp.astimezone(timezone.utc),
                )
            )
            if payload_hash != entry.payload_hash:
                self._chain_broken(entry, payload_hash, entry.payload_hash)

            expected_hash = hash_history_entry(
                entity_id=entry.entity_id,
                seq=entry.seq,
                action=entry.action,
                payload_hash=payload_hash,
                prev_hash=entry.prev_hash,
            )
            if expected_hash != entry.hash:
                self._chain_broken(entry, expected_hash, entry.hash)

            prev_hash = entry.hash

        return True

    def _chain_broken(self, entry: HistoryEntry, expected: str, actual: str) -> None:
        logger.critical(
            "history_chain_broken",
            extra={
                "entity_id": str(entry.entity_id),
                "seq": entry.seq,
                "expected": expected,
                "actual": actual,
            },
        )
        raise HistoryChainBrokenError(str(entry.entity_id), entry.seq, expected, actual)

    @staticmethod
    def diff(before: OperatorCostInfo, after: OperatorCostInfo) -> tuple[FieldChange, ...]:
        return diff(before, after)
