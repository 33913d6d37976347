"""
Module: operator_kernel.db.record_store
Responsibility: Generic record-store adapter over a SQLAlchemy session:
    find-by-id, predicate update, upsert and all-or-nothing batch update.
Architecture position: Kernel > DB.  Used by services/; takes the model class
    as a parameter so it never imports models/ itself.

Invariants enforced:
    - ``update()`` with ``expected`` is a compare-and-set: the UPDATE carries
      the expected column values in its WHERE clause and affects zero rows if
      any of them changed since the caller read the record.
    - ``transactional_batch_update()`` verifies every id before the first
      write; one unknown id rejects the whole batch.
    - The store flushes, never commits.

Failure modes:
    - RecordNotFoundError when ``update()`` targets a missing id.
    - ConcurrentModificationError when the row exists but the predicate no
      longer matches.
    - BatchReferenceError when a batch references unknown ids.
    - PersistenceError wrapping any SQLAlchemyError.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generic, Iterator, Mapping, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from operator_kernel.db.base import Base
from operator_kernel.exceptions import (
    BatchReferenceError,
    ConcurrentModificationError,
    PersistenceError,
    RecordNotFoundError,
)
from operator_kernel.logging_config import get_logger

logger = get_logger("db.record_store")

ModelType = TypeVar("ModelType", bound=Base)


class RecordStore(Generic[ModelType]):
    """
    Persistence port for one model class.

    Contract:
        Every method runs inside the caller's transaction.  Reads always
        return fresh database state (``populate_existing``), never a stale
        identity-map copy.

    Non-goals:
        - Does not decide whether a change is allowed; that is the guard's job.
        - Does not write history.
    """

    def __init__(self, session: Session, model: type[ModelType]):
        self.session = session
        self.model = model
        self.entity_type = model.__name__

    @contextmanager
    def _translate_errors(self, operation: str, entity_id: Any = None) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.error(
                "record_store_failure",
                extra={
                    "entity_type": self.entity_type,
                    "entity_id": str(entity_id) if entity_id is not None else None,
                    "operation": operation,
                    "error": str(exc),
                },
            )
            raise PersistenceError(
                f"{operation} on {self.entity_type} failed: {exc}"
            ) from exc

    def find_by_id(self, record_id: UUID) -> ModelType | None:
        """Load the current row, or None if it does not exist."""
        with self._translate_errors("find_by_id", record_id):
            return self.session.get(self.model, record_id, populate_existing=True)

    def find_many(self, record_ids: Sequence[UUID]) -> dict[UUID, ModelType]:
        """Load several rows keyed by id; missing ids are absent from the result."""
        if not record_ids:
            return {}
        with self._translate_errors("find_many"):
            rows = self.session.scalars(
                select(self.model)
                .where(self.model.id.in_(list(record_ids)))
                .execution_options(populate_existing=True)
            ).all()
        return {row.id: row for row in rows}

    def update(
        self,
        record_id: UUID,
        patch: Mapping[str, Any],
        expected: Mapping[str, Any] | None = None,
    ) -> ModelType:
        """
        Apply ``patch`` to one row, optionally only if ``expected`` still holds.

        Returns:
            The row reloaded after the write.

        Raises:
            RecordNotFoundError: No row has ``record_id``.
            ConcurrentModificationError: The row exists but ``expected`` no
                longer matches.
        """
        conditions = [self.model.id == record_id]
        for column, value in (expected or {}).items():
            conditions.append(getattr(self.model, column) == value)

        with self._translate_errors("update", record_id):
            result = self.session.execute(
                update(self.model)
                .where(*conditions)
                .values(**patch)
                .execution_options(synchronize_session=False)
            )
            matched = result.rowcount

        if matched == 0:
            if self._exists(record_id):
                raise ConcurrentModificationError(self.entity_type, str(record_id))
            raise RecordNotFoundError(self.entity_type, str(record_id))

        refreshed = self.find_by_id(record_id)
        if refreshed is None:
            raise RecordNotFoundError(self.entity_type, str(record_id))
        return refreshed

    def upsert(
        self,
        match: Mapping[str, Any],
        values: Mapping[str, Any],
    ) -> tuple[ModelType, bool]:
        """
        Update the single row matching ``match`` or insert a new one.

        Returns:
            ``(row, created)``.
        """
        conditions = [getattr(self.model, column) == value for column, value in match.items()]
        with self._translate_errors("upsert"):
            row = self.session.scalars(select(self.model).where(*conditions)).one_or_none()
            created = row is None
            if created:
                row = self.model(**{**match, **values})
                self.session.add(row)
            else:
                for column, value in values.items():
                    setattr(row, column, value)
            self.session.flush()
        return row, created

    def transactional_batch_update(
        self,
        updates: Sequence[tuple[UUID, Mapping[str, Any]]],
    ) -> list[ModelType]:
        """
        Apply several patches as one unit.

        Every id is checked before the first write, so a missing id leaves
        the store untouched.

        Raises:
            BatchReferenceError: At least one id does not exist.
        """
        ids = [record_id for record_id, _ in updates]
        with self._translate_errors("batch_verify"):
            found = set(
                self.session.scalars(
                    select(self.model.id).where(self.model.id.in_(ids))
                ).all()
            )
        missing = [str(record_id) for record_id in ids if record_id not in found]
        if missing:
            logger.warning(
                "batch_update_rejected",
                extra={"entity_type": self.entity_type, "missing_ids": missing},
            )
            raise BatchReferenceError(self.entity_type, missing)

        with self._translate_errors("batch_update"):
            for record_id, patch in updates:
                self.session.execute(
                    update(self.model)
                    .where(self.model.id == record_id)
                    .values(**patch)
                    .execution_options(synchronize_session=False)
                )
            self.session.flush()

        rows = self.find_many(ids)
        logger.info(
            "batch_update_applied",
            extra={"entity_type": self.entity_type, "count": len(updates)},
        )
        return [rows[record_id] for record_id in ids]

    def _exists(self, record_id: UUID) -> bool:
        with self._translate_errors("exists", record_id):
            return (
                self.session.scalar(select(self.model.id).where(self.model.id == record_id))
                is not None
            )
