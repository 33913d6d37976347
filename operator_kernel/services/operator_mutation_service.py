"""
OperatorMutationService -- guarded payment approval, locking and archiving.

Responsibility:
    The single entry point for changing the financial state of an operator
    cost: approve payment, lock, unlock, batch approve, lock a whole month,
    archive and unarchive.  Each call authorizes the actor, loads the current
    record, runs the transition guard, writes the new state against the
    loaded version and appends exactly one history entry per changed record.

Architecture position:
    Kernel > Services -- imperative shell around the pure guard in
    ``domain/guard.py``.  Persists through ``RecordStore`` and records
    through ``HistoryRecorder``.

Invariants enforced:
    - Role authorization happens before the record is loaded, so an actor
      without rights gets FORBIDDEN and never NOT_FOUND.
    - Lock columns are written together from a ``LockState`` value; a
      half-locked row cannot be produced here.
    - Lost updates are impossible: the UPDATE matches on ``version``.  On a
      miss the fresh state is guarded again and a now-failing guard is
      returned as its typed failure.
    - State write and history entry share the caller's transaction.

Failure modes:
    - Guard rejections and missing records are RETURNED as
      ``MutationResult.failure`` / ``BatchResult.failure``; they are never
      raised.
    - ConcurrentModificationError when a concurrent change leaves the guard
      passing (an unrelated edit) or happens inside a batch.
    - HistoryAppendError / PersistenceError from the store or recorder;
      the caller rolls back.

Audit relevance:
    Every successful transition produces one HistoryEntry whose before/after
    values equal the record's field values before and after the write.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from operator_kernel.db.record_store import RecordStore
from operator_kernel.domain import guard
from operator_kernel.domain.clock import Clock, SystemClock
from operator_kernel.domain.dtos import (
    BatchResult,
    HistoryEntryInfo,
    MutationResult,
    OperatorCostInfo,
    TransitionFailure,
)
from operator_kernel.domain.period import month_bounds
from operator_kernel.domain.values import (
    UNLOCKED,
    Actor,
    FieldChange,
    HistoryAction,
    Locked,
    OperatorField,
    PaymentStatus,
    Transition,
    lock_state_columns,
)
from operator_kernel.exceptions import (
    ConcurrentModificationError,
    RecordNotFoundError,
    TransitionError,
)
from operator_kernel.logging_config import LogContext, get_logger
from operator_kernel.models.operator_cost import OperatorCost
from operator_kernel.services.base import BaseService
from operator_kernel.services.history_recorder import HistoryRecorder

logger = get_logger("services.operator_mutation")

PatchBuilder = Callable[[OperatorCostInfo], dict[str, Any]]

_LOCK_FIELDS = (OperatorField.IS_LOCKED, OperatorField.LOCKED_AT, OperatorField.LOCKED_BY)


@dataclass(frozen=True)
class _TransitionSpec:
    """How a transition is persisted and recorded."""

    action: HistoryAction
    recorded_fields: tuple[OperatorField, ...]
    success_event: str


_TRANSITIONS: dict[Transition, _TransitionSpec] = {
    Transition.APPROVE: _TransitionSpec(
        action=HistoryAction.APPROVE,
        recorded_fields=(OperatorField.PAYMENT_STATUS, OperatorField.PAYMENT_DATE),
        success_event="operator_payment_approved",
    ),
    Transition.LOCK: _TransitionSpec(
        action=HistoryAction.LOCK,
        recorded_fields=_LOCK_FIELDS,
        success_event="operator_locked",
    ),
    Transition.UNLOCK: _TransitionSpec(
        action=HistoryAction.UNLOCK,
        recorded_fields=_LOCK_FIELDS,
        success_event="operator_unlocked",
    ),
    Transition.ARCHIVE: _TransitionSpec(
        action=HistoryAction.ARCHIVE,
        recorded_fields=(OperatorField.IS_ARCHIVED,),
        success_event="operators_archived",
    ),
    Transition.UNARCHIVE: _TransitionSpec(
        action=HistoryAction.UNARCHIVE,
        recorded_fields=(OperatorField.IS_ARCHIVED,),
        success_event="operators_unarchived",
    ),
}


class OperatorMutationService(BaseService[OperatorCost]):
    """
    Guarded transitions of operator costs.

    Contract:
        Every method takes an explicit ``Actor``.  The caller owns the
        transaction; this service only flushes.

    Guarantees:
        - A successful result carries the post-write snapshot (and, for single
          transitions, the one history entry written for it).
        - A failed result wrote nothing.
        - Single transitions are not idempotent: retrying a committed success
          fails the guard (ALREADY_PAID, ALREADY_LOCKED or NOT_LOCKED).
          Archive and unarchive skip records already in the target state.

    Non-goals:
        - Does NOT create or edit operator costs outside the guarded
          transitions.
        - Does NOT retry on ConcurrentModificationError.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        history: HistoryRecorder | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._store: RecordStore[OperatorCost] = RecordStore(session, OperatorCost)
        self._history = history or HistoryRecorder(session, self._clock)

    # ------------------------------------------------------------------
    # Single-record transitions
    # ------------------------------------------------------------------

    def approve_payment(
        self,
        operator_id: UUID,
        actor: Actor,
        payment_date: date | None = None,
    ) -> MutationResult:
        """
        Mark an operator cost PAID.

        ``payment_date`` defaults to the clock's current UTC date.
        """
        paid_on = payment_date or self._clock.today()
        return self._apply(
            Transition.APPROVE,
            operator_id,
            actor,
            lambda current: _approve_patch(paid_on),
        )

    def lock(self, operator_id: UUID, actor: Actor) -> MutationResult:
        """Freeze an operator cost; only an ADMIN unlock can change it afterwards."""
        locked_at = self._clock.now()
        return self._apply(
            Transition.LOCK,
            operator_id,
            actor,
            lambda current: lock_state_columns(Locked(at=locked_at, by=actor.id)),
        )

    def unlock(self, operator_id: UUID, actor: Actor) -> MutationResult:
        """Release a lock.  ADMIN only; checked before the record is read."""
        return self._apply(
            Transition.UNLOCK,
            operator_id,
            actor,
            lambda current: lock_state_columns(UNLOCKED),
        )

    def _apply(
        self,
        transition: Transition,
        operator_id: UUID,
        actor: Actor,
        build_patch: PatchBuilder,
    ) -> MutationResult:
        with LogContext.bind(actor=actor, operator_id=operator_id, transition=transition):
            forbidden = guard.authorize(transition, actor.role)
            if forbidden is not None:
                return MutationResult.rejected(self._reject(forbidden, operator_id))

            row = self._store.find_by_id(operator_id)
            current = row.to_dto() if row is not None else None

            error = guard.check_state(transition, current, operator_id)
            if error is not None:
                return MutationResult.rejected(self._reject(error, operator_id))

            try:
                updated, entry = self._write(transition, current, actor, build_patch)
            except (ConcurrentModificationError, RecordNotFoundError):
                fresh_row = self._store.find_by_id(operator_id)
                fresh = fresh_row.to_dto() if fresh_row is not None else None
                error = guard.check_state(transition, fresh, operator_id)
                if error is not None:
                    logger.warning("transition_lost_race", extra={"code": error.code})
                    return MutationResult.rejected(self._reject(error, operator_id))
                logger.error("transition_conflict")
                raise

            logger.info(
                _TRANSITIONS[transition].success_event,
                extra={"version": updated.version, "history_seq": entry.seq},
            )
            return MutationResult.succeeded(updated, entry)

    def _write(
        self,
        transition: Transition,
        current: OperatorCostInfo,
        actor: Actor,
        build_patch: PatchBuilder,
    ) -> tuple[OperatorCostInfo, HistoryEntryInfo]:
        """Predicate update against ``current.version`` followed by the history append."""
        spec = _TRANSITIONS[transition]
        patch = build_patch(current)
        patch["version"] = current.version + 1
        patch["updated_by_id"] = actor.id

        updated = self._store.update(
            current.id,
            patch,
            expected={"version": current.version},
        ).to_dto()

        changes = [
            FieldChange.of(
                operator_field,
                current.field_value(operator_field),
                updated.field_value(operator_field),
            )
            for operator_field in spec.recorded_fields
        ]
        entry = self._history.record(current.id, spec.action, changes, actor.id)
        return updated, entry

    def _reject(self, error: TransitionError, operator_id: UUID | None) -> TransitionFailure:
        failure = TransitionFailure.from_error(error, operator_id)
        logger.warning("transition_rejected", extra={"failure": failure})
        return failure

    # ------------------------------------------------------------------
    # Batch transitions
    # ------------------------------------------------------------------

    def approve_payments(
        self,
        operator_ids: Sequence[UUID],
        actor: Actor,
        payment_date: date | None = None,
    ) -> BatchResult:
        """
        Approve several operator costs as one unit.

        Every id must exist and pass the APPROVE guard; the first failure
        rejects the whole batch before anything is written.  Each approved
        record gets its own APPROVE history entry.

        Raises:
            ConcurrentModificationError: A record changed between the batch
                check and its write.  Earlier writes of the batch are in the
                session; the caller must roll back.
        """
        paid_on = payment_date or self._clock.today()

        with LogContext.bind(actor=actor, transition=Transition.APPROVE):
            snapshots, failure = self._check_batch(Transition.APPROVE, operator_ids, actor)
            if failure is not None:
                return BatchResult(failure=failure)

            approved = self._write_batch(
                Transition.APPROVE,
                snapshots,
                actor,
                lambda current: _approve_patch(paid_on),
            )

            result = BatchResult(operators=tuple(approved))
            logger.info(
                "operator_payments_approved",
                extra={
                    "count": result.count,
                    "total_cost": result.total_cost,
                    "payment_date": paid_on,
                },
            )
            return result

    def archive(self, operator_ids: Sequence[UUID], actor: Actor) -> BatchResult:
        """
        Archive operator costs; reports and listings no longer include them.

        All-or-nothing like ``approve_payments``: every id must exist and be
        unlocked.  Records that are already archived are left untouched and
        get no history entry; ``operators`` holds only the records changed.
        """
        return self._set_archived(Transition.ARCHIVE, operator_ids, actor, archived=True)

    def unarchive(self, operator_ids: Sequence[UUID], actor: Actor) -> BatchResult:
        """Restore archived operator costs.  ADMIN only; otherwise as ``archive``."""
        return self._set_archived(Transition.UNARCHIVE, operator_ids, actor, archived=False)

    def _set_archived(
        self,
        transition: Transition,
        operator_ids: Sequence[UUID],
        actor: Actor,
        archived: bool,
    ) -> BatchResult:
        with LogContext.bind(actor=actor, transition=transition):
            snapshots, failure = self._check_batch(transition, operator_ids, actor)
            if failure is not None:
                return BatchResult(failure=failure)

            pending = [current for current in snapshots if current.is_archived != archived]
            written = self._write_batch(
                transition,
                pending,
                actor,
                lambda current: {"is_archived": archived},
            )

            result = BatchResult(operators=tuple(written))
            logger.info(
                _TRANSITIONS[transition].success_event,
                extra={"count": result.count, "unchanged": len(snapshots) - len(pending)},
            )
            return result

    def lock_period(self, month: str, actor: Actor) -> BatchResult:
        """
        Lock every unlocked, non-archived operator cost serviced in ``month``.

        Raises:
            InvalidPeriodError: ``month`` is not ``YYYY-MM`` (checked after
                the role, so an unauthorized actor always gets FORBIDDEN).
            ConcurrentModificationError: A record changed between selection
                and write; the caller must roll back.
        """
        with LogContext.bind(actor=actor, transition=Transition.LOCK, month=month):
            forbidden = guard.authorize(Transition.LOCK, actor.role)
            if forbidden is not None:
                return BatchResult(failure=self._reject(forbidden, None))

            start, end = month_bounds(month)
            rows = self.session.scalars(
                select(OperatorCost)
                .where(
                    OperatorCost.service_date >= start,
                    OperatorCost.service_date <= end,
                    OperatorCost.is_locked.is_(False),
                    OperatorCost.is_archived.is_(False),
                )
                .order_by(OperatorCost.service_date, OperatorCost.created_at)
                .execution_options(populate_existing=True)
            ).all()

            locked_at = self._clock.now()
            locked = self._write_batch(
                Transition.LOCK,
                [row.to_dto() for row in rows],
                actor,
                lambda current: lock_state_columns(Locked(at=locked_at, by=actor.id)),
            )

            result = BatchResult(operators=tuple(locked))
            logger.info("operator_period_locked", extra={"count": result.count})
            return result

    def _check_batch(
        self,
        transition: Transition,
        operator_ids: Sequence[UUID],
        actor: Actor,
    ) -> tuple[list[OperatorCostInfo], TransitionFailure | None]:
        """
        Authorize, then guard every id of a batch in request order.

        Duplicate ids are checked once.  The first failing id rejects the
        batch.
        """
        forbidden = guard.authorize(transition, actor.role)
        if forbidden is not None:
            return [], self._reject(forbidden, None)

        ids = list(dict.fromkeys(operator_ids))
        rows = self._store.find_many(ids)
        snapshots: list[OperatorCostInfo] = []
        for operator_id in ids:
            row = rows.get(operator_id)
            current = row.to_dto() if row is not None else None
            error = guard.check_state(transition, current, operator_id)
            if error is not None:
                return [], self._reject(error, operator_id)
            snapshots.append(current)
        return snapshots, None

    def _write_batch(
        self,
        transition: Transition,
        snapshots: Sequence[OperatorCostInfo],
        actor: Actor,
        build_patch: PatchBuilder,
    ) -> list[OperatorCostInfo]:
        written = []
        for current in snapshots:
            with LogContext.bind(operator_id=current.id):
                try:
                    updated, _ = self._write(transition, current, actor, build_patch)
                except ConcurrentModificationError:
                    logger.error("batch_transition_conflict")
                    raise
            written.append(updated)
        return written


def _approve_patch(payment_date: date) -> dict[str, Any]:
    return {
        "payment_status": PaymentStatus.PAID.value,
        "payment_date": payment_date,
    }
