"""
Step Mastery Engine — the attempt-driven state machine of a GoalStep.

States
------
  pending      no attempts (or every attempt undone)
  in_progress  has attempts, trailing pass-run < MASTERY_THRESHOLD
  done         trailing pass-run >= MASTERY_THRESHOLD

Source of truth
---------------
`goal_attempts` is the ordered log, ordered by (created_at, id). A new
attempt is stamped no earlier than the step's newest one, so that order
matches insertion order even across workers with skewed clocks. The step's
counters are a cached projection of it:

  pass_count          attempts with outcome "pass"
  needs_work_count    attempts with outcome "needs_work"
  consecutive_passes  length of the trailing run of "pass"

Forward recording only appends, so it updates the projection incrementally
(`advance`). Undo removes the newest attempt; the trailing run after that
depends on the whole history, so the projection is rebuilt by `replay`.

Public API
----------
record_attempt(db, step_id, outcome, note, duration_seconds) → AttemptResult
undo_last_attempt(db, step_id)                               → UndoResult
recompute_step(db, step_id)                                  → GoalStep
list_attempts(db, step_id)                                   → (GoalStep, list[GoalAttempt])

Each mutating call is one transaction holding a row lock on the step
(SELECT ... FOR UPDATE), so concurrent attempts on one step serialize while
different steps proceed independently. Any failure rolls the whole
transaction back.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import (
    DogLogException,
    InvalidOutcomeError,
    NothingToUndoError,
    PersistenceError,
    StepNotFoundError,
)
from app.models.goal_step import AttemptOutcome, GoalAttempt, GoalStep, StepStatus

logger = logging.getLogger(__name__)

MASTERY_THRESHOLD = 3


# ---------------------------------------------------------------------------
# Projection (pure, no DB)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MasteryState:
    pass_count: int = 0
    needs_work_count: int = 0
    consecutive_passes: int = 0

    @property
    def total_attempts(self) -> int:
        return self.pass_count + self.needs_work_count

    @property
    def status(self) -> StepStatus:
        if self.total_attempts == 0:
            return StepStatus.pending
        if self.consecutive_passes >= MASTERY_THRESHOLD:
            return StepStatus.done
        return StepStatus.in_progress


def _coerce_outcome(outcome) -> AttemptOutcome:
    if isinstance(outcome, AttemptOutcome):
        return outcome
    try:
        return AttemptOutcome(outcome)
    except ValueError:
        raise InvalidOutcomeError(outcome) from None


def advance(state: MasteryState, outcome) -> MasteryState:
    """Apply one appended attempt to the projection."""
    if _coerce_outcome(outcome) is AttemptOutcome.pass_:
        return MasteryState(
            pass_count=state.pass_count + 1,
            needs_work_count=state.needs_work_count,
            consecutive_passes=state.consecutive_passes + 1,
        )
    return MasteryState(
        pass_count=state.pass_count,
        needs_work_count=state.needs_work_count + 1,
        consecutive_passes=0,
    )


def replay(outcomes: Iterable) -> MasteryState:
    """Rebuild the projection from a chronological list of outcomes."""
    history = [_coerce_outcome(o) for o in outcomes]
    passes = sum(1 for o in history if o is AttemptOutcome.pass_)

    trailing = 0
    for outcome in reversed(history):
        if outcome is not AttemptOutcome.pass_:
            break
        trailing += 1

    return MasteryState(
        pass_count=passes,
        needs_work_count=len(history) - passes,
        consecutive_passes=trailing,
    )


def state_of(step: GoalStep) -> MasteryState:
    return MasteryState(
        pass_count=step.pass_count or 0,
        needs_work_count=step.needs_work_count or 0,
        consecutive_passes=step.consecutive_passes or 0,
    )


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class AttemptResult:
    step: GoalStep
    unchanged: bool
    attempt: Optional[GoalAttempt] = None


@dataclass
class UndoResult:
    step: GoalStep
    undone_outcome: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _attempt_time(db: Session, step_id: int) -> datetime:
    """
    Timestamp for a new attempt, never earlier than the step's newest one.

    Workers' clocks can disagree or step backwards; clamping under the step
    lock keeps (created_at, id) order equal to insertion order.
    """
    now = _now()
    newest = (
        db.query(func.max(GoalAttempt.created_at))
        .filter(GoalAttempt.step_id == step_id)
        .scalar()
    )
    if newest is None:
        return now
    if newest.tzinfo is None:
        newest = newest.replace(tzinfo=timezone.utc)
    return max(now, newest)


def _lock_step(db: Session, step_id: int) -> GoalStep:
    step = (
        db.query(GoalStep)
        .filter(GoalStep.id == step_id)
        .with_for_update()
        .first()
    )
    if step is None:
        raise StepNotFoundError(step_id)
    return step


def _ordered_outcomes(db: Session, step_id: int) -> list[AttemptOutcome]:
    rows = (
        db.query(GoalAttempt.outcome)
        .filter(GoalAttempt.step_id == step_id)
        .order_by(GoalAttempt.created_at.asc(), GoalAttempt.id.asc())
        .all()
    )
    return [outcome for (outcome,) in rows]


def _apply_state(step: GoalStep, state: MasteryState, now: datetime) -> None:
    """Write the projection onto the step; completed_at is stamped once."""
    step.pass_count = state.pass_count
    step.needs_work_count = state.needs_work_count
    step.consecutive_passes = state.consecutive_passes

    new_status = state.status
    if new_status == StepStatus.done:
        if step.completed_at is None:
            step.completed_at = now
    else:
        step.completed_at = None
    step.status = new_status


def _fail(db: Session, exc: SQLAlchemyError, operation: str, step_id: int) -> PersistenceError:
    db.rollback()
    logger.error("%s on step %s rolled back: %s", operation, step_id, exc)
    return PersistenceError(message=f"Could not {operation.replace('_', ' ')}.", operation=operation)


# ---------------------------------------------------------------------------
# Public — record
# ---------------------------------------------------------------------------

def record_attempt(
    db: Session,
    step_id: int,
    outcome,
    note: Optional[str] = None,
    duration_seconds: Optional[int] = None,
) -> AttemptResult:
    """
    Append an attempt and advance the step.
    A step that is already done is returned untouched with unchanged=True.
    """
    outcome = _coerce_outcome(outcome)
    try:
        step = _lock_step(db, step_id)

        if step.status == StepStatus.done:
            # Release the lock; nothing to write.
            db.rollback()
            logger.info("Step %s already mastered; attempt ignored", step_id)
            return AttemptResult(step=step, unchanged=True)

        now = _attempt_time(db, step.id)
        attempt = GoalAttempt(
            step_id=step.id,
            outcome=outcome,
            note=note,
            duration_seconds=duration_seconds,
            created_at=now,
        )
        db.add(attempt)
        _apply_state(step, advance(state_of(step), outcome), now)
        db.commit()
    except DogLogException:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        raise _fail(db, exc, "record_attempt", step_id) from exc

    db.refresh(step)
    logger.info(
        "Recorded %s on step %s (run=%s, status=%s)",
        outcome.value, step.id, step.consecutive_passes, step.status.value,
    )
    return AttemptResult(step=step, unchanged=False, attempt=attempt)


# ---------------------------------------------------------------------------
# Public — undo
# ---------------------------------------------------------------------------

def undo_last_attempt(db: Session, step_id: int) -> UndoResult:
    """
    Delete the newest attempt and rebuild the counters from the remaining log.
    Raises NothingToUndoError (409) when the log is empty.
    """
    try:
        step = _lock_step(db, step_id)

        last: Optional[GoalAttempt] = (
            db.query(GoalAttempt)
            .filter(GoalAttempt.step_id == step.id)
            .order_by(GoalAttempt.created_at.desc(), GoalAttempt.id.desc())
            .first()
        )
        if last is None:
            raise NothingToUndoError(step_id)

        undone = AttemptOutcome(last.outcome).value
        db.delete(last)
        db.flush()

        _apply_state(step, replay(_ordered_outcomes(db, step.id)), _now())
        db.commit()
    except DogLogException:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        raise _fail(db, exc, "undo_last_attempt", step_id) from exc

    db.refresh(step)
    logger.info(
        "Undid %s on step %s (run=%s, status=%s)",
        undone, step.id, step.consecutive_passes, step.status.value,
    )
    return UndoResult(step=step, undone_outcome=undone)


# ---------------------------------------------------------------------------
# Public — recompute / read
# ---------------------------------------------------------------------------

def recompute_step(db: Session, step_id: int) -> GoalStep:
    """Overwrite the cached counters with a full replay of the attempt log."""
    try:
        step = _lock_step(db, step_id)
        before = state_of(step)
        after = replay(_ordered_outcomes(db, step.id))
        _apply_state(step, after, _now())
        db.commit()
    except DogLogException:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        raise _fail(db, exc, "recompute_step", step_id) from exc

    if before != after:
        logger.warning("Step %s counters drifted: %s -> %s", step_id, before, after)
    db.refresh(step)
    return step


def list_attempts(db: Session, step_id: int) -> tuple[GoalStep, list[GoalAttempt]]:
    """Return the step and its attempts in chronological order."""
    step = db.get(GoalStep, step_id)
    if step is None:
        raise StepNotFoundError(step_id)
    attempts = (
        db.query(GoalAttempt)
        .filter(GoalAttempt.step_id == step_id)
        .order_by(GoalAttempt.created_at.asc(), GoalAttempt.id.asc())
        .all()
    )
    return step, attempts
