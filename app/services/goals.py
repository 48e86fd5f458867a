"""
Goal service: goal CRUD, single-active activation, and step management.

Public API
----------
list_goals(db)                               → list[Goal]
get_goal(db, goal_id)                        → Goal
create_goal(db, draft, steps, activate)      → (Goal, list[GoalStep])
update_goal(db, goal_id, fields)             → Goal
set_goal_status(db, goal_id, status)         → Goal
activate_goal(db, goal_id)                   → Goal
update_step(db, step_id, fields)             → GoalStep

Internal (flush only, caller commits)
--------
append_steps(db, goal, drafts, ai_generated) → list[GoalStep]

Single active goal
------------------
Activation runs in one transaction: lock the target, lock and pause any
other active goal, flush, then promote the target. Other transactions never
see zero or two active goals. The partial unique index on status='active'
rejects a racing activation or activating create; that transaction is retried
from scratch.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.errors import GoalNotFoundError, PersistenceError, StepNotFoundError
from app.models.goal import Goal, GoalStatus
from app.models.goal_step import GoalStep, StepStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_PRIORITY = 3
DEFAULT_MINUTES = 10
MIN_MINUTES, MAX_MINUTES = 5, 30
_ACTIVATION_ATTEMPTS = 3

GOAL_FIELDS = ("title", "description", "priority", "target_date", "success_criteria")
STEP_FIELDS = (
    "title", "details", "success_criteria", "estimated_minutes",
    "scheduled_for", "completion_notes",
)


@dataclass
class GoalDraft:
    title: str
    description: Optional[str] = None
    priority: Optional[int] = None
    target_date: Optional[date] = None
    success_criteria: Optional[str] = None


@dataclass
class StepDraft:
    title: str
    details: Optional[str] = None
    success_criteria: Optional[str] = None
    estimated_minutes: Any = DEFAULT_MINUTES
    scheduled_for: Optional[date] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def clamp_minutes(value: Any) -> int:
    """Coerce to an int within 5–30 minutes; non-numeric → 10."""
    try:
        n = float(value)
    except (TypeError, ValueError):
        return DEFAULT_MINUTES
    if n != n or n in (float("inf"), float("-inf")):
        return DEFAULT_MINUTES
    return min(MAX_MINUTES, max(MIN_MINUTES, round(n)))


def _clean_step(draft: StepDraft) -> Optional[StepDraft]:
    title = (draft.title or "").strip()
    if not title:
        return None
    details = (draft.details or "").strip()[:500] or None
    return StepDraft(
        title=title[:120],
        details=details,
        success_criteria=(draft.success_criteria or "").strip() or None,
        estimated_minutes=clamp_minutes(
            DEFAULT_MINUTES if draft.estimated_minutes is None else draft.estimated_minutes
        ),
        scheduled_for=draft.scheduled_for,
    )


def _next_step_order(db: Session, goal_id: int) -> int:
    current_max = (
        db.query(func.max(GoalStep.step_order))
        .filter(GoalStep.goal_id == goal_id)
        .scalar()
    )
    return 0 if current_max is None else current_max + 1


def _demote_active(db: Session, exclude_id: Optional[int] = None) -> list[int]:
    q = db.query(Goal).filter(Goal.status == GoalStatus.active)
    if exclude_id is not None:
        q = q.filter(Goal.id != exclude_id)
    demoted = []
    for other in q.with_for_update().all():
        other.status = GoalStatus.paused
        demoted.append(other.id)
    # Demotion must hit the table before promotion (partial unique index).
    db.flush()
    return demoted


def _persistence_error(db: Session, exc: SQLAlchemyError, operation: str) -> PersistenceError:
    db.rollback()
    logger.error("%s rolled back: %s", operation, exc)
    return PersistenceError(f"Could not {operation.replace('_', ' ')}.", operation=operation)


def _retry_activation(db: Session, operation: str, work: Callable[[], T]) -> T:
    """
    Run `work` (which commits) until it gets past uq_goals_single_active.

    A concurrent transaction can commit a newly active goal that our demote
    step never saw; the index then rejects our promote. The whole unit of
    work is rolled back and run again, so it re-reads the current active goal.
    """
    for attempt in range(1, _ACTIVATION_ATTEMPTS + 1):
        try:
            return work()
        except IntegrityError as exc:
            db.rollback()
            if attempt == _ACTIVATION_ATTEMPTS:
                logger.error("%s kept conflicting on the active goal: %s", operation, exc)
                raise PersistenceError(
                    f"Could not {operation.replace('_', ' ')}.", operation=operation
                ) from exc
            logger.info("%s raced another activation; retrying (%d/%d)", operation, attempt, _ACTIVATION_ATTEMPTS)
        except SQLAlchemyError as exc:
            raise _persistence_error(db, exc, operation) from exc


# ---------------------------------------------------------------------------
# Public — read
# ---------------------------------------------------------------------------

def list_goals(db: Session) -> list[Goal]:
    """All goals with their steps, newest first."""
    return (
        db.query(Goal)
        .options(selectinload(Goal.steps))
        .order_by(Goal.created_at.desc(), Goal.id.desc())
        .all()
    )


def get_goal(db: Session, goal_id: int) -> Goal:
    goal = db.get(Goal, goal_id)
    if goal is None:
        raise GoalNotFoundError(goal_id)
    return goal


# ---------------------------------------------------------------------------
# Public — steps
# ---------------------------------------------------------------------------

def append_steps(
    db: Session,
    goal: Goal,
    drafts: list[StepDraft],
    ai_generated: bool = False,
) -> list[GoalStep]:
    """
    Append steps after the goal's current last step_order.
    Orders are never reused. Flushes but does NOT commit.
    """
    order = _next_step_order(db, goal.id)
    inserted = []
    for draft in drafts:
        clean = _clean_step(draft)
        if clean is None:
            continue
        step = GoalStep(
            goal_id=goal.id,
            step_order=order,
            title=clean.title,
            details=clean.details,
            success_criteria=clean.success_criteria,
            estimated_minutes=clean.estimated_minutes,
            scheduled_for=clean.scheduled_for,
            status=StepStatus.pending,
            pass_count=0,
            needs_work_count=0,
            consecutive_passes=0,
            ai_generated=ai_generated,
        )
        db.add(step)
        inserted.append(step)
        order += 1
    db.flush()
    return inserted


def update_step(db: Session, step_id: int, fields: dict[str, Any]) -> GoalStep:
    """Update descriptive step fields. Status and counters are never touched here."""
    step = db.get(GoalStep, step_id)
    if step is None:
        raise StepNotFoundError(step_id)
    for name, value in fields.items():
        if name not in STEP_FIELDS or (name == "title" and value is None):
            continue
        if name == "estimated_minutes" and value is not None:
            value = clamp_minutes(value)
        setattr(step, name, value)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        raise _persistence_error(db, exc, "update_step") from exc
    db.refresh(step)
    return step


# ---------------------------------------------------------------------------
# Public — goals
# ---------------------------------------------------------------------------

def create_goal(
    db: Session,
    draft: GoalDraft,
    steps: Optional[list[StepDraft]] = None,
    activate: bool = True,
) -> tuple[Goal, list[GoalStep]]:
    """Insert a goal and its hand-written steps in one transaction."""

    def insert() -> tuple[Goal, list[GoalStep]]:
        if activate:
            _demote_active(db)
        goal = Goal(
            title=draft.title.strip(),
            description=draft.description,
            priority=draft.priority if draft.priority is not None else DEFAULT_PRIORITY,
            target_date=draft.target_date,
            success_criteria=draft.success_criteria,
            status=GoalStatus.active if activate else GoalStatus.draft,
        )
        db.add(goal)
        db.flush()
        inserted = append_steps(db, goal, steps or [], ai_generated=False)
        db.commit()
        return goal, inserted

    goal, inserted = _retry_activation(db, "create_goal", insert)
    db.refresh(goal)
    logger.info("Created goal %s (%s) with %d step(s)", goal.id, goal.status.value, len(inserted))
    return goal, inserted


def update_goal(db: Session, goal_id: int, fields: dict[str, Any]) -> Goal:
    goal = get_goal(db, goal_id)
    for name, value in fields.items():
        if name not in GOAL_FIELDS:
            continue
        if name in ("title", "priority") and value is None:
            continue
        setattr(goal, name, value)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        raise _persistence_error(db, exc, "update_goal") from exc
    db.refresh(goal)
    return goal


def activate_goal(db: Session, goal_id: int) -> Goal:
    """Make `goal_id` the single active goal, pausing whichever was active."""

    def promote() -> tuple[Goal, list[int]]:
        goal = (
            db.query(Goal)
            .filter(Goal.id == goal_id)
            .with_for_update()
            .first()
        )
        if goal is None:
            db.rollback()
            raise GoalNotFoundError(goal_id)
        demoted = _demote_active(db, exclude_id=goal.id)
        goal.status = GoalStatus.active
        db.commit()
        return goal, demoted

    goal, demoted = _retry_activation(db, "activate_goal", promote)
    db.refresh(goal)
    logger.info("Activated goal %s (paused: %s)", goal.id, demoted or "none")
    return goal


def set_goal_status(db: Session, goal_id: int, status: str) -> Goal:
    """Transition a goal's status; `active` goes through activate_goal."""
    target = GoalStatus(status)
    if target == GoalStatus.active:
        return activate_goal(db, goal_id)

    goal = get_goal(db, goal_id)
    goal.status = target
    try:
        db.commit()
    except SQLAlchemyError as exc:
        raise _persistence_error(db, exc, "set_goal_status") from exc
    db.refresh(goal)
    logger.info("Goal %s is now %s", goal.id, target.value)
    return goal
