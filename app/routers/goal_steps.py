"""
Goal steps router — step edits and the attempt log.

PATCH /goal-steps/{id}                 — edit descriptive fields
GET   /goal-steps/{id}/attempts        — attempt history (oldest first)
POST  /goal-steps/{id}/attempt         — record pass / needs_work
POST  /goal-steps/{id}/attempt/undo    — remove the newest attempt
POST  /goal-steps/{id}/recompute       — rebuild counters from the log
"""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.models.goal_step import GoalAttempt, GoalStep
from app.schemas.common import ErrorResponse
from app.schemas.goals import (
    AttemptListResponse,
    AttemptOut,
    AttemptRequest,
    AttemptResponse,
    StepEnvelope,
    StepOut,
    StepUpdate,
    UndoResponse,
)
from app.services.goals import update_step
from app.services.step_mastery import (
    list_attempts,
    recompute_step,
    record_attempt,
    undo_last_attempt,
)

router = APIRouter(prefix="/goal-steps", tags=["goal-steps"])

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Step not found."}}


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _ev(v) -> str:
    return v.value if hasattr(v, "value") else str(v)


def step_to_response(step: GoalStep) -> StepOut:
    return StepOut(
        id=step.id,
        goal_id=step.goal_id,
        step_order=step.step_order,
        title=step.title,
        details=step.details,
        success_criteria=step.success_criteria,
        status=_ev(step.status),
        estimated_minutes=step.estimated_minutes,
        scheduled_for=str(step.scheduled_for) if step.scheduled_for else None,
        pass_count=step.pass_count,
        needs_work_count=step.needs_work_count,
        consecutive_passes=step.consecutive_passes,
        ai_generated=step.ai_generated,
        completion_notes=step.completion_notes,
        completed_at=step.completed_at.isoformat() if step.completed_at else None,
    )


def _attempt_to_response(attempt: GoalAttempt) -> AttemptOut:
    return AttemptOut(
        id=attempt.id,
        outcome=_ev(attempt.outcome),
        note=attempt.note,
        duration_seconds=attempt.duration_seconds,
        created_at=attempt.created_at.isoformat() if attempt.created_at else "",
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.patch(
    "/{step_id}",
    response_model=StepEnvelope,
    summary="Edit a step's descriptive fields",
    responses=_NOT_FOUND,
)
def patch_step(step_id: int, body: StepUpdate, db: Session = Depends(get_db)):
    """
    Status and counters are not editable here; they follow the attempt log.
    """
    step = update_step(db, step_id, body.model_dump(exclude_unset=True))
    return StepEnvelope(step=step_to_response(step))


@router.get(
    "/{step_id}/attempts",
    response_model=AttemptListResponse,
    summary="List a step's attempts (oldest first)",
    responses=_NOT_FOUND,
)
def get_attempts(step_id: int, db: Session = Depends(get_db)):
    step, attempts = list_attempts(db, step_id)
    return AttemptListResponse(
        step_id=step.id,
        attempts=[_attempt_to_response(a) for a in attempts],
    )


@router.post(
    "/{step_id}/attempt",
    response_model=AttemptResponse,
    response_model_exclude_unset=True,
    summary="Record a training attempt",
    responses=_NOT_FOUND,
)
def post_attempt(step_id: int, body: AttemptRequest, db: Session = Depends(get_db)):
    """
    Record `pass` or `needs_work` for the step.

    | Run of passes after this attempt | Step status |
    |---|---|
    | 0 attempts ever  | `pending` |
    | < 3              | `in_progress` |
    | >= 3             | `done` |

    Attempts on a step that is already `done` are not recorded; the response
    carries `"unchanged": true`.
    """
    result = record_attempt(
        db,
        step_id,
        body.outcome,
        note=body.note,
        duration_seconds=body.duration_seconds,
    )
    if result.unchanged:
        return AttemptResponse(step=step_to_response(result.step), unchanged=True)
    return AttemptResponse(step=step_to_response(result.step))


@router.post(
    "/{step_id}/attempt/undo",
    response_model=UndoResponse,
    summary="Undo the most recent attempt",
    responses={
        **_NOT_FOUND,
        409: {"model": ErrorResponse, "description": "The step has no attempts."},
    },
)
def post_undo(step_id: int, db: Session = Depends(get_db)):
    """
    Remove the newest attempt and recompute the step from what remains.
    A `done` step drops back to `in_progress` (or `pending`) when the undo
    breaks its run of passes.
    """
    result = undo_last_attempt(db, step_id)
    return UndoResponse(step=step_to_response(result.step), undone_outcome=result.undone_outcome)


@router.post(
    "/{step_id}/recompute",
    response_model=StepEnvelope,
    summary="Rebuild step counters from its attempt log",
    responses=_NOT_FOUND,
)
def post_recompute(step_id: int, db: Session = Depends(get_db)):
    step = recompute_step(db, step_id)
    return StepEnvelope(step=step_to_response(step))
