"""
Goals router.

GET   /goals                       — all goals with steps (newest first)
POST  /goals                       — create a goal (+ optional steps)
GET   /goals/suggested             — today's suggested goal (cached per day)
GET   /goals/{id}                  — one goal with steps
PATCH /goals/{id}                  — edit fields
PATCH /goals/{id}/status           — change status
PATCH /goals/{id}/activate         — make this the single active goal
POST  /goals/{id}/generate-steps   — append AI / fallback steps
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.dependencies import get_ai_client, get_goal_suggester
from app.models.goal import Goal
from app.routers.goal_steps import step_to_response
from app.schemas.common import ErrorResponse
from app.schemas.goals import (
    GenerateStepsResponse,
    GoalCreate,
    GoalCreateResponse,
    GoalEnvelope,
    GoalListResponse,
    GoalOut,
    GoalStatusUpdate,
    GoalUpdate,
    SuggestedGoalResponse,
)
from app.services.goal_suggestion import get_suggested_goal
from app.services.goals import (
    GoalDraft,
    StepDraft,
    activate_goal,
    create_goal,
    get_goal,
    list_goals,
    set_goal_status,
    update_goal,
)
from app.services.step_generation import run_step_generation

router = APIRouter(prefix="/goals", tags=["goals"])

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Goal not found."}}


def _ev(v) -> str:
    return v.value if hasattr(v, "value") else str(v)


def _goal_to_response(goal: Goal) -> GoalOut:
    return GoalOut(
        id=goal.id,
        title=goal.title,
        description=goal.description,
        status=_ev(goal.status),
        priority=goal.priority,
        target_date=str(goal.target_date) if goal.target_date else None,
        success_criteria=goal.success_criteria,
        created_at=goal.created_at.isoformat() if goal.created_at else "",
        updated_at=goal.updated_at.isoformat() if goal.updated_at else "",
        steps=[step_to_response(s) for s in goal.steps],
    )


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------

@router.get("", response_model=GoalListResponse, summary="List goals (newest first)")
def get_goals(db: Session = Depends(get_db)):
    return GoalListResponse(goals=[_goal_to_response(g) for g in list_goals(db)])


@router.post(
    "",
    response_model=GoalCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a goal",
)
def post_goal(body: GoalCreate, db: Session = Depends(get_db)):
    """
    Create a goal with optional hand-written steps. Steps with a blank title
    are dropped; minutes are clamped to 5–30.

    With `activate: true` (the default) the goal becomes the single active
    goal and whichever goal was active is paused.
    """
    draft = GoalDraft(
        title=body.title,
        description=body.description,
        priority=body.priority,
        target_date=body.target_date,
        success_criteria=body.success_criteria,
    )
    steps = [
        StepDraft(
            title=s.title,
            details=s.details,
            success_criteria=s.success_criteria,
            estimated_minutes=s.estimated_minutes,
            scheduled_for=s.scheduled_for,
        )
        for s in body.steps
    ]
    goal, inserted = create_goal(db, draft, steps, activate=body.activate)
    return GoalCreateResponse(
        goal=_goal_to_response(goal),
        steps=[step_to_response(s) for s in inserted],
    )


@router.get(
    "/suggested",
    response_model=SuggestedGoalResponse,
    summary="Today's suggested goal",
)
def get_suggested(
    day: Optional[date] = Query(default=None, description="Calendar day (UTC); defaults to today."),
    db: Session = Depends(get_db),
    suggester=Depends(get_goal_suggester),
):
    """
    The first request of a day asks the recommender (when configured) and
    caches the answer; later requests that day reuse it.

    `source` is `ai`, `fallback_last_active` or `fallback_recent`, or null
    when there are no goals to suggest.
    """
    result = get_suggested_goal(db, suggester, day=day)
    return SuggestedGoalResponse(
        suggested_goal=_goal_to_response(result.goal) if result.goal else None,
        source=result.source,
        notice=result.notice,
    )


# ---------------------------------------------------------------------------
# Single goal
# ---------------------------------------------------------------------------

@router.get("/{goal_id}", response_model=GoalEnvelope, responses=_NOT_FOUND)
def get_one_goal(goal_id: int, db: Session = Depends(get_db)):
    return GoalEnvelope(goal=_goal_to_response(get_goal(db, goal_id)))


@router.patch("/{goal_id}", response_model=GoalEnvelope, responses=_NOT_FOUND)
def patch_goal(goal_id: int, body: GoalUpdate, db: Session = Depends(get_db)):
    goal = update_goal(db, goal_id, body.model_dump(exclude_unset=True))
    return GoalEnvelope(goal=_goal_to_response(goal))


@router.patch(
    "/{goal_id}/status",
    response_model=GoalEnvelope,
    summary="Change a goal's status",
    responses=_NOT_FOUND,
)
def patch_goal_status(goal_id: int, body: GoalStatusUpdate, db: Session = Depends(get_db)):
    """Setting `active` pauses whichever goal was active before."""
    goal = set_goal_status(db, goal_id, body.status)
    return GoalEnvelope(goal=_goal_to_response(goal))


@router.patch(
    "/{goal_id}/activate",
    response_model=GoalEnvelope,
    summary="Make this the single active goal",
    responses=_NOT_FOUND,
)
def patch_activate(goal_id: int, db: Session = Depends(get_db)):
    goal = activate_goal(db, goal_id)
    return GoalEnvelope(goal=_goal_to_response(goal))


@router.post(
    "/{goal_id}/generate-steps",
    response_model=GenerateStepsResponse,
    summary="Generate training steps for a goal",
    responses=_NOT_FOUND,
)
def post_generate_steps(
    goal_id: int,
    db: Session = Depends(get_db),
    client=Depends(get_ai_client),
):
    """
    Appends 4–7 steps after the goal's existing ones. Without an API key, or
    when the API fails, a deterministic fallback plan is used and `notice`
    says so.
    """
    result, inserted = run_step_generation(db, goal_id, client)
    return GenerateStepsResponse(
        steps=[step_to_response(s) for s in inserted],
        generation_mode=result.generation_mode,
        provider=result.provider,
        model=result.model,
        notice=result.notice,
    )
