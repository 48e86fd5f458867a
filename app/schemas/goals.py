"""
Goal, step and attempt schemas.

Goals:     GET/POST /goals, PATCH /goals/{id}[/status|/activate],
           GET /goals/suggested, POST /goals/{id}/generate-steps
Steps:     PATCH /goal-steps/{id}, GET /goal-steps/{id}/attempts,
           POST /goal-steps/{id}/attempt[/undo], POST /goal-steps/{id}/recompute
"""
from __future__ import annotations

from datetime import date
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.goal import GoalStatus
from app.models.goal_step import AttemptOutcome


def _strip_or_none(v):
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class StepCreate(BaseModel):
    title: str = Field(default="", max_length=500)
    details: Optional[str] = Field(default=None, max_length=5_000)
    success_criteria: Optional[str] = None
    estimated_minutes: Optional[float] = Field(
        default=None, description="Clamped to 5–30; defaults to 10."
    )
    scheduled_for: Optional[date] = None


class GoalCreate(BaseModel):
    """A new goal, optionally with hand-written steps.

    Blank step titles are dropped. With `activate` (default) the new goal
    becomes the single active goal and any previous one is paused.
    """
    title: Annotated[str, Field(min_length=1, max_length=200)]
    description: Optional[str] = None
    priority: Optional[int] = Field(default=None, ge=1, le=5)
    target_date: Optional[date] = None
    success_criteria: Optional[str] = None
    steps: list[StepCreate] = Field(default_factory=list)
    activate: bool = True

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("description", "success_criteria", mode="before")
    @classmethod
    def strip_optional(cls, v):
        return _strip_or_none(v)


class GoalUpdate(BaseModel):
    """Partial field update; omitted fields are left untouched."""
    title: Optional[Annotated[str, Field(min_length=1, max_length=200)]] = None
    description: Optional[str] = None
    priority: Optional[int] = Field(default=None, ge=1, le=5)
    target_date: Optional[date] = None
    success_criteria: Optional[str] = None

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v):
        return v.strip() if isinstance(v, str) else v


class GoalStatusUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    status: GoalStatus


class StepUpdate(BaseModel):
    """Field update for a step. Status is owned by the attempt log."""
    title: Optional[Annotated[str, Field(min_length=1, max_length=120)]] = None
    details: Optional[str] = Field(default=None, max_length=500)
    success_criteria: Optional[str] = None
    estimated_minutes: Optional[float] = None
    scheduled_for: Optional[date] = None
    completion_notes: Optional[str] = None


class AttemptRequest(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    outcome: AttemptOutcome = Field(description='"pass" or "needs_work".')
    note: Optional[str] = Field(default=None, max_length=1_000)
    duration_seconds: Optional[int] = Field(default=None, ge=0)

    @field_validator("note", mode="before")
    @classmethod
    def blank_note_to_none(cls, v):
        return _strip_or_none(v)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class StepOut(BaseModel):
    id: int
    goal_id: int
    step_order: int
    title: str
    details: Optional[str] = None
    success_criteria: Optional[str] = None
    status: str
    estimated_minutes: Optional[int] = None
    scheduled_for: Optional[str] = None
    pass_count: int
    needs_work_count: int
    consecutive_passes: int
    ai_generated: bool
    completion_notes: Optional[str] = None
    completed_at: Optional[str] = None


class GoalOut(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    status: str
    priority: int
    target_date: Optional[str] = None
    success_criteria: Optional[str] = None
    created_at: str
    updated_at: str
    steps: list[StepOut] = Field(default_factory=list)


class GoalEnvelope(BaseModel):
    goal: GoalOut


class GoalCreateResponse(BaseModel):
    goal: GoalOut
    steps: list[StepOut]


class GoalListResponse(BaseModel):
    goals: list[GoalOut]


class SuggestedGoalResponse(BaseModel):
    suggested_goal: Optional[GoalOut] = None
    source: Optional[str] = Field(
        default=None,
        description='"ai" | "fallback_last_active" | "fallback_recent"; null when no goals.',
    )
    notice: Optional[str] = None


class GenerateStepsResponse(BaseModel):
    steps: list[StepOut]
    generation_mode: str = Field(description='"cloud" or "fallback".')
    provider: str
    model: str
    notice: Optional[str] = None


class StepEnvelope(BaseModel):
    step: StepOut


class AttemptResponse(BaseModel):
    step: StepOut
    unchanged: Optional[bool] = Field(
        default=None,
        description="Present (true) when the step was already done and nothing was recorded.",
    )


class UndoResponse(BaseModel):
    step: StepOut
    undone_outcome: str


class AttemptOut(BaseModel):
    id: int
    outcome: str
    note: Optional[str] = None
    duration_seconds: Optional[int] = None
    created_at: str


class AttemptListResponse(BaseModel):
    step_id: int
    attempts: list[AttemptOut]
