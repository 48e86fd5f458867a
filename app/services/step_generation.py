"""
Step generation — propose training steps for a goal.

The external completion API is a black box returning a list of steps. When
it is not configured, or fails in any way, a deterministic fallback plan is
used instead so that saving a goal never fails because of AI.

Public API
----------
fallback_steps(title)                         → list[StepProposal]
generate_goal_steps(goal, client)             → GenerationResult
run_step_generation(db, goal_id, client)      → (GenerationResult, list[GoalStep])
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import PersistenceError
from app.models.ai_run import AiRun, AiRunStatus
from app.models.goal import Goal
from app.models.goal_step import GoalStep
from app.services.ai_client import AIClientError, OpenAIChatClient
from app.services.goals import StepDraft, append_steps, clamp_minutes, get_goal

logger = logging.getLogger(__name__)

FALLBACK_PROVIDER = "fallback"
FALLBACK_MODEL = "deterministic-fallback"

NOTICE_KEY_MISSING = "Cloud AI key missing. Fallback plan generated."
NOTICE_UNAVAILABLE = "Cloud AI unavailable. Fallback plan generated."

_SYSTEM_PROMPT = "You are a dog training assistant. Be specific, safe, and incremental."


@dataclass
class StepProposal:
    title: str
    details: Optional[str] = None
    estimated_minutes: int = 10


@dataclass
class GenerationResult:
    steps: list[StepProposal]
    generation_mode: str   # "cloud" | "fallback"
    provider: str
    model: str
    notice: Optional[str] = None


# ---------------------------------------------------------------------------
# Fallback plans
# ---------------------------------------------------------------------------

_LOOSE_LEASH_PLAN = [
    ("Set baseline walk",
     "Do a 10-minute walk at easy distance and log every pull or check-in.", 10),
    ("Reinforce check-ins",
     "Reward voluntary eye contact with high-value treats every few steps.", 12),
    ("Short focused reps",
     "Practice 3 x 5-minute loose-leash blocks in low-distraction areas.", 15),
    ("Increase distraction gradually",
     "Add one harder environment and keep reinforcement rate high at first.", 20),
    ("Proof and review",
     "Run two normal walks and compare positive vs negative event counts.", 20),
]

_GENERIC_PLAN = [
    ("Define success cues",
     "Write the exact behavior marker and reward timing for this goal.", 10),
    ("Run low-distraction reps",
     "Practice short repetitions in a quiet environment and log outcomes.", 12),
    ("Increase difficulty one step",
     "Add one variable: distance, duration, or distraction level.", 15),
    ("Track consistency",
     "Aim for two consecutive sessions with >80% successful reps.", 10),
    ("Generalize behavior",
     "Repeat in a new location and keep reward value high initially.", 20),
]


def fallback_steps(title: str) -> list[StepProposal]:
    lowered = (title or "").lower()
    plan = _LOOSE_LEASH_PLAN if ("leash" in lowered or "walk" in lowered) else _GENERIC_PLAN
    return [StepProposal(title=t, details=d, estimated_minutes=m) for t, d, m in plan]


def _fallback(goal: Goal, notice: str) -> GenerationResult:
    return GenerationResult(
        steps=fallback_steps(goal.title),
        generation_mode="fallback",
        provider=FALLBACK_PROVIDER,
        model=FALLBACK_MODEL,
        notice=notice,
    )


# ---------------------------------------------------------------------------
# Cloud generation
# ---------------------------------------------------------------------------

def _build_prompt(goal: Goal) -> str:
    return "\n".join([
        "Return only JSON. Create 4-7 practical training steps for this dog goal.",
        "Each step must have:",
        "- title (string)",
        "- details (string)",
        "- estimated_minutes (number, 5-30)",
        "",
        f"Goal title: {goal.title}",
        f"Goal description: {goal.description or ''}",
        f"Success criteria: {goal.success_criteria or ''}",
    ])


def _parse_steps(payload: dict) -> list[StepProposal]:
    raw_steps = payload.get("steps")
    if not isinstance(raw_steps, list) or not raw_steps:
        raise AIClientError("completion response missing steps array")
    proposals = []
    for raw in raw_steps:
        if not isinstance(raw, dict):
            continue
        proposals.append(StepProposal(
            title=str(raw.get("title") or "Training step")[:120],
            details=str(raw.get("details") or "")[:500] or None,
            estimated_minutes=clamp_minutes(raw.get("estimated_minutes")),
        ))
    if not proposals:
        raise AIClientError("completion response has no usable steps")
    return proposals


def generate_goal_steps(goal: Goal, client: Optional[OpenAIChatClient]) -> GenerationResult:
    """Ask the completion API for steps; degrade to the fallback plan on any failure."""
    if client is None:
        return _fallback(goal, NOTICE_KEY_MISSING)
    try:
        payload = client.complete_json(_SYSTEM_PROMPT, _build_prompt(goal))
        steps = _parse_steps(payload)
    except AIClientError as exc:
        logger.warning("Step generation for goal %s fell back: %s", goal.id, exc)
        return _fallback(goal, NOTICE_UNAVAILABLE)
    return GenerationResult(
        steps=steps,
        generation_mode="cloud",
        provider=client.provider,
        model=client.model,
        notice=None,
    )


# ---------------------------------------------------------------------------
# Public — generate + persist + audit
# ---------------------------------------------------------------------------

def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def run_step_generation(
    db: Session,
    goal_id: int,
    client: Optional[OpenAIChatClient],
) -> tuple[GenerationResult, list[GoalStep]]:
    """
    Generate steps for a goal and append them after its existing steps.
    Every call leaves an ai_runs row: queued → success | failed.
    """
    goal = get_goal(db, goal_id)

    run = AiRun(
        goal_id=goal.id,
        provider=client.provider if client else FALLBACK_PROVIDER,
        model=client.model if client else FALLBACK_MODEL,
        purpose="goal_breakdown",
        input_summary=f"Break down goal: {goal.title}",
        request_payload=json.dumps({"title": goal.title, "description": goal.description}),
        status=AiRunStatus.QUEUED,
    )
    db.add(run)
    db.commit()

    result = generate_goal_steps(goal, client)
    drafts = [
        StepDraft(title=s.title, details=s.details, estimated_minutes=s.estimated_minutes)
        for s in result.steps
    ]
    try:
        inserted = append_steps(db, goal, drafts, ai_generated=True)
        run.status = AiRunStatus.SUCCESS
        run.response_payload = json.dumps({
            "steps": [asdict(s) for s in result.steps],
            "generation_mode": result.generation_mode,
            "provider": result.provider,
            "model": result.model,
            "notice": result.notice,
        })
        run.completed_at = _now()
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        _mark_failed(db, run.id, str(exc))
        raise PersistenceError("Could not save generated steps.", operation="generate_steps") from exc

    for step in inserted:
        db.refresh(step)
    logger.info(
        "Generated %d %s step(s) for goal %s", len(inserted), result.generation_mode, goal.id
    )
    return result, inserted


def _mark_failed(db: Session, run_id: int, message: str) -> None:
    try:
        run = db.get(AiRun, run_id)
        if run is not None:
            run.status = AiRunStatus.FAILED
            run.error_message = message[:2_000]
            run.completed_at = _now()
            db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Could not mark ai_run %s failed: %s", run_id, exc)
