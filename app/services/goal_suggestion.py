"""
Goal Suggestion Cache — "today's suggested goal".

Algorithm
---------
  1. A cached row for the day whose goal is still non-terminal → return it
     verbatim (goal + source + notice).
  2. A cached row whose goal became achieved/archived → return a freshly
     computed default, keeping the cached notice. The recommender is not
     called again and the cache is not rewritten.
  3. No cached row → compute the default (active goal, else the most
     recently updated non-terminal goal). Ask the recommender; if it is
     unavailable, fails, or picks an invalid / terminal goal, persist the
     default. Otherwise persist the recommendation with source "ai".

The recommender is called at most once per calendar day: every path that
calls it persists a row for that day.

Persistence is an upsert keyed by day. Concurrent first requests collapse to
one row (last writer wins).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.errors import PersistenceError
from app.models.goal import Goal, GoalStatus, TERMINAL_GOAL_STATUSES
from app.models.goal_suggestion import GoalSuggestion, SuggestionSource
from app.services.ai_client import AIClientError, OpenAIChatClient

logger = logging.getLogger(__name__)

NOTICE_KEY_MISSING = "Cloud AI key missing. Showing a fallback suggestion."
NOTICE_UNAVAILABLE = "Cloud AI unavailable. Showing a fallback suggestion."
NOTICE_INVALID = "Cloud AI suggestion was not usable. Showing a fallback suggestion."

_SYSTEM_PROMPT = (
    "You are a dog training coach. Pick the single goal the owner should "
    "practice today. Prefer goals that are active or close to done."
)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class SuggestionPick:
    goal_id: int
    reason: Optional[str] = None


@dataclass
class SuggestionResult:
    goal: Optional[Goal]
    source: Optional[str]
    notice: Optional[str] = None


# ---------------------------------------------------------------------------
# External recommender
# ---------------------------------------------------------------------------

class OpenAIGoalSuggester:
    """Asks the completion API to pick one goal id out of the candidates."""

    def __init__(self, client: OpenAIChatClient) -> None:
        self.client = client

    def suggest(self, goals: list[Goal]) -> SuggestionPick:
        lines = [
            f"- id={g.id} status={g.status.value} priority={g.priority} title={g.title}"
            for g in goals
        ]
        prompt = "\n".join([
            'Return only JSON: {"goal_id": <int>, "reason": <short string>}.',
            "Candidate goals:",
            *lines,
        ])
        payload = self.client.complete_json(_SYSTEM_PROMPT, prompt, temperature=0.2)
        try:
            goal_id = int(payload["goal_id"])
        except (KeyError, TypeError, ValueError) as exc:
            raise AIClientError("suggestion response missing goal_id") from exc
        reason = payload.get("reason")
        return SuggestionPick(goal_id=goal_id, reason=str(reason)[:300] if reason else None)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _today() -> date:
    return datetime.now(tz=timezone.utc).date()


def _is_terminal(goal: Optional[Goal]) -> bool:
    return goal is None or goal.status in TERMINAL_GOAL_STATUSES


def _candidates(db: Session) -> list[Goal]:
    """All non-archived goals, most recently updated first."""
    return (
        db.query(Goal)
        .options(selectinload(Goal.steps))
        .filter(Goal.status != GoalStatus.archived)
        .order_by(Goal.updated_at.desc(), Goal.id.desc())
        .all()
    )


def default_suggestion(goals: list[Goal]) -> SuggestionResult:
    """Active goal first, else the most recently updated non-terminal goal."""
    for goal in goals:
        if goal.status == GoalStatus.active:
            return SuggestionResult(goal=goal, source=SuggestionSource.FALLBACK_LAST_ACTIVE)
    for goal in goals:
        if not _is_terminal(goal):
            return SuggestionResult(goal=goal, source=SuggestionSource.FALLBACK_RECENT)
    return SuggestionResult(goal=None, source=None)


def _ask_recommender(suggester, goals: list[Goal], fallback: SuggestionResult) -> SuggestionResult:
    if suggester is None:
        fallback.notice = NOTICE_KEY_MISSING
        return fallback
    try:
        pick: SuggestionPick = suggester.suggest(goals)
    except AIClientError as exc:
        logger.warning("Goal suggestion fell back: %s", exc)
        fallback.notice = NOTICE_UNAVAILABLE
        return fallback

    chosen = next((g for g in goals if g.id == pick.goal_id), None)
    if _is_terminal(chosen):
        logger.warning("Goal suggestion picked unusable goal %s", pick.goal_id)
        fallback.notice = NOTICE_INVALID
        return fallback
    return SuggestionResult(goal=chosen, source=SuggestionSource.AI, notice=pick.reason)


def _upsert_suggestion(db: Session, day: date, result: SuggestionResult) -> None:
    """Insert or overwrite the day's row; a lost insert race becomes an update."""
    def _write() -> None:
        row = db.query(GoalSuggestion).filter(GoalSuggestion.day == day).first()
        if row is None:
            row = GoalSuggestion(day=day)
            db.add(row)
        row.goal_id = result.goal.id if result.goal else None
        row.source = result.source
        row.notice = result.notice
        db.commit()

    try:
        try:
            _write()
        except IntegrityError:
            # Race condition: another request inserted this day first.
            db.rollback()
            _write()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Could not cache suggestion for %s: %s", day, exc)
        raise PersistenceError("Could not cache goal suggestion.", operation="suggest_goal") from exc


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------

def get_suggested_goal(
    db: Session,
    suggester=None,
    day: Optional[date] = None,
) -> SuggestionResult:
    """Return the day's suggested goal, computing and caching it on first use."""
    target = day or _today()
    goals = _candidates(db)

    cached: Optional[GoalSuggestion] = (
        db.query(GoalSuggestion).filter(GoalSuggestion.day == target).first()
    )
    if cached is not None:
        goal = db.get(Goal, cached.goal_id) if cached.goal_id is not None else None
        if not _is_terminal(goal):
            return SuggestionResult(goal=goal, source=cached.source, notice=cached.notice)
        fresh = default_suggestion(goals)
        fresh.notice = cached.notice
        return fresh

    fallback = default_suggestion(goals)
    if fallback.goal is None:
        # Nothing to suggest; don't burn the day's recommender call.
        return fallback

    result = _ask_recommender(suggester, goals, fallback)
    _upsert_suggestion(db, target, result)
    logger.info("Suggested goal for %s: %s (%s)", target, result.goal.id, result.source)
    return result
