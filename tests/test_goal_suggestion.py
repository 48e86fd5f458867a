"""
Tests for the per-day suggested goal cache.
"""
from datetime import date, datetime, timezone

import pytest

from app.dependencies import get_goal_suggester
from app.main import app
from app.models.goal import Goal, GoalStatus
from app.models.goal_suggestion import GoalSuggestion
from app.services.ai_client import AIClientError
from app.services.goal_suggestion import SuggestionPick, get_suggested_goal
from conftest import make_goal

DAY = "2026-10-19"


class FakeSuggester:
    """Records calls; returns a fixed pick or raises."""

    def __init__(self, goal_id=None, reason=None, error=None):
        self.goal_id = goal_id
        self.reason = reason
        self.error = error
        self.calls = 0

    def suggest(self, goals):
        self.calls += 1
        if self.error:
            raise self.error
        return SuggestionPick(goal_id=self.goal_id, reason=self.reason)


def _suggested(client, day=DAY):
    r = client.get("/goals/suggested", params={"day": day})
    assert r.status_code == 200, r.text
    return r.json()


def _use(suggester):
    app.dependency_overrides[get_goal_suggester] = lambda: suggester


def _set_updated(db, goal_id, when):
    goal = db.get(Goal, goal_id)
    goal.updated_at = when
    db.commit()


class TestDefaults:
    def test_no_goals_returns_null_and_does_not_cache(self, client, db):
        body = _suggested(client)
        assert body["suggested_goal"] is None
        assert body["source"] is None
        assert db.query(GoalSuggestion).count() == 0

    def test_active_goal_without_key(self, client, db):
        gid = make_goal(client)["goal"]["id"]
        body = _suggested(client)
        assert body["suggested_goal"]["id"] == gid
        assert body["source"] == "fallback_last_active"
        assert "key missing" in body["notice"]
        assert db.query(GoalSuggestion).count() == 1

    def test_recent_goal_when_none_active(self, client, db):
        old = make_goal(client, title="Old", activate=False)["goal"]["id"]
        new = make_goal(client, title="New", activate=False)["goal"]["id"]
        _set_updated(db, old, datetime(2026, 10, 18, tzinfo=timezone.utc))
        _set_updated(db, new, datetime(2026, 10, 1, tzinfo=timezone.utc))
        body = _suggested(client)
        assert body["suggested_goal"]["id"] == old
        assert body["source"] == "fallback_recent"

    def test_terminal_goals_are_never_suggested(self, client):
        gid = make_goal(client)["goal"]["id"]
        client.patch(f"/goals/{gid}/status", json={"status": "achieved"})
        other = make_goal(client, title="Other", activate=False)["goal"]["id"]
        client.patch(f"/goals/{other}/status", json={"status": "archived"})
        body = _suggested(client)
        assert body["suggested_goal"] is None


class TestRecommender:
    def test_ai_pick_is_cached_for_the_day(self, client):
        make_goal(client, title="A")
        b = make_goal(client, title="B", activate=False)["goal"]["id"]
        fake = FakeSuggester(goal_id=b, reason="B is close to done")
        _use(fake)

        first = _suggested(client)
        second = _suggested(client)
        assert first == second
        assert first["suggested_goal"]["id"] == b
        assert first["source"] == "ai"
        assert first["notice"] == "B is close to done"
        assert fake.calls == 1

    def test_new_day_asks_again(self, client):
        gid = make_goal(client)["goal"]["id"]
        fake = FakeSuggester(goal_id=gid)
        _use(fake)
        _suggested(client, day="2026-10-19")
        _suggested(client, day="2026-10-20")
        assert fake.calls == 2

    def test_recommender_error_falls_back_and_caches(self, client):
        gid = make_goal(client)["goal"]["id"]
        fake = FakeSuggester(error=AIClientError("timeout"))
        _use(fake)
        body = _suggested(client)
        assert body["suggested_goal"]["id"] == gid
        assert body["source"] == "fallback_last_active"
        assert "unavailable" in body["notice"]
        _suggested(client)
        assert fake.calls == 1

    @pytest.mark.parametrize("bad_status", ["achieved", "archived"])
    def test_pick_of_terminal_goal_is_rejected(self, client, bad_status):
        done = make_goal(client, title="Done", activate=False)["goal"]["id"]
        client.patch(f"/goals/{done}/status", json={"status": bad_status})
        active = make_goal(client, title="Active")["goal"]["id"]
        _use(FakeSuggester(goal_id=done))
        body = _suggested(client)
        assert body["suggested_goal"]["id"] == active
        assert body["source"] == "fallback_last_active"

    def test_pick_of_unknown_goal_is_rejected(self, client):
        active = make_goal(client)["goal"]["id"]
        _use(FakeSuggester(goal_id=12345))
        body = _suggested(client)
        assert body["suggested_goal"]["id"] == active
        assert body["source"] != "ai"


class TestCachedGoalBecomesTerminal:
    def test_falls_back_keeping_notice_without_recomputing(self, client, db):
        a = make_goal(client, title="A", activate=False)["goal"]["id"]
        b = make_goal(client, title="B")["goal"]["id"]
        fake = FakeSuggester(goal_id=a, reason="Practice A today")
        _use(fake)
        assert _suggested(client)["suggested_goal"]["id"] == a

        client.patch(f"/goals/{a}/status", json={"status": "achieved"})
        body = _suggested(client)
        assert body["suggested_goal"]["id"] == b
        assert body["source"] == "fallback_last_active"
        assert body["notice"] == "Practice A today"
        assert fake.calls == 1

        row = db.query(GoalSuggestion).one()
        assert row.goal_id == a
        assert row.source == "ai"


class TestService:
    def test_cached_row_without_goal_uses_default(self, client, db):
        gid = make_goal(client)["goal"]["id"]
        db.add(GoalSuggestion(day=date(2026, 10, 19), goal_id=None, source="ai", notice="stale"))
        db.commit()
        # A row pointing at no goal is treated like a terminal goal: default, cached notice.
        result = get_suggested_goal(db, None, day=date(2026, 10, 19))
        assert result.goal.id == gid
        assert result.notice == "stale"
        assert db.query(GoalSuggestion).count() == 1

    def test_defaults_to_today(self, client, db):
        make_goal(client)
        get_suggested_goal(db, None)
        row = db.query(GoalSuggestion).one()
        assert row.day == datetime.now(tz=timezone.utc).date()

    def test_active_wins_over_more_recent(self, client, db):
        active = make_goal(client, title="Active")["goal"]["id"]
        recent = make_goal(client, title="Recent", activate=False)["goal"]["id"]
        _set_updated(db, active, datetime(2026, 1, 1, tzinfo=timezone.utc))
        _set_updated(db, recent, datetime(2026, 10, 1, tzinfo=timezone.utc))
        assert db.get(Goal, active).status == GoalStatus.active
        result = get_suggested_goal(db, None, day=date(2026, 10, 19))
        assert result.goal.id == active
