"""Goal calls made by the client that leave a notice for the next session."""
from __future__ import annotations

import logging
from typing import Any

import httpx

from app.client.storage import SessionNoticeStore

logger = logging.getLogger(__name__)


def request_step_plan(http: httpx.Client, notices: SessionNoticeStore, goal_id: int) -> dict[str, Any]:
    """Ask the server to generate steps for a goal and remember how it went.

    The generation mode and notice ("Cloud AI key missing..." etc.) are kept
    in the session notice store so the next `notice` read can show them once.
    Raises httpx.HTTPStatusError for non-2xx responses.
    """
    response = http.post(f"/goals/{goal_id}/generate-steps")
    response.raise_for_status()
    body = response.json()
    notices.put(body.get("generation_mode", "fallback"), body.get("notice"))
    logger.info(
        "Goal %s got %d %s step(s)", goal_id, len(body.get("steps", [])), body.get("generation_mode")
    )
    return body
