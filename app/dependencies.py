"""FastAPI dependencies for the optional completion API."""
from __future__ import annotations

import logging
from typing import Generator, Optional

from fastapi import Depends

from app.core.config import settings
from app.services.ai_client import OpenAIChatClient
from app.services.goal_suggestion import OpenAIGoalSuggester

logger = logging.getLogger(__name__)


def get_ai_client() -> Generator[Optional[OpenAIChatClient], None, None]:
    """Yield a chat client, or None when no API key is configured."""
    if not settings.OPENAI_API_KEY:
        yield None
        return
    client = OpenAIChatClient(
        api_key=settings.OPENAI_API_KEY,
        model=settings.OPENAI_MODEL,
        base_url=settings.OPENAI_BASE_URL,
        timeout=settings.AI_TIMEOUT_SECONDS,
    )
    try:
        yield client
    finally:
        client.close()


def get_goal_suggester(
    client: Optional[OpenAIChatClient] = Depends(get_ai_client),
) -> Optional[OpenAIGoalSuggester]:
    return OpenAIGoalSuggester(client) if client is not None else None
