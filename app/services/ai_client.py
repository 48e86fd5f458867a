"""OpenAI-compatible chat completions client used for step generation and goal suggestion."""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class AIClientError(Exception):
    """Raised when the completion API fails or returns unusable content."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class OpenAIChatClient:
    """Minimal JSON-mode chat completions client."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 20.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.model = model
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )

    @property
    def provider(self) -> str:
        return "openai"

    def complete_json(self, system: str, user: str, temperature: float = 0.4) -> dict[str, Any]:
        """Send one chat turn and parse the reply as a JSON object."""
        try:
            response = self._client.post(
                "/chat/completions",
                json={
                    "model": self.model,
                    "temperature": temperature,
                    "response_format": {"type": "json_object"},
                    "messages": [
                        {"role": "system", "content": system},
                        {"role": "user", "content": user},
                    ],
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise AIClientError(
                f"completion API error: {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise AIClientError(f"completion API unreachable: {exc}") from exc

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise AIClientError("completion API returned an unexpected payload") from exc
        if not content:
            raise AIClientError("completion API returned empty content")

        try:
            parsed = json.loads(content)
        except ValueError as exc:
            raise AIClientError("completion content is not valid JSON") from exc
        if not isinstance(parsed, dict):
            raise AIClientError("completion content is not a JSON object")
        return parsed

    def close(self) -> None:
        self._client.close()
