"""HTTP client for talking to a running agent."""

from __future__ import annotations

from typing import Any

import httpx

from charforge.errors import CharforgeError


class AgentUnavailableError(CharforgeError):
    """Raised when the agent runtime cannot be reached or rejects a message."""


async def send_message(
    base_url: str,
    agent_id: str,
    text: str,
    *,
    user_id: str = "user",
    user_name: str = "User",
    timeout: float = 60.0,
) -> Any:
    """Post *text* to ``<base_url>/<agent_id>/message`` and return the JSON reply."""
    url = f"{base_url.rstrip('/')}/{agent_id}/message"
    payload = {"text": text, "userId": user_id, "userName": user_name}
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.post(url, json=payload)
            resp.raise_for_status()
            return resp.json()
    except httpx.HTTPStatusError as exc:
        raise AgentUnavailableError(
            f"Failed to communicate with AI agent: {exc.response.reason_phrase}"
        ) from exc
    except httpx.HTTPError as exc:
        raise AgentUnavailableError(f"Failed to communicate with AI agent: {exc}") from exc
