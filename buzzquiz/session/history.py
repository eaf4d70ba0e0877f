"""Best-effort upload of a finished scoreboard to the backend."""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


def save_history(api_url: str, summary: dict[str, Any], client: httpx.Client | None = None) -> bool:
    """POST the room summary; failures are logged and reported as False."""
    endpoint = f"{api_url.rstrip('/')}/api/rooms/{summary['room']}/history"
    payload = {
        "quizTitle": summary.get("title", ""),
        "scores": summary.get("scores", {}),
        "cardCount": summary.get("cardCount", 0),
    }
    try:
        if client is not None:
            response = client.post(endpoint, json=payload)
        else:
            with httpx.Client(timeout=5.0) as http:
                response = http.post(endpoint, json=payload)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Could not save game history for room %s: %s", summary["room"], exc)
        return False
    return True
