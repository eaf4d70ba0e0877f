"""Configuration helpers for participant clients."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .progression import DEFAULT_WORD_SPEED
from .speech import DEFAULT_AI_VOICE, DEFAULT_VOICE_SPEED


@dataclass(frozen=True)
class ClientSettings:
    relay_url: str | None
    api_url: str | None
    word_speed: int
    voice_speed: float
    ai_voice: str


def load_client_settings() -> ClientSettings:
    return ClientSettings(
        relay_url=os.getenv("BUZZQUIZ_RELAY_URL") or None,
        api_url=os.getenv("BUZZQUIZ_API_URL") or None,
        word_speed=int(os.getenv("BUZZQUIZ_WORD_SPEED", str(DEFAULT_WORD_SPEED))),
        voice_speed=float(os.getenv("BUZZQUIZ_VOICE_SPEED", str(DEFAULT_VOICE_SPEED))),
        ai_voice=os.getenv("BUZZQUIZ_AI_VOICE", DEFAULT_AI_VOICE),
    )
