"""Configuration helpers for backend runtime."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from logging import Logger

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


@dataclass(frozen=True)
class BackendSettings:
    database_url: str | None
    host: str
    port: int
    tts_api_key: str | None
    cors_origins: tuple[str, ...]
    log_level: str


def load_settings() -> BackendSettings:
    port_raw = os.getenv("BUZZQUIZ_PORT", "8000")
    origins_raw = os.getenv("BUZZQUIZ_CORS_ORIGINS", "*")
    return BackendSettings(
        database_url=os.getenv("BUZZQUIZ_DATABASE_URL"),
        host=os.getenv("BUZZQUIZ_HOST", "127.0.0.1"),
        port=int(port_raw),
        tts_api_key=os.getenv("BUZZQUIZ_TTS_API_KEY") or os.getenv("GOOGLE_CLOUD_TTS_API_KEY"),
        cors_origins=tuple(origin.strip() for origin in origins_raw.split(",") if origin.strip()),
        log_level=os.getenv("BUZZQUIZ_LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> Logger:
    """Configure basic logging for the service and return the package logger."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    return logging.getLogger("buzzquiz")
