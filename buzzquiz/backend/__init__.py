"""Backend package for the buzzer quiz relay."""

from .config import BackendSettings, configure_logging, load_settings
from .models import HistoryRecord
from .store import HistoryStore, InMemoryHistoryStore, PostgresHistoryStore, create_store

__all__ = [
    "BackendSettings",
    "configure_logging",
    "create_store",
    "HistoryRecord",
    "HistoryStore",
    "InMemoryHistoryStore",
    "load_settings",
    "PostgresHistoryStore",
]
