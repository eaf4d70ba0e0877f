"""Domain models for history persistence and API responses."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class HistoryRecord:
    record_id: str
    room_code: str
    quiz_title: str
    card_count: int
    saved_at: str
    scores: dict[str, int] = field(default_factory=dict)
