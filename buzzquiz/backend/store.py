"""Best-effort persistence for finished game scoreboards."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import json
from typing import Any, Protocol
import uuid

from buzzquiz.backend.models import HistoryRecord


class HistoryStore(Protocol):
    def save(self, room_code: str, quiz_title: str, scores: dict[str, int], card_count: int) -> HistoryRecord:
        """Persist one scoreboard snapshot for a room."""

    def list_for_room(self, room_code: str) -> list[HistoryRecord]:
        """Return saved snapshots for a room, oldest first."""


def _new_record(room_code: str, quiz_title: str, scores: dict[str, int], card_count: int) -> HistoryRecord:
    return HistoryRecord(
        record_id=str(uuid.uuid4()),
        room_code=room_code,
        quiz_title=quiz_title,
        card_count=card_count,
        saved_at=datetime.now(timezone.utc).isoformat(),
        scores=dict(scores),
    )


@dataclass
class InMemoryHistoryStore:
    limit_per_room: int = 50

    def __post_init__(self) -> None:
        self._records: dict[str, list[HistoryRecord]] = {}

    def save(self, room_code: str, quiz_title: str, scores: dict[str, int], card_count: int) -> HistoryRecord:
        record = _new_record(room_code, quiz_title, scores, card_count)
        records = self._records.setdefault(room_code, [])
        records.append(record)
        del records[: max(0, len(records) - self.limit_per_room)]
        return record

    def list_for_room(self, room_code: str) -> list[HistoryRecord]:
        return list(self._records.get(room_code, []))


@dataclass
class PostgresHistoryStore:
    database_url: str

    def _connect(self) -> Any:
        import psycopg

        return psycopg.connect(self.database_url)

    def save(self, room_code: str, quiz_title: str, scores: dict[str, int], card_count: int) -> HistoryRecord:
        record = _new_record(room_code, quiz_title, scores, card_count)
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO game_history (id, room_code, quiz_title, card_count, scores_json, saved_at)
                    VALUES (%s, %s, %s, %s, %s::jsonb, %s)
                    """,
                    (
                        record.record_id,
                        record.room_code,
                        record.quiz_title,
                        record.card_count,
                        json.dumps(record.scores),
                        record.saved_at,
                    ),
                )
            conn.commit()
        return record

    def list_for_room(self, room_code: str) -> list[HistoryRecord]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT id, room_code, quiz_title, card_count, scores_json, saved_at
                    FROM game_history
                    WHERE room_code = %s
                    ORDER BY saved_at
                    """,
                    (room_code,),
                )
                rows = cur.fetchall()

        records: list[HistoryRecord] = []
        for record_id, code, title, card_count, scores_json, saved_at in rows:
            scores = scores_json if isinstance(scores_json, dict) else json.loads(scores_json)
            saved = saved_at.isoformat() if isinstance(saved_at, datetime) else str(saved_at)
            records.append(
                HistoryRecord(
                    record_id=str(record_id),
                    room_code=code,
                    quiz_title=title,
                    card_count=int(card_count),
                    saved_at=saved,
                    scores={str(k): int(v) for k, v in scores.items()},
                )
            )
        return records


def create_store(database_url: str | None) -> HistoryStore:
    if database_url:
        return PostgresHistoryStore(database_url=database_url)
    return InMemoryHistoryStore()
