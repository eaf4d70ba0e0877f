"""Create the game history table for the PostgreSQL store."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from buzzquiz.backend.config import configure_logging, load_settings
from buzzquiz.backend.store import PostgresHistoryStore

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("db_schema.sql")


def read_schema(path: Path = SCHEMA_PATH) -> str:
    return path.read_text(encoding="utf-8")


def apply_schema(store: PostgresHistoryStore, schema_sql: str | None = None) -> None:
    sql: Any = schema_sql if schema_sql is not None else read_schema()
    with store._connect() as conn:
        with conn.cursor() as cur:
            cur.execute(sql)
        conn.commit()
    logger.info("History schema applied")


def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    if not settings.database_url:
        raise RuntimeError("BUZZQUIZ_DATABASE_URL is required for migration")
    apply_schema(PostgresHistoryStore(database_url=settings.database_url))


if __name__ == "__main__":
    main()
