from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from sqlmodel import SQLModel, create_engine
from sqlalchemy.engine import Engine


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def create_db_engine(database_path: Path) -> Engine:
    # SQLite is shared between request threads and pipeline workers
    return create_engine(
        f"sqlite:///{database_path}", connect_args={"check_same_thread": False}
    )


def init_db(engine: Engine) -> None:
    # Register every table on the shared metadata before create_all
    from lions_minutes.models import (  # noqa: F401
        attendance,
        folder,
        meeting,
        member,
        minute_item,
        stored_blob,
        transcript_segment,
    )

    # Enable WAL
    with engine.begin() as conn:
        conn.exec_driver_sql("PRAGMA journal_mode=WAL;")
        conn.exec_driver_sql("PRAGMA synchronous=NORMAL;")
    SQLModel.metadata.create_all(engine)
