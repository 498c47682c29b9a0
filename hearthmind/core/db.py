########## Database Utilities ##########
# Manages SQLite persistence for per-character memory streams and the event log.

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.pool import StaticPool

from . import config
from .types import MemoryKind, MemoryRecord, Rated, rated

MEMORY_COLUMNS: List[str] = [
    "character_id",
    "memory_id",
    "seq",
    "kind",
    "content",
    "created_at",
    "importance",
    "last_access",
    "sources",
]


def _db_path(db_file: str) -> Path:
    """Return the configured sqlite path and ensure its directory exists."""

    # 1 Resolve the configured path under the project workspace.               # steps
    # 2 Create parent directories when needed.                                 # steps
    path = Path(db_file).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


class MemoryDatabase:
    """Append / read-all / overwrite-all persistence keyed by character id."""

    def __init__(self, db_file: Optional[str] = None, echo: bool = config.DB_ECHO) -> None:
        # 1 Build one engine per database so registries never share globals.   # steps
        self.db_file = db_file or config.DB_FILE
        if self.db_file == ":memory:":
            self.engine: Engine = create_engine(
                "sqlite://",
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            path = _db_path(self.db_file)
            self.engine = create_engine(f"sqlite:///{path}", echo=echo)
        self.ensure_schema()

    def ensure_schema(self) -> None:
        """Create tables when they do not exist."""

        # 1 Execute CREATE TABLE statements with IF NOT EXISTS.                # steps
        with self.engine.begin() as connection:
            for statement in _schema_statements():
                connection.execute(text(statement))

    ########## Memory Records ##########

    def append_record(self, character_id: str, record: MemoryRecord) -> None:
        """Insert one record; durable once the transaction commits."""

        statement = text(
            f"""
            INSERT INTO memories ({', '.join(MEMORY_COLUMNS)})
            VALUES ({', '.join(f':{name}' for name in MEMORY_COLUMNS)})
            """
        )
        with self.engine.begin() as connection:
            connection.execute(statement, _record_to_row(character_id, record))

    def load_records(self, character_id: str) -> List[MemoryRecord]:
        """Return every record for the character in creation order."""

        statement = text(
            """
            SELECT * FROM memories
            WHERE character_id = :character_id
            ORDER BY seq ASC
            """
        )
        with self.engine.begin() as connection:
            rows = connection.execute(statement, {"character_id": character_id}).mappings().all()
        return [_row_to_record(row) for row in rows]

    def overwrite_records(self, character_id: str, records: List[MemoryRecord]) -> None:
        """Replace the character's whole stream inside a single transaction."""

        # 1 Delete and re-insert together so a crash never leaves half a stream. # steps
        delete_statement = text("DELETE FROM memories WHERE character_id = :character_id")
        insert_statement = text(
            f"""
            INSERT INTO memories ({', '.join(MEMORY_COLUMNS)})
            VALUES ({', '.join(f':{name}' for name in MEMORY_COLUMNS)})
            """
        )
        with self.engine.begin() as connection:
            connection.execute(delete_statement, {"character_id": character_id})
            if records:
                connection.execute(insert_statement, [_record_to_row(character_id, record) for record in records])

    def reserve_sequence(self, character_id: str) -> int:
        """Advance and return the per-character id high-water mark."""

        # 1 Upsert the counter row, then read it back in the same transaction.  # steps
        upsert = text(
            """
            INSERT INTO memory_sequence (character_id, last_seq)
            VALUES (:character_id, 1)
            ON CONFLICT(character_id)
            DO UPDATE SET last_seq = last_seq + 1
            """
        )
        select = text("SELECT last_seq FROM memory_sequence WHERE character_id = :character_id")
        with self.engine.begin() as connection:
            connection.execute(upsert, {"character_id": character_id})
            value = connection.execute(select, {"character_id": character_id}).scalar_one()
        return int(value)

    ########## Event Log ##########

    def log_event(self, character_id: str, event_type: str, data: str, timestamp: datetime) -> None:
        """Persist an event to the event_log table."""

        statement = text(
            """
            INSERT INTO event_log (character_id, type, data, ts)
            VALUES (:character_id, :type, :data, :ts)
            """
        )
        parameters = {
            "character_id": character_id,
            "type": event_type,
            "data": data,
            "ts": timestamp.isoformat(),
        }
        with self.engine.begin() as connection:
            connection.execute(statement, parameters)

    def fetch_events(self, limit: Optional[int] = None) -> List[Dict[str, str]]:
        """Return logged events oldest first."""

        query = "SELECT character_id, type, data, ts FROM event_log ORDER BY event_id DESC"
        if limit is not None:
            query += " LIMIT :limit"
        params = {"limit": limit} if limit is not None else {}
        with self.engine.begin() as connection:
            rows = connection.execute(text(query), params).mappings().all()
        payloads: List[Dict[str, str]] = []
        for row in rows:
            payloads.append(
                {
                    "character_id": row["character_id"],
                    "type": row["type"],
                    "data": row["data"],
                    "ts": row["ts"],
                }
            )
        payloads.reverse()
        return payloads


def _schema_statements() -> List[str]:
    """Provide the schema definitions for idempotent creation."""

    memories = """
    CREATE TABLE IF NOT EXISTS memories (
        character_id TEXT NOT NULL,
        memory_id TEXT NOT NULL,
        seq INTEGER NOT NULL,
        kind TEXT NOT NULL,
        content TEXT NOT NULL,
        created_at TEXT NOT NULL,
        importance INTEGER DEFAULT NULL,
        last_access TEXT NOT NULL,
        sources TEXT DEFAULT '[]',
        PRIMARY KEY (character_id, memory_id)
    )
    """
    memory_sequence = """
    CREATE TABLE IF NOT EXISTS memory_sequence (
        character_id TEXT PRIMARY KEY,
        last_seq INTEGER NOT NULL
    )
    """
    event_log = """
    CREATE TABLE IF NOT EXISTS event_log (
        event_id INTEGER PRIMARY KEY AUTOINCREMENT,
        character_id TEXT,
        type TEXT,
        data TEXT,
        ts TEXT
    )
    """
    return [memories, memory_sequence, event_log]


def _record_to_row(character_id: str, record: MemoryRecord) -> Dict[str, object]:
    """Flatten a record; unrated importance becomes NULL only here."""

    importance = record.importance.value if isinstance(record.importance, Rated) else None
    return {
        "character_id": character_id,
        "memory_id": record.memory_id,
        "seq": record.sequence,
        "kind": record.kind.value,
        "content": record.content,
        "created_at": record.created_at.isoformat(),
        "importance": importance,
        "last_access": record.last_access.isoformat(),
        "sources": json.dumps(record.sources),
    }


def _row_to_record(row) -> MemoryRecord:
    """Rebuild a typed record from a sqlite row."""

    return MemoryRecord(
        memory_id=row["memory_id"],
        sequence=int(row["seq"]),
        kind=MemoryKind(row["kind"]),
        content=row["content"],
        created_at=datetime.fromisoformat(row["created_at"]),
        importance=rated(row["importance"]),
        last_access=datetime.fromisoformat(row["last_access"]),
        sources=json.loads(row["sources"] or "[]"),
    )
