########## Memory Stream ##########
# Per-character memory record store backed by the sqlite persistence layer.

from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Protocol

from .logs import log_run_event
from .types import MemoryKind, MemoryRecord, Rated, is_rated, rated, utcnow


class MemoryBackend(Protocol):
    """The persistence operations the store relies on."""

    def append_record(self, character_id: str, record: MemoryRecord) -> None: ...

    def load_records(self, character_id: str) -> List[MemoryRecord]: ...

    def overwrite_records(self, character_id: str, records: List[MemoryRecord]) -> None: ...

    def reserve_sequence(self, character_id: str) -> int: ...


class MemoryStore:
    """Ordered, durable memory stream for exactly one character."""

    def __init__(
        self,
        character_id: str,
        backend: MemoryBackend,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        # 1 Load the persisted stream once and keep it cached in order.        # steps
        self.character_id = character_id
        self.backend = backend
        self.clock = clock
        self._records: List[MemoryRecord] = backend.load_records(character_id)
        self._index: Dict[str, MemoryRecord] = {}
        for record in self._records:
            assert record.memory_id not in self._index, f"duplicate memory id {record.memory_id}"
            self._index[record.memory_id] = record

    def append(
        self,
        kind: MemoryKind,
        content: str,
        importance: Optional[float] = None,
        sources: Optional[Iterable[str]] = None,
    ) -> MemoryRecord:
        """Assign the next id, stamp timestamps, persist, and return the record."""

        # 1 Reserve the id first so it is never handed out twice.             # steps
        # 2 Persist before caching so a failed write leaves no ghost record.  # steps
        sequence = self.backend.reserve_sequence(self.character_id)
        memory_id = f"m{sequence:03d}"
        assert memory_id not in self._index, f"duplicate memory id {memory_id}"
        now = self.clock()
        record = MemoryRecord(
            memory_id=memory_id,
            sequence=sequence,
            kind=kind,
            content=content,
            created_at=now,
            importance=rated(importance),
            last_access=now,
            sources=list(sources or []),
        )
        self.backend.append_record(self.character_id, record)
        self._records.append(record)
        self._index[memory_id] = record
        log_run_event(f"memory {self.character_id} {memory_id} {kind.value} importance={record.importance_label()}")
        return record

    def all(self) -> List[MemoryRecord]:
        """Return every record in creation order."""

        return list(self._records)

    def get(self, memory_id: str) -> Optional[MemoryRecord]:
        return self._index.get(memory_id)

    def count(self) -> int:
        return len(self._records)

    def recent(self, count: int) -> List[MemoryRecord]:
        """Return the newest records, oldest of them first."""

        if count <= 0:
            return []
        return list(self._records[-count:])

    def by_kind(self, kind: MemoryKind) -> List[MemoryRecord]:
        return [record for record in self._records if record.kind == kind]

    def knowledge(self) -> List[MemoryRecord]:
        return self.by_kind(MemoryKind.KNOWLEDGE)

    def unrated(self) -> List[MemoryRecord]:
        return [record for record in self._records if not is_rated(record.importance)]

    def has_knowledge_like(self, text: str) -> bool:
        """True when any knowledge record already contains the text."""

        return any(text in record.content for record in self.knowledge())

    def update_importance(self, memory_id: str, value: float) -> None:
        """Clamp and overwrite one record's importance; unknown ids are ignored."""

        record = self._index.get(memory_id)
        if record is None:
            return
        previous = record.importance
        record.importance = Rated(value=value)
        try:
            self._persist_all()
        except Exception:
            record.importance = previous
            raise

    def touch(self, memory_ids: Iterable[str], when: Optional[datetime] = None) -> None:
        """Set last-access for the given records and persist the stream."""

        # 1 Remember prior stamps so a failed write leaves the cache as stored. # steps
        timestamp = when or self.clock()
        previous: Dict[str, datetime] = {}
        for memory_id in memory_ids:
            record = self._index.get(memory_id)
            if record is None or memory_id in previous:
                continue
            previous[memory_id] = record.last_access
            record.last_access = timestamp
        if not previous:
            return
        try:
            self._persist_all()
        except Exception:
            for memory_id, last_access in previous.items():
                self._index[memory_id].last_access = last_access
            raise

    def clear(self) -> None:
        """Forget every record; the id high-water mark is kept by the backend."""

        self._records = []
        self._index = {}
        self._persist_all()

    def _persist_all(self) -> None:
        self.backend.overwrite_records(self.character_id, self._records)
