########## Event Bus ##########
# Fire-and-forget delivery of character events to UI and world collaborators.

from __future__ import annotations

from collections import deque
from typing import Callable, Deque, List, Optional

from . import config
from .db import MemoryDatabase
from .logs import log_run_event, log_warning
from .types import CharacterEvent, EventType

EventCallback = Callable[[CharacterEvent], None]


class EventBus:
    """Delivers each event at most once to every subscriber, no acknowledgement."""

    def __init__(self, database: Optional[MemoryDatabase] = None, history_size: int = config.EVENT_HISTORY_SIZE) -> None:
        self.database = database  # optional sqlite sink                       # intent
        self.history: Deque[CharacterEvent] = deque(maxlen=history_size)
        self._subscribers: List[EventCallback] = []

    def subscribe(self, callback: EventCallback) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: EventCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def emit(self, event_type: EventType, character_id: str, payload: str) -> CharacterEvent:
        """Build, record, and fan out one event."""

        # 1 Record the event locally and in the optional sink.                 # steps
        # 2 Hand it to every subscriber; a failing subscriber is only logged.  # steps
        event = CharacterEvent(event_type=event_type, character_id=character_id, payload=payload)
        self.history.append(event)
        log_run_event(f"event {event_type.value} {character_id}: {payload}")
        if self.database is not None:
            self.database.log_event(character_id, event_type.value, payload, event.created_at)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as error:
                log_warning("Events", f"subscriber failed on {event_type.value} for {character_id}: {error}")
        return event

    def recent(self, limit: int = 25, character_id: Optional[str] = None) -> List[CharacterEvent]:
        """Return the newest events, optionally for one character."""

        events = list(self.history)
        if character_id is not None:
            events = [event for event in events if event.character_id == character_id]
        return events[-limit:]
