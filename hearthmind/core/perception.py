########## Perception Translator ##########
# Diffs what a character can see against last time and writes observations.

from __future__ import annotations

from typing import Callable, List, Optional, Protocol

from . import config
from .memory import MemoryStore
from .types import (
    MemoryKind,
    PerceptionDelta,
    PerceptionDeltaKind,
    PerceptionSnapshot,
    Position,
)


class SpatialWorld(Protocol):
    """The three things the core asks of the tile world."""

    def position_of(self, character_id: str) -> Optional[Position]: ...

    def visible_snapshot(self, character_id: str) -> PerceptionSnapshot: ...

    def move_to(self, character_id: str, position: Position, on_arrival: Callable[[], None]) -> None: ...


def diff_snapshots(previous: PerceptionSnapshot, current: PerceptionSnapshot) -> List[PerceptionDelta]:
    """Natural-language deltas between two snapshots."""

    deltas: List[PerceptionDelta] = []
    for entity_id, entity in current.entities.items():
        if entity_id not in previous.entities:
            deltas.append(
                PerceptionDelta(
                    kind=PerceptionDeltaKind.APPEARED,
                    subject_id=entity_id,
                    text=f"I noticed {entity.name} nearby.",
                    importance=config.PERCEPTION_APPEAR_IMPORTANCE,
                    is_player=entity.is_player,
                )
            )
    for entity_id, entity in previous.entities.items():
        if entity_id not in current.entities:
            deltas.append(
                PerceptionDelta(
                    kind=PerceptionDeltaKind.DISAPPEARED,
                    subject_id=entity_id,
                    text=f"{entity.name} is no longer in sight.",
                    importance=config.PERCEPTION_VANISH_IMPORTANCE,
                    is_player=entity.is_player,
                )
            )
    for object_id, seen in current.objects.items():
        before = previous.objects.get(object_id)
        if before is None:
            suffix = f" ({seen.state})" if seen.state else ""
            deltas.append(
                PerceptionDelta(
                    kind=PerceptionDeltaKind.APPEARED,
                    subject_id=object_id,
                    text=f"I can see the {seen.name}{suffix}.",
                    importance=config.PERCEPTION_OBJECT_SEEN_IMPORTANCE,
                )
            )
        elif before.state != seen.state:
            deltas.append(
                PerceptionDelta(
                    kind=PerceptionDeltaKind.CHANGED,
                    subject_id=object_id,
                    text=f"The {seen.name} is now {seen.state or 'unknown'} (it was {before.state or 'unknown'}).",
                    importance=config.PERCEPTION_OBJECT_CHANGED_IMPORTANCE,
                )
            )
    for object_id, seen in previous.objects.items():
        if object_id not in current.objects:
            deltas.append(
                PerceptionDelta(
                    kind=PerceptionDeltaKind.DISAPPEARED,
                    subject_id=object_id,
                    text=f"The {seen.name} is out of sight.",
                )
            )
    return deltas


class PerceptionTranslator:
    """Keeps one character's last snapshot and records what changed."""

    def __init__(self, store: MemoryStore) -> None:
        self.store = store
        self.last_snapshot = PerceptionSnapshot()

    def observe(self, snapshot: PerceptionSnapshot) -> List[PerceptionDelta]:
        deltas = diff_snapshots(self.last_snapshot, snapshot)
        for delta in deltas:
            self.store.append(MemoryKind.OBSERVATION, delta.text, importance=delta.importance)
        self.last_snapshot = snapshot.model_copy(deep=True)
        return deltas

    def perceive(self, world: SpatialWorld) -> List[PerceptionDelta]:
        return self.observe(world.visible_snapshot(self.store.character_id))

    def reset(self) -> None:
        self.last_snapshot = PerceptionSnapshot()
