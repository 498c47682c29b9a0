########## Demo Runner ##########
# Builds the village, runs one scripted day, and exports the event log.

from __future__ import annotations

import asyncio
import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..core import config
from ..core.db import MemoryDatabase
from ..core.llm import BaseCompletionClient, LLMClient
from ..core.scheduler import CharacterRegistry, SimulationScheduler
from ..core.types import CharacterDefinition, PerceptionSnapshot, Position, SeenEntity, SeenObject

SEED_DIR = Path(__file__).resolve().parent / "seeds"
PROJECT_ROOT = Path(__file__).resolve().parents[2]


########## Env Loader ##########
# Reads a simple .env file so local services are configured.

def _load_env_file() -> None:
    """Load .env key value pairs if present."""

    # 1 Return quickly when the .env file does not exist.                    # steps
    env_path = PROJECT_ROOT / ".env"
    if not env_path.exists():
        return
    # 2 Read each line and apply missing entries to os.environ.               # steps
    for line in env_path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        key = key.strip()
        value = value.strip()
        if key and value and key not in os.environ:
            os.environ[key] = value


_load_env_file()


########## Demo World ##########
# Tiny grid stand-in: instant moves and a square sight radius.


class DemoWorld:
    """Positions for characters and objects; anything within range is visible."""

    def __init__(self, sight_range: int = 4) -> None:
        self.sight_range = sight_range
        self.positions: Dict[str, Position] = {}
        self.names: Dict[str, str] = {}
        self.players: Dict[str, bool] = {}
        self.objects: Dict[str, SeenObject] = {}

    def place(self, entity_id: str, name: str, position: Position, is_player: bool = False) -> None:
        self.positions[entity_id] = position
        self.names[entity_id] = name
        self.players[entity_id] = is_player

    def add_object(self, seen: SeenObject) -> None:
        self.objects[seen.object_id] = seen

    def set_object_state(self, object_id: str, state: str) -> None:
        self.objects[object_id] = self.objects[object_id].model_copy(update={"state": state})

    def position_of(self, character_id: str) -> Optional[Position]:
        return self.positions.get(character_id)

    def _in_range(self, origin: Position, other: Optional[Position]) -> bool:
        if other is None:
            return False
        return abs(origin.x - other.x) <= self.sight_range and abs(origin.y - other.y) <= self.sight_range

    def visible_snapshot(self, character_id: str) -> PerceptionSnapshot:
        origin = self.positions.get(character_id)
        if origin is None:
            return PerceptionSnapshot()
        entities = {
            entity_id: SeenEntity(entity_id=entity_id, name=self.names[entity_id], is_player=self.players[entity_id], position=position)
            for entity_id, position in self.positions.items()
            if entity_id != character_id and self._in_range(origin, position)
        }
        objects = {
            object_id: seen for object_id, seen in self.objects.items() if self._in_range(origin, seen.position)
        }
        return PerceptionSnapshot(entities=entities, objects=objects)

    def move_to(self, character_id: str, position: Position, on_arrival: Callable[[], None]) -> None:
        self.positions[character_id] = position
        on_arrival()


def load_seed_definitions(seed_dir: Path = SEED_DIR) -> List[CharacterDefinition]:
    """Load character definitions from seed JSON files."""

    # 1 Walk seed directory and parse JSON.                                     # steps
    definitions: List[CharacterDefinition] = []
    for path in sorted(seed_dir.glob("npc_*.json")):
        with path.open("r", encoding="utf-8") as handle:
            raw = json.load(handle)
        definition = CharacterDefinition.model_validate(raw)
        if config.ACTIVE_CHARACTERS and definition.character_id not in config.ACTIVE_CHARACTERS:
            continue
        definitions.append(definition)
    return definitions


def build_demo_world(
    client: Optional[BaseCompletionClient] = None,
    database: Optional[MemoryDatabase] = None,
) -> SimulationScheduler:
    """Create the registry, world, and scheduler, then register the seeds."""

    # 1 Shared services live in the registry.                                  # steps
    # 2 Each character starts at its home tile.                                # steps
    registry = CharacterRegistry(database=database, client=client or LLMClient())
    world = DemoWorld()
    scheduler = SimulationScheduler(registry=registry, world=world)
    for definition in load_seed_definitions():
        home = definition.locations.get(definition.scratch.current_location)
        world.place(definition.character_id, definition.persona.name, home.position if home else Position(x=0, y=0))
        scheduler.register(definition)
    world.add_object(SeenObject(object_id="anvil_john", name="anvil", state="ready", position=Position(x=4, y=2)))
    world.add_object(SeenObject(object_id="bed_john", name="bed", state="John is asleep", position=Position(x=7, y=2)))
    return scheduler


def export_event_log(database: MemoryDatabase) -> Path:
    """Dump the sqlite event log to CSV for analysts."""

    # 1 Fetch events and write a simple CSV file.                               # steps
    export_dir = Path(config.DEFAULT_EXPORT_DIR)
    export_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    file_path = export_dir / config.DEFAULT_EVENT_LOG_EXPORT.format(timestamp=timestamp)
    with file_path.open("w", encoding="utf-8") as handle:
        handle.write("character_id,type,data,ts\n")
        for event in database.fetch_events():
            row = [event.get("character_id", ""), event.get("type", ""), event.get("data", ""), event.get("ts", "")]
            safe = [str(value).replace(",", ";").replace("\n", " ") for value in row]
            handle.write(",".join(safe) + "\n")
    return file_path


async def run_demo(ticks: int = 40, scheduler: Optional[SimulationScheduler] = None) -> SimulationScheduler:
    """Wake everyone, chat with the blacksmith, tick through the day, sleep."""

    # 1 Morning: plans for everyone.                                           # steps
    # 2 A traveller visits the smithy between ticks.                          # steps
    # 3 Evening: sleep and let reflection cycles settle.                       # steps
    scheduler = scheduler or build_demo_world()
    await scheduler.wake_all()
    if isinstance(scheduler.world, DemoWorld):
        scheduler.world.place("player", "the traveler", Position(x=3, y=4), is_player=True)
        scheduler.world.set_object_state("bed_john", "empty")
    smith = scheduler.agents.get("blacksmith_john")
    if smith is not None:
        print(f"[Demo] {smith.name}: {await smith.greet()}")
        for line in ["Do you have any swords?", "Where does your iron come from?", "Thanks, I'll be back."]:
            print(f"[Demo] traveler: {line}")
            print(f"[Demo] {smith.name}: {await smith.chat(line)}")
    for _ in range(ticks):
        scheduler.tick()
    scheduler.sleep_all()
    await scheduler.shutdown()
    return scheduler


def main() -> None:
    """Entry point when running the demo script directly."""

    # 1 Kick off a small run and report where logs went.                        # steps
    scheduler = asyncio.run(run_demo())
    path = export_event_log(scheduler.registry.database)
    for agent in scheduler.agents.values():
        print(f"[Demo] {agent.name}: {agent.store.count()} memories, now {agent.scratch.current_activity}")
    print(f"[Demo] Events exported to {path}.")


if __name__ == "__main__":
    main()
