########## Shared Test Fixtures ##########
# Scripted completion client, controllable clock, fake world, agent factory.

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Union

import pytest

from hearthmind.core import config
from hearthmind.core.agent import CharacterAgent
from hearthmind.core.db import MemoryDatabase
from hearthmind.core.events import EventBus
from hearthmind.core.llm import BaseCompletionClient, CompletionError
from hearthmind.core.memory import MemoryStore
from hearthmind.core.types import Persona, PerceptionSnapshot, Position, Scratch

Reply = Union[str, Exception]


class ScriptedCompletionClient(BaseCompletionClient):
    """Replies queued per prompt marker; anything else gets the default."""

    def __init__(self, default: Reply = "...") -> None:
        self.default = default
        self.routes: Dict[str, List[Reply]] = {}
        self.prompts: List[str] = []

    def script(self, marker: str, *replies: Reply) -> "ScriptedCompletionClient":
        self.routes.setdefault(marker, []).extend(replies)
        return self

    def prompts_with(self, marker: str) -> List[str]:
        return [prompt for prompt in self.prompts if marker in prompt]

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        reply: Reply = self.default
        for marker, queue in self.routes.items():
            if marker in prompt and queue:
                reply = queue.pop(0)
                break
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self) -> None:
        self.now = datetime(2024, 10, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, hours: float) -> None:
        self.now = self.now + timedelta(hours=hours)


class FakeWorld:
    """Snapshots set by hand; moves are recorded and arrive immediately."""

    def __init__(self) -> None:
        self.snapshots: Dict[str, PerceptionSnapshot] = {}
        self.positions: Dict[str, Position] = {}
        self.moves: List[tuple] = []

    def position_of(self, character_id: str) -> Optional[Position]:
        return self.positions.get(character_id)

    def visible_snapshot(self, character_id: str) -> PerceptionSnapshot:
        return self.snapshots.get(character_id, PerceptionSnapshot())

    def move_to(self, character_id: str, position: Position, on_arrival: Callable[[], None]) -> None:
        self.moves.append((character_id, position))
        self.positions[character_id] = position
        on_arrival()


@pytest.fixture(autouse=True)
def _isolated_logs(tmp_path, monkeypatch) -> None:
    """Keep run logs out of the repository during tests."""

    monkeypatch.setattr(config, "LOG_TEXT_DIR", str(tmp_path / "logs"))


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def database(tmp_path) -> MemoryDatabase:
    return MemoryDatabase(str(tmp_path / "memories.sqlite"))


@pytest.fixture
def store(database, fake_clock) -> MemoryStore:
    return MemoryStore("tester", database, clock=fake_clock)


@pytest.fixture
def persona() -> Persona:
    return Persona(
        id="tester",
        name="Tess the Tester",
        age=30,
        occupation="blacksmith",
        location="smithy",
        traits=["careful", "blunt"],
        backstory="Tess keeps the village forge running.",
        goals=["find iron ore", "finish the rune sword"],
        speech_style="short and direct",
    )


@pytest.fixture
def scripted_client() -> ScriptedCompletionClient:
    return ScriptedCompletionClient()


@pytest.fixture
def failing_client() -> ScriptedCompletionClient:
    return ScriptedCompletionClient(default=CompletionError("service unavailable"))


@pytest.fixture
def make_agent(persona, database, fake_clock) -> Callable[..., CharacterAgent]:
    """Build an agent around the given client with a fresh scratch."""

    def _build(client: BaseCompletionClient, events: Optional[EventBus] = None, **scratch_fields) -> CharacterAgent:
        fields = {"current_location": "home", "current_activity": "sleeping"}
        fields.update(scratch_fields)
        store = MemoryStore(persona.character_id, database, clock=fake_clock)
        return CharacterAgent(persona, Scratch(**fields), store, client, events or EventBus())

    return _build


@pytest.fixture
def fake_world() -> FakeWorld:
    return FakeWorld()
