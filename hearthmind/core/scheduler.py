########## Simulation Scheduler ##########
# Registry of characters plus the clock-driven loop that ticks them.

from __future__ import annotations

import asyncio
import random
from typing import Dict, List, Optional

from . import config
from .agent import CharacterAgent
from .clock import GameClock
from .controller import CharacterController
from .db import MemoryDatabase
from .events import EventBus
from .llm import BaseCompletionClient, LLMClient
from .logs import log_run_event
from .memory import MemoryStore
from .perception import SpatialWorld
from .types import CharacterDefinition, PerceptionDelta, PlanProgress


class CharacterRegistry:
    """Owns the shared services and hands them to each agent it builds."""

    def __init__(
        self,
        database: Optional[MemoryDatabase] = None,
        client: Optional[BaseCompletionClient] = None,
        events: Optional[EventBus] = None,
    ) -> None:
        self.database = database or MemoryDatabase()
        self.client = client or LLMClient()
        self.events = events or EventBus(self.database)
        self.agents: Dict[str, CharacterAgent] = {}

    def create_agent(self, definition: CharacterDefinition) -> CharacterAgent:
        """Build an agent with its own store and seed its world knowledge."""

        # 1 One store per character id, fresh scratch copy per agent.          # steps
        # 2 Knowledge seeding skips facts the store already holds.             # steps
        if definition.character_id in self.agents:
            raise ValueError(f"character {definition.character_id} already registered")
        store = MemoryStore(definition.character_id, self.database)
        agent = CharacterAgent(
            definition.persona,
            definition.scratch.model_copy(deep=True),
            store,
            self.client,
            self.events,
            rng=random.Random(f"{config.RANDOM_SEED}:{definition.character_id}"),
        )
        agent.seed_knowledge(definition.knowledge)
        self.agents[definition.character_id] = agent
        return agent

    def get(self, character_id: str) -> Optional[CharacterAgent]:
        return self.agents.get(character_id)


class SimulationScheduler:
    """Wakes, ticks and puts to bed every registered character."""

    def __init__(
        self,
        registry: Optional[CharacterRegistry] = None,
        world: Optional[SpatialWorld] = None,
        clock: Optional[GameClock] = None,
    ) -> None:
        self.registry = registry or CharacterRegistry()
        self.world = world
        self.clock = clock or GameClock()
        self.controllers: Dict[str, CharacterController] = {}
        self.current_tick: int = 0

    @property
    def agents(self) -> Dict[str, CharacterAgent]:
        return self.registry.agents

    def register(self, definition: CharacterDefinition) -> CharacterAgent:
        agent = self.registry.create_agent(definition)
        if self.world is not None:
            self.controllers[agent.character_id] = CharacterController(agent, self.world, definition.locations)
        log_run_event(f"register {agent.character_id} ({agent.name})")
        return agent

    async def wake_all(self) -> None:
        """Plan every character's day; characters run independently."""

        label = self.clock.label
        jobs = []
        for character_id, agent in self.agents.items():
            controller = self.controllers.get(character_id)
            jobs.append(controller.wake_up(label) if controller else agent.wake_up(label))
        await asyncio.gather(*jobs)

    def sleep_all(self) -> None:
        for character_id, agent in self.agents.items():
            controller = self.controllers.get(character_id)
            if controller is not None:
                controller.sleep()
            else:
                agent.sleep()

    def tick(self, minutes: int = config.GAME_MINUTES_PER_TICK) -> Dict[str, PlanProgress]:
        """Advance the clock, then plan progression and perception per character."""

        # 1 Move the clock.                                                    # steps
        # 2 Progress each plan; perceive when a world is attached.            # steps
        label = self.clock.advance(minutes)
        self.current_tick += 1
        results: Dict[str, PlanProgress] = {}
        for character_id, agent in self.agents.items():
            results[character_id] = agent.update_plan_progress(label)
            if self.world is not None:
                agent.perceive(self.world)
        return results

    def run(self, ticks: int, minutes: int = config.GAME_MINUTES_PER_TICK) -> List[Dict[str, PlanProgress]]:
        return [self.tick(minutes) for _ in range(ticks)]

    def perceive_all(self) -> Dict[str, List[PerceptionDelta]]:
        if self.world is None:
            return {}
        return {character_id: agent.perceive(self.world) for character_id, agent in self.agents.items()}

    async def chat(self, character_id: str, text: str, speaker: str = config.PLAYER_NAME) -> str:
        agent = self.agents.get(character_id)
        if agent is None:
            raise KeyError(character_id)
        return await agent.chat(text, speaker=speaker)

    async def shutdown(self) -> None:
        """Let in-flight reflection cycles finish."""

        await asyncio.gather(*(agent.wait_for_reflection() for agent in self.agents.values()))
