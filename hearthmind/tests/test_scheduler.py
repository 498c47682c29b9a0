########## Scheduler, Controller, Clock Tests ##########
# Registry wiring, location resolution, movement on activity change, ticking.

from __future__ import annotations

import asyncio
import json

import pytest

from hearthmind.core.clock import GameClock
from hearthmind.core.controller import CharacterController, ControllerState
from hearthmind.core.events import EventBus
from hearthmind.core.prompts import TASK_DAILY_PLAN
from hearthmind.core.scheduler import CharacterRegistry, SimulationScheduler
from hearthmind.core.types import CharacterDefinition, LocationDef, MemoryKind, Position, Scratch

LOCATIONS = {
    "home": LocationDef(position=Position(x=8, y=3)),
    "smithy workshop": LocationDef(position=Position(x=3, y=3)),
    "anvil": LocationDef(position=Position(x=3, y=2)),
    "village street": LocationDef(position=Position(x=5, y=5)),
}

PLAN_REPLY = json.dumps(
    [
        {"time": "06:00", "activity": "Wake up", "location": "home", "duration": 60},
        {"time": "07:00", "activity": "Hammer at the anvil", "location": "in front of the anvil", "duration": 60},
        {"time": "08:00", "activity": "Visit the well", "location": "the old well", "duration": 60},
    ]
)


def _definition(persona) -> CharacterDefinition:
    return CharacterDefinition(
        id=persona.character_id,
        persona=persona,
        scratch=Scratch(current_location="home", current_activity="sleeping"),
        knowledge=["There is an anvil in the smithy."],
        locations=LOCATIONS,
    )


########## Clock ##########


def test_clock_labels_and_periods() -> None:
    clock = GameClock(start="06:00")
    assert clock.label == "06:00"
    assert clock.period == "dawn"
    assert clock.advance(75) == "07:15"
    assert clock.period == "morning"
    assert clock.label_12h == "7:15 AM"


def test_clock_rolls_over_days_and_notifies() -> None:
    clock = GameClock(start="23:30")
    days, periods = [], []
    clock.day_listeners.append(days.append)
    clock.period_listeners.append(periods.append)
    clock.advance(45)
    assert clock.label == "00:15"
    assert clock.day == 2
    assert days == [2]
    assert periods == []  # night to night
    with pytest.raises(ValueError):
        clock.advance(-5)


########## Controller ##########


def test_resolve_location_exact_substring_keyword(make_agent, scripted_client, fake_world) -> None:
    controller = CharacterController(make_agent(scripted_client), fake_world, LOCATIONS)
    assert controller.resolve_location("home") is LOCATIONS["home"]
    assert controller.resolve_location("smithy workshop, by the door") is LOCATIONS["smithy workshop"]
    assert controller.resolve_location("street") is LOCATIONS["village street"]
    assert controller.resolve_location("in front of the anvil") is LOCATIONS["anvil"]
    assert controller.resolve_location("the smithy") is LOCATIONS["smithy workshop"]
    assert controller.resolve_location("the old well") is None
    assert controller.resolve_location("") is None


def test_controller_moves_on_activity_changes(make_agent, scripted_client, fake_world) -> None:
    scripted_client.script(TASK_DAILY_PLAN, PLAN_REPLY)
    agent = make_agent(scripted_client, events=EventBus())
    controller = CharacterController(agent, fake_world, LOCATIONS)
    states = []
    controller.state_listeners.append(lambda state, _: states.append(state))

    asyncio.run(controller.wake_up("06:00"))
    assert fake_world.moves[-1] == (agent.character_id, Position(x=8, y=3))
    assert controller.state is ControllerState.WORKING
    assert states[:3] == [ControllerState.WAKING_UP, ControllerState.MOVING, ControllerState.WORKING]

    controller.tick("07:10")
    assert fake_world.moves[-1] == (agent.character_id, Position(x=3, y=2))

    moves_before = len(fake_world.moves)
    controller.tick("08:05")
    assert len(fake_world.moves) == moves_before  # unknown place, token stays

    controller.sleep()
    assert controller.state is ControllerState.SLEEPING


########## Registry and Scheduler ##########


def test_registry_seeds_knowledge_once(database, scripted_client, persona) -> None:
    registry = CharacterRegistry(database=database, client=scripted_client, events=EventBus(database))
    agent = registry.create_agent(_definition(persona))
    assert [record.kind for record in agent.store.all()] == [MemoryKind.KNOWLEDGE]
    assert registry.get(persona.character_id) is agent
    with pytest.raises(ValueError):
        registry.create_agent(_definition(persona))

    again = CharacterRegistry(database=database, client=scripted_client).create_agent(_definition(persona))
    assert again.store.count() == 1


def test_registry_copies_scratch_per_agent(database, scripted_client, persona) -> None:
    definition = _definition(persona)
    agent = CharacterRegistry(database=database, client=scripted_client).create_agent(definition)
    agent.scratch.current_activity = "forging"
    assert definition.scratch.current_activity == "sleeping"


def test_scheduler_day_cycle(database, scripted_client, persona, fake_world) -> None:
    scripted_client.script(TASK_DAILY_PLAN, PLAN_REPLY)
    registry = CharacterRegistry(database=database, client=scripted_client)
    scheduler = SimulationScheduler(registry=registry, world=fake_world, clock=GameClock(start="06:00"))
    agent = scheduler.register(_definition(persona))
    assert persona.character_id in scheduler.controllers

    asyncio.run(scheduler.wake_all())
    assert agent.scratch.is_awake

    results = scheduler.run(4, minutes=15)
    assert scheduler.clock.label == "07:00"
    assert results[-1][agent.character_id].changed
    assert agent.scratch.current_activity == "Hammer at the anvil"

    scheduler.sleep_all()
    assert not agent.scratch.is_awake
    asyncio.run(scheduler.shutdown())


def test_scheduler_chat_unknown_character(database, scripted_client) -> None:
    scheduler = SimulationScheduler(registry=CharacterRegistry(database=database, client=scripted_client))
    with pytest.raises(KeyError):
        asyncio.run(scheduler.chat("nobody", "hello"))
