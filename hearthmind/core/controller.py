########## Character Controller ##########
# Binds an agent to the spatial world: place names to tiles, plan to movement.

from __future__ import annotations

import re
from enum import Enum
from typing import Callable, Dict, List, Optional

from . import config
from .agent import CharacterAgent
from .logs import log_run_event, log_warning
from .perception import SpatialWorld
from .types import CharacterEvent, EventType, LocationDef, PerceptionDelta, PlanItem, PlanProgress


class ControllerState(str, Enum):
    SLEEPING = "sleeping"
    WAKING_UP = "waking_up"
    MOVING = "moving"
    WORKING = "working"
    IDLE = "idle"


class CharacterController:
    """Moves the character token whenever its activity changes."""

    def __init__(self, agent: CharacterAgent, world: SpatialWorld, locations: Dict[str, LocationDef]) -> None:
        self.agent = agent
        self.world = world
        self.locations = locations
        self.state = ControllerState.SLEEPING if not agent.scratch.is_awake else ControllerState.IDLE
        self.target_location: Optional[str] = None
        self.state_listeners: List[Callable[[ControllerState, str], None]] = []
        agent.events.subscribe(self.on_event)

    @property
    def character_id(self) -> str:
        return self.agent.character_id

    def resolve_location(self, name: str) -> Optional[LocationDef]:
        """Exact key, then containment either way, then any keyword of 2+ chars."""

        if not name:
            return None
        if name in self.locations:
            return self.locations[name]
        for key, location in self.locations.items():
            if key in name or name in key:
                return location
        for keyword in re.split(r"[,\s]+", name):
            if len(keyword) < 2:
                continue
            for key, location in self.locations.items():
                if keyword in key:
                    return location
        return None

    def _set_state(self, state: ControllerState) -> None:
        if state == self.state:
            return
        self.state = state
        for callback in list(self.state_listeners):
            callback(state, self.character_id)

    def move_to(self, location_name: str, on_arrival: Optional[Callable[[], None]] = None) -> bool:
        location = self.resolve_location(location_name)
        if location is None:
            log_warning("Controller", f"{self.character_id}: unknown location '{location_name}', staying put")
            return False
        self.target_location = location_name
        self._set_state(ControllerState.MOVING)

        def arrived() -> None:
            self.target_location = None
            self._set_state(ControllerState.WORKING)
            log_run_event(f"arrive {self.character_id} at {location_name}")
            if on_arrival is not None:
                on_arrival()

        self.world.move_to(self.character_id, location.position, arrived)
        return True

    def on_event(self, event: CharacterEvent) -> None:
        if event.character_id != self.character_id or event.event_type != EventType.ACTIVITY_CHANGED:
            return
        if not self.agent.scratch.is_awake:
            self._set_state(ControllerState.SLEEPING)
            return
        self.move_to(self.agent.scratch.current_location)

    async def wake_up(self, time_label: str = config.WAKE_TIME) -> List[PlanItem]:
        self._set_state(ControllerState.WAKING_UP)
        return await self.agent.wake_up(time_label)

    def sleep(self) -> None:
        self.agent.sleep()
        self._set_state(ControllerState.SLEEPING)

    def tick(self, time_label: str) -> PlanProgress:
        return self.agent.update_plan_progress(time_label)

    def perceive(self) -> List[PerceptionDelta]:
        return self.agent.perceive(self.world)
