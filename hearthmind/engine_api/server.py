########## Engine API ##########
# Lightweight FastAPI server over the simulation scheduler.

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from ..core import config
from ..core.agent import CharacterAgent
from ..core.scheduler import SimulationScheduler


class ChatRequest(BaseModel):
    text: str
    speaker: str = config.PLAYER_NAME


def create_app(scheduler: Optional[SimulationScheduler] = None) -> FastAPI:
    """Build the app; without a scheduler the demo village is loaded on first use."""

    app = FastAPI(title="Hearthmind Engine API", version="0.1.0")
    state: Dict[str, Optional[SimulationScheduler]] = {"scheduler": scheduler}

    def _scheduler() -> SimulationScheduler:
        if state["scheduler"] is None:
            from ..demo.hearthmind_demo import build_demo_world

            state["scheduler"] = build_demo_world()
        return state["scheduler"]

    def _agent(npc_id: str) -> CharacterAgent:
        agent = _scheduler().agents.get(npc_id)
        if agent is None:
            raise HTTPException(status_code=404, detail=f"unknown character {npc_id}")
        return agent

    @app.post("/chat/{npc_id}")
    async def chat(npc_id: str, request: ChatRequest) -> Dict[str, Any]:
        """Run one dialogue turn and return the reply with the resulting mood."""

        agent = _agent(npc_id)
        reply = await agent.chat(request.text, speaker=request.speaker)
        return {"npc": npc_id, "reply": reply, "mood": agent.scratch.current_mood.value}

    @app.post("/wake")
    async def wake() -> Dict[str, int]:
        """Plan the day for every character."""

        await _scheduler().wake_all()
        return {"awake": sum(1 for agent in _scheduler().agents.values() if agent.scratch.is_awake)}

    @app.post("/tick")
    def tick(minutes: int = config.GAME_MINUTES_PER_TICK) -> Dict[str, Any]:
        """Advance the clock and report which characters changed activity."""

        # 1 Run a single tick and list characters whose plan moved.             # steps
        results = _scheduler().tick(minutes)
        changed = [character_id for character_id, progress in results.items() if progress.changed]
        return {**_scheduler().clock.state(), "changed": changed}

    @app.get("/npc_state")
    def npc_state() -> List[Dict[str, Any]]:
        """Expose character scratch state for other clients."""

        return [agent.snapshot() for agent in _scheduler().agents.values()]

    @app.get("/memories/{npc_id}")
    def memories(npc_id: str, limit: int = 25) -> List[Dict[str, Any]]:
        """Return the newest memory records for one character."""

        payload: List[Dict[str, Any]] = []
        for record in _agent(npc_id).store.recent(limit):
            payload.append(
                {
                    "id": record.memory_id,
                    "kind": record.kind.value,
                    "content": record.content,
                    "importance": record.importance_label(),
                    "created_at": record.created_at.isoformat(),
                    "sources": list(record.sources),
                }
            )
        return payload

    @app.get("/events")
    def events(limit: int = 25, npc_id: Optional[str] = None) -> List[Dict[str, str]]:
        """Return the most recent character events."""

        selected = _scheduler().registry.events.recent(limit, character_id=npc_id)
        return [
            {
                "npc": event.character_id,
                "type": event.event_type.value,
                "payload": event.payload,
                "ts": event.created_at.isoformat(),
            }
            for event in selected
        ]

    return app


app = create_app()
