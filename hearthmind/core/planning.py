########## Planning Engine ##########
# Builds one day's schedule from persona, knowledge, history and goals.

from __future__ import annotations

from typing import Awaitable, Callable, List, Optional

from . import config
from .agentic_helpers import decode_plan_items
from .logs import log_run_event, log_warning
from .memory import MemoryStore
from .prompts import daily_plan_prompt
from .retrieval import retrieve
from .types import MemoryKind, Persona, PlanItem, PlanStatus, scoring_importance

Completer = Callable[[str, str], Awaitable[Optional[str]]]


def default_plan(persona: Persona) -> List[PlanItem]:
    """Fixed hand-authored day with the persona's workplace filled in."""

    items: List[PlanItem] = []
    for entry in config.DEFAULT_DAILY_PLAN:
        location = entry.get("location")
        if location:
            location = location.replace("{workplace}", persona.location)
        items.append(
            PlanItem(
                time=entry["time"],
                activity=entry["activity"],
                location=location,
                duration=entry.get("duration", config.PLAN_DEFAULT_DURATION),
                status=PlanStatus.PENDING,
            )
        )
    return items


def summarize_plan(items: List[PlanItem]) -> str:
    parts = [f"{item.time} {item.activity}" + (f" ({item.location})" if item.location else "") for item in items]
    return "Plan for today: " + "; ".join(parts)


class PlanningEngine:
    """Turns what a character knows and remembers into a day-long schedule."""

    def __init__(self, persona: Persona, store: MemoryStore, complete: Completer) -> None:
        self.persona = persona
        self.store = store
        self.complete = complete

    def knowledge_context(self) -> str:
        facts = self.store.knowledge()
        if not facts:
            return config.NO_KNOWLEDGE_TEXT
        return "\n".join(f"- {record.content}" for record in facts)

    def observation_context(self) -> str:
        """Newest observations rated at or above the planning threshold."""

        notable = [
            record
            for record in self.store.by_kind(MemoryKind.OBSERVATION)
            if scoring_importance(record.importance) >= config.PLAN_OBSERVATION_THRESHOLD
        ][-config.PLAN_RECENT_OBSERVATIONS :]
        if not notable:
            return config.NO_CHANGE_TEXT
        return "\n".join(f"- {record.content}" for record in notable)

    def yesterday_summary(self) -> str:
        """Latest end-of-day record, else latest plan record, else first day."""

        records = self.store.all()
        for record in reversed(records):
            if config.DAY_COMPLETE_MARKER in record.content:
                return record.content
        for record in reversed(records):
            if record.kind == MemoryKind.PLAN:
                return record.content
        return config.FIRST_DAY_TEXT

    def goal_context(self) -> str:
        query = " ".join(self.persona.goals)
        memories = retrieve(self.store, query, config.PLAN_RETRIEVAL_TOP_K)
        if not memories:
            return config.NO_MEMORY_TEXT
        return "\n".join(f"- {item.record.content}" for item in memories)

    def build_prompt(self) -> str:
        return daily_plan_prompt(
            self.persona,
            knowledge=self.knowledge_context(),
            observations=self.observation_context(),
            yesterday=self.yesterday_summary(),
            memories=self.goal_context(),
        )

    async def generate(self) -> List[PlanItem]:
        """Ask for a schedule; fall back to the default day when unusable."""

        # 1 Assemble the prompt and ask once.                                  # steps
        # 2 Decoded items start pending; an empty decode means the default.    # steps
        # 3 Only a generated plan is written back as a plan record.            # steps
        raw = await self.complete(self.build_prompt(), "Planning")
        items = decode_plan_items(raw) if raw is not None else []
        if not items:
            if raw is not None:
                log_warning("Planning", f"no usable schedule for {self.store.character_id}; using default day")
            return default_plan(self.persona)
        self.store.append(MemoryKind.PLAN, summarize_plan(items), importance=config.PLAN_RECORD_IMPORTANCE)
        log_run_event(f"plan {self.store.character_id}: {len(items)} items")
        return items
