########## Reflection Cycle ##########
# Importance back-fill and insight generation, run as a guarded background cycle.

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Tuple

from . import config
from .agentic_helpers import decode_importance_batch, strip_think
from .logs import log_run_event, log_warning
from .memory import MemoryStore
from .prompts import importance_prompt, reflection_prompt
from .types import MemoryKind, MemoryRecord, Persona, scoring_importance

# prompt, tag -> reply text or None when the completion failed
Completer = Callable[[str, str], Awaitable[Optional[str]]]


class ImportanceEvaluator:
    """Rates the newest unrated memories in one batch call."""

    def __init__(self, persona: Persona, store: MemoryStore, complete: Completer) -> None:
        self.persona = persona
        self.store = store
        self.complete = complete

    async def evaluate(self) -> int:
        """Return how many records received a rating."""

        # 1 Pick at most the cap of newest unrated records.                    # steps
        # 2 One batch call; skip unknown ids and non-numeric values.           # steps
        candidates = self.store.unrated()[-config.IMPORTANCE_EVAL_CAP :]
        if not candidates:
            return 0
        raw = await self.complete(importance_prompt(self.persona, candidates), "Importance")
        if raw is None:
            return 0
        pairs = decode_importance_batch(raw)
        if pairs is None:
            log_warning("Importance", f"no rating array for {self.store.character_id}; records stay unrated")
            return 0
        pending = {record.memory_id for record in candidates}
        updated = 0
        for memory_id, value in pairs:
            if memory_id not in pending:
                continue
            self.store.update_importance(memory_id, value)
            pending.discard(memory_id)
            updated += 1
        log_run_event(f"importance {self.store.character_id}: rated {updated}/{len(candidates)}")
        return updated


class ReflectionGenerator:
    """Summarises the weightiest recent memories into one insight."""

    def __init__(self, persona: Persona, store: MemoryStore, complete: Completer) -> None:
        self.persona = persona
        self.store = store
        self.complete = complete

    async def generate(self) -> Optional[MemoryRecord]:
        window = self.store.recent(config.REFLECTION_WINDOW)
        if len(window) < config.REFLECTION_MIN_MEMORIES:
            return None
        ranked = sorted(window, key=lambda record: scoring_importance(record.importance), reverse=True)
        top = ranked[: config.REFLECTION_TOP_MEMORIES]
        raw = await self.complete(reflection_prompt(self.persona, top), "Reflection")
        if raw is None:
            return None
        insight = strip_think(raw).strip()
        if not insight:
            log_warning("Reflection", f"empty insight for {self.store.character_id}")
            return None
        return self.store.append(
            MemoryKind.REFLECTION,
            insight,
            importance=config.REFLECTION_IMPORTANCE,
            sources=[record.memory_id for record in top],
        )


class CycleState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class CycleMessage(str, Enum):
    START = "start"
    FINISH = "finish"


_TRANSITIONS: Dict[Tuple[CycleState, CycleMessage], CycleState] = {
    (CycleState.IDLE, CycleMessage.START): CycleState.RUNNING,
    (CycleState.RUNNING, CycleMessage.FINISH): CycleState.IDLE,
}


class ReflectionCycle:
    """Idle/Running machine; a start while running is refused, never queued."""

    def __init__(
        self,
        character_id: str,
        evaluator: ImportanceEvaluator,
        generator: ReflectionGenerator,
        on_finished: Optional[Callable[[], None]] = None,
        on_reflection: Optional[Callable[[MemoryRecord], None]] = None,
    ) -> None:
        self.character_id = character_id
        self.evaluator = evaluator
        self.generator = generator
        self.on_finished = on_finished
        self.on_reflection = on_reflection
        self.state = CycleState.IDLE
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self.state is CycleState.RUNNING

    def send(self, message: CycleMessage) -> bool:
        """Apply one message; False only for a refused start."""

        if message is CycleMessage.START and self.state is CycleState.RUNNING:
            return False
        target = _TRANSITIONS.get((self.state, message))
        if target is None:
            raise RuntimeError(f"reflection cycle for {self.character_id}: {message.value} while {self.state.value}")
        self.state = target
        return True

    def start(self) -> bool:
        """Schedule evaluate-then-reflect on the running loop."""

        if not self.send(CycleMessage.START):
            return False
        log_run_event(f"reflection cycle start {self.character_id}")
        self._task = asyncio.get_running_loop().create_task(self._run())
        return True

    async def run_now(self) -> bool:
        """Run a full cycle inline; False when one is already running."""

        if not self.send(CycleMessage.START):
            return False
        await self._run()
        return True

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    async def _run(self) -> None:
        try:
            await self.evaluator.evaluate()
            record = await self.generator.generate()
            if record is not None and self.on_reflection is not None:
                self.on_reflection(record)
        finally:
            self.send(CycleMessage.FINISH)
            log_run_event(f"reflection cycle done {self.character_id}")
            if self.on_finished is not None:
                self.on_finished()
