########## Character Agent ##########
# Per-character cognition: dialogue turns, daily routine, reactions, reflection.

from __future__ import annotations

import asyncio
import random
from typing import Iterable, List, Optional

from . import config
from .agentic_helpers import clean_line, decode_chat_reply, decode_yes_no, parse_json_loose, strip_think, time_to_minutes
from .events import EventBus
from .llm import BaseCompletionClient, complete_or_none
from .logs import log_run_event, log_warning
from .memory import MemoryStore
from .perception import PerceptionTranslator, SpatialWorld
from .planning import PlanningEngine
from .progression import PlanProgression
from .prompts import (
    chat_prompt,
    continue_prompt,
    greeting_prompt,
    npc_open_prompt,
    npc_reply_prompt,
    self_talk_prompt,
    should_react_prompt,
    spontaneous_prompt,
)
from .reflection import ImportanceEvaluator, ReflectionCycle, ReflectionGenerator
from .retrieval import retrieve
from .types import (
    ChatMessage,
    ConversationDecision,
    EventType,
    MemoryKind,
    MemoryRecord,
    Mood,
    PerceptionDelta,
    Persona,
    PlanItem,
    PlanProgress,
    PlanStatus,
    Scratch,
)


class CharacterAgent:
    """Owns one character's scratch, memory, plan and reflection cycle."""

    def __init__(
        self,
        persona: Persona,
        scratch: Scratch,
        store: MemoryStore,
        client: BaseCompletionClient,
        events: EventBus,
        rng: Optional[random.Random] = None,
    ) -> None:
        # 1 Collaborators are handed in; nothing is looked up globally.        # steps
        # 2 Sub-engines share the single guarded completion boundary.         # steps
        self.persona = persona
        self.scratch = scratch
        self.store = store
        self.client = client
        self.events = events
        self.rng = rng or random.Random(config.RANDOM_SEED)
        self.history: List[ChatMessage] = []
        self.turn_count = 0
        self._pending_turns = 0
        self._turn_lock = asyncio.Lock()
        self.planner = PlanningEngine(persona, store, self._complete)
        self.progression = PlanProgression()
        self.perception = PerceptionTranslator(store)
        self.reflection = ReflectionCycle(
            self.character_id,
            ImportanceEvaluator(persona, store, self._complete),
            ReflectionGenerator(persona, store, self._complete),
            on_finished=self._reset_turns,
            on_reflection=self._announce_reflection,
        )

    @property
    def character_id(self) -> str:
        return self.persona.character_id

    @property
    def name(self) -> str:
        return self.persona.name

    async def _complete(self, prompt: str, tag: str) -> Optional[str]:
        """The one place completion failures turn into None."""

        return await complete_or_none(self.client, prompt, f"{tag}:{self.character_id}")

    def _emit(self, event_type: EventType, payload: str) -> None:
        self.events.emit(event_type, self.character_id, payload)

    ########## Memory Helpers ##########

    def seed_knowledge(self, facts: Iterable[str]) -> int:
        """Store world facts once; returns how many were new."""

        seeded = 0
        for fact in facts:
            if self.store.has_knowledge_like(fact):
                continue
            self.store.append(MemoryKind.KNOWLEDGE, fact, importance=config.KNOWLEDGE_IMPORTANCE)
            seeded += 1
        if seeded:
            log_run_event(f"knowledge {self.character_id}: seeded {seeded}")
        return seeded

    def add_observation(self, text: str, importance: Optional[int] = config.OBSERVATION_IMPORTANCE) -> MemoryRecord:
        return self.store.append(MemoryKind.OBSERVATION, text, importance=importance)

    def add_thought(self, text: str, importance: Optional[int] = config.THOUGHT_IMPORTANCE) -> MemoryRecord:
        return self.store.append(MemoryKind.THOUGHT, text, importance=importance)

    ########## Dialogue ##########

    async def greet(self, speaker: str = config.PLAYER_NAME) -> str:
        raw = await self._complete(greeting_prompt(self.persona, self.scratch, speaker), "Greet")
        line = clean_line(raw) if raw is not None else ""
        return line or config.GREETING_FALLBACK_LINE

    async def chat(self, utterance: str, speaker: str = config.PLAYER_NAME) -> str:
        """One dialogue turn; always returns a line, never raises on bad replies."""

        if self._pending_turns >= config.MAX_PENDING_TURNS:
            log_warning("Chat", f"{self.character_id} has {self._pending_turns} turns waiting; answering busy")
            return config.BUSY_FALLBACK_LINE
        self._pending_turns += 1
        try:
            async with self._turn_lock:
                return await self._chat_turn(utterance, speaker)
        finally:
            self._pending_turns -= 1

    async def _chat_turn(self, utterance: str, speaker: str) -> str:
        # 1 Retrieve and compose.                                              # steps
        # 2 Decode per field; the raw text stands in when no object is found.  # steps
        # 3 Commit mood, both utterances, any observation, then history.       # steps
        # 4 Count the turn and maybe start the reflection cycle.               # steps
        memories = retrieve(self.store, utterance, config.CHAT_RETRIEVAL_TOP_K)
        prompt = chat_prompt(
            self.persona,
            self.scratch,
            memories,
            self.history,
            utterance,
            current_item=self.current_plan_item(),
            next_item=self.next_plan_item(),
            speaker=speaker,
        )
        raw = await self._complete(prompt, "Chat")

        old_mood = self.scratch.current_mood
        new_mood = old_mood
        intent: Optional[str] = None
        observation: Optional[str] = None
        if raw is None:
            text = config.CHAT_FALLBACK_LINE
        else:
            reply = decode_chat_reply(raw)
            if reply is not None:
                text, new_mood, intent, observation = reply.text, reply.mood, reply.intent, reply.observation
            else:
                log_warning("Chat", f"unstructured reply for {self.character_id}; using raw text")
                text = strip_think(raw).strip() or config.CHAT_FALLBACK_LINE

        if new_mood != old_mood:
            self.scratch.current_mood = new_mood
            self.add_observation(
                f"My mood changed from {old_mood.value} to {new_mood.value}.",
                importance=config.MOOD_CHANGE_IMPORTANCE,
            )
            self._emit(EventType.MOOD_CHANGED, f"{old_mood.value} -> {new_mood.value}")

        self.add_observation(f'{speaker} said: "{utterance}"', importance=None)
        intent_note = f" (intent: {intent})" if intent else ""
        self.add_observation(f'I said to {speaker}: "{text}"{intent_note}', importance=None)
        if observation:
            self.add_observation(f"[About {speaker}] {observation}", importance=None)
            self._emit(EventType.OBSERVATION_NOTED, observation)

        self.history.append(ChatMessage(speaker="user", content=utterance))
        self.history.append(ChatMessage(speaker="npc", content=text))

        self.turn_count += 1
        if self.turn_count >= config.REFLECTION_TURN_TRIGGER:
            self.reflection.start()
        return text

    def _reset_turns(self) -> None:
        self.turn_count = 0

    def _announce_reflection(self, record: MemoryRecord) -> None:
        self._emit(EventType.REFLECTION_CREATED, record.content)

    async def wait_for_reflection(self) -> None:
        await self.reflection.wait()

    ########## Daily Routine ##########

    async def wake_up(self, time_label: str = config.WAKE_TIME) -> List[PlanItem]:
        """Wake, plan the day, and start the first activity."""

        self.scratch.is_awake = True
        self.scratch.current_time = time_label
        plan = await self.planner.generate()
        self.scratch.daily_plan = plan
        self.scratch.current_plan_index = 0 if plan else None
        if plan:
            first = plan[0]
            first.status = PlanStatus.IN_PROGRESS
            self.scratch.current_activity = first.activity
            self.scratch.current_location = first.location or self.scratch.current_location
        preview = ", ".join(item.activity for item in plan[:3])
        self.add_observation(
            f"I woke up at {time_label}. Today I will: {preview}...",
            importance=config.WAKE_OBSERVATION_IMPORTANCE,
        )
        self._emit(EventType.PLAN_GENERATED, f"{len(plan)} activities planned")
        self._emit(EventType.ACTIVITY_CHANGED, f"{self.scratch.current_activity} at {self.scratch.current_location}")
        return plan

    def sleep(self) -> None:
        """Close the day and record how much of the plan got done."""

        plan = self.scratch.daily_plan or []
        completed = sum(1 for item in plan if item.status == PlanStatus.COMPLETED)
        self.scratch.is_awake = False
        self.add_observation(
            f"{config.DAY_COMPLETE_MARKER} I completed {completed} of {len(plan)} planned activities.",
            importance=config.SLEEP_OBSERVATION_IMPORTANCE,
        )
        self.scratch.daily_plan = None
        self.scratch.current_plan_index = None
        self.scratch.current_activity = config.SLEEPING_ACTIVITY
        self._emit(EventType.ACTIVITY_CHANGED, f"{config.SLEEPING_ACTIVITY} at {self.scratch.current_location}")

    def update_plan_progress(self, time_label: str) -> PlanProgress:
        if not self.scratch.is_awake or not self.scratch.daily_plan:
            return PlanProgress(changed=False, index=self.scratch.current_plan_index)
        progress = self.progression.advance(self.scratch, time_label)
        if progress.changed and progress.item is not None:
            log_run_event(f"plan {self.character_id} @ {time_label}: -> [{progress.index}] {progress.item.activity}")
            self._emit(EventType.ACTIVITY_CHANGED, f"{self.scratch.current_activity} at {self.scratch.current_location}")
        return progress

    def current_plan_item(self) -> Optional[PlanItem]:
        plan = self.scratch.daily_plan
        index = self.scratch.current_plan_index
        if not plan or index is None:
            return None
        return plan[index]

    def next_plan_item(self) -> Optional[PlanItem]:
        plan = self.scratch.daily_plan
        index = self.scratch.current_plan_index
        if not plan or index is None or index + 1 >= len(plan):
            return None
        return plan[index + 1]

    ########## Reactions ##########

    async def should_initiate_conversation(self, observation: str) -> bool:
        """Rules first (asleep or angry means no), then a YES/NO call."""

        if not self.scratch.is_awake or self.scratch.current_mood == Mood.ANGRY:
            return False
        raw = await self._complete(should_react_prompt(self.persona, self.scratch, observation), "React")
        if raw is None:
            return False
        return decode_yes_no(raw)

    async def generate_spontaneous_utterance(self, observation: str) -> str:
        memories = retrieve(self.store, observation, config.REACTION_RETRIEVAL_TOP_K)
        raw = await self._complete(spontaneous_prompt(self.persona, self.scratch, observation, memories), "Spontaneous")
        line = clean_line(raw) if raw is not None else ""
        if not line:
            return config.GREETING_FALLBACK_LINE
        self.add_observation(f'I spoke up first: "{line}"', importance=config.SPONTANEOUS_UTTERANCE_IMPORTANCE)
        self._emit(EventType.SPONTANEOUS_UTTERANCE, line)
        return line

    async def initiate_npc_conversation(self, target: str, observation: str) -> str:
        raw = await self._complete(npc_open_prompt(self.persona, self.scratch, target, observation), "NpcOpen")
        line = clean_line(raw) if raw is not None else ""
        if not line:
            return config.NPC_OPENING_FALLBACK_LINE
        self.add_observation(f'I started talking to {target}: "{line}"', importance=config.NPC_DIALOGUE_IMPORTANCE)
        self._emit(EventType.CROSS_CHARACTER_UTTERANCE, f"{self.name} -> {target}: {line}")
        return line

    async def respond_to_npc(self, speaker: str, utterance: str) -> str:
        memories = retrieve(self.store, speaker, config.REACTION_RETRIEVAL_TOP_K)
        raw = await self._complete(npc_reply_prompt(self.persona, self.scratch, speaker, utterance, memories), "NpcReply")
        line = clean_line(raw) if raw is not None else ""
        if not line:
            return config.NPC_REPLY_FALLBACK_LINE
        self.add_observation(f'{speaker} said to me: "{utterance}"', importance=config.NPC_DIALOGUE_IMPORTANCE)
        self.add_observation(f'I answered {speaker}: "{line}"', importance=config.NPC_DIALOGUE_IMPORTANCE)
        self._emit(EventType.CROSS_CHARACTER_UTTERANCE, f"{self.name} -> {speaker}: {line}")
        return line

    async def should_continue_conversation(
        self,
        next_item: Optional[PlanItem],
        minutes_until_next: int,
        turns: int,
    ) -> ConversationDecision:
        """Keep talking unless the next task is close and the chat has run on."""

        if next_item is None or minutes_until_next > config.CONTINUE_MINUTES_WINDOW:
            return ConversationDecision(keep_talking=True)
        if turns < config.CONTINUE_MIN_TURNS:
            return ConversationDecision(keep_talking=True)
        prompt = continue_prompt(self.persona, next_item, minutes_until_next, turns, self.history)
        raw = await self._complete(prompt, "Continue")
        if raw is None:
            return ConversationDecision(keep_talking=True)
        payload = parse_json_loose(raw)
        if payload is None:
            log_warning("Continue", f"no decision object for {self.character_id}; keep talking")
            return ConversationDecision(keep_talking=True)
        thought = payload.get("thought")
        if isinstance(thought, str) and thought.strip():
            self.add_thought(thought.strip(), importance=config.CONTINUE_THOUGHT_IMPORTANCE)
        keep = payload.get("continue")
        utterance = payload.get("utterance")
        return ConversationDecision(
            keep_talking=keep if isinstance(keep, bool) else True,
            utterance=utterance.strip() if isinstance(utterance, str) and utterance.strip() else None,
        )

    async def check_should_continue(self, time_label: str, turns: int) -> ConversationDecision:
        """Work out the next item and minutes left, wrapping past midnight."""

        plan = self.scratch.daily_plan
        now = time_to_minutes(time_label)
        if not plan or now is None:
            return ConversationDecision(keep_talking=True)
        index = self.scratch.current_plan_index if self.scratch.current_plan_index is not None else 0
        next_item: Optional[PlanItem] = None
        minutes_until_next = 24 * 60
        if index + 1 < len(plan):
            next_item = plan[index + 1]
            start = time_to_minutes(next_item.time)
            if start is not None:
                minutes_until_next = start - now
                if minutes_until_next < 0:
                    minutes_until_next += 24 * 60
        return await self.should_continue_conversation(next_item, minutes_until_next, turns)

    async def generate_self_talk(self) -> Optional[str]:
        if self.rng.random() > config.SELF_TALK_CHANCE:
            return None
        memories = retrieve(self.store, self.scratch.current_activity, config.REACTION_RETRIEVAL_TOP_K)
        raw = await self._complete(self_talk_prompt(self.persona, self.scratch, memories), "SelfTalk")
        line = clean_line(raw) if raw is not None else ""
        if not line:
            return None
        self.add_thought(f"(to myself) {line}", importance=config.SELF_TALK_IMPORTANCE)
        return line

    ########## Perception ##########

    def perceive(self, world: SpatialWorld) -> List[PerceptionDelta]:
        return self.perception.perceive(world)

    def snapshot(self) -> dict:
        """Plain dict view of the scratch for UIs."""

        return {
            "id": self.character_id,
            "name": self.name,
            "location": self.scratch.current_location,
            "activity": self.scratch.current_activity,
            "mood": self.scratch.current_mood.value,
            "time": self.scratch.current_time,
            "awake": self.scratch.is_awake,
            "plan_index": self.scratch.current_plan_index,
            "memories": self.store.count(),
        }
