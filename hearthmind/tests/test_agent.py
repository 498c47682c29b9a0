########## Character Agent Tests ##########
# Dialogue turns, daily routine, reactions, and the reflection trigger.

from __future__ import annotations

import asyncio
import json

from hearthmind.core import config
from hearthmind.core.events import EventBus
from hearthmind.core.llm import BaseCompletionClient
from hearthmind.core.prompts import (
    TASK_CHAT,
    TASK_CONTINUE,
    TASK_DAILY_PLAN,
    TASK_IMPORTANCE,
    TASK_NPC_OPEN,
    TASK_NPC_REPLY,
    TASK_REFLECTION,
    TASK_SELF_TALK,
    TASK_SPONTANEOUS,
    TASK_YES_NO,
)
from hearthmind.core.types import EventType, MemoryKind, Mood, PlanItem, PlanStatus, Unrated

PLAN_REPLY = json.dumps(
    [
        {"time": "06:00", "activity": "Wake up", "location": "home", "duration": 60},
        {"time": "07:00", "activity": "Light the forge", "location": "smithy", "duration": 120},
        {"time": "09:00", "activity": "Sell tools", "location": "smithy", "duration": 60},
    ]
)


class _FixedRandom:
    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


class _BlockingClient(BaseCompletionClient):
    """Holds every call until released."""

    def __init__(self) -> None:
        self.release = asyncio.Event()

    async def complete(self, prompt: str) -> str:
        await self.release.wait()
        return json.dumps({"response": "Finally.", "mood": "neutral"})


def _event_types(bus: EventBus):
    return [event.event_type for event in bus.recent(100)]


########## Dialogue ##########


def test_chat_failure_returns_fallback_and_still_records(make_agent, failing_client) -> None:
    """A failing service gives the filler line, keeps mood, and writes both utterances."""

    agent = make_agent(failing_client)
    reply = asyncio.run(agent.chat("Do you sell swords?"))
    assert reply == config.CHAT_FALLBACK_LINE
    assert agent.scratch.current_mood is Mood.NEUTRAL
    records = agent.store.all()
    assert len(records) == 2
    assert all(record.kind == MemoryKind.OBSERVATION for record in records)
    assert "Do you sell swords?" in records[0].content
    assert config.CHAT_FALLBACK_LINE in records[1].content
    assert len(agent.history) == 2


def test_chat_survives_client_errors_outside_the_provider_family(make_agent, scripted_client) -> None:
    scripted_client.default = ConnectionError("socket reset")
    agent = make_agent(scripted_client)
    reply = asyncio.run(agent.chat("hello"))
    assert reply == config.CHAT_FALLBACK_LINE
    assert [record.content for record in agent.store.all()] == [
        f'{config.PLAYER_NAME} said: "hello"',
        f'I said to {config.PLAYER_NAME}: "{config.CHAT_FALLBACK_LINE}"',
    ]


def test_chat_structured_reply_updates_mood_and_observation(make_agent, scripted_client) -> None:
    events = EventBus()
    reply = {"response": "Finest steel in the valley.", "mood": "happy", "intent": "sell", "observation": "They look tired."}
    scripted_client.script(TASK_CHAT, "Sure!\n" + json.dumps(reply))
    agent = make_agent(scripted_client, events=events)

    text = asyncio.run(agent.chat("Nice blades."))

    assert text == "Finest steel in the valley."
    assert agent.scratch.current_mood is Mood.HAPPY
    contents = [record.content for record in agent.store.all()]
    assert contents[0] == "My mood changed from neutral to happy."
    assert agent.store.get("m001").importance.value == config.MOOD_CHANGE_IMPORTANCE
    assert contents[2].endswith("(intent: sell)")
    assert contents[3] == f"[About {config.PLAYER_NAME}] They look tired."
    assert isinstance(agent.store.get("m002").importance, Unrated)
    assert _event_types(events) == [EventType.MOOD_CHANGED, EventType.OBSERVATION_NOTED]


def test_chat_unstructured_reply_uses_raw_text(make_agent, scripted_client) -> None:
    scripted_client.script(TASK_CHAT, "  Hmph. Come back later.  ")
    agent = make_agent(scripted_client)
    assert asyncio.run(agent.chat("Hello")) == "Hmph. Come back later."
    assert agent.scratch.current_mood is Mood.NEUTRAL
    assert agent.store.count() == 2


def test_chat_prompt_includes_plan_and_history(make_agent, scripted_client) -> None:
    agent = make_agent(scripted_client)
    agent.scratch.daily_plan = [
        PlanItem(time="08:00", activity="Forge nails", location="smithy", status=PlanStatus.IN_PROGRESS),
        PlanItem(time="09:00", activity="Deliver nails", location="inn"),
    ]
    agent.scratch.current_plan_index = 0

    async def scenario() -> None:
        await agent.chat("First question")
        await agent.chat("Second question")

    asyncio.run(scenario())
    prompt = scripted_client.prompts_with(TASK_CHAT)[-1]
    assert "Forge nails" in prompt and "Deliver nails" in prompt
    assert "First question" in prompt
    assert "Second question" in prompt


def test_tenth_turn_runs_reflection_and_resets_counter(make_agent, scripted_client) -> None:
    events = EventBus()
    scripted_client.script(TASK_IMPORTANCE, "[]")
    scripted_client.script(TASK_REFLECTION, "People keep asking me about swords.")
    agent = make_agent(scripted_client, events=events)

    async def scenario() -> None:
        for index in range(config.REFLECTION_TURN_TRIGGER):
            await agent.chat(f"question {index}")
        assert agent.reflection.running
        await agent.wait_for_reflection()

    asyncio.run(scenario())
    assert agent.turn_count == 0
    reflections = agent.store.by_kind(MemoryKind.REFLECTION)
    assert len(reflections) == 1
    assert reflections[0].content == "People keep asking me about swords."
    assert len(reflections[0].sources) == config.REFLECTION_TOP_MEMORIES
    assert EventType.REFLECTION_CREATED in _event_types(events)
    assert len(scripted_client.prompts_with(TASK_IMPORTANCE)) == 1


def test_non_finite_ratings_do_not_stop_reflection(make_agent, scripted_client) -> None:
    scripted_client.script(TASK_IMPORTANCE, '[{"id": "m001", "importance": NaN}, {"id": "m002", "importance": Infinity}]')
    scripted_client.script(TASK_REFLECTION, "Folk are curious today.")
    agent = make_agent(scripted_client)

    async def scenario() -> None:
        for index in range(config.REFLECTION_TURN_TRIGGER):
            await agent.chat(f"question {index}")
        await agent.wait_for_reflection()

    asyncio.run(scenario())
    assert isinstance(agent.store.get("m001").importance, Unrated)
    assert [record.content for record in agent.store.by_kind(MemoryKind.REFLECTION)] == ["Folk are curious today."]


def test_extra_turns_get_busy_line_when_queue_is_full(make_agent) -> None:
    client = _BlockingClient()
    agent = make_agent(client)

    async def scenario():
        waiting = [asyncio.create_task(agent.chat(f"line {index}")) for index in range(config.MAX_PENDING_TURNS)]
        await asyncio.sleep(0)
        busy = await agent.chat("one more")
        client.release.set()
        answered = await asyncio.gather(*waiting)
        return busy, answered

    busy, answered = asyncio.run(scenario())
    assert busy == config.BUSY_FALLBACK_LINE
    assert answered == ["Finally."] * config.MAX_PENDING_TURNS
    assert agent.store.count() == 2 * config.MAX_PENDING_TURNS


def test_greet_falls_back_on_failure(make_agent, failing_client, scripted_client) -> None:
    assert asyncio.run(make_agent(failing_client).greet()) == config.GREETING_FALLBACK_LINE
    scripted_client.default = '"Welcome to the forge."'
    assert asyncio.run(make_agent(scripted_client).greet()) == "Welcome to the forge."


########## Daily Routine ##########


def test_wake_up_plans_and_starts_first_activity(make_agent, scripted_client) -> None:
    events = EventBus()
    scripted_client.script(TASK_DAILY_PLAN, PLAN_REPLY)
    agent = make_agent(scripted_client, events=events)

    plan = asyncio.run(agent.wake_up("06:00"))

    assert agent.scratch.is_awake
    assert len(plan) == 3
    assert agent.scratch.current_plan_index == 0
    assert plan[0].status == PlanStatus.IN_PROGRESS
    assert agent.scratch.current_activity == "Wake up"
    wake_note = agent.store.by_kind(MemoryKind.OBSERVATION)[-1]
    assert wake_note.content.startswith("I woke up at 06:00.")
    assert "Light the forge" in wake_note.content
    assert wake_note.importance.value == config.WAKE_OBSERVATION_IMPORTANCE
    assert _event_types(events) == [EventType.PLAN_GENERATED, EventType.ACTIVITY_CHANGED]


def test_wake_up_with_infinite_duration_keeps_a_bounded_day(make_agent, scripted_client) -> None:
    scripted_client.script(
        TASK_DAILY_PLAN,
        '[{"time": "06:00", "activity": "Wake up", "location": "home", "duration": Infinity}]',
    )
    agent = make_agent(scripted_client)
    plan = asyncio.run(agent.wake_up("06:00"))
    assert [item.activity for item in plan] == ["Wake up"]
    assert plan[0].duration == config.PLAN_DEFAULT_DURATION


def test_ticks_progress_plan_and_sleep_closes_day(make_agent, scripted_client) -> None:
    events = EventBus()
    scripted_client.script(TASK_DAILY_PLAN, PLAN_REPLY)
    agent = make_agent(scripted_client, events=events)
    asyncio.run(agent.wake_up("06:00"))

    assert agent.update_plan_progress("07:30").changed
    assert agent.scratch.current_location == "smithy"
    assert not agent.update_plan_progress("07:45").changed
    assert agent.current_plan_item().activity == "Light the forge"
    assert agent.next_plan_item().activity == "Sell tools"

    agent.sleep()
    assert not agent.scratch.is_awake
    assert agent.scratch.daily_plan is None
    assert agent.scratch.current_activity == config.SLEEPING_ACTIVITY
    closing = agent.store.all()[-1]
    assert closing.content == f"{config.DAY_COMPLETE_MARKER} I completed 1 of 3 planned activities."
    assert closing.importance.value == config.SLEEP_OBSERVATION_IMPORTANCE
    assert not agent.update_plan_progress("09:30").changed
    assert _event_types(events).count(EventType.ACTIVITY_CHANGED) == 3


def test_next_day_plan_sees_yesterday(make_agent, scripted_client) -> None:
    scripted_client.script(TASK_DAILY_PLAN, PLAN_REPLY, PLAN_REPLY)
    agent = make_agent(scripted_client)

    async def scenario() -> None:
        await agent.wake_up()
        agent.sleep()
        await agent.wake_up()

    asyncio.run(scenario())
    second_prompt = scripted_client.prompts_with(TASK_DAILY_PLAN)[1]
    assert config.DAY_COMPLETE_MARKER in second_prompt


def test_seed_knowledge_skips_known_facts(make_agent, scripted_client) -> None:
    agent = make_agent(scripted_client)
    facts = ["The smithy is east.", "The inn is central."]
    assert agent.seed_knowledge(facts) == 2
    assert agent.seed_knowledge(facts + ["The well is dry."]) == 1
    knowledge = agent.store.knowledge()
    assert len(knowledge) == 3
    assert all(record.importance.value == config.KNOWLEDGE_IMPORTANCE for record in knowledge)


########## Reactions ##########


def test_should_initiate_conversation_rules_then_question(make_agent, scripted_client, failing_client) -> None:
    agent = make_agent(scripted_client)
    assert not asyncio.run(agent.should_initiate_conversation("A customer walks in."))
    assert scripted_client.prompts == []

    agent.scratch.is_awake = True
    agent.scratch.current_mood = Mood.ANGRY
    assert not asyncio.run(agent.should_initiate_conversation("A customer walks in."))

    agent.scratch.current_mood = Mood.NEUTRAL
    scripted_client.script(TASK_YES_NO, "YES")
    assert asyncio.run(agent.should_initiate_conversation("A customer walks in."))

    sleepy = make_agent(failing_client, is_awake=True)
    assert not asyncio.run(sleepy.should_initiate_conversation("A customer walks in."))


def test_spontaneous_utterance_records_and_announces(make_agent, scripted_client, failing_client) -> None:
    events = EventBus()
    scripted_client.script(TASK_SPONTANEOUS, "Oi! Mind the hot iron!")
    agent = make_agent(scripted_client, events=events)
    line = asyncio.run(agent.generate_spontaneous_utterance("The traveler reached for the anvil."))
    assert line == "Oi! Mind the hot iron!"
    record = agent.store.all()[-1]
    assert record.importance.value == config.SPONTANEOUS_UTTERANCE_IMPORTANCE
    assert _event_types(events) == [EventType.SPONTANEOUS_UTTERANCE]

    quiet = make_agent(failing_client)
    before = quiet.store.count()
    assert asyncio.run(quiet.generate_spontaneous_utterance("Anything.")) == config.GREETING_FALLBACK_LINE
    assert quiet.store.count() == before


def test_npc_exchange_records_both_sides(make_agent, scripted_client, failing_client) -> None:
    events = EventBus()
    scripted_client.script(TASK_NPC_OPEN, "Rosa, any news of the caravan?")
    scripted_client.script(TASK_NPC_REPLY, "Two days late, love.")
    agent = make_agent(scripted_client, events=events)

    opening = asyncio.run(agent.initiate_npc_conversation("Rosa", "Rosa walks past the smithy."))
    reply = asyncio.run(agent.respond_to_npc("Rosa", "Caravan's late again."))

    assert opening == "Rosa, any news of the caravan?"
    assert reply == "Two days late, love."
    assert agent.store.count() == 3
    assert all(record.importance.value == config.NPC_DIALOGUE_IMPORTANCE for record in agent.store.all())
    assert _event_types(events) == [EventType.CROSS_CHARACTER_UTTERANCE] * 2

    silent = make_agent(failing_client)
    assert asyncio.run(silent.initiate_npc_conversation("Rosa", "...")) == config.NPC_OPENING_FALLBACK_LINE
    assert asyncio.run(silent.respond_to_npc("Rosa", "Hello")) == config.NPC_REPLY_FALLBACK_LINE


def test_should_continue_short_circuits(make_agent, scripted_client) -> None:
    agent = make_agent(scripted_client)
    upcoming = PlanItem(time="09:00", activity="Deliver nails")
    assert asyncio.run(agent.should_continue_conversation(None, 5, 10)).keep_talking
    assert asyncio.run(agent.should_continue_conversation(upcoming, 45, 10)).keep_talking
    assert asyncio.run(agent.should_continue_conversation(upcoming, 10, 2)).keep_talking
    assert scripted_client.prompts == []


def test_should_continue_asks_and_keeps_thought(make_agent, scripted_client) -> None:
    decision = {"thought": "The nails won't deliver themselves.", "continue": False, "utterance": "I must go."}
    scripted_client.script(TASK_CONTINUE, json.dumps(decision))
    agent = make_agent(scripted_client)
    upcoming = PlanItem(time="09:00", activity="Deliver nails")
    result = asyncio.run(agent.should_continue_conversation(upcoming, 10, 4))
    assert not result.keep_talking
    assert result.utterance == "I must go."
    thought = agent.store.by_kind(MemoryKind.THOUGHT)[0]
    assert thought.content == "The nails won't deliver themselves."
    assert thought.importance.value == config.CONTINUE_THOUGHT_IMPORTANCE


def test_check_should_continue_wraps_past_midnight(make_agent, scripted_client) -> None:
    scripted_client.script(TASK_CONTINUE, "not json at all")
    agent = make_agent(scripted_client, is_awake=True)
    agent.scratch.daily_plan = [
        PlanItem(time="23:50", activity="Bank the fire", status=PlanStatus.IN_PROGRESS),
        PlanItem(time="00:10", activity="Sleep"),
    ]
    agent.scratch.current_plan_index = 0
    result = asyncio.run(agent.check_should_continue("23:55", 5))
    assert result.keep_talking
    assert "About 15 minutes remain" in scripted_client.prompts_with(TASK_CONTINUE)[0]


def test_self_talk_respects_chance(make_agent, scripted_client) -> None:
    scripted_client.script(TASK_SELF_TALK, "This blade needs more heat...")
    agent = make_agent(scripted_client)
    agent.rng = _FixedRandom(0.9)
    assert asyncio.run(agent.generate_self_talk()) is None
    agent.rng = _FixedRandom(0.1)
    assert asyncio.run(agent.generate_self_talk()) == "This blade needs more heat..."
    thought = agent.store.by_kind(MemoryKind.THOUGHT)[0]
    assert thought.content == "(to myself) This blade needs more heat..."
    assert thought.importance.value == config.SELF_TALK_IMPORTANCE


def test_perceive_writes_observations(make_agent, scripted_client, fake_world) -> None:
    from hearthmind.core.types import PerceptionSnapshot, SeenEntity

    agent = make_agent(scripted_client)
    fake_world.snapshots[agent.character_id] = PerceptionSnapshot(
        entities={"rosa": SeenEntity(entity_id="rosa", name="Rosa")}
    )
    deltas = agent.perceive(fake_world)
    assert [delta.text for delta in deltas] == ["I noticed Rosa nearby."]
    assert agent.store.all()[-1].content == "I noticed Rosa nearby."
