########## Prompt Builders ##########
# Plain-text prompts for every completion task a character performs.

from __future__ import annotations

from typing import List, Optional, Sequence

from . import config
from .types import ChatMessage, MemoryRecord, Mood, Persona, PlanItem, RetrievedMemory, Scratch

# Task markers let the stub client (and log readers) tell prompts apart.
TASK_CHAT = "TASK: CHAT_REPLY"
TASK_GREET = "TASK: GREETING"
TASK_IMPORTANCE = "TASK: RATE_IMPORTANCE"
TASK_REFLECTION = "TASK: REFLECTION"
TASK_DAILY_PLAN = "TASK: DAILY_SCHEDULE"
TASK_YES_NO = "TASK: YES_NO"
TASK_SPONTANEOUS = "TASK: SPONTANEOUS_LINE"
TASK_NPC_OPEN = "TASK: OPEN_NPC_CONVERSATION"
TASK_NPC_REPLY = "TASK: REPLY_TO_NPC"
TASK_CONTINUE = "TASK: CONTINUE_CONVERSATION"
TASK_SELF_TALK = "TASK: SELF_TALK"


def _bullets(lines: Sequence[str], empty: str) -> str:
    if not lines:
        return empty
    return "\n".join(f"- {line}" for line in lines)


def identity_block(persona: Persona) -> str:
    """Short identity header shared by the conversational prompts."""

    return (
        "## Who you are\n"
        f"Name: {persona.name}\n"
        f"Occupation: {persona.occupation}\n"
        f"Traits: {', '.join(persona.traits)}\n"
        f"Speech style: {persona.speech_style}"
    )


def agent_summary(persona: Persona) -> str:
    """Persona summary used at the top of the planning prompt."""

    goals = "\n".join(f"{index}. {goal}" for index, goal in enumerate(persona.goals, start=1)) or "(none)"
    return (
        "## Agent summary\n"
        f"Name: {persona.name}\n"
        f"Age: {persona.age}\n"
        f"Occupation: {persona.occupation}\n"
        f"Home location: {persona.location}\n"
        f"Traits: {', '.join(persona.traits)}\n"
        f"Goals:\n{goals}\n"
        f"Backstory: {persona.backstory}"
    )


def _plan_line(label: str, item: Optional[PlanItem]) -> str:
    if item is None:
        return f"{label}: (none)"
    location = item.location or "unspecified"
    return f"{label}: {item.time} {item.activity} at {location} ({item.duration} min)"


def chat_prompt(
    persona: Persona,
    scratch: Scratch,
    memories: List[RetrievedMemory],
    history: List[ChatMessage],
    utterance: str,
    current_item: Optional[PlanItem] = None,
    next_item: Optional[PlanItem] = None,
    speaker: str = config.PLAYER_NAME,
) -> str:
    # 1 Identity, state, plan, memories, history, then the output contract.   # steps
    state_lines = [
        f"Location: {scratch.current_location}",
        f"Activity: {scratch.current_activity}",
        f"Mood: {scratch.current_mood.value}",
        f"Time: {scratch.current_time}",
    ]
    if scratch.daily_plan:
        state_lines.append(_plan_line("Current plan", current_item))
        state_lines.append(_plan_line("Next plan", next_item))
    memory_lines = [f"[{item.record.memory_id}] {item.record.content}" for item in memories]
    history_lines = [
        f"{speaker if message.speaker == 'user' else ('You' if message.speaker == 'npc' else message.speaker)}: {message.content}"
        for message in history[-config.CONVERSATION_HISTORY_IN_PROMPT :]
    ]
    moods = ", ".join(mood.value for mood in Mood)
    intents = ", ".join(config.INTENT_LABELS)
    return (
        f"{identity_block(persona)}\n"
        f"Backstory: {persona.backstory}\n\n"
        "## Current state\n" + "\n".join(state_lines) + "\n\n"
        "## Relevant memories\n" + _bullets(memory_lines, config.NO_MEMORY_TEXT) + "\n\n"
        "## Conversation so far\n" + ("\n".join(history_lines) or "(just started)") + "\n\n"
        f"## {speaker} says\n{utterance}\n\n"
        f"{TASK_CHAT}\n"
        "Reply in character with one or two sentences. Output only a JSON object:\n"
        '{"response": "what you say", "mood": "your mood now", "intent": "label", '
        '"observation": "one sentence about the other person, or null"}\n'
        f"mood must be one of: {moods}\n"
        f"intent should be one of: {intents}"
    )


def greeting_prompt(persona: Persona, scratch: Scratch, speaker: str) -> str:
    return (
        f"{identity_block(persona)}\n\n"
        f"You are {scratch.current_activity} at {scratch.current_location}. {speaker} has just walked up to you.\n\n"
        f"{TASK_GREET}\n"
        "Say one short greeting in your own voice. Output only the line."
    )


def importance_prompt(persona: Persona, records: List[MemoryRecord]) -> str:
    """Batch rating request; ids are bracketed so replies can reference them."""

    lines = "\n".join(f"[{record.memory_id}] {record.content}" for record in records)
    return (
        f"These are memories of {persona.name}, the {persona.occupation}.\n"
        "Rate how important each one is to them on a 1-10 scale "
        "(1 = mundane routine, 10 = life changing).\n\n"
        f"{lines}\n\n"
        f"{TASK_IMPORTANCE}\n"
        "Output only a JSON array:\n"
        '[{"id": "m001", "importance": 5}, ...]'
    )


def reflection_prompt(persona: Persona, records: List[MemoryRecord]) -> str:
    lines = "\n".join(f"- {record.content}" for record in records)
    return (
        f"You are {persona.name}, the {persona.occupation}. Look back over your recent experiences.\n\n"
        f"## Recent experiences\n{lines}\n\n"
        f"{TASK_REFLECTION}\n"
        "Write one or two first-person sentences about what you have realised or feel. "
        "Stay grounded in the experiences above. Output only the insight."
    )


def daily_plan_prompt(
    persona: Persona,
    knowledge: str,
    observations: str,
    yesterday: str,
    memories: str,
) -> str:
    goals = ", ".join(persona.goals) or "(none)"
    return (
        f"{agent_summary(persona)}\n\n"
        f"## What I know about the world\n{knowledge}\n\n"
        f"## Recent important events\n{observations}\n\n"
        "If the world knowledge and the recent events disagree, the recent events win. "
        "A burned bed can no longer be slept in even if knowledge still lists it.\n\n"
        f"## Yesterday\n{yesterday}\n\n"
        f"## Related memories\n{memories}\n\n"
        "## Request\n"
        "Plan today from 06:00 wake up to 22:00 bedtime.\n"
        "1. Only use places and tools listed in what I know about the world.\n"
        "2. Reflect any recent important events.\n"
        f"3. Include at least one activity working toward a goal ({goals}).\n"
        f"4. Fit the routine of a {persona.occupation}; each activity lasts 30 minutes to 2 hours.\n\n"
        f"{TASK_DAILY_PLAN}\n"
        "Output only a JSON array:\n"
        '[{"time": "06:00", "activity": "what you do", "location": "where", "duration": 60, "goalRelated": false}, ...]\n'
        "time is HH:MM, duration is in minutes."
    )


def should_react_prompt(persona: Persona, scratch: Scratch, observation: str) -> str:
    return (
        f"You are {persona.name}. Traits: {', '.join(persona.traits)}.\n"
        f"You are {scratch.current_activity} at {scratch.current_location} and feel {scratch.current_mood.value}.\n"
        f"You just noticed: {observation}\n\n"
        f"{TASK_YES_NO}\n"
        "Would you speak up about this right now? Answer YES or NO only."
    )


def spontaneous_prompt(persona: Persona, scratch: Scratch, observation: str, memories: List[RetrievedMemory]) -> str:
    memory_lines = [item.record.content for item in memories]
    return (
        f"{identity_block(persona)}\n\n"
        f"## Current state\nActivity: {scratch.current_activity}\nMood: {scratch.current_mood.value}\n\n"
        f"## What you just noticed\n{observation}\n\n"
        "## Related memories\n" + _bullets(memory_lines, config.NO_MEMORY_TEXT) + "\n\n"
        f"{TASK_SPONTANEOUS}\n"
        "Say one short line out loud about it. Output only the line."
    )


def npc_open_prompt(persona: Persona, scratch: Scratch, target: str, observation: str) -> str:
    return (
        f"{identity_block(persona)}\n\n"
        f"You are {scratch.current_activity} at {scratch.current_location}.\n"
        f"You see {target}. {observation}\n\n"
        f"{TASK_NPC_OPEN}\n"
        f"Start a short conversation with {target}. One sentence. Output only the line."
    )


def npc_reply_prompt(persona: Persona, scratch: Scratch, speaker: str, utterance: str, memories: List[RetrievedMemory]) -> str:
    memory_lines = [item.record.content for item in memories]
    return (
        f"{identity_block(persona)}\n\n"
        f"You are {scratch.current_activity} and feel {scratch.current_mood.value}.\n"
        "## Related memories\n" + _bullets(memory_lines, config.NO_MEMORY_TEXT) + "\n\n"
        f'{speaker} says to you: "{utterance}"\n\n'
        f"{TASK_NPC_REPLY}\n"
        "Reply in one short sentence. Output only the line."
    )


def continue_prompt(
    persona: Persona,
    next_item: PlanItem,
    minutes_until_next: int,
    turns: int,
    history: List[ChatMessage],
) -> str:
    recent = "\n".join(
        f"{'Them' if message.speaker == 'user' else 'Me'}: {message.content}" for message in history[-4:]
    )
    traits = ", ".join(persona.traits)
    return (
        f"{identity_block(persona)}\n\n"
        "## Next on your schedule\n"
        f"{next_item.time} {next_item.activity} at {next_item.location or 'unspecified'}\n\n"
        f"About {minutes_until_next} minutes remain, and this conversation has run {turns} turns.\n\n"
        f"## Recent conversation\n{recent or '(none)'}\n\n"
        f"Weigh your traits ({traits}) against how urgent the next task and the conversation are.\n\n"
        f"{TASK_CONTINUE}\n"
        "Output only a JSON object:\n"
        '{"thought": "your inner judgement", "continue": true, "utterance": "what you say if you leave"}'
    )


def self_talk_prompt(persona: Persona, scratch: Scratch, memories: List[RetrievedMemory]) -> str:
    memory_lines = [item.record.content for item in memories]
    return (
        f"You are {persona.name}. Traits: {', '.join(persona.traits)}.\n"
        f"Activity: {scratch.current_activity}\nLocation: {scratch.current_location}\n"
        f"Mood: {scratch.current_mood.value}\n\n"
        "## Recent memories\n" + _bullets(memory_lines, "(none)") + "\n\n"
        f"{TASK_SELF_TALK}\n"
        "Mutter one short sentence to yourself about your work, your day, or something recent. Output only the line."
    )
