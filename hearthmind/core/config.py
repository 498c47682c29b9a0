from __future__ import annotations
import os

########## Core Config ##########
# Houses runtime constants for the hearthmind character cognition engine.

########## Variable Controls ##########
# All tweakable knobs live here so you can tune characters without code changes.

# LLM
LLM_PROVIDER: str = os.getenv("HEARTHMIND_LLM_PROVIDER", "openrouter")
#LLM_PROVIDER: str = "ollama"

# Ollama defaults (CPU-only)
LLM_MODEL_NAME = "phi3:mini"  # small,
#LLM_MODEL_NAME = "llama3.2:3b"            # slightly larger llama
LLM_BASE_URL: str = "http://localhost:11434/v1"
LLM_API_KEY: str = "ollama"
OLLAMA_OPTIONS: dict = {"num_gpu": 0, "gpu_layers": 0}

# OpenRouter defaults (set OPENROUTER_API_KEY in the environment)
#LLM_OPENROUTER_MODEL: str = "meta-llama/llama-3.1-8b-instruct:free"
LLM_OPENROUTER_MODEL: str = "openai/gpt-4o-mini"
LLM_OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
LLM_OPENROUTER_API_KEY: str = os.getenv("OPENROUTER_API_KEY", "")

# Sampling for every completion call
COMPLETION_TEMPERATURE: float = 0.7
COMPLETION_TOP_P: float = 0.9
COMPLETION_MAX_TOKENS: int = 1024
COMPLETION_TIMEOUT_SECONDS: float = 30.0  # upper bound per call, then fallback

SYSTEM_PROMPT: str = (
    "You voice a non-player character in a small fantasy village. "
    "Stay in character, keep answers short, and follow the requested output format exactly."
)

# Retrieval
RECENCY_DECAY: float = 0.995  # per hour since last access
UNRATED_IMPORTANCE_SCORE: int = 5  # unrated memories score as mid-scale
IMPORTANCE_MIN: int = 1
IMPORTANCE_MAX: int = 10
CHAT_RETRIEVAL_TOP_K: int = 5
PLAN_RETRIEVAL_TOP_K: int = 3
REACTION_RETRIEVAL_TOP_K: int = 3

# Reflection cycle
REFLECTION_TURN_TRIGGER: int = 10
IMPORTANCE_EVAL_CAP: int = 20
REFLECTION_WINDOW: int = 20
REFLECTION_MIN_MEMORIES: int = 5
REFLECTION_TOP_MEMORIES: int = 10
REFLECTION_IMPORTANCE: int = 8

# Planning
WAKE_TIME: str = "06:00"
PLAN_OBSERVATION_THRESHOLD: int = 7
PLAN_RECENT_OBSERVATIONS: int = 5
PLAN_RECORD_IMPORTANCE: int = 5
PLAN_DEFAULT_DURATION: int = 60
DAY_COMPLETE_MARKER: str = "My day is over."
FIRST_DAY_TEXT: str = "(first day, no prior record)"
NO_KNOWLEDGE_TEXT: str = "(no knowledge of the world)"
NO_CHANGE_TEXT: str = "(no notable change)"
NO_MEMORY_TEXT: str = "(no related memories)"

# {workplace} is replaced with the persona's home location label
DEFAULT_DAILY_PLAN: list[dict] = [
    {"time": "06:00", "activity": "Wake up and get ready", "location": "home", "duration": 60},
    {"time": "07:00", "activity": "Eat breakfast", "location": "home", "duration": 30},
    {"time": "07:30", "activity": "Walk to work", "location": "village street", "duration": 30},
    {"time": "08:00", "activity": "Open up for the day", "location": "{workplace}", "duration": 30},
    {"time": "08:30", "activity": "Work on the day's orders", "location": "{workplace}", "duration": 210},
    {"time": "12:00", "activity": "Eat lunch", "location": "{workplace}", "duration": 60},
    {"time": "13:00", "activity": "Afternoon work and repairs", "location": "{workplace}", "duration": 240},
    {"time": "17:00", "activity": "Tidy up and close", "location": "{workplace}", "duration": 60},
    {"time": "18:00", "activity": "Eat dinner", "location": "home", "duration": 60},
    {"time": "19:00", "activity": "Personal time", "location": "home", "duration": 120},
    {"time": "21:00", "activity": "Get ready for bed", "location": "home", "duration": 60},
]

# Dialogue
PLAYER_NAME: str = "the traveler"
CONVERSATION_HISTORY_IN_PROMPT: int = 6
MOOD_CHANGE_IMPORTANCE: int = 4
MAX_PENDING_TURNS: int = 3  # beyond this a character answers with the busy line
INTENT_LABELS: list[str] = ["sell", "help", "refuse", "inquire", "share_story", "warn", "chat"]

CHAT_FALLBACK_LINE: str = "(pauses, lost in thought)... Sorry, what was that?"
BUSY_FALLBACK_LINE: str = "(holds up a hand) One moment, one moment."
GREETING_FALLBACK_LINE: str = "...Welcome."
NPC_OPENING_FALLBACK_LINE: str = "..."
NPC_REPLY_FALLBACK_LINE: str = "...Right."

# Knowledge, thoughts, reactions
KNOWLEDGE_IMPORTANCE: int = 9
OBSERVATION_IMPORTANCE: int = 4
THOUGHT_IMPORTANCE: int = 4
WAKE_OBSERVATION_IMPORTANCE: int = 3
SLEEP_OBSERVATION_IMPORTANCE: int = 4
SPONTANEOUS_UTTERANCE_IMPORTANCE: int = 5
NPC_DIALOGUE_IMPORTANCE: int = 4
CONTINUE_THOUGHT_IMPORTANCE: int = 5
SELF_TALK_IMPORTANCE: int = 3
SELF_TALK_CHANCE: float = 0.2
CONTINUE_MINUTES_WINDOW: int = 30
CONTINUE_MIN_TURNS: int = 3
SLEEPING_ACTIVITY: str = "sleeping"

# Perception
PERCEPTION_APPEAR_IMPORTANCE: int = 4
PERCEPTION_VANISH_IMPORTANCE: int = 3
PERCEPTION_OBJECT_SEEN_IMPORTANCE: int = 3
PERCEPTION_OBJECT_CHANGED_IMPORTANCE: int = 5

# Game clock
START_DAY: int = 1
GAME_MINUTES_PER_TICK: int = 15

# Events
EVENT_HISTORY_SIZE: int = 200

# Logging and debug
DEBUG_VERBOSE: bool = False  # breaks out individual llm calls / responses
LOG_TEXT_ENABLED: bool = True  # toggle human-readable run log
LOG_TEXT_DIR: str = "logs"
LOG_TEXT_FILENAME: str = "hearthmind.log"
LOG_TEXT_MAX_LINES: int = 800
DEBUG_LOG_MAX_LINES: int = 500

from pathlib import Path

RANDOM_SEED: int = 202410

DB_FILE: str = os.getenv("HEARTHMIND_DB_FILE", str(Path("hearthmind/runtime_data/memories.sqlite")))
DB_ECHO: bool = False

# Demo
ACTIVE_CHARACTERS: list[str] = []  # empty means every seed file
DEFAULT_EXPORT_DIR: str = "hearthmind/runtime_data/exports"
DEFAULT_EVENT_LOG_EXPORT: str = "events_{timestamp}.csv"
