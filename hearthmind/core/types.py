########## Core Types ##########
# Pydantic models and enums that describe hearthmind character data.

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from . import config


def utcnow() -> datetime:
    """Timezone aware now used for every memory timestamp."""

    return datetime.now(timezone.utc)


def clamp_importance(value: float) -> int:
    """Round and clamp a raw rating into the 1..10 scale."""

    # 1 Round first so 9.6 lands on 10 rather than truncating.                # steps
    rounded = int(round(value))
    if rounded < config.IMPORTANCE_MIN:
        return config.IMPORTANCE_MIN
    if rounded > config.IMPORTANCE_MAX:
        return config.IMPORTANCE_MAX
    return rounded


class Mood(str, Enum):
    """Fixed set of moods a character can be in."""

    HAPPY = "happy"
    NEUTRAL = "neutral"
    SAD = "sad"
    ANGRY = "angry"
    FEARFUL = "fearful"
    EXCITED = "excited"
    CURIOUS = "curious"

    @classmethod
    def parse(cls, value: object) -> "Mood":
        """Map loose model output onto the enum, defaulting to neutral."""

        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            for mood in cls:
                if mood.value == normalized:
                    return mood
        return cls.NEUTRAL


class MemoryKind(str, Enum):
    """MemoryKind tags every record in a character's memory stream."""

    OBSERVATION = "observation"
    REFLECTION = "reflection"
    PLAN = "plan"
    KNOWLEDGE = "knowledge"
    THOUGHT = "thought"


########## Importance ##########
# Explicit rated / unrated variant instead of a nullable number.


class Unrated(BaseModel):
    """Importance not yet evaluated."""

    tag: Literal["unrated"] = "unrated"


class Rated(BaseModel):
    """Importance evaluated on the 1..10 scale."""

    tag: Literal["rated"] = "rated"
    value: int

    @field_validator("value", mode="before")
    @classmethod
    def _clamp_value(cls, value: float) -> int:
        return clamp_importance(float(value))


Importance = Annotated[Union[Unrated, Rated], Field(discriminator="tag")]


def rated(value: Optional[float]) -> Union[Unrated, Rated]:
    """Build the importance variant from an optional raw number."""

    if value is None:
        return Unrated()
    return Rated(value=value)


def is_rated(importance: Union[Unrated, Rated]) -> bool:
    return isinstance(importance, Rated)


def scoring_importance(importance: Union[Unrated, Rated]) -> int:
    """Importance value used by scoring formulas; unrated counts as mid-scale."""

    if isinstance(importance, Rated):
        return importance.value
    return config.UNRATED_IMPORTANCE_SCORE


########## Memory ##########


class MemoryRecord(BaseModel):
    """A single timestamped, kind-tagged entry in a character's memory stream."""

    memory_id: str
    sequence: int
    kind: MemoryKind
    content: str
    created_at: datetime
    importance: Importance = Field(default_factory=Unrated)
    last_access: datetime
    sources: List[str] = Field(default_factory=list)

    def importance_label(self) -> str:
        """Short label for prompts ("7" or "unrated")."""

        if isinstance(self.importance, Rated):
            return str(self.importance.value)
        return "unrated"


class RetrievedMemory(BaseModel):
    """Memory record plus the transient retrieval score breakdown."""

    record: MemoryRecord
    score: float
    recency: float
    importance: float
    relevance: float


########## Persona and Scratch ##########


class Persona(BaseModel):
    """Immutable character identity loaded from seed files."""

    model_config = {"frozen": True, "populate_by_name": True}

    character_id: str = Field(alias="id")
    name: str
    age: int
    occupation: str
    location: str
    traits: List[str] = Field(default_factory=list)
    backstory: str = ""
    goals: List[str] = Field(default_factory=list)
    speech_style: str = ""


class PlanStatus(str, Enum):
    """Lifecycle of a single schedule slot."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class PlanItem(BaseModel):
    """One scheduled activity slot."""

    time: str
    activity: str
    location: Optional[str] = None
    duration: int = config.PLAN_DEFAULT_DURATION
    status: PlanStatus = PlanStatus.PENDING
    goal_related: Optional[bool] = None


class Scratch(BaseModel):
    """Mutable moment-to-moment character state."""

    current_location: str
    current_activity: str
    current_mood: Mood = Mood.NEUTRAL
    current_time: str = config.WAKE_TIME
    daily_plan: Optional[List[PlanItem]] = None
    current_plan_index: Optional[int] = None
    is_awake: bool = False


class PlanProgress(BaseModel):
    """Outcome of one clock tick against the daily plan."""

    changed: bool
    index: Optional[int] = None
    item: Optional[PlanItem] = None


########## Dialogue ##########


class ChatMessage(BaseModel):
    """Single line in the rolling conversation history."""

    speaker: str  # "user", "npc" or another character's name
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


class ChatReply(BaseModel):
    """Structured reply decoded from the completion service."""

    text: str
    mood: Mood = Mood.NEUTRAL
    intent: Optional[str] = None
    observation: Optional[str] = None


########## Events ##########


class EventType(str, Enum):
    """EventType captures what the core announces to UI and world collaborators."""

    MOOD_CHANGED = "mood_changed"
    ACTIVITY_CHANGED = "activity_changed"
    PLAN_GENERATED = "plan_generated"
    REFLECTION_CREATED = "reflection_created"
    SPONTANEOUS_UTTERANCE = "spontaneous_utterance"
    CROSS_CHARACTER_UTTERANCE = "cross_character_utterance"
    OBSERVATION_NOTED = "observation_noted"


class CharacterEvent(BaseModel):
    """Fire-and-forget notification carrying a human readable payload."""

    event_type: EventType
    character_id: str
    payload: str
    created_at: datetime = Field(default_factory=utcnow)


########## World Snapshots ##########


class Position(BaseModel):
    x: int
    y: int


class SeenEntity(BaseModel):
    """A player or character currently inside the vision cone."""

    entity_id: str
    name: str
    is_player: bool = False
    position: Optional[Position] = None


class SeenObject(BaseModel):
    """A world object currently inside the vision cone."""

    object_id: str
    name: str
    state: Optional[str] = None
    position: Optional[Position] = None


class PerceptionSnapshot(BaseModel):
    """Everything one character can see right now."""

    entities: Dict[str, SeenEntity] = Field(default_factory=dict)
    objects: Dict[str, SeenObject] = Field(default_factory=dict)


class PerceptionDeltaKind(str, Enum):
    APPEARED = "appeared"
    DISAPPEARED = "disappeared"
    CHANGED = "changed"


class PerceptionDelta(BaseModel):
    """One natural-language change between two snapshots."""

    kind: PerceptionDeltaKind
    subject_id: str
    text: str
    importance: Optional[int] = None
    is_player: bool = False


########## Character Definitions ##########


class LocationDef(BaseModel):
    """Where a named place sits on the grid."""

    position: Position
    facing: Optional[str] = None
    description: Optional[str] = None


class CharacterDefinition(BaseModel):
    """Developer-authored seed loaded from JSON."""

    model_config = {"populate_by_name": True}

    character_id: str = Field(alias="id")
    persona: Persona
    scratch: Scratch
    knowledge: List[str] = Field(default_factory=list)
    locations: Dict[str, LocationDef] = Field(default_factory=dict)


class ConversationDecision(BaseModel):
    """Whether to keep talking, plus a parting line when leaving."""

    keep_talking: bool = True
    utterance: Optional[str] = None
