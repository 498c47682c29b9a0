########## Agentic Helpers ##########
# Lenient decoding of free-text completion output into typed structures.

from __future__ import annotations

import json
import math
import re
from typing import Any, Dict, List, Optional, Tuple

from . import config
from .types import ChatReply, Mood, PlanItem, PlanStatus


THINK_BLOCK_RE = re.compile(r"<think>.*?</think>", flags=re.S | re.I)
CODE_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", flags=re.S | re.I)
MINUTES_PER_DAY = 24 * 60
TIME_LABEL_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def strip_think(text: str) -> str:
    """Remove DeepSeek-style <think> blocks to keep outputs clean."""

    return THINK_BLOCK_RE.sub("", text or "").strip()


def _first_code_block(text: str) -> Optional[str]:
    """Return the first fenced code block content if present."""

    match = CODE_FENCE_RE.search(text or "")
    if match:
        return match.group(1).strip()
    return None


def _balanced_fragments(text: str, opener: str, closer: str):
    """Yield every balanced opener..closer region, left to right."""

    # 1 Start a scan at each opener and track depth, skipping string bodies.  # steps
    payload = text or ""
    start = payload.find(opener)
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(payload)):
            char = payload[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == opener:
                depth += 1
            elif char == closer:
                depth -= 1
                if depth == 0:
                    yield payload[start : index + 1]
                    break
        start = payload.find(opener, start + 1)


def _first_valid(text: str, opener: str, closer: str, expected: type) -> Optional[Any]:
    for fragment in _balanced_fragments(text, opener, closer):
        try:
            value = json.loads(fragment)
        except ValueError:
            continue
        if isinstance(value, expected):
            return value
    return None


def parse_json_loose(raw: str) -> Optional[Dict[str, Any]]:
    """Try several strategies to tease out a JSON object from chatty output."""

    cleaned = strip_think(raw)

    fence = _first_code_block(cleaned)
    if fence:
        try:
            value = json.loads(fence)
            if isinstance(value, dict):
                return value
        except ValueError:
            pass

    return _first_valid(cleaned, "{", "}", dict)


def parse_json_array_loose(raw: str) -> Optional[List[Any]]:
    """Return the first syntactically valid JSON array inside the text."""

    cleaned = strip_think(raw)

    fence = _first_code_block(cleaned)
    if fence:
        try:
            value = json.loads(fence)
            if isinstance(value, list):
                return value
        except ValueError:
            pass

    return _first_valid(cleaned, "[", "]", list)


########## Typed Decoders ##########
# One decoder per reply shape; none of them raise.


def _as_number(value: Any) -> Optional[float]:
    """Accept finite ints, floats, and numeric strings; reject bools, NaN and infinities."""

    if isinstance(value, bool):
        return None
    number: Optional[float] = None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:  # huge ints
            return None
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    if number is None or not math.isfinite(number):
        return None
    return number


def _clean_optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in {"null", "none", "n/a"}:
        return None
    return text


def decode_chat_reply(raw: str) -> Optional[ChatReply]:
    """Decode {response|text, mood, intent?, observation?}; None if unusable."""

    payload = parse_json_loose(raw)
    if payload is None:
        return None
    text = payload.get("response", payload.get("text"))
    if not isinstance(text, str) or not text.strip():
        return None
    observation = payload.get("observation", payload.get("playerObservation"))
    return ChatReply(
        text=strip_think(text),
        mood=Mood.parse(payload.get("mood")),
        intent=_clean_optional_text(payload.get("intent")),
        observation=_clean_optional_text(observation),
    )


def decode_importance_batch(raw: str) -> Optional[List[Tuple[str, float]]]:
    """Decode [{id, importance|value}] pairs; None when no array is found."""

    entries = parse_json_array_loose(raw)
    if entries is None:
        return None
    pairs: List[Tuple[str, float]] = []
    for entry in entries:
        memory_id: Any = None
        value: Any = None
        if isinstance(entry, dict):
            memory_id = entry.get("id")
            value = entry.get("importance", entry.get("value", entry.get("score")))
        elif isinstance(entry, list) and len(entry) == 2:
            memory_id, value = entry
        number = _as_number(value)
        if memory_id is None or number is None:
            continue
        pairs.append((str(memory_id).strip(), number))
    return pairs


def time_to_minutes(label: str) -> Optional[int]:
    """Convert an HH:MM label into minutes of day; None when malformed."""

    if not isinstance(label, str):
        return None
    match = TIME_LABEL_RE.match(label)
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def decode_plan_items(raw: str) -> List[PlanItem]:
    """Decode a daily schedule array; malformed entries are dropped."""

    entries = parse_json_array_loose(raw) or []
    items: List[PlanItem] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        start = entry.get("time")
        activity = _clean_optional_text(entry.get("activity"))
        minutes = time_to_minutes(start) if isinstance(start, str) else None
        if activity is None or minutes is None:
            continue
        duration = _as_number(entry.get("duration"))
        if duration is None or duration <= 0:
            duration = config.PLAN_DEFAULT_DURATION
        duration = min(duration, MINUTES_PER_DAY)
        goal_flag = entry.get("goalRelated", entry.get("goal_related"))
        items.append(
            PlanItem(
                time=f"{minutes // 60:02d}:{minutes % 60:02d}",
                activity=activity,
                location=_clean_optional_text(entry.get("location")),
                duration=int(duration),
                status=PlanStatus.PENDING,
                goal_related=goal_flag if isinstance(goal_flag, bool) else None,
            )
        )
    items.sort(key=lambda item: time_to_minutes(item.time))
    return items


def decode_yes_no(raw: str) -> bool:
    """True only when the reply clearly says YES."""

    return "YES" in strip_think(raw).upper()


def clean_line(raw: str) -> str:
    """Trim a free-text spoken line and drop wrapping quotes."""

    text = strip_think(raw).strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in {'"', "'"}:
        text = text[1:-1].strip()
    return text
