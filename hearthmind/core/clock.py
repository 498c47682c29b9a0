########## Game Clock ##########
# In-game day/hour/minute counter that drives plan ticks.

from __future__ import annotations

from typing import Callable, List, Optional

from . import config
from .agentic_helpers import MINUTES_PER_DAY, time_to_minutes


def period_for_hour(hour: int) -> str:
    if 5 <= hour < 7:
        return "dawn"
    if 7 <= hour < 12:
        return "morning"
    if 12 <= hour < 18:
        return "afternoon"
    if 18 <= hour < 21:
        return "evening"
    return "night"


class GameClock:
    """Counts game minutes; listeners hear about new periods and new days."""

    def __init__(self, day: int = config.START_DAY, start: str = config.WAKE_TIME) -> None:
        minutes = time_to_minutes(start)
        if minutes is None:
            raise ValueError(f"bad clock start time: {start!r}")
        self.day = day
        self.hour, self.minute = divmod(minutes, 60)
        self.day_listeners: List[Callable[[int], None]] = []
        self.period_listeners: List[Callable[[str], None]] = []

    @property
    def period(self) -> str:
        return period_for_hour(self.hour)

    @property
    def label(self) -> str:
        """24-hour HH:MM label used by plan progression."""

        return f"{self.hour:02d}:{self.minute:02d}"

    @property
    def label_12h(self) -> str:
        suffix = "PM" if self.hour >= 12 else "AM"
        return f"{self.hour % 12 or 12}:{self.minute:02d} {suffix}"

    def advance(self, minutes: int = config.GAME_MINUTES_PER_TICK) -> str:
        """Move forward, rolling into the next day past midnight."""

        if minutes < 0:
            raise ValueError("the clock only moves forward")
        old_period = self.period
        total = self.hour * 60 + self.minute + minutes
        days, remainder = divmod(total, MINUTES_PER_DAY)
        self.hour, self.minute = divmod(remainder, 60)
        for _ in range(days):
            self.day += 1
            for callback in list(self.day_listeners):
                callback(self.day)
        if self.period != old_period:
            for callback in list(self.period_listeners):
                callback(self.period)
        return self.label

    def set_time(self, label: str, day: Optional[int] = None) -> None:
        minutes = time_to_minutes(label)
        if minutes is None:
            raise ValueError(f"bad clock time: {label!r}")
        self.hour, self.minute = divmod(minutes, 60)
        if day is not None:
            self.day = day

    def state(self) -> dict:
        return {"day": self.day, "time": self.label, "time_12h": self.label_12h, "period": self.period}
