########## Plan Progression ##########
# Pure tick-driven transitions over a character's daily plan.

from __future__ import annotations

from typing import List, Optional

from .agentic_helpers import time_to_minutes
from .types import PlanItem, PlanProgress, PlanStatus, Scratch


def find_active_index(plan: List[PlanItem], minutes: int) -> Optional[int]:
    """Index of the first item whose [start, start + duration) holds minutes."""

    for index, item in enumerate(plan):
        start = time_to_minutes(item.time)
        if start is None:
            continue
        if start <= minutes < start + item.duration:
            return index
    return None


class PlanProgression:
    """Advances the active plan item; never calls out and never raises on input."""

    def advance(self, scratch: Scratch, time_label: str) -> PlanProgress:
        # 1 Unknown time or empty plan: nothing to do.                         # steps
        # 2 Find the covering item; gaps and the end of day leave state alone. # steps
        # 3 Only move forward, retiring everything between old and new.        # steps
        plan = scratch.daily_plan
        current = scratch.current_plan_index
        unchanged = PlanProgress(changed=False, index=current)
        minutes = time_to_minutes(time_label)
        if minutes is None or not plan:
            return unchanged
        assert current is None or 0 <= current < len(plan), f"plan index {current} out of range"
        scratch.current_time = time_label
        target = find_active_index(plan, minutes)
        if target is None or target == current:
            return unchanged
        if current is not None and target < current:
            return unchanged

        first = 0 if current is None else current
        for index in range(first, target):
            item = plan[index]
            if item.status == PlanStatus.IN_PROGRESS:
                item.status = PlanStatus.COMPLETED
            elif item.status == PlanStatus.PENDING:
                item.status = PlanStatus.SKIPPED

        active = plan[target]
        active.status = PlanStatus.IN_PROGRESS
        scratch.current_plan_index = target
        scratch.current_activity = active.activity
        if active.location:
            scratch.current_location = active.location
        return PlanProgress(changed=True, index=target, item=active)
