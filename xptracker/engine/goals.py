"""Per-skill interval start tracking for goal windows."""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from .calculator import GoalOptions, required_xp_per_interval, should_start_new_interval
from .models import TrackingInterval

logger = logging.getLogger(__name__)


@dataclass
class IntervalStart:
    """Where the current interval of one skill began."""

    start_xp: int
    start_date: date


class IntervalGoals:
    """Remembers, per skill, the XP and day the current goal interval began."""

    def __init__(self):
        self._starts: dict[str, IntervalStart] = {}

    def clear(self):
        self._starts.clear()

    def forget(self, skill: str):
        self._starts.pop(skill, None)

    def seed(self, skill: str, start_xp: int, start_date: date):
        """Prime a skill from restored state without checking for rollover."""
        self._starts[skill] = IntervalStart(start_xp=start_xp, start_date=start_date)

    def record(
        self,
        skill: str,
        current_xp: int,
        interval: TrackingInterval,
        today: Optional[date] = None,
    ) -> tuple[IntervalStart, bool]:
        """
        Start a new interval for the skill if needed.

        A new interval begins the first time a skill is seen and whenever the
        calendar period has rolled over since the recorded start date.

        Args:
            skill: Skill key
            current_xp: XP right now
            interval: Tracking interval
            today: Reference day (defaults to today)

        Returns:
            The interval start in effect and whether a new interval began
        """
        today = today or date.today()
        start = self._starts.get(skill)

        if start is None or should_start_new_interval(interval, start.start_date, today):
            if start is not None:
                logger.info(
                    f"New {interval.value} interval for {skill}: "
                    f"{start.start_date} -> {today} at {current_xp} xp"
                )
            start = IntervalStart(start_xp=current_xp, start_date=today)
            self._starts[skill] = start
            return start, True

        return start, False

    def goal_window(
        self, skill: str, options: GoalOptions, today: Optional[date] = None
    ) -> tuple[int, int]:
        """
        Get (goal_start, goal_end) XP for the skill's current interval.

        Returns (-1, -1) when the skill has no recorded interval yet.
        """
        start = self._starts.get(skill)
        if start is None:
            return -1, -1

        goal_start = start.start_xp
        goal_end = goal_start + required_xp_per_interval(goal_start, options, today)
        return goal_start, goal_end
