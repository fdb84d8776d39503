"""Data models for tracked skills and their snapshots."""

import time
from dataclasses import dataclass
from enum import Enum

# Sentinel for "unknown" action counts
MAX_INT = 2**31 - 1

INFINITY_LABEL = "∞"


class TrackingInterval(str, Enum):
    """Length of one goal period."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @property
    def label(self) -> str:
        return self.value.title()


class MaxSkillMode(str, Enum):
    """Which XP ceiling counts as "maxed"."""

    NORMAL = "normal"  # level 99
    COMPLETIONIST = "completionist"  # 200m


class XpUpdateResult(Enum):
    """Outcome of feeding a new XP value into the tracker."""

    INITIALIZED = "initialized"
    UPDATED = "updated"
    NO_CHANGE = "no_change"


class XpGoalTimeType(Enum):
    DAYS = "days"
    HOURS = "hours"
    SHORT = "short"


@dataclass(frozen=True)
class XpSnapshotSingle:
    """Immutable view of one skill (or the overall total) for renderers."""

    start_level: int = 1
    end_level: int = 1
    xp_gained_in_session: int = 0
    xp_remaining_to_goal: int = 0
    xp_per_hour: int = 0
    skill_progress_to_goal: float = 0.0
    actions_in_session: int = 0
    actions_remaining_to_goal: int = MAX_INT
    actions_per_hour: int = 0
    time_till_goal: str = INFINITY_LABEL
    time_till_goal_hours: str = INFINITY_LABEL
    time_till_goal_short: str = INFINITY_LABEL
    start_goal_xp: int = 0
    end_goal_xp: int = 0
    start_day: int = 31
    start_month: int = 12
    start_year: int = 9999
    lowest_skill: bool = False

    @property
    def actions_remaining_known(self) -> bool:
        return self.actions_remaining_to_goal != MAX_INT


def now_millis() -> int:
    """Wall-clock time in milliseconds."""
    return int(time.time() * 1000)
