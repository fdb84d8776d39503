"""Incremental XP state for a single skill."""

import logging
from datetime import date
from typing import Optional

from xptracker.store.models import XpSaveSingle

from .calculator import format_time_till_goal, level_for_xp
from .models import MAX_INT, XpGoalTimeType, XpSnapshotSingle, now_millis

logger = logging.getLogger(__name__)

ACTION_HISTORY_SIZE = 10

UNSET_DAY = 31
UNSET_MONTH = 12
UNSET_YEAR = 9999


class XpStateSingle:
    """
    Tracks XP gained by one skill since its baseline.

    ``start_xp == -1`` means the skill has no baseline yet. Gains are split
    into a part before and a part since the last rate reset so per-hour
    figures can restart without losing the session total.
    """

    def __init__(self, start_xp: int = -1, end_xp: int = -1):
        self.start_xp = start_xp
        self.end_xp = end_xp

        self.start_day = UNSET_DAY
        self.start_month = UNSET_MONTH
        self.start_year = UNSET_YEAR

        self.xp_gained_since_reset = 0
        self.xp_gained_before_reset = 0

        # How long the skill has been trained for, in ms
        self.skill_time = 0
        # Last time the skill's XP changed, in ms
        self.last_change_millis = 0

        self.start_level_exp = 0
        self.end_level_exp = 0

        self.lowest_skill = False

        self.actions = 0
        self.actions_since_reset = 0
        self._action_exps = [0] * ACTION_HISTORY_SIZE
        self._action_exp_index = 0
        self._actions_history_initialized = False

    def __repr__(self):
        return (
            f"XpStateSingle(start_xp={self.start_xp}, "
            f"gained={self.total_xp_gained}, skill_time={self.skill_time})"
        )

    @property
    def is_initialized(self) -> bool:
        return self.start_xp != -1

    @property
    def current_xp(self) -> int:
        return self.start_xp + self.total_xp_gained

    @property
    def total_xp_gained(self) -> int:
        return self.xp_gained_before_reset + self.xp_gained_since_reset

    @property
    def actions_history_initialized(self) -> bool:
        return self._actions_history_initialized

    @property
    def action_history(self) -> tuple[int, ...]:
        return tuple(self._action_exps)

    def initialize(self, current_xp: int):
        """Set a new baseline and forget all gains, rates and action history."""
        self.start_xp = current_xp
        self.xp_gained_since_reset = 0
        self.xp_gained_before_reset = 0
        self.skill_time = 0
        self.last_change_millis = 0
        self.actions = 0
        self.actions_since_reset = 0
        self._action_exps = [0] * ACTION_HISTORY_SIZE
        self._action_exp_index = 0
        self._actions_history_initialized = False

    def uninitialize(self):
        """Drop the baseline but keep every other field."""
        self.start_xp = -1

    def update(self, current_xp: int, now_ms: Optional[int] = None) -> bool:
        """
        Record a new XP value.

        The caller is responsible for catching values lower than the
        current XP and re-initializing instead.

        Args:
            current_xp: Latest known XP
            now_ms: Time of the change (defaults to now)

        Returns:
            True if the XP changed, False otherwise
        """
        if not self.is_initialized:
            logger.warning(f"Attempted to update {self!r} before it was initialized")
            return False

        action_exp = current_xp - self.current_xp

        if action_exp == 0:
            return False

        if self._actions_history_initialized:
            self._action_exps[self._action_exp_index] = action_exp
        else:
            # Fill the whole history with the first gain so the average starts there
            self._action_exps = [action_exp] * ACTION_HISTORY_SIZE
            self._actions_history_initialized = True

        self._action_exp_index = (self._action_exp_index + 1) % ACTION_HISTORY_SIZE
        self.actions += 1
        self.actions_since_reset += 1

        self.xp_gained_since_reset = current_xp - (self.start_xp + self.xp_gained_before_reset)
        self.last_change_millis = now_ms if now_ms is not None else now_millis()

        return True

    def update_goals(self, goal_start_xp: int, goal_end_xp: int):
        self.start_level_exp = max(goal_start_xp, 0)
        self.end_level_exp = max(goal_end_xp, 0)
        self.end_xp = self.end_level_exp

    def update_start_date(self, start_day: int, start_month: int, start_year: int):
        self.start_day = start_day
        self.start_month = start_month
        self.start_year = start_year

    @property
    def start_date(self) -> Optional[date]:
        """Day the current goal period began, None if unset or invalid."""
        if (self.start_year, self.start_month, self.start_day) == (
            UNSET_YEAR,
            UNSET_MONTH,
            UNSET_DAY,
        ):
            return None
        try:
            return date(self.start_year, self.start_month, self.start_day)
        except ValueError:
            return None

    def tick(self, delta_ms: int):
        # Only count time once XP has been gained in this rate window
        if self.xp_gained_since_reset <= 0:
            return
        self.skill_time += delta_ms

    def reset_per_hour(self, now_ms: Optional[int] = None):
        """Restart the per-hour window, keeping the session total."""
        self.actions_since_reset = 0
        self.xp_gained_before_reset += self.xp_gained_since_reset
        self.xp_gained_since_reset = 0
        self.last_change_millis = now_ms if now_ms is not None else now_millis()
        self.skill_time = 0

    # ---- Derived values ----

    @property
    def time_elapsed_seconds(self) -> int:
        # Pretend at least a minute has passed so early rates don't explode
        return max(60, self.skill_time // 1000)

    def _to_hourly(self, value: int) -> int:
        return value * 3600 // self.time_elapsed_seconds

    @property
    def xp_per_hour(self) -> int:
        if not self.is_initialized:
            return 0
        return self._to_hourly(self.xp_gained_since_reset)

    @property
    def actions_per_hour(self) -> int:
        if not self.is_initialized:
            return 0
        return self._to_hourly(self.actions_since_reset)

    @property
    def xp_remaining(self) -> int:
        if not self.is_initialized:
            return 0
        return max(0, self.end_level_exp - self.current_xp)

    @property
    def actions_remaining(self) -> int:
        if not self.is_initialized or not self._actions_history_initialized:
            return MAX_INT

        total_action_xp = sum(self._action_exps)
        if total_action_xp <= 0:
            return MAX_INT

        xp_remaining = self.xp_remaining * ACTION_HISTORY_SIZE
        # Round up so the final partial action is counted
        return -(-xp_remaining // total_action_xp)

    @property
    def skill_progress(self) -> float:
        xp_goal = self.end_level_exp - self.start_level_exp
        if not self.is_initialized or xp_goal <= 0:
            return 0.0
        return self.total_xp_gained / xp_goal * 100

    @property
    def seconds_till_goal(self) -> int:
        """Seconds until the goal at the current rate, -1 if unknown."""
        if not self.is_initialized or self.xp_gained_since_reset <= 0:
            return -1
        # xp_remaining / (gained / seconds), with a single integer division
        return self.xp_remaining * self.time_elapsed_seconds // self.xp_gained_since_reset

    def time_till_goal(self, goal_time_type: XpGoalTimeType) -> str:
        return format_time_till_goal(self.seconds_till_goal, goal_time_type)

    # ---- Snapshot and persistence ----

    def snapshot(self) -> XpSnapshotSingle:
        return XpSnapshotSingle(
            start_level=level_for_xp(self.start_level_exp),
            end_level=level_for_xp(self.end_level_exp),
            xp_gained_in_session=self.total_xp_gained,
            xp_remaining_to_goal=self.xp_remaining,
            xp_per_hour=self.xp_per_hour,
            skill_progress_to_goal=self.skill_progress,
            actions_in_session=self.actions,
            actions_remaining_to_goal=self.actions_remaining,
            actions_per_hour=self.actions_per_hour,
            time_till_goal=self.time_till_goal(XpGoalTimeType.DAYS),
            time_till_goal_hours=self.time_till_goal(XpGoalTimeType.HOURS),
            time_till_goal_short=self.time_till_goal(XpGoalTimeType.SHORT),
            start_goal_xp=self.start_level_exp,
            end_goal_xp=self.end_level_exp,
            start_day=self.start_day,
            start_month=self.start_month,
            start_year=self.start_year,
            lowest_skill=self.lowest_skill,
        )

    def save(self) -> XpSaveSingle:
        return XpSaveSingle(
            start_xp=self.start_xp,
            end_xp=self.end_xp,
            start_day=self.start_day,
            start_month=self.start_month,
            start_year=self.start_year,
            lowest_skill=self.lowest_skill,
            xp_gained_before_reset=self.xp_gained_before_reset,
            xp_gained_since_reset=self.xp_gained_since_reset,
            skill_time=self.skill_time,
            goal_start_xp=self.start_level_exp,
        )

    def restore(self, save: XpSaveSingle):
        """Load saved fields. Action history and last change time start empty."""
        self.start_xp = save.start_xp
        self.end_xp = save.end_xp
        self.start_day = save.start_day
        self.start_month = save.start_month
        self.start_year = save.start_year
        self.lowest_skill = save.lowest_skill
        self.xp_gained_before_reset = save.xp_gained_before_reset
        self.xp_gained_since_reset = save.xp_gained_since_reset
        self.skill_time = save.skill_time
