"""Goal arithmetic: XP curve, required XP per interval and interval rollover."""

import calendar
from bisect import bisect_right
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from .models import INFINITY_LABEL, MaxSkillMode, TrackingInterval, XpGoalTimeType

LEVEL_99_XP = 13_034_431
MAX_XP = 200_000_000
MAX_VIRT_LEVEL = 126

INTERVAL_DAYS = {
    TrackingInterval.DAY: 1,
    TrackingInterval.WEEK: 7,
    TrackingInterval.MONTH: 30,
}


def _build_xp_table() -> list[int]:
    # table[n] is the XP needed for level n + 1
    table = [0]
    points = 0
    for level in range(1, MAX_VIRT_LEVEL):
        points += int(level + 300 * 2 ** (level / 7.0))
        table.append(points // 4)
    return table


XP_TABLE = _build_xp_table()


@dataclass(frozen=True)
class GoalOptions:
    """Everything the goal arithmetic needs from configuration."""

    target_date: date
    interval: TrackingInterval = TrackingInterval.DAY
    max_mode: MaxSkillMode = MaxSkillMode.NORMAL
    xp_override: bool = False
    minimum_xp_override: int = 50_000


@dataclass(frozen=True)
class IntervalSummary:
    """How many intervals are left and how long the current one lasts."""

    unit: str
    intervals_remaining: int
    seconds_left_in_interval: int


def xp_for_level(level: int) -> int:
    """
    Get the total XP at which a level is reached.

    Args:
        level: Level between 1 and 126

    Returns:
        XP threshold for that level
    """
    if level < 1 or level > MAX_VIRT_LEVEL:
        raise ValueError(f"Level out of range: {level}")
    return XP_TABLE[level - 1]


def level_for_xp(xp: int) -> int:
    """Get the (virtual) level for an XP amount, clamped to 1..126."""
    if xp <= 0:
        return 1
    return min(bisect_right(XP_TABLE, xp), MAX_VIRT_LEVEL)


def mode_ceiling(max_mode: MaxSkillMode) -> int:
    """XP that counts as finished for the given mode."""
    if max_mode == MaxSkillMode.COMPLETIONIST:
        return MAX_XP
    return LEVEL_99_XP


def is_completed(xp: int, max_mode: MaxSkillMode) -> bool:
    return xp >= mode_ceiling(max_mode)


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def required_xp_per_day(
    start_xp: int, options: GoalOptions, today: Optional[date] = None
) -> int:
    """
    Calculate the XP per day needed to reach the mode ceiling by the target date.

    Rounds up, so that ``result * days >= remaining`` always holds.

    Args:
        start_xp: XP at the start of the current interval
        options: Goal configuration
        today: Reference day (defaults to today)

    Returns:
        Required XP per day (0 when already at or above the ceiling)
    """
    today = today or date.today()
    days_until_target = (options.target_date - today).days

    if options.xp_override:
        return options.minimum_xp_override

    remaining = mode_ceiling(options.max_mode) - start_xp
    if remaining <= 0:
        return 0

    if days_until_target <= 0:
        # Target date is today or already passed, everything is due now
        return remaining

    return _ceil_div(remaining, days_until_target)


def required_xp_per_interval(
    start_xp: int, options: GoalOptions, today: Optional[date] = None
) -> int:
    """
    Calculate the XP needed in one tracking interval.

    Weeks and months are flat multiples (7 and 30) of the daily amount.
    """
    return required_xp_per_day(start_xp, options, today) * INTERVAL_DAYS[options.interval]


def should_start_new_interval(
    interval: TrackingInterval,
    reference_date: Optional[date],
    today: Optional[date] = None,
) -> bool:
    """
    Check whether the current period differs from the one containing reference_date.

    Args:
        interval: Tracking interval
        reference_date: Day the current interval started, None if never started
        today: Reference day (defaults to today)

    Returns:
        True if a new interval should begin
    """
    if reference_date is None:
        return True

    today = today or date.today()

    if interval == TrackingInterval.DAY:
        return today != reference_date
    if interval == TrackingInterval.WEEK:
        now_year, now_week, _ = today.isocalendar()
        ref_year, ref_week, _ = reference_date.isocalendar()
        return now_week != ref_week or now_year != ref_year
    if interval == TrackingInterval.MONTH:
        return today.month != reference_date.month or today.year != reference_date.year
    return True


def max_date_for_override(
    lowest_xp: int, options: GoalOptions, today: Optional[date] = None
) -> Optional[date]:
    """
    Date the lowest skill finishes when gaining exactly the override amount daily.

    Returns None when the override is disabled or its amount is not positive.
    """
    if not options.xp_override or options.minimum_xp_override <= 0:
        return None

    today = today or date.today()
    remaining = mode_ceiling(options.max_mode) - lowest_xp
    days = _ceil_div(remaining, options.minimum_xp_override)
    if days <= 0:
        return today
    return today + timedelta(days=days)


def interval_summary(
    target_date: date, interval: TrackingInterval, now: Optional[datetime] = None
) -> IntervalSummary:
    """
    Count whole intervals left before the target and time left in this one.

    The current interval ends at 23:59:59 on the last day of the day, ISO week
    (Sunday) or calendar month.
    """
    now = now or datetime.now()
    today = now.date()

    if interval == TrackingInterval.WEEK:
        days = (target_date - today).days
        intervals = int(days / 7)
        interval_end = today + timedelta(days=6 - today.weekday())
    elif interval == TrackingInterval.MONTH:
        intervals = (target_date.year * 12 + target_date.month) - (
            today.year * 12 + today.month
        )
        last_day = calendar.monthrange(today.year, today.month)[1]
        interval_end = today.replace(day=last_day)
    else:
        intervals = (target_date - today).days
        interval_end = today

    end = datetime.combine(interval_end, datetime.max.time()).replace(microsecond=0)
    seconds_left = max(0, int((end - now).total_seconds()))

    return IntervalSummary(
        unit=interval.label,
        intervals_remaining=max(0, intervals),
        seconds_left_in_interval=seconds_left,
    )


def format_time_till_goal(remaining_seconds: int, goal_time_type: XpGoalTimeType) -> str:
    """
    Format an ETA in seconds.

    DAYS and HOURS fall back to the next shorter format when the span
    is too small for them. Negative input means "never".

    Example:
        90061 seconds, DAYS  -> "1 day 01:01:01"
        90061 seconds, SHORT -> "25:01:01"
    """
    if remaining_seconds < 0:
        return INFINITY_LABEL

    duration_days = remaining_seconds // (24 * 60 * 60)
    duration_hours = (remaining_seconds % (24 * 60 * 60)) // (60 * 60)
    duration_hours_total = remaining_seconds // (60 * 60)
    duration_minutes = (remaining_seconds % (60 * 60)) // 60
    duration_seconds = remaining_seconds % 60

    if goal_time_type == XpGoalTimeType.DAYS:
        if duration_days > 1:
            return (
                f"{duration_days} days "
                f"{duration_hours:02d}:{duration_minutes:02d}:{duration_seconds:02d}"
            )
        if duration_days == 1:
            return f"1 day {duration_hours:02d}:{duration_minutes:02d}:{duration_seconds:02d}"

    if goal_time_type in (XpGoalTimeType.DAYS, XpGoalTimeType.HOURS):
        if duration_hours_total > 1:
            return f"{duration_hours_total} hours {duration_minutes:02d}:{duration_seconds:02d}"
        if duration_hours_total == 1:
            return f"1 hour {duration_minutes:02d}:{duration_seconds:02d}"

    if duration_hours_total > 0:
        return f"{duration_hours_total}:{duration_minutes:02d}:{duration_seconds:02d}"
    return f"{duration_minutes:02d}:{duration_seconds:02d}"
