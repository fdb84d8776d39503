"""Session driver wiring data source events, the XP engine and persistence together."""

import logging
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional

from .config import Settings
from .dashboard.feed import SkillRow, SnapshotFeed, TrackerFrame
from .engine.calculator import (
    GoalOptions,
    IntervalSummary,
    interval_summary,
    is_completed,
    max_date_for_override,
)
from .engine.goals import IntervalGoals
from .engine.models import XpUpdateResult, now_millis
from .engine.pause_state import XpPauseState
from .engine.xp_state import LOWEST_XP_CEILING, XpState
from .store.database import SaveDatabase
from .store.models import XpSave

logger = logging.getLogger(__name__)


class TrackerNotReadyError(Exception):
    """Raised when an event needs a logged in profile and there is none."""


class UnknownSkillError(KeyError):
    """Raised when an operation names a skill the data source never reported."""


@dataclass(frozen=True)
class TargetSummary:
    """Where the configured target stands right now."""

    target_date: date
    interval: IntervalSummary
    lowest_xp: Optional[int]
    max_date_with_override: Optional[date]


class XpTracker:
    """
    Drives the XP engine from data source events and a periodic clock.

    All calls are expected on one event loop; nothing here locks. Renderers
    read immutable frames from ``feed``.
    """

    def __init__(
        self,
        settings: Settings,
        database: SaveDatabase,
        feed: Optional[SnapshotFeed] = None,
    ):
        self.settings = settings
        self.database = database
        self.feed = feed or SnapshotFeed()

        self.xp_state = XpState(
            prioritize_recent=settings.prioritize_recent_xp_skills,
            reset_after_minutes=settings.reset_skill_rate_after,
        )
        self.pause_state = XpPauseState()
        self.goals = IntervalGoals()

        self.profile: Optional[str] = None
        self.logged_in = False

        # Latest XP reported by the data source
        self._skill_xp: dict[str, int] = {}
        self._overall_xp: Optional[int] = None
        self._last_tick_ms = 0

    def goal_options(self, today: Optional[date] = None) -> GoalOptions:
        """Goal settings resolved for a day."""
        return self.settings.goal_options(today)

    # ---- Data source events ----

    def login(
        self,
        profile: str,
        skills: dict[str, int],
        overall: int,
        now_ms: Optional[int] = None,
        today: Optional[date] = None,
    ):
        """
        Handle a login with the data source's current values.

        Restores the profile's save, drops completed skills, accounts for XP
        gained while offline and baselines everything not seen before.
        """
        now = now_ms if now_ms is not None else now_millis()
        today = today or date.today()
        options = self.goal_options(today)

        if profile != self.profile:
            if self.profile:
                logger.info(f"Profile change: {self.profile} -> {profile}")
                self.tick_save()
            self._reset_state()
            self.profile = profile

        self._skill_xp = dict(skills)
        self._overall_xp = overall

        save = self.database.load_save(profile)
        if save is not None:
            logger.debug(f"Loading xp state from save for profile: {profile}")
            self.xp_state.restore(save, known_skills=skills.keys())
            self.goals.clear()
            self._seed_goals(save, today)

        self._drop_completed(options)
        if not self._apply_offline_gains():
            self._reset_state(keep_values=True)
            self.database.clear_save(profile)

        for skill, xp in skills.items():
            if is_completed(xp, options.max_mode):
                continue
            self._sync_skill(skill, xp, options, today)

        self._sync_overall(overall)
        self._refresh_lowest()

        self.logged_in = True
        self.pause_state.tick_logout(self.settings.pause_on_logout, True)
        logger.info(f"Logged in as {profile} tracking {len(self.xp_state.skills)} skills")
        self.publish(now)

    def logout(self, now_ms: Optional[int] = None):
        """Save and mark the session logged out."""
        self._require_login()
        now = now_ms if now_ms is not None else now_millis()
        self.tick_save()
        self.logged_in = False
        self.pause_state.tick_logout(self.settings.pause_on_logout, False)
        logger.info(f"Logged out of {self.profile}")
        self.publish(now)

    def on_value_changed(
        self,
        skill: str,
        xp: int,
        now_ms: Optional[int] = None,
        today: Optional[date] = None,
    ) -> XpUpdateResult:
        """
        Handle a changed skill XP value.

        Args:
            skill: Skill key
            xp: New XP value
            now_ms: Time of the change (defaults to now)
            today: Reference day (defaults to today)

        Returns:
            Result of the engine update
        """
        self._require_login()
        now = now_ms if now_ms is not None else now_millis()
        today = today or date.today()
        options = self.goal_options(today)

        previous = self._skill_xp.get(skill)
        self._skill_xp[skill] = xp

        if is_completed(xp, options.max_mode):
            if self.xp_state.is_initialized(skill):
                logger.info(f"{skill} is complete, no longer tracking it")
                self.xp_state.uninitialize_skill(skill)
                self.goals.forget(skill)
                self._refresh_lowest()
                self.publish(now)
            return XpUpdateResult.NO_CHANGE

        # A new interval starts from the last value seen in the old one
        baseline = previous if previous is not None and previous <= xp else xp
        start, started = self.goals.record(skill, baseline, options.interval, today)
        if started and self.xp_state.is_initialized(skill):
            self.xp_state.initialize_skill(skill, baseline)

        goal_start, goal_end = self.goals.goal_window(skill, options, today)
        result = self.xp_state.update_skill(skill, xp, goal_start, goal_end, now)

        state = self.xp_state.get_skill(skill)
        state.update_start_date(start.start_date.day, start.start_date.month, start.start_date.year)
        if result != XpUpdateResult.UPDATED:
            # Only UPDATED applies goals itself
            state.update_goals(goal_start, goal_end)

        self._refresh_lowest()
        self.publish(now)
        return result

    def on_overall_changed(self, xp: int, now_ms: Optional[int] = None) -> XpUpdateResult:
        """Handle a changed overall XP value from the data source."""
        self._require_login()
        now = now_ms if now_ms is not None else now_millis()
        self._overall_xp = xp
        result = self.xp_state.update_overall(xp, now)
        self.publish(now)
        return result

    # ---- Clock ----

    def tick(self, now_ms: Optional[int] = None):
        """
        Advance pause state and active time. Called about once per second.

        The first call only primes the clock.
        """
        now = now_ms if now_ms is not None else now_millis()
        pause_after = self.settings.pause_skill_after

        for skill, xp in self._skill_xp.items():
            self.pause_state.tick_xp(skill, xp, pause_after, now)
        if self._overall_xp is not None:
            self.pause_state.tick_overall(self._overall_xp, pause_after, now)

        self.pause_state.tick_logout(self.settings.pause_on_logout, self.logged_in)

        if self._last_tick_ms == 0:
            self._last_tick_ms = now
            return

        delta = now - self._last_tick_ms
        self._last_tick_ms = now

        for skill in self.xp_state.skills:
            if not self.pause_state.is_paused(skill):
                self.xp_state.tick(skill, delta, now)
        if not self.pause_state.is_overall_paused():
            self.xp_state.tick_overall(delta, now)

        self.publish(now)

    def tick_save(self) -> bool:
        """Persist the current state. Called about once per minute."""
        save = self.xp_state.save()
        if save is None or not self.profile:
            return False

        try:
            self.database.write_save(self.profile, save)
        except sqlite3.Error as e:
            logger.warning(f"Failed to save XP state for {self.profile}: {e}")
            return False
        return True

    # ---- User actions ----

    def pause_skill(self, skill: str, pause: bool, now_ms: Optional[int] = None) -> bool:
        """Pause or unpause one skill, returning whether it flipped."""
        if pause:
            changed = self.pause_state.pause_skill(skill)
        else:
            changed = self.pause_state.unpause_skill(skill)
        if changed:
            self.publish(now_ms)
        return changed

    def pause_all(self, pause: bool, now_ms: Optional[int] = None):
        """Pause or unpause every known skill and the overall total."""
        for skill in self._known_skills():
            if pause:
                self.pause_state.pause_skill(skill)
            else:
                self.pause_state.unpause_skill(skill)
        if pause:
            self.pause_state.pause_overall()
        else:
            self.pause_state.unpause_overall()
        self.publish(now_ms)

    def reset_skill(self, skill: str, today: Optional[date] = None, now_ms: Optional[int] = None):
        """Re-baseline one skill at its current XP and start a fresh interval."""
        xp = self._require_skill(skill)
        today = today or date.today()
        options = self.goal_options(today)

        self.goals.forget(skill)
        if is_completed(xp, options.max_mode):
            self.xp_state.uninitialize_skill(skill)
        else:
            self._sync_skill(skill, xp, options, today)
        self._refresh_lowest()
        self.publish(now_ms)

    def reset_other_skills(
        self, skill: str, today: Optional[date] = None, now_ms: Optional[int] = None
    ):
        """Reset every reported skill except this one."""
        self._require_skill(skill)
        for other in self._known_skills():
            if other != skill and other in self._skill_xp:
                self.reset_skill(other, today, now_ms)

    def reset_all(self, today: Optional[date] = None, now_ms: Optional[int] = None):
        """Forget everything, clear the stored save and baseline all skills again."""
        self._require_login()
        today = today or date.today()
        options = self.goal_options(today)

        logger.info(f"Resetting all XP state for {self.profile}")
        self.database.clear_save(self.profile)
        self._reset_state(keep_values=True)

        for skill, xp in self._skill_xp.items():
            if not is_completed(xp, options.max_mode):
                self._sync_skill(skill, xp, options, today)
        if self._overall_xp is not None:
            self.xp_state.initialize_overall(self._overall_xp)

        self._refresh_lowest()
        self.publish(now_ms)

    def reset_skill_rate(self, skill: str, now_ms: Optional[int] = None):
        """Restart one skill's rate window, keeping its session total."""
        self._require_skill(skill)
        self.xp_state.reset_skill_per_hour(skill, now_ms)
        self.publish(now_ms)

    def reset_all_rates(self, now_ms: Optional[int] = None):
        """Restart every rate window, keeping session totals."""
        for skill in self.xp_state.skills:
            self.xp_state.reset_skill_per_hour(skill, now_ms)
        self.xp_state.reset_overall_per_hour(now_ms)
        self.publish(now_ms)

    # ---- Read side ----

    def snapshots(self, now_ms: Optional[int] = None) -> TrackerFrame:
        """Build an immutable frame of every tracked skill in display order."""
        ordered = self.xp_state.order
        rest = [skill for skill in self.xp_state.skills if skill not in ordered]

        rows = []
        for skill in ordered + rest:
            if not self.xp_state.is_initialized(skill):
                continue
            rows.append(
                SkillRow(
                    skill=skill,
                    snapshot=self.xp_state.get_skill_snapshot(skill),
                    paused=self.pause_state.is_paused(skill),
                )
            )

        return TrackerFrame(
            skills=tuple(rows),
            overall=self.xp_state.get_total_snapshot(),
            overall_paused=self.pause_state.is_overall_paused(),
            logged_in=self.logged_in,
            profile=self.profile,
            generated_at_ms=now_ms if now_ms is not None else now_millis(),
        )

    def publish(self, now_ms: Optional[int] = None):
        """Push a fresh frame to the feed."""
        self.feed.publish(self.snapshots(now_ms))

    def target_summary(self, now: Optional[datetime] = None) -> TargetSummary:
        """Where the configured target stands right now."""
        now = now or datetime.now()
        options = self.goal_options(now.date())

        lowest = self.xp_state.find_lowest_skill_xp()
        lowest_xp = lowest if lowest != LOWEST_XP_CEILING else None

        return TargetSummary(
            target_date=options.target_date,
            interval=interval_summary(options.target_date, options.interval, now),
            lowest_xp=lowest_xp,
            max_date_with_override=(
                max_date_for_override(lowest_xp, options, now.date())
                if lowest_xp is not None
                else None
            ),
        )

    # ---- Internal ----

    def _require_login(self):
        if not self.profile:
            raise TrackerNotReadyError("No profile has logged in yet")

    def _require_skill(self, skill: str) -> int:
        self._require_login()
        xp = self._skill_xp.get(skill)
        if xp is None:
            raise UnknownSkillError(skill)
        return xp

    def _known_skills(self) -> Iterable[str]:
        return list(dict.fromkeys([*self._skill_xp, *self.xp_state.skills]))

    def _reset_state(self, keep_values: bool = False):
        self.xp_state.reset()
        self.goals.clear()
        if not keep_values:
            self._skill_xp.clear()
            self._overall_xp = None

    def _drop_completed(self, options: GoalOptions):
        for skill in self.xp_state.skills:
            xp = self._skill_xp.get(skill)
            if xp is not None and is_completed(xp, options.max_mode):
                self.xp_state.uninitialize_skill(skill)
                logger.debug(f"Removed completed skill from tracking: {skill}")

    def _seed_goals(self, save: XpSave, today: date):
        """Prime interval starts from restored records, older saves fall back to start_xp."""
        for record in save.skills:
            state = self.xp_state.find_skill(record.skill)
            if state is None or not state.is_initialized:
                continue
            goal_start = record.goal_start_xp if record.goal_start_xp >= 0 else record.start_xp
            self.goals.seed(record.skill, goal_start, state.start_date or today)

    def _apply_offline_gains(self) -> bool:
        """
        Shift baselines by XP gained while logged out.

        Returns False if any skill went backwards, in which case the restored
        state cannot be trusted.
        """
        for skill in self.xp_state.skills:
            state = self.xp_state.get_skill(skill)
            xp = self._skill_xp.get(skill)
            if not state.is_initialized or xp is None or xp == state.current_xp:
                continue

            if xp < state.current_xp:
                logger.warning(f"XP is going backwards! {skill} {state.current_xp} -> {xp}")
                return False

            logger.debug(f"Skill xp for {skill} changed when offline: {state.current_xp} -> {xp}")
            state.start_xp += xp - state.current_xp

        overall = self.xp_state.overall
        if overall.is_initialized and self._overall_xp is not None:
            if self._overall_xp < overall.current_xp:
                logger.warning(
                    f"Overall XP is going backwards! {overall.current_xp} -> {self._overall_xp}"
                )
                return False
            overall.start_xp += self._overall_xp - overall.current_xp

        return True

    def _sync_skill(self, skill: str, xp: int, options: GoalOptions, today: date):
        """Baseline a skill if needed and apply its current goal window."""
        start, started = self.goals.record(skill, xp, options.interval, today)
        if started or not self.xp_state.is_initialized(skill):
            self.xp_state.initialize_skill(skill, xp)

        state = self.xp_state.get_skill(skill)
        goal_start, goal_end = self.goals.goal_window(skill, options, today)
        state.update_goals(goal_start, goal_end)
        state.update_start_date(start.start_date.day, start.start_date.month, start.start_date.year)

    def _sync_overall(self, overall: int):
        state = self.xp_state.overall
        if not state.is_initialized:
            logger.debug(f"Initializing XP tracker with {overall} overall exp")
            self.xp_state.initialize_overall(overall)

    def _refresh_lowest(self):
        self.xp_state.set_lowest_skill_flag(self.xp_state.find_lowest_skill_xp())
