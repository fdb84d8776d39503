"""Keyed XP state for every tracked skill plus the overall total."""

import logging
from typing import Iterable, Optional

from xptracker.store.models import XpSave, XpSaveSkill

from .models import XpSnapshotSingle, XpUpdateResult, now_millis
from .xp_state_single import XpStateSingle

logger = logging.getLogger(__name__)

# Above any reachable skill XP
LOWEST_XP_CEILING = 200_000_000


class XpState:
    """
    Internal tracker state.

    Not thread-safe: every mutating call must come from the same event loop.
    Snapshots are immutable and may be handed to other threads.
    """

    def __init__(self, prioritize_recent: bool = True, reset_after_minutes: int = 0):
        self.prioritize_recent = prioritize_recent
        self.reset_after_minutes = reset_after_minutes

        self._skills: dict[str, XpStateSingle] = {}
        # Display order, kept so saves are written in a stable order
        self._order: list[str] = []
        self._overall = XpStateSingle()

    def reset(self):
        """Destroy all internal state. Snapshots already taken are unaffected."""
        self._skills.clear()
        self._order.clear()
        self._overall = XpStateSingle()

    @property
    def order(self) -> list[str]:
        """Skills in display order."""
        return list(self._order)

    @property
    def skills(self) -> list[str]:
        """Every skill seen so far."""
        return list(self._skills)

    @property
    def overall(self) -> XpStateSingle:
        """State of the overall total."""
        return self._overall

    def get_skill(self, skill: str) -> XpStateSingle:
        """Get the state for a skill, creating an uninitialized one if needed."""
        state = self._skills.get(skill)
        if state is None:
            state = XpStateSingle()
            self._skills[skill] = state
        return state

    def find_skill(self, skill: str) -> Optional[XpStateSingle]:
        """Get the state for a skill, None if it was never seen."""
        return self._skills.get(skill)

    def is_initialized(self, skill: str) -> bool:
        """Whether a skill has a baseline."""
        state = self._skills.get(skill)
        return state is not None and state.is_initialized

    def initialize_skill(self, skill: str, current_xp: int):
        """
        Force a skill's baseline to its current XP.

        Used for baseline syncs (login, manual reset); this is not an XP gain.
        """
        self.get_skill(skill).initialize(current_xp)

    def initialize_overall(self, current_xp: int):
        """Force the overall baseline to its current XP."""
        self._overall.initialize(current_xp)

    def uninitialize_skill(self, skill: str):
        """Drop a skill's baseline, hiding it until it is seen again."""
        self.get_skill(skill).uninitialize()

    def reset_skill_per_hour(self, skill: str, now_ms: Optional[int] = None):
        """Restart the rate window for one skill; unseen skills are ignored."""
        state = self._skills.get(skill)
        if state is not None:
            state.reset_per_hour(now_ms)

    def reset_overall_per_hour(self, now_ms: Optional[int] = None):
        """Restart the rate window for the overall total."""
        self._overall.reset_per_hour(now_ms)

    def update_skill(
        self,
        skill: str,
        current_xp: int,
        goal_start_xp: int,
        goal_end_xp: int,
        now_ms: Optional[int] = None,
    ) -> XpUpdateResult:
        """
        Update a skill with its current known XP.

        Only UPDATED is a real gain that should reach the UI; INITIALIZED is a
        baseline sync (first sighting, or XP went backwards).

        Args:
            skill: Skill key
            current_xp: Current known XP for the skill
            goal_start_xp: Start of the goal window
            goal_end_xp: End of the goal window
            now_ms: Time of the change (defaults to now)

        Returns:
            INITIALIZED, UPDATED or NO_CHANGE
        """
        state = self.get_skill(skill)

        if not state.is_initialized:
            self.initialize_skill(skill, current_xp)
            return XpUpdateResult.INITIALIZED

        if state.current_xp > current_xp:
            # XP went backwards (negative XP lamps and the like), start over
            logger.debug(f"XP for {skill} went backwards: {state.current_xp} -> {current_xp}")
            self.initialize_skill(skill, current_xp)
            return XpUpdateResult.INITIALIZED

        if not state.update(current_xp, now_ms):
            return XpUpdateResult.NO_CHANGE

        state.update_goals(goal_start_xp, goal_end_xp)
        self._update_order(skill)
        return XpUpdateResult.UPDATED

    def update_overall(self, current_xp: int, now_ms: Optional[int] = None) -> XpUpdateResult:
        """Update the overall total; like update_skill without goals or ordering."""
        if not self._overall.is_initialized or self._overall.current_xp > current_xp:
            self.initialize_overall(current_xp)
            return XpUpdateResult.INITIALIZED

        if not self._overall.update(current_xp, now_ms):
            return XpUpdateResult.NO_CHANGE
        return XpUpdateResult.UPDATED

    def tick(self, skill: str, delta_ms: int, now_ms: Optional[int] = None):
        """Advance a skill's clock and reset its rate after inactivity."""
        self._tick(self.get_skill(skill), delta_ms, now_ms)

    def tick_overall(self, delta_ms: int, now_ms: Optional[int] = None):
        """Advance the overall clock and reset its rate after inactivity."""
        self._tick(self._overall, delta_ms, now_ms)

    def _tick(self, state: XpStateSingle, delta_ms: int, now_ms: Optional[int]):
        state.tick(delta_ms)

        if self.reset_after_minutes <= 0:
            return

        now = now_ms if now_ms is not None else now_millis()
        reset_after_ms = self.reset_after_minutes * 60 * 1000
        last_change = state.last_change_millis
        if last_change != 0 and now - last_change >= reset_after_ms:
            state.reset_per_hour(now)

    def get_skill_snapshot(self, skill: str) -> XpSnapshotSingle:
        """Immutable snapshot of one skill, for renderers on another thread."""
        return self.get_skill(skill).snapshot()

    def get_total_snapshot(self) -> XpSnapshotSingle:
        """Immutable snapshot of the overall total."""
        return self._overall.snapshot()

    def find_lowest_skill_xp(self) -> int:
        """Lowest current XP over initialized skills, or the ceiling if none."""
        lowest = LOWEST_XP_CEILING
        for state in self._skills.values():
            if state.is_initialized and state.current_xp < lowest:
                lowest = state.current_xp
        return lowest

    def set_lowest_skill_flag(self, lowest_xp: int):
        """Flag every skill whose current XP equals lowest_xp (ties included)."""
        logger.debug(f"Setting lowest skill flag for current XP value: {lowest_xp}")
        for skill, state in self._skills.items():
            state.lowest_skill = state.is_initialized and state.current_xp == lowest_xp
            logger.debug(
                f"Skill {skill} (current_xp: {state.current_xp}) "
                f"set to lowest_skill: {state.lowest_skill}"
            )

    def _update_order(self, skill: str):
        """Move a gaining skill to the front, or append it when order is fixed."""
        if self.prioritize_recent:
            if self._order[:1] != [skill]:
                if skill in self._order:
                    self._order.remove(skill)
                self._order.insert(0, skill)
        elif skill not in self._order:
            self._order.append(skill)

    def save(self) -> Optional[XpSave]:
        """
        Build a save of everything worth keeping.

        Returns None while the overall total has no baseline. Skills without a
        baseline or without any XP gained are left out.
        """
        if not self._overall.is_initialized:
            return None

        skills = []
        for skill in self._order:
            state = self._skills.get(skill)
            if state is None or not state.is_initialized or state.total_xp_gained <= 0:
                continue
            skills.append(XpSaveSkill(skill=skill, **state.save().model_dump()))

        return XpSave(skills=skills, overall=self._overall.save())

    def restore(self, save: XpSave, known_skills: Optional[Iterable[str]] = None):
        """
        Replace all state with a save.

        Goal windows come from the saved start/end XP until the caller
        recomputes them. Records for skills outside known_skills are skipped.
        """
        self.reset()

        known = set(known_skills) if known_skills is not None else None

        for record in save.skills:
            if known is not None and record.skill not in known:
                logger.warning(f"Skipping saved state for unknown skill: {record.skill}")
                continue

            state = XpStateSingle(record.start_xp, record.end_xp)
            state.restore(record)
            state.update_goals(record.start_xp, record.end_xp)
            self._skills[record.skill] = state
            self._order.append(record.skill)

        self._overall.restore(save.overall)
        self._overall.update_goals(save.overall.start_xp, save.overall.end_xp)

        if not save.skills:
            logger.debug("No skills in save!")
