"""Pause bookkeeping: manual pauses, inactivity timeouts and logout."""

from enum import Enum
from typing import Optional

from .models import now_millis


class XpPauseReason(Enum):
    """Why a skill is paused; several reasons can hold at once."""

    PAUSE_MANUAL = "manual"
    PAUSED_TIMEOUT = "timeout"
    PAUSED_LOGOUT = "logout"


class XpPauseStateSingle:
    """Pause flags and last seen XP for one skill (or the overall total)."""

    def __init__(self):
        """Start unpaused with no XP seen."""
        self.pause_reasons: set[XpPauseReason] = set()
        self.xp = -1
        self.last_change_millis = 0

    @property
    def is_paused(self) -> bool:
        """True while any pause reason is set."""
        return bool(self.pause_reasons)

    def _set(self, reason: XpPauseReason, on: bool) -> bool:
        """Add or remove a reason, returning whether is_paused flipped."""
        was_paused = self.is_paused
        if on:
            self.pause_reasons.add(reason)
        else:
            self.pause_reasons.discard(reason)
        return was_paused != self.is_paused

    def manual_pause(self) -> bool:
        """Pause at the user's request."""
        return self._set(XpPauseReason.PAUSE_MANUAL, True)

    def unpause(self) -> bool:
        """Lift a manual pause."""
        return self._set(XpPauseReason.PAUSE_MANUAL, False)

    def timeout(self) -> bool:
        """Pause after too long without XP."""
        return self._set(XpPauseReason.PAUSED_TIMEOUT, True)

    def login(self) -> bool:
        """Lift the logout pause."""
        return self._set(XpPauseReason.PAUSED_LOGOUT, False)

    def logout(self) -> bool:
        """Pause because the player logged out."""
        return self._set(XpPauseReason.PAUSED_LOGOUT, True)

    def xp_changed(self, xp: int, now_ms: int):
        """Record new XP and clear a timeout pause."""
        # Activity clears a timeout, never a manual or logout pause
        self.xp = xp
        self.last_change_millis = now_ms
        self.pause_reasons.discard(XpPauseReason.PAUSED_TIMEOUT)


class XpPauseState:
    """Pause state for every skill plus the overall total."""

    def __init__(self):
        self._skill_pauses: dict[str, XpPauseStateSingle] = {}
        self._overall = XpPauseStateSingle()
        self.prev_is_logged_in = False

    def find_pause_state(self, skill: str) -> XpPauseStateSingle:
        """Get the pause state for a skill, creating it on first use."""
        state = self._skill_pauses.get(skill)
        if state is None:
            state = XpPauseStateSingle()
            self._skill_pauses[skill] = state
        return state

    def pause_skill(self, skill: str) -> bool:
        """Manually pause one skill."""
        return self.find_pause_state(skill).manual_pause()

    def unpause_skill(self, skill: str) -> bool:
        """Lift the manual pause on one skill."""
        return self.find_pause_state(skill).unpause()

    def pause_overall(self) -> bool:
        """Manually pause the overall total."""
        return self._overall.manual_pause()

    def unpause_overall(self) -> bool:
        """Lift the manual pause on the overall total."""
        return self._overall.unpause()

    def is_paused(self, skill: str) -> bool:
        """Whether a skill is paused; unseen skills are not."""
        state = self._skill_pauses.get(skill)
        return state is not None and state.is_paused

    def is_overall_paused(self) -> bool:
        return self._overall.is_paused

    def tick_xp(
        self, skill: str, current_xp: int, pause_after_minutes: int, now_ms: Optional[int] = None
    ):
        """Feed a skill's XP into the inactivity timeout."""
        self._tick(self.find_pause_state(skill), current_xp, pause_after_minutes, now_ms)

    def tick_overall(self, current_xp: int, pause_after_minutes: int, now_ms: Optional[int] = None):
        """Feed the overall XP into the inactivity timeout."""
        self._tick(self._overall, current_xp, pause_after_minutes, now_ms)

    def _tick(
        self,
        state: XpPauseStateSingle,
        current_xp: int,
        pause_after_minutes: int,
        now_ms: Optional[int],
    ):
        now = now_ms if now_ms is not None else now_millis()

        if state.xp != current_xp:
            state.xp_changed(current_xp, now)
        elif pause_after_minutes > 0:
            # 0 disables the timeout
            pause_after_ms = pause_after_minutes * 60 * 1000
            if state.last_change_millis != 0 and now - state.last_change_millis >= pause_after_ms:
                state.timeout()

    def tick_logout(self, pause_on_logout: bool, logged_in: bool):
        """Apply login/logout edges; repeated observations are ignored."""
        if not self.prev_is_logged_in and logged_in:
            self.prev_is_logged_in = True
            for state in self._skill_pauses.values():
                state.login()
            self._overall.login()
        elif self.prev_is_logged_in and not logged_in:
            self.prev_is_logged_in = False
            if pause_on_logout:
                for state in self._skill_pauses.values():
                    state.logout()
                self._overall.logout()
