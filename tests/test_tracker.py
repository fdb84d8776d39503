"""Tests for the session driver: login, restore, offline gains, rollover and user actions."""

import sqlite3
from datetime import date, datetime, timedelta

import pytest
from conftest import TODAY, make_settings

from xptracker.engine.calculator import LEVEL_99_XP, required_xp_per_day
from xptracker.engine.models import XpUpdateResult
from xptracker.tracker import TrackerNotReadyError, UnknownSkillError, XpTracker


def login(tracker: XpTracker, skills: dict, overall: int = None, profile: str = "alice", **kwargs):
    if overall is None:
        overall = sum(skills.values())
    kwargs.setdefault("now_ms", 1000)
    kwargs.setdefault("today", TODAY)
    tracker.login(profile, skills, overall, **kwargs)


def skill_names(tracker: XpTracker) -> list[str]:
    return [row.skill for row in tracker.feed.latest.skills]


class TestLogin:
    def test_baselines_every_skill(self, tracker):
        login(tracker, {"attack": 1000, "defence": 500})

        frame = tracker.feed.latest
        assert frame.logged_in
        assert frame.profile == "alice"
        assert skill_names(tracker) == ["attack", "defence"]
        assert frame.row("attack").snapshot.xp_gained_in_session == 0
        assert tracker.xp_state.overall.current_xp == 1500

    def test_goal_window_and_start_date(self, tracker):
        login(tracker, {"attack": 1000})

        snapshot = tracker.feed.latest.row("attack").snapshot
        expected = 1000 + required_xp_per_day(1000, tracker.goal_options(TODAY), TODAY)
        assert snapshot.start_goal_xp == 1000
        assert snapshot.end_goal_xp == expected
        assert (snapshot.start_day, snapshot.start_month, snapshot.start_year) == (1, 1, 2025)

    def test_lowest_skill_flag(self, tracker):
        login(tracker, {"attack": 1000, "defence": 500, "magic": 500})
        frame = tracker.feed.latest
        assert not frame.row("attack").snapshot.lowest_skill
        assert frame.row("defence").snapshot.lowest_skill
        assert frame.row("magic").snapshot.lowest_skill

    def test_completed_skills_are_not_tracked(self, tracker):
        login(tracker, {"attack": LEVEL_99_XP, "defence": 500})
        assert skill_names(tracker) == ["defence"]
        assert tracker.on_value_changed("attack", LEVEL_99_XP + 100, now_ms=2000, today=TODAY) == (
            XpUpdateResult.NO_CHANGE
        )
        assert skill_names(tracker) == ["defence"]

    def test_completionist_mode_keeps_level_99_skills(self, database):
        tracker = XpTracker(make_settings(max_skill_mode="completionist"), database)
        login(tracker, {"attack": LEVEL_99_XP, "defence": 500})
        assert skill_names(tracker) == ["attack", "defence"]

    def test_profile_switch_saves_previous_profile(self, tracker, database):
        login(tracker, {"attack": 1000})
        tracker.on_value_changed("attack", 1200, now_ms=2000, today=TODAY)

        login(tracker, {"attack": 5000}, profile="bob")

        assert database.load_save("alice") is not None
        attack = tracker.xp_state.get_skill("attack")
        assert attack.current_xp == 5000
        assert attack.total_xp_gained == 0


class TestValueChanges:
    def test_requires_login(self, tracker):
        with pytest.raises(TrackerNotReadyError):
            tracker.on_value_changed("attack", 100)
        with pytest.raises(TrackerNotReadyError):
            tracker.on_overall_changed(100)
        with pytest.raises(TrackerNotReadyError):
            tracker.logout()

    def test_gain_is_published(self, tracker):
        login(tracker, {"attack": 1000, "defence": 500})

        result = tracker.on_value_changed("defence", 600, now_ms=2000, today=TODAY)

        assert result == XpUpdateResult.UPDATED
        assert skill_names(tracker) == ["defence", "attack"]
        row = tracker.feed.latest.row("defence")
        assert row.snapshot.xp_gained_in_session == 100
        assert row.snapshot.actions_in_session == 1

    def test_lowest_flag_follows_gains(self, tracker):
        login(tracker, {"attack": 1000, "defence": 500})
        tracker.on_value_changed("defence", 2000, now_ms=2000, today=TODAY)
        frame = tracker.feed.latest
        assert frame.row("attack").snapshot.lowest_skill
        assert not frame.row("defence").snapshot.lowest_skill

    def test_skill_first_seen_after_login(self, tracker):
        login(tracker, {"attack": 1000})
        result = tracker.on_value_changed("magic", 50, now_ms=2000, today=TODAY)
        assert result == XpUpdateResult.INITIALIZED
        snapshot = tracker.feed.latest.row("magic").snapshot
        assert snapshot.start_goal_xp == 50
        assert snapshot.end_goal_xp > 50
        assert snapshot.lowest_skill

    def test_skill_completed_mid_session(self, tracker):
        login(tracker, {"attack": LEVEL_99_XP - 100, "defence": 500})
        tracker.on_value_changed("attack", LEVEL_99_XP, now_ms=2000, today=TODAY)
        assert skill_names(tracker) == ["defence"]

    def test_overall(self, tracker):
        login(tracker, {"attack": 1000}, overall=1000)
        assert tracker.on_overall_changed(1250, now_ms=2000) == XpUpdateResult.UPDATED
        assert tracker.feed.latest.overall.xp_gained_in_session == 250

    def test_day_rollover_starts_from_last_value(self, tracker):
        login(tracker, {"attack": 1000})
        tracker.on_value_changed("attack", 1200, now_ms=2000, today=TODAY)

        tracker.on_value_changed("attack", 1300, now_ms=3000, today=date(2025, 1, 2))

        attack = tracker.xp_state.get_skill("attack")
        assert attack.start_level_exp == 1200
        assert attack.total_xp_gained == 100
        assert attack.start_date == date(2025, 1, 2)

    def test_day_rollover_without_gain_moves_goal_window(self, tracker):
        login(tracker, {"attack": 1000})
        tracker.on_value_changed("attack", 1200, now_ms=2000, today=TODAY)

        next_day = date(2025, 1, 2)
        result = tracker.on_value_changed("attack", 1200, now_ms=3000, today=next_day)

        assert result == XpUpdateResult.NO_CHANGE
        snapshot = tracker.feed.latest.row("attack").snapshot
        expected_end = 1200 + required_xp_per_day(1200, tracker.goal_options(next_day), next_day)
        assert snapshot.start_goal_xp == 1200
        assert snapshot.end_goal_xp == expected_end
        assert (snapshot.start_day, snapshot.start_month, snapshot.start_year) == (2, 1, 2025)
        assert snapshot.xp_gained_in_session == 0

    def test_week_interval_keeps_window_within_week(self, database):
        tracker = XpTracker(make_settings(tracking_interval="week"), database)
        login(tracker, {"attack": 1000})
        # 2025-01-01 and 2025-01-05 share ISO week 1
        tracker.on_value_changed("attack", 1200, now_ms=2000, today=date(2025, 1, 5))
        attack = tracker.xp_state.get_skill("attack")
        assert attack.start_level_exp == 1000
        assert attack.total_xp_gained == 200


class TestRestore:
    def _play_session(self, tracker):
        login(tracker, {"attack": 1000, "defence": 500}, overall=1500)
        tracker.on_value_changed("attack", 1200, now_ms=2000, today=TODAY)
        tracker.on_overall_changed(1700, now_ms=2000)
        tracker.logout(now_ms=3000)

    def test_logout_saves(self, tracker, database):
        self._play_session(tracker)
        save = database.load_save("alice")
        assert [record.skill for record in save.skills] == ["attack"]
        assert save.skills[0].xp_gained_since_reset == 200

    def test_offline_gains_shift_the_baseline(self, tracker, database):
        self._play_session(tracker)

        fresh = XpTracker(make_settings(), database)
        login(fresh, {"attack": 1500, "defence": 500}, overall=2000, now_ms=4000)

        attack = fresh.xp_state.get_skill("attack")
        assert attack.total_xp_gained == 200
        assert attack.current_xp == 1500
        assert attack.start_level_exp == 1000
        assert fresh.xp_state.overall.total_xp_gained == 200
        assert fresh.xp_state.overall.current_xp == 2000

    def test_goal_start_survives_repeated_restarts(self, tracker, database):
        self._play_session(tracker)

        second = XpTracker(make_settings(), database)
        login(second, {"attack": 1500, "defence": 500}, overall=2000, now_ms=4000)
        second.logout(now_ms=5000)
        assert database.load_save("alice").skills[0].goal_start_xp == 1000

        third = XpTracker(make_settings(), database)
        login(third, {"attack": 1500, "defence": 500}, overall=2000, now_ms=6000)

        attack = third.xp_state.get_skill("attack")
        assert attack.start_level_exp == 1000
        assert attack.total_xp_gained == 200
        assert third.goals.goal_window("attack", third.goal_options(TODAY), TODAY)[0] == 1000

    def test_save_without_goal_start_falls_back_to_start_xp(self, tracker, database):
        self._play_session(tracker)
        save = database.load_save("alice")
        database.write_save(
            "alice",
            save.model_copy(
                update={"skills": [record.model_copy(update={"goal_start_xp": -1}) for record in save.skills]}
            ),
        )

        fresh = XpTracker(make_settings(), database)
        login(fresh, {"attack": 1200, "defence": 500}, overall=1700, now_ms=4000)

        assert fresh.xp_state.get_skill("attack").start_level_exp == 1000

    def test_backwards_offline_change_resets(self, tracker, database):
        self._play_session(tracker)

        fresh = XpTracker(make_settings(), database)
        login(fresh, {"attack": 900, "defence": 500}, overall=1400, now_ms=4000)

        assert database.load_save("alice") is None
        attack = fresh.xp_state.get_skill("attack")
        assert attack.current_xp == 900
        assert attack.total_xp_gained == 0
        assert fresh.xp_state.overall.current_xp == 1400

    def test_completed_while_offline(self, tracker, database):
        self._play_session(tracker)

        fresh = XpTracker(make_settings(), database)
        login(fresh, {"attack": LEVEL_99_XP, "defence": 500}, now_ms=4000)

        assert skill_names(fresh) == ["defence"]

    def test_saved_skill_no_longer_reported(self, tracker, database):
        self._play_session(tracker)

        fresh = XpTracker(make_settings(), database)
        login(fresh, {"defence": 500}, overall=2000, now_ms=4000)

        assert fresh.xp_state.find_skill("attack") is None

    def test_new_interval_since_save(self, tracker, database):
        self._play_session(tracker)

        fresh = XpTracker(make_settings(), database)
        login(fresh, {"attack": 1500, "defence": 500}, now_ms=4000, today=date(2025, 1, 3))

        attack = fresh.xp_state.get_skill("attack")
        assert attack.start_level_exp == 1500
        assert attack.total_xp_gained == 0
        assert attack.start_date == date(2025, 1, 3)


class TestClock:
    def test_first_tick_only_primes(self, tracker):
        login(tracker, {"attack": 1000})
        tracker.on_value_changed("attack", 1100, now_ms=2000, today=TODAY)
        tracker.tick(now_ms=10_000)
        assert tracker.xp_state.get_skill("attack").skill_time == 0

    def test_active_time_accumulates(self, tracker):
        login(tracker, {"attack": 1000})
        tracker.tick(now_ms=10_000)
        tracker.on_value_changed("attack", 1100, now_ms=11_000, today=TODAY)
        tracker.tick(now_ms=70_000)

        attack = tracker.xp_state.get_skill("attack")
        assert attack.skill_time == 60_000
        assert tracker.feed.latest.row("attack").snapshot.xp_per_hour == 6000

    def test_paused_skills_do_not_accumulate(self, tracker):
        login(tracker, {"attack": 1000})
        tracker.tick(now_ms=10_000)
        tracker.on_value_changed("attack", 1100, now_ms=11_000, today=TODAY)
        assert tracker.pause_skill("attack", True, now_ms=12_000)

        tracker.tick(now_ms=70_000)

        assert tracker.xp_state.get_skill("attack").skill_time == 0
        assert tracker.feed.latest.row("attack").paused

    def test_idle_timeout(self, database):
        tracker = XpTracker(make_settings(pause_skill_after=1), database)
        login(tracker, {"attack": 1000})
        tracker.tick(now_ms=10_000)
        tracker.tick(now_ms=70_000)
        assert tracker.feed.latest.row("attack").paused

        tracker.on_value_changed("attack", 1100, now_ms=71_000, today=TODAY)
        tracker.tick(now_ms=72_000)
        assert not tracker.feed.latest.row("attack").paused

    def test_logout_pauses_until_login(self, tracker):
        login(tracker, {"attack": 1000})
        tracker.tick(now_ms=10_000)

        tracker.logout(now_ms=11_000)
        frame = tracker.feed.latest
        assert not frame.logged_in
        assert frame.row("attack").paused
        assert frame.overall_paused

        login(tracker, {"attack": 1000}, now_ms=12_000)
        assert not tracker.feed.latest.row("attack").paused

    def test_tick_save(self, tracker, database):
        assert not tracker.tick_save()
        login(tracker, {"attack": 1000})
        assert tracker.tick_save()
        assert database.load_save("alice") is not None

    def test_tick_save_survives_database_errors(self, tracker, database, monkeypatch):
        login(tracker, {"attack": 1000})

        def broken(profile, save):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(database, "write_save", broken)
        assert not tracker.tick_save()


class TestUserActions:
    def test_unknown_skill(self, tracker):
        with pytest.raises(TrackerNotReadyError):
            tracker.reset_skill("attack")
        login(tracker, {"attack": 1000})
        with pytest.raises(UnknownSkillError):
            tracker.reset_skill("magic")
        with pytest.raises(UnknownSkillError):
            tracker.reset_skill_rate("magic")

    def test_reset_skill(self, tracker):
        login(tracker, {"attack": 1000})
        tracker.on_value_changed("attack", 1200, now_ms=2000, today=TODAY)

        tracker.reset_skill("attack", today=TODAY, now_ms=3000)

        attack = tracker.xp_state.get_skill("attack")
        assert attack.total_xp_gained == 0
        assert attack.start_level_exp == 1200

    def test_reset_other_skills(self, tracker):
        login(tracker, {"attack": 1000, "defence": 500})
        tracker.on_value_changed("attack", 1100, now_ms=2000, today=TODAY)
        tracker.on_value_changed("defence", 600, now_ms=2000, today=TODAY)

        tracker.reset_other_skills("attack", today=TODAY, now_ms=3000)

        assert tracker.xp_state.get_skill("attack").total_xp_gained == 100
        assert tracker.xp_state.get_skill("defence").total_xp_gained == 0

    def test_reset_all_clears_save(self, tracker, database):
        login(tracker, {"attack": 1000}, overall=1000)
        tracker.on_value_changed("attack", 1200, now_ms=2000, today=TODAY)
        tracker.on_overall_changed(1200, now_ms=2000)
        tracker.tick_save()

        tracker.reset_all(today=TODAY, now_ms=3000)

        assert database.load_save("alice") is None
        assert tracker.xp_state.get_skill("attack").total_xp_gained == 0
        assert tracker.xp_state.get_skill("attack").current_xp == 1200
        assert tracker.xp_state.overall.current_xp == 1200
        assert skill_names(tracker) == ["attack"]

    def test_reset_rates(self, tracker):
        login(tracker, {"attack": 1000})
        tracker.on_value_changed("attack", 1100, now_ms=2000, today=TODAY)

        tracker.reset_skill_rate("attack", now_ms=3000)

        attack = tracker.xp_state.get_skill("attack")
        assert attack.xp_gained_since_reset == 0
        assert attack.total_xp_gained == 100

        tracker.on_value_changed("attack", 1150, now_ms=4000, today=TODAY)
        tracker.reset_all_rates(now_ms=5000)
        assert attack.xp_gained_before_reset == 150

    def test_pause_all(self, tracker):
        login(tracker, {"attack": 1000, "defence": 500})
        tracker.pause_all(True)
        frame = tracker.feed.latest
        assert all(row.paused for row in frame.skills)
        assert frame.overall_paused

        tracker.pause_all(False)
        frame = tracker.feed.latest
        assert not any(row.paused for row in frame.skills)
        assert not frame.overall_paused


class TestTargetSummary:
    NOW = datetime(2025, 1, 1, 12, 0, 0)

    def test_before_login(self, tracker):
        summary = tracker.target_summary(self.NOW)
        assert summary.target_date == date(2025, 7, 1)
        assert summary.interval.intervals_remaining == 181
        assert summary.lowest_xp is None
        assert summary.max_date_with_override is None

    def test_with_override(self, database):
        tracker = XpTracker(make_settings(xp_override=True, minimum_xp_override=50_000), database)
        login(tracker, {"attack": 1000, "defence": 500})

        summary = tracker.target_summary(self.NOW)

        assert summary.lowest_xp == 500
        assert summary.max_date_with_override == TODAY + timedelta(days=261)
