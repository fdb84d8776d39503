"""HTTP API models."""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field

from .dashboard.feed import SkillRow, TrackerFrame
from .engine.models import XpSnapshotSingle
from .tracker import TargetSummary


class LoginRequest(BaseModel):
    """Body for /api/login: the data source's values at login."""

    profile: str = Field(..., min_length=1)
    skills: dict[str, int]
    overall: int = Field(..., ge=0)


class XpEvent(BaseModel):
    """A changed skill XP value."""

    skill: str = Field(..., min_length=1)
    xp: int = Field(..., ge=0)


class OverallEvent(BaseModel):
    """A changed overall XP value."""

    xp: int = Field(..., ge=0)


class UpdateResponse(BaseModel):
    status: str = "success"
    result: str


class ActionResponse(BaseModel):
    status: str = "success"
    changed: bool = True
    message: Optional[str] = None


class SnapshotModel(BaseModel):
    """One snapshot as served to renderers."""

    start_level: int
    end_level: int
    xp_gained_in_session: int
    xp_remaining_to_goal: int
    xp_per_hour: int
    skill_progress_to_goal: float
    actions_in_session: int
    actions_remaining_to_goal: Optional[int] = None  # None means unknown
    actions_per_hour: int
    time_till_goal: str
    time_till_goal_hours: str
    time_till_goal_short: str
    start_goal_xp: int
    end_goal_xp: int
    start_day: int
    start_month: int
    start_year: int
    lowest_skill: bool

    @classmethod
    def from_snapshot(cls, snapshot: XpSnapshotSingle) -> "SnapshotModel":
        return cls(
            start_level=snapshot.start_level,
            end_level=snapshot.end_level,
            xp_gained_in_session=snapshot.xp_gained_in_session,
            xp_remaining_to_goal=snapshot.xp_remaining_to_goal,
            xp_per_hour=snapshot.xp_per_hour,
            skill_progress_to_goal=snapshot.skill_progress_to_goal,
            actions_in_session=snapshot.actions_in_session,
            actions_remaining_to_goal=(
                snapshot.actions_remaining_to_goal
                if snapshot.actions_remaining_known
                else None
            ),
            actions_per_hour=snapshot.actions_per_hour,
            time_till_goal=snapshot.time_till_goal,
            time_till_goal_hours=snapshot.time_till_goal_hours,
            time_till_goal_short=snapshot.time_till_goal_short,
            start_goal_xp=snapshot.start_goal_xp,
            end_goal_xp=snapshot.end_goal_xp,
            start_day=snapshot.start_day,
            start_month=snapshot.start_month,
            start_year=snapshot.start_year,
            lowest_skill=snapshot.lowest_skill,
        )


class SkillSnapshotModel(BaseModel):
    skill: str
    paused: bool
    snapshot: SnapshotModel

    @classmethod
    def from_row(cls, row: SkillRow) -> "SkillSnapshotModel":
        return cls(
            skill=row.skill,
            paused=row.paused,
            snapshot=SnapshotModel.from_snapshot(row.snapshot),
        )


class SnapshotsResponse(BaseModel):
    """Response for /api/snapshots."""

    profile: Optional[str] = None
    logged_in: bool
    generated_at_ms: int
    skills: list[SkillSnapshotModel]
    overall: SnapshotModel
    overall_paused: bool

    @classmethod
    def from_frame(cls, frame: TrackerFrame) -> "SnapshotsResponse":
        return cls(
            profile=frame.profile,
            logged_in=frame.logged_in,
            generated_at_ms=frame.generated_at_ms,
            skills=[SkillSnapshotModel.from_row(row) for row in frame.skills],
            overall=SnapshotModel.from_snapshot(frame.overall),
            overall_paused=frame.overall_paused,
        )


class TargetResponse(BaseModel):
    """Response for /api/target."""

    target_date: date
    interval: str
    intervals_remaining: int
    seconds_left_in_interval: int
    lowest_xp: Optional[int] = None
    max_date_with_override: Optional[date] = None

    @classmethod
    def from_summary(cls, summary: TargetSummary) -> "TargetResponse":
        return cls(
            target_date=summary.target_date,
            interval=summary.interval.unit,
            intervals_remaining=summary.interval.intervals_remaining,
            seconds_left_in_interval=summary.interval.seconds_left_in_interval,
            lowest_xp=summary.lowest_xp,
            max_date_with_override=summary.max_date_with_override,
        )
