"""Snapshot feed handing immutable tracker frames to renderers."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from xptracker.engine.models import XpSnapshotSingle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SkillRow:
    """One skill as a renderer sees it."""

    skill: str
    snapshot: XpSnapshotSingle
    paused: bool


@dataclass(frozen=True)
class TrackerFrame:
    """Everything a renderer needs for one refresh."""

    skills: tuple[SkillRow, ...] = ()
    overall: XpSnapshotSingle = field(default_factory=XpSnapshotSingle)
    overall_paused: bool = False
    logged_in: bool = False
    profile: Optional[str] = None
    generated_at_ms: int = 0

    def row(self, skill: str) -> Optional[SkillRow]:
        """Find the row for a skill, None if it is not tracked."""
        for row in self.skills:
            if row.skill == skill:
                return row
        return None


class SnapshotFeed:
    """
    Latest-value channel between the tracker and renderers.

    The tracker publishes frames after every change; renderers read
    ``latest`` and never touch engine state.
    """

    def __init__(self):
        """Start with an empty frame."""
        self._latest = TrackerFrame()

    @property
    def latest(self) -> TrackerFrame:
        """Most recently published frame."""
        return self._latest

    def publish(self, frame: TrackerFrame):
        """Replace the latest frame."""
        self._latest = frame
        logger.debug(f"Published frame with {len(frame.skills)} skills at {frame.generated_at_ms}")
