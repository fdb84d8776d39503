"""Application configuration."""

import calendar
import logging
import os
from datetime import date
from typing import Optional

from pydantic_settings import BaseSettings

from .engine.calculator import GoalOptions
from .engine.models import MaxSkillMode, TrackingInterval

logger = logging.getLogger(__name__)

DEFAULT_TARGET_MONTHS = 6


def add_months(day: date, months: int) -> date:
    """Shift a date by whole months, clamping to the end of shorter months."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Goal
    target_date: str = ""  # YYYY-MM-DD, empty means six months from today
    tracking_interval: str = "day"
    max_skill_mode: str = "normal"
    xp_override: bool = False
    minimum_xp_override: int = 50_000

    # Tracking
    prioritize_recent_xp_skills: bool = True
    pause_on_logout: bool = True
    pause_skill_after: int = 0  # minutes, 0 disables
    reset_skill_rate_after: int = 0  # minutes, 0 disables

    # Storage
    db_path: str = os.getenv("DB_PATH", "data/saves.db")

    # Scheduler
    tick_interval_seconds: float = 1.0
    save_interval_seconds: float = 60.0

    # Server
    server_host: str = os.getenv("SERVER_HOST", "0.0.0.0")
    server_port: int = int(os.getenv("SERVER_PORT", "8000"))

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = False

    def resolve_target_date(self, today: Optional[date] = None) -> date:
        """
        Parse the configured target date.

        Falls back to six months from today when unset or unparseable.
        """
        today = today or date.today()
        if self.target_date:
            try:
                return date.fromisoformat(self.target_date)
            except ValueError:
                logger.warning(
                    f"Invalid target date {self.target_date!r}, "
                    f"using {DEFAULT_TARGET_MONTHS} months from today"
                )
        return add_months(today, DEFAULT_TARGET_MONTHS)

    def resolve_interval(self) -> TrackingInterval:
        try:
            return TrackingInterval(self.tracking_interval.strip().lower())
        except ValueError:
            logger.warning(f"Unknown tracking interval {self.tracking_interval!r}, using day")
            return TrackingInterval.DAY

    def resolve_max_mode(self) -> MaxSkillMode:
        try:
            return MaxSkillMode(self.max_skill_mode.strip().lower())
        except ValueError:
            logger.warning(f"Unknown max skill mode {self.max_skill_mode!r}, using normal")
            return MaxSkillMode.NORMAL

    def goal_options(self, today: Optional[date] = None) -> GoalOptions:
        """Bundle the goal settings for the calculator."""
        return GoalOptions(
            target_date=self.resolve_target_date(today),
            interval=self.resolve_interval(),
            max_mode=self.resolve_max_mode(),
            xp_override=self.xp_override,
            minimum_xp_override=self.minimum_xp_override,
        )


settings = Settings()
