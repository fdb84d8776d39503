"""Shared fixtures."""

import os
import tempfile
from datetime import date

import pytest

# The app module opens its database on import, keep it out of the working tree
os.environ.setdefault("DB_PATH", os.path.join(tempfile.mkdtemp(), "saves.db"))

from xptracker.config import Settings  # noqa: E402
from xptracker.store.database import SaveDatabase  # noqa: E402
from xptracker.tracker import XpTracker  # noqa: E402

TODAY = date(2025, 1, 1)


def make_settings(**overrides) -> Settings:
    """Settings with a fixed target date and nothing read from the environment."""
    defaults = {
        "target_date": "2025-07-01",
        "tracking_interval": "day",
        "max_skill_mode": "normal",
        "pause_on_logout": True,
        "pause_skill_after": 0,
        "reset_skill_rate_after": 0,
    }
    defaults.update(overrides)
    return Settings(**defaults)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "saves.db"


@pytest.fixture
def database(db_path):
    return SaveDatabase(str(db_path))


@pytest.fixture
def tracker(database):
    return XpTracker(make_settings(), database)
