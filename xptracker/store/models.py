"""Persisted save models."""

import json
import logging
from typing import Optional

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)


class XpSaveSingle(BaseModel):
    """Saved state of one skill or of the overall total."""

    start_xp: int
    end_xp: int = -1
    start_day: int = 31
    start_month: int = 12
    start_year: int = 9999
    lowest_skill: bool = False
    xp_gained_before_reset: int = 0
    xp_gained_since_reset: int = 0
    skill_time: int = 0  # active milliseconds in the current rate window
    goal_start_xp: int = -1  # XP the goal interval began at, -1 if unknown


class XpSaveSkill(XpSaveSingle):
    """Saved skill record, keyed by skill name."""

    skill: str


class XpSave(BaseModel):
    """Everything persisted for one profile, skills in display order."""

    skills: list[XpSaveSkill] = []
    overall: XpSaveSingle


def parse_save(raw: str) -> Optional[XpSave]:
    """
    Parse a stored save blob, tolerating bad skill records.

    Malformed skill records are skipped. A missing or malformed overall
    record means the whole save is treated as absent.

    Args:
        raw: JSON text as written by ``XpSave.model_dump_json``

    Returns:
        XpSave, or None if nothing usable was stored
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Save is not valid JSON, ignoring it: {e}")
        return None

    if not isinstance(data, dict):
        logger.warning("Save is not a JSON object, ignoring it")
        return None

    try:
        overall = XpSaveSingle.model_validate(data.get("overall"))
    except ValidationError as e:
        logger.warning(f"Save has no usable overall record, ignoring it: {e}")
        return None

    skills = []
    seen = set()
    records = data.get("skills")
    for record in records if isinstance(records, list) else []:
        try:
            skill = XpSaveSkill.model_validate(record)
        except ValidationError as e:
            logger.warning(f"Skipping malformed skill record: {e}")
            continue

        if skill.skill in seen:
            logger.warning(f"Skipping duplicate skill record: {skill.skill}")
            continue

        seen.add(skill.skill)
        skills.append(skill)

    return XpSave(skills=skills, overall=overall)
