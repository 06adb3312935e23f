"""Schema validator — the conversion boundary from parsed JSON to DayLog/Ending.

Parsed generator output is first read into RawDayLog, a fully optional,
loosely typed view. Structural completeness is checked there; only then is
the data converted into the strict DayLog model. Optional collections that
the generator left out become empty lists instead of failing the attempt.
"""

import logging
import math
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from drifter.models import DayLog, Ending

from .sanitizer import ResponseError

logger = logging.getLogger(__name__)

REQUIRED_DAY_FIELDS = ("day", "events", "status_updates", "mood_score", "resource_changes")
REQUIRED_ENDING_FIELDS = ("title", "description", "outcome")
OUTCOMES = ("success", "failure", "mixed")


class RawDayLog(BaseModel):
    """Everything the generator might send for a day, nothing required."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore",
    )

    day: Any = None
    events: Any = None
    status_updates: Any = None
    dialogues: Any = None
    is_danger: Any = None
    danger_type: Any = None
    mood_score: Any = None
    resource_changes: Any = None
    skill_unlocks: Any = None
    choice: Any = None

    def missing_fields(self) -> list[str]:
        return [to_camel(name) for name in REQUIRED_DAY_FIELDS if getattr(self, name) is None]


def _coerce_mood(value: Any) -> int:
    try:
        mood = float(value)
    except (TypeError, ValueError) as e:
        raise ResponseError(f"moodScore is not a number: {value!r}") from e
    if not math.isfinite(mood):
        raise ResponseError(f"moodScore is not finite: {value!r}")
    if not 0 <= mood <= 100:
        logger.warning("moodScore %s out of range, clamped", value)
    return int(round(min(max(mood, 0.0), 100.0)))


def _coerce_choice(value: Any) -> dict | None:
    """Keep a choice only if its selected index points at a real option."""
    if value is None:
        return None
    if not isinstance(value, dict):
        logger.warning("Dropping choice that is not an object: %r", value)
        return None
    options = value.get("options")
    index = value.get("selectedOptionIndex", value.get("selected_option_index"))
    if not isinstance(options, list) or not options:
        logger.warning("Dropping choice without options")
        return None
    try:
        index = int(index)
    except (TypeError, ValueError):
        logger.warning("Dropping choice with invalid selectedOptionIndex %r", index)
        return None
    if not 0 <= index < len(options):
        logger.warning("Dropping choice: selectedOptionIndex %d outside %d options", index, len(options))
        return None
    return {**value, "selectedOptionIndex": index}


def validate_day_log(data: Any, day: int | None = None) -> DayLog:
    """Convert a parsed day response into a DayLog.

    When ``day`` is given it is authoritative: a generator that echoes a
    different day number is corrected rather than trusted.
    Raises ResponseError when required structure is missing or malformed.
    """
    if not isinstance(data, dict):
        raise ResponseError(f"Day response must be a JSON object, got {type(data).__name__}")

    raw = RawDayLog.model_validate(data)
    missing = raw.missing_fields()
    if missing:
        raise ResponseError(f"Day response missing required fields: {', '.join(missing)}")

    log_day = raw.day
    if day is not None:
        if raw.day != day:
            logger.warning("Generator returned day=%r for day %d, corrected", raw.day, day)
        log_day = day

    fields = {
        "day": log_day,
        "events": raw.events,
        "statusUpdates": raw.status_updates,
        "dialogues": raw.dialogues or [],
        "isDanger": bool(raw.is_danger),
        "dangerType": raw.danger_type or None,
        "moodScore": _coerce_mood(raw.mood_score),
        "resourceChanges": raw.resource_changes,
        "skillUnlocks": raw.skill_unlocks or [],
        "choice": _coerce_choice(raw.choice),
    }
    try:
        return DayLog.model_validate(fields)
    except ValidationError as e:
        raise ResponseError(f"Day response has malformed fields: {e}") from e


def validate_ending(data: Any) -> Ending:
    """Convert a parsed ending response into an Ending."""
    if not isinstance(data, dict):
        raise ResponseError(f"Ending response must be a JSON object, got {type(data).__name__}")
    missing = [name for name in REQUIRED_ENDING_FIELDS if not data.get(name)]
    if missing:
        raise ResponseError(f"Ending response missing required fields: {', '.join(missing)}")
    outcome = str(data["outcome"]).strip().lower()
    if outcome not in OUTCOMES:
        raise ResponseError(f"Ending outcome must be one of {OUTCOMES}, got {data['outcome']!r}")
    try:
        return Ending(title=data["title"], description=data["description"], outcome=outcome)
    except ValidationError as e:
        raise ResponseError(f"Ending response has malformed fields: {e}") from e
