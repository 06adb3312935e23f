"""Pipeline orchestrator — produces one DayLog, or the voyage Ending.

Day flow:
  1. Decide whether today must be a crisis (fixed pacing rules).
  2. Render the day prompt from living crew, resources and recent history.
  3. Call the generator with the day schema and the strict-JSON instruction.
  4. Sanitize → validate → resolve character references.
  5. On any failure wait retry_delay seconds and try exactly once more.
  6. If the second attempt fails too, return a fallback DayLog so the
     voyage can always advance.

The ending follows the same request/retry/fallback shape.
Neither coroutine raises for generator, parse or validation failures.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from drifter.llm import LLM
from drifter.models import (
    Character,
    DayLog,
    Ending,
    Event,
    ResourceChanges,
    Resources,
)
from drifter.prompts import (
    DEFAULT_DAY_PROMPT,
    DEFAULT_ENDING_PROMPT,
    SYSTEM_INSTRUCTION,
    build_day_context,
    build_ending_context,
    render_prompt,
)

from .resolver import resolve_day_log
from .sanitizer import parse_response
from .validator import validate_day_log, validate_ending

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRY_DELAY = 1.0
DAY_MAX_TOKENS = 4096
ENDING_MAX_TOKENS = 2048
FALLBACK_MOOD = 50


# ---------------------------------------------------------------------------
# Response schemas (passed to backends that support constrained output)
# ---------------------------------------------------------------------------

_CHARACTER_LINE = {
    "type": "object",
    "properties": {
        "characterId": {"type": "string"},
        "text": {"type": "string"},
        "time": {"type": "string"},
    },
    "required": ["characterId", "text", "time"],
}

DAY_LOG_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "day": {"type": "number"},
        "events": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "text": {"type": "string"},
                    "time": {"type": "string"},
                },
                "required": ["text", "time"],
            },
        },
        "statusUpdates": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "characterId": {"type": "string"},
                    "status": {"type": "string"},
                    "isDead": {"type": "boolean"},
                },
                "required": ["characterId", "status"],
            },
        },
        "isDanger": {"type": "boolean"},
        "dangerType": {"type": "string"},
        "dialogues": {"type": "array", "items": _CHARACTER_LINE},
        "moodScore": {"type": "number"},
        "resourceChanges": {
            "type": "object",
            "properties": {
                "oxygen": {"type": "number"},
                "food": {"type": "number"},
                "water": {"type": "number"},
                "fuel": {"type": "number"},
                "integrity": {"type": "number"},
            },
        },
        "skillUnlocks": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "characterId": {"type": "string"},
                    "skillName": {"type": "string"},
                    "description": {"type": "string"},
                },
                "required": ["characterId", "skillName", "description"],
            },
        },
        "choice": {
            "type": "object",
            "properties": {
                "scenario": {"type": "string"},
                "options": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "text": {"type": "string"},
                            "result": {"type": "string"},
                        },
                        "required": ["text", "result"],
                    },
                },
                "selectedOptionIndex": {"type": "number"},
            },
            "required": ["scenario", "options", "selectedOptionIndex"],
        },
    },
    "required": ["day", "events", "statusUpdates", "moodScore", "dialogues", "resourceChanges"],
}

ENDING_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "description": {"type": "string"},
        "outcome": {"type": "string", "enum": ["success", "failure", "mixed"]},
    },
    "required": ["title", "description", "outcome"],
}


# ---------------------------------------------------------------------------
# Crisis pacing
# ---------------------------------------------------------------------------

def must_force_crisis(day: int, history: list[DayLog]) -> bool:
    """True when pacing rules require a crisis on ``day``."""
    crises = sum(1 for log in history if log.is_danger)
    if day == 5:
        return True
    if day > 15 and day % 10 == 0:
        return True
    if day > 50 and crises < 2:
        return True
    if day > 55 and crises < 3:
        return True
    return False


# ---------------------------------------------------------------------------
# Fallbacks
# ---------------------------------------------------------------------------

def fallback_day_log(
    day: int,
    mood_score: int = FALLBACK_MOOD,
    message: str = "System communication error. Recovering data...",
) -> DayLog:
    """Minimal day used when generation fails: attrition continues regardless."""
    return DayLog(
        day=day,
        events=[Event(text=message, time="00:00")],
        status_updates=[],
        dialogues=[],
        mood_score=mood_score,
        resource_changes=ResourceChanges(oxygen=-1, food=-1, water=-1),
    )


def fallback_ending() -> Ending:
    return Ending(
        title="End of the Voyage",
        description=(
            "Communications were lost, and the exact fate of the crew is unknown. "
            "But the voyage has ended."
        ),
        outcome="mixed",
    )


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------

async def _with_retry(stage: str, attempt: Callable[[], Awaitable[T]], retry_delay: float) -> T:
    """Run ``attempt``; on failure wait once and run it again. Second failure propagates."""
    try:
        return await attempt()
    except Exception as e:
        logger.warning("%s generation failed (%s), retrying in %.1fs", stage, e, retry_delay)
    await asyncio.sleep(retry_delay)
    return await attempt()


# ---------------------------------------------------------------------------
# Day
# ---------------------------------------------------------------------------

async def simulate_day(
    day: int,
    characters: list[Character],
    history: list[DayLog],
    resources: Resources,
    *,
    llm: LLM,
    integrity: float | None = None,
    retry_delay: float = DEFAULT_RETRY_DELAY,
    max_tokens: int = DAY_MAX_TOKENS,
    template: str | None = None,
) -> DayLog:
    """Generate the DayLog for ``day``. Always returns a log for that day."""
    force_crisis = must_force_crisis(day, history)
    prompt = render_prompt(
        template or DEFAULT_DAY_PROMPT,
        build_day_context(day, characters, history, resources, integrity, force_crisis),
    )
    logger.info("Simulating day %d (forced crisis: %s)", day, force_crisis)

    async def attempt() -> DayLog:
        raw = await llm(
            "day", prompt,
            system=SYSTEM_INSTRUCTION, max_tokens=max_tokens, schema=DAY_LOG_SCHEMA,
        )
        log = validate_day_log(parse_response(raw), day=day)
        return resolve_day_log(log, characters)

    try:
        return await _with_retry("day", attempt, retry_delay)
    except Exception:
        logger.exception("Day %d generation failed after retry, using fallback log", day)
        return fallback_day_log(day)


# ---------------------------------------------------------------------------
# Ending
# ---------------------------------------------------------------------------

async def simulate_ending(
    characters: list[Character],
    history: list[DayLog],
    *,
    llm: LLM,
    retry_delay: float = DEFAULT_RETRY_DELAY,
    max_tokens: int = ENDING_MAX_TOKENS,
    template: str | None = None,
) -> Ending:
    """Generate the voyage ending. The outcome is the generator's call."""
    prompt = render_prompt(
        template or DEFAULT_ENDING_PROMPT,
        build_ending_context(characters, history),
    )
    logger.info("Generating ending after %d days", len(history))

    async def attempt() -> Ending:
        raw = await llm(
            "ending", prompt,
            system=SYSTEM_INSTRUCTION, max_tokens=max_tokens, schema=ENDING_SCHEMA,
        )
        return validate_ending(parse_response(raw))

    try:
        return await _with_retry("ending", attempt, retry_delay)
    except Exception:
        logger.exception("Ending generation failed after retry, using fallback ending")
        return fallback_ending()
