"""Entity resolver — maps generator character references onto roster ids.

The generator is told the ids but frequently answers with display names.
Lookup order: exact id, then exact name, then the original value. Unknown
references are kept so callers can decide what an orphan means.
"""

import logging

from drifter.models import Character, DayLog

logger = logging.getLogger(__name__)


def resolve_character_id(value: str, characters: list[Character]) -> str:
    """Return the canonical id for ``value``. Idempotent."""
    for c in characters:
        if c.id == value:
            return c.id
    for c in characters:
        if c.name == value:
            return c.id
    return value


def resolve_day_log(log: DayLog, characters: list[Character]) -> DayLog:
    """Return a copy of ``log`` with every characterId resolved."""

    def _resolve(items):
        resolved = []
        for item in items:
            cid = resolve_character_id(item.character_id, characters)
            if cid == item.character_id and not any(c.id == cid for c in characters):
                logger.warning("Unresolved character reference %r on day %d", cid, log.day)
            resolved.append(item.model_copy(update={"character_id": cid}))
        return resolved

    return log.model_copy(update={
        "status_updates": _resolve(log.status_updates),
        "dialogues": _resolve(log.dialogues),
        "skill_unlocks": _resolve(log.skill_unlocks),
    })
