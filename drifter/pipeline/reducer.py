"""State reducer — folds one DayLog into the running GameState.

apply_day_log() is pure: it deep-copies the state and returns the copy.
Order of application:
  1. Resource gauges  — old + delta, clamped to [0, 100].
  2. Hull integrity   — explicit delta clamped, otherwise decays 1–3 units.
  3. Deaths           — status updates with isDead mark the character dead.
  4. Skill unlocks    — level-up on same name, else new skill at level 1.
  5. Mood             — replaced by the day's moodScore.
  6. Day counter      — set to log.day.
  7. History          — log appended.

Dead characters' skills are frozen: unlocks aimed at someone who is dead
after step 3, including a same-day death, are skipped.
"""

import logging
from dataclasses import dataclass, field

from drifter.models import (
    CAMPAIGN_DAYS,
    GAUGES,
    DayLog,
    GameState,
    Skill,
)
from drifter.rng import GameRNG

logger = logging.getLogger(__name__)

DECAY_MIN = 1.0
DECAY_MAX = 3.0


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def apply_day_log(state: GameState, log: DayLog, rng: GameRNG) -> GameState:
    """Return a new state with ``log`` applied. ``state`` is left untouched."""
    if state.current_day >= CAMPAIGN_DAYS:
        raise ValueError(f"Voyage already ended on day {state.current_day}")
    if log.day != state.current_day + 1:
        raise ValueError(
            f"Day log for day {log.day} cannot follow day {state.current_day}"
        )

    new = state.model_copy(deep=True)
    changes = log.resource_changes

    # 1. Gauges
    for gauge in GAUGES:
        delta = getattr(changes, gauge)
        setattr(new.resources, gauge, clamp(getattr(new.resources, gauge) + (delta or 0)))

    # 2. Integrity
    if changes.integrity is not None:
        new.integrity = clamp(new.integrity + changes.integrity)
    else:
        new.integrity = max(0.0, new.integrity - rng.uniform(DECAY_MIN, DECAY_MAX))

    # 3. Deaths
    for update in log.status_updates:
        if not update.is_dead:
            continue
        character = new.character(update.character_id)
        if character is None:
            logger.warning("Death reported for unknown character %r on day %d",
                           update.character_id, log.day)
        elif not character.is_dead:
            character.is_dead = True
            character.death_day = log.day
            logger.info("%s died on day %d", character.name, log.day)

    # 4. Skills
    for unlock in log.skill_unlocks:
        character = new.character(unlock.character_id)
        if character is None:
            logger.warning("Skill unlock for unknown character %r on day %d, skipped",
                           unlock.character_id, log.day)
            continue
        if character.is_dead:
            logger.info("Skill %r for dead character %s skipped", unlock.skill_name, character.name)
            continue
        skill = character.skill(unlock.skill_name)
        if skill is not None:
            skill.level += 1
        else:
            character.skills.append(
                Skill(name=unlock.skill_name, level=1, description=unlock.description)
            )

    # 5–7
    new.mood = log.mood_score
    new.current_day = log.day
    new.logs.append(log)
    return new


@dataclass
class DaySignals:
    """What the client should flash after a day, derived from old vs. new state."""

    crisis: str | None = None
    glow: bool = False
    deaths: list[str] = field(default_factory=list)


def compare_states(old: GameState, new: GameState) -> DaySignals:
    """Derive crisis alert, celebratory glow and new deaths from a transition."""
    signals = DaySignals()
    latest = new.logs[-1] if len(new.logs) > len(old.logs) else None
    if latest is not None:
        if latest.is_danger:
            signals.crisis = latest.danger_type or "UNKNOWN THREAT"
        signals.glow = latest.mood_score > old.mood or bool(latest.skill_unlocks)
    was_dead = {c.id for c in old.characters if c.is_dead}
    signals.deaths = [c.id for c in new.characters if c.is_dead and c.id not in was_dead]
    return signals
