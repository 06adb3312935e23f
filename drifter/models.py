"""Core domain models.

The pipeline, reducer, controller and storage all operate on these types.
Pydantic is used for validation and serialisation at every data boundary.

Field names are snake_case in Python and camelCase on the wire: the
generator answers in camelCase and the save blob is written in camelCase,
so every model accepts both spellings and dumps with ``by_alias=True``.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

CAMPAIGN_DAYS = 60
MIN_CREW = 1
MAX_CREW = 6
INITIAL_INTEGRITY = 98.2
INITIAL_MOOD = 80
HISTORY_WINDOW = 5

GAUGES = ("oxygen", "food", "water", "fuel")

MBTI = Literal[
    "ISTJ", "ISFJ", "INFJ", "INTJ",
    "ISTP", "ISFP", "INFP", "INTP",
    "ESTP", "ESFP", "ENFP", "ENTP",
    "ESTJ", "ESFJ", "ENFJ", "ENTJ",
]

Outcome = Literal["success", "failure", "mixed"]


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, allow_inf_nan=False,
    )


class _Record(BaseModel):
    """Immutable record produced by the generator."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, allow_inf_nan=False,
    )


# ---------------------------------------------------------------------------
# Crew
# ---------------------------------------------------------------------------

class Skill(_Model):
    name: str
    level: int = Field(default=1, ge=1)
    description: str = ""


class Character(_Model):
    """A crew member. Never removed once the voyage starts; only marked dead."""

    id: str
    name: str
    uid: str
    age: int = Field(default=25, ge=0)
    gender: str = ""
    keywords: list[str] = Field(default_factory=list)
    mbti: MBTI = "ISTJ"
    image: str = ""
    is_dead: bool = False
    death_day: int | None = None
    skills: list[Skill] = Field(default_factory=list)

    @field_validator("keywords")
    @classmethod
    def _clean_keywords(cls, value: list[str]) -> list[str]:
        cleaned: list[str] = []
        for kw in value:
            kw = kw.strip()
            if kw and kw not in cleaned:
                cleaned.append(kw)
        return cleaned

    def skill(self, name: str) -> Skill | None:
        for s in self.skills:
            if s.name == name:
                return s
        return None


# ---------------------------------------------------------------------------
# Gauges
# ---------------------------------------------------------------------------

class Resources(_Model):
    """Consumable gauges, percentages in [0, 100]."""

    oxygen: float = Field(default=100.0, ge=0, le=100)
    food: float = Field(default=100.0, ge=0, le=100)
    water: float = Field(default=100.0, ge=0, le=100)
    fuel: float = Field(default=100.0, ge=0, le=100)


class ResourceChanges(_Record):
    """Partial additive deltas. ``None`` means the day did not touch the gauge."""

    oxygen: float | None = None
    food: float | None = None
    water: float | None = None
    fuel: float | None = None
    integrity: float | None = None


# ---------------------------------------------------------------------------
# Day log
# ---------------------------------------------------------------------------

class Event(_Record):
    text: str
    time: str = ""


class StatusUpdate(_Record):
    character_id: str
    status: str = ""
    is_dead: bool | None = None


class Dialogue(_Record):
    character_id: str
    text: str
    time: str = ""


class SkillUnlock(_Record):
    character_id: str
    skill_name: str
    description: str = ""


class ChoiceOption(_Record):
    text: str
    result: str = ""


class Choice(_Record):
    scenario: str
    options: list[ChoiceOption]
    selected_option_index: int = Field(ge=0)

    @property
    def selected_option(self) -> ChoiceOption | None:
        if self.selected_option_index < len(self.options):
            return self.options[self.selected_option_index]
        return None


class DayLog(_Record):
    """One simulated day: narrative plus the state deltas it implies."""

    day: int = Field(ge=1, le=CAMPAIGN_DAYS)
    events: list[Event]
    status_updates: list[StatusUpdate] = Field(default_factory=list)
    dialogues: list[Dialogue] = Field(default_factory=list)
    is_danger: bool = False
    danger_type: str | None = None
    mood_score: int = Field(ge=0, le=100)
    resource_changes: ResourceChanges = Field(default_factory=ResourceChanges)
    skill_unlocks: list[SkillUnlock] = Field(default_factory=list)
    choice: Choice | None = None


class Ending(_Record):
    title: str
    description: str
    outcome: Outcome


# ---------------------------------------------------------------------------
# Game state (the persisted snapshot)
# ---------------------------------------------------------------------------

class GameState(_Model):
    """Everything the save blob holds."""

    nickname: str = ""
    code: str = ""
    characters: list[Character] = Field(default_factory=list)
    logs: list[DayLog] = Field(default_factory=list)
    current_day: int = Field(default=0, ge=0, le=CAMPAIGN_DAYS)
    integrity: float = Field(default=INITIAL_INTEGRITY, ge=0, le=100)
    resources: Resources = Field(default_factory=Resources)
    mood: int = Field(default=INITIAL_MOOD, ge=0, le=100)
    has_seen_system_info: bool = False
    ending: Ending | None = None

    @property
    def started(self) -> bool:
        return self.current_day > 0

    @property
    def is_over(self) -> bool:
        return self.current_day >= CAMPAIGN_DAYS

    @property
    def living_characters(self) -> list[Character]:
        return [c for c in self.characters if not c.is_dead]

    def character(self, character_id: str) -> Character | None:
        for c in self.characters:
            if c.id == character_id:
                return c
        return None
