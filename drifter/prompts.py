"""Handlebars prompt rendering for the day and ending requests.

Templates use triple-stash ({{{x}}}) for narrative text so quotes and
ampersands reach the model unescaped. Context builders pre-format the
history and crew lines, the way the templates expect them.
"""

from collections.abc import Callable
from typing import Any

import pybars

from drifter.models import (
    CAMPAIGN_DAYS,
    HISTORY_WINDOW,
    Character,
    DayLog,
    Resources,
)

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}

CRISIS_TYPES = [
    "alien intrusion",
    "critical hull breach",
    "space pirate raid",
    "system runaway",
    "epidemic outbreak",
    "severe crew infighting",
    "black hole proximity",
]

SYSTEM_INSTRUCTION = (
    "You are a simulation engine. Always output valid JSON. Be extremely concise. "
    "Do not include newlines or control characters inside JSON strings. "
    "Escape all special characters. Do not add trailing commas."
)


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Day request ──────────────────────────────────────────

DEFAULT_DAY_PROMPT = """\
The starship DRIFTER is on a {{campaign_days}}-day voyage home to Earth. This is day {{day}}.

Surviving crew:
{{#each crew}}- {{{line}}}
{{/each}}
Resources: oxygen {{resources.oxygen}}%, food {{resources.food}}%, water {{resources.water}}%, fuel {{resources.fuel}}%{{#if integrity}}, hull integrity {{integrity}}%{{/if}}

Recent days:
{{#if recent}}{{#each recent}}{{{this}}}
{{/each}}{{else}}(none yet)
{{/if}}
Write 2-3 very short interactions and events that happened aboard today.

Directives:
1. Character-driven: derive each crew member's actions and lines from their MBTI, personality keywords and skills. Show relationships (friendship, conflict, cooperation).
2. Variety: avoid mechanical routine; include unexpected creative events (a birthday, a small misunderstanding, a technical discovery, a philosophical debate).
3. Resources and hull: oxygen, food and water are consumed every day. Hull integrity may change with events.
4. Choice: describe one moral, strategic or survival choice the crew faced today, the options, which option they took and its immediate result.

Required:
1. Include 1-2 short dialogues that show personality.
2. moodScore: 0-100.
3. resourceChanges: today's numeric deltas (integrity allowed).
4. skillUnlocks: any skill learned or improved today.
5. choice: {"scenario": "...", "options": [{"text": "...", "result": "..."}], "selectedOptionIndex": 0}
6. Use the crew ids below for characterId.

Crisis: {{#if force_crisis}}a crisis MUST happen today (isDanger true).{{else}}a crisis may happen with roughly 15% probability.{{/if}}
Crisis types: {{{crisis_types}}}.
Injury and death: during a crisis crew may be injured (status "injured") or, rarely, die (isDead true) in statusUpdates. Decide death very carefully, only at dramatic moments.

Crew ids:
{{#each crew}}- {{{name}}}: {{{id}}}
{{/each}}
Keep it terse and return only JSON with "day": {{day}}.
"""


def _crew_line(c: Character) -> str:
    parts = [c.gender or "unknown", f"age {c.age}", f"MBTI {c.mbti}"]
    if c.keywords:
        parts.append("personality: " + ", ".join(c.keywords))
    if c.skills:
        parts.append("skills: " + ", ".join(f"{s.name} Lv.{s.level}" for s in c.skills))
    return f"{c.name} ({'; '.join(parts)})"


def summarize_day(log: DayLog) -> str:
    """One plain-text line per past day: its events, concatenated."""
    return f"Day {log.day}: " + " ".join(e.text for e in log.events)


def _pct(value: float) -> str:
    return f"{value:g}"


def build_day_context(
    day: int,
    characters: list[Character],
    history: list[DayLog],
    resources: Resources,
    integrity: float | None,
    force_crisis: bool,
) -> dict[str, Any]:
    """Assemble template variables for one day request."""
    living = [c for c in characters if not c.is_dead]
    return {
        "campaign_days": CAMPAIGN_DAYS,
        "day": day,
        "crew": [{"id": c.id, "name": c.name, "line": _crew_line(c)} for c in living],
        "resources": {g: _pct(getattr(resources, g)) for g in ("oxygen", "food", "water", "fuel")},
        "integrity": _pct(integrity) if integrity is not None else None,
        "recent": [summarize_day(log) for log in history[-HISTORY_WINDOW:]],
        "force_crisis": force_crisis,
        "crisis_types": ", ".join(CRISIS_TYPES),
    }


# ── Ending request ───────────────────────────────────────

DEFAULT_ENDING_PROMPT = """\
The DRIFTER's {{campaign_days}}-day voyage is over.
Survivors: {{alive}} / {{total}}
Average mood: {{avg_mood}}

Crises:
{{#if crises}}{{#each crises}}- {{{this}}}
{{/each}}{{else}}(none)
{{/if}}
Key choices:
{{#if choices}}{{#each choices}}- {{{this}}}
{{/each}}{{else}}(none)
{{/if}}
Write the ending of the voyage. Based on the survivors, the mood and the crew's choices, pick one outcome:
"success" (safe return to Earth), "failure" (lost or wiped out before reaching Earth) or "mixed" (some survived, a scarred return).
Describe concretely how sacrifices, heroism or tragic choices shaped the ending.

Format:
{"title": "ending title", "description": "3-5 sentences", "outcome": "success" | "failure" | "mixed"}
"""


def build_ending_context(characters: list[Character], history: list[DayLog]) -> dict[str, Any]:
    """Assemble template variables for the ending request."""
    avg_mood = sum(log.mood_score for log in history) / len(history) if history else 0.0
    choices = []
    for log in history:
        if log.choice is None:
            continue
        option = log.choice.selected_option
        taken = option.text if option else "(no option recorded)"
        choices.append(f"Day {log.day}: {log.choice.scenario} -> {taken}")
    return {
        "campaign_days": CAMPAIGN_DAYS,
        "alive": sum(1 for c in characters if not c.is_dead),
        "total": len(characters),
        "avg_mood": f"{avg_mood:.1f}",
        "crises": [
            f"Day {log.day}: {log.danger_type or 'unknown threat'}"
            for log in history if log.is_danger
        ],
        "choices": choices,
    }
