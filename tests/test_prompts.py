"""Tests for Handlebars prompt rendering and the day/ending context builders."""

import pytest

from drifter.models import Choice, ChoiceOption, Event, Resources, Skill
from drifter.prompts import (
    CRISIS_TYPES,
    DEFAULT_DAY_PROMPT,
    DEFAULT_ENDING_PROMPT,
    PromptError,
    build_day_context,
    build_ending_context,
    render_prompt,
    summarize_day,
)

from tests.helpers import make_character, make_log


# ── render_prompt ────────────────────────────────────────────


def test_render_simple_variable():
    assert render_prompt("Hello {{name}}!", {"name": "World"}) == "Hello World!"


def test_render_each_loop():
    tpl = "{{#each items}}{{this}} {{/each}}"
    assert render_prompt(tpl, {"items": ["a", "b", "c"]}) == "a b c "


def test_render_if_conditional():
    tpl = "{{#if show}}yes{{else}}no{{/if}}"
    assert render_prompt(tpl, {"show": True}) == "yes"
    assert render_prompt(tpl, {"show": False}) == "no"


def test_triple_stash_not_escaped():
    assert render_prompt("{{{text}}}", {"text": 'Tom & "Jo"'}) == 'Tom & "Jo"'


def test_render_invalid_template():
    with pytest.raises(PromptError):
        render_prompt("{{> missing_partial}}", {})


# ── day context ──────────────────────────────────────────────


def test_summarize_day_joins_events():
    log = make_log(4, events=[Event(text="Alarm.", time="01:00"), Event(text="False alarm.")])
    assert summarize_day(log) == "Day 4: Alarm. False alarm."


def test_day_context_living_crew_only():
    crew = [
        make_character("a1", "Mira", gender="female", age=31, keywords=["stoic"],
                       skills=[Skill(name="Welding", level=2)]),
        make_character("b2", "Vesna", is_dead=True, death_day=3),
    ]
    ctx = build_day_context(7, crew, [], Resources(), 90.0, False)
    assert [c["id"] for c in ctx["crew"]] == ["a1"]
    assert ctx["crew"][0]["line"] == (
        "Mira (female; age 31; MBTI ISTJ; personality: stoic; skills: Welding Lv.2)"
    )


def test_day_context_history_window():
    history = [make_log(d) for d in range(1, 11)]
    ctx = build_day_context(11, [], history, Resources(), None, False)
    assert ctx["recent"] == [summarize_day(log) for log in history[-5:]]
    assert ctx["integrity"] is None


def test_day_context_formats_gauges():
    ctx = build_day_context(2, [], [], Resources(oxygen=72.5, food=40), 88.25, True)
    assert ctx["resources"] == {"oxygen": "72.5", "food": "40", "water": "100", "fuel": "100"}
    assert ctx["integrity"] == "88.25"
    assert ctx["force_crisis"] is True
    assert ctx["crisis_types"] == ", ".join(CRISIS_TYPES)


def test_default_day_prompt_renders():
    crew = [make_character("a1", "Mira")]
    ctx = build_day_context(1, crew, [], Resources(), 98.2, False)
    prompt = render_prompt(DEFAULT_DAY_PROMPT, ctx)
    assert "This is day 1." in prompt
    assert "(none yet)" in prompt
    assert "- Mira: a1" in prompt
    assert 'return only JSON with "day": 1.' in prompt


# ── ending context ───────────────────────────────────────────


def test_ending_context():
    crew = [make_character("a1", "Mira"), make_character("b2", "Vesna", is_dead=True, death_day=9)]
    choice = Choice(
        scenario="Jettison the cargo?",
        options=[ChoiceOption(text="Keep it"), ChoiceOption(text="Jettison")],
        selected_option_index=1,
    )
    history = [
        make_log(1, mood_score=70, choice=choice),
        make_log(2, mood_score=50, is_danger=True),
        make_log(3, mood_score=61),
    ]
    ctx = build_ending_context(crew, history)
    assert ctx["alive"] == 1
    assert ctx["total"] == 2
    assert ctx["avg_mood"] == "60.3"
    assert ctx["crises"] == ["Day 2: unknown threat"]
    assert ctx["choices"] == ["Day 1: Jettison the cargo? -> Jettison"]


def test_ending_context_without_history():
    ctx = build_ending_context([], [])
    assert ctx["avg_mood"] == "0.0"
    prompt = render_prompt(DEFAULT_ENDING_PROMPT, ctx)
    assert "Survivors: 0 / 0" in prompt
    assert "(none)" in prompt
