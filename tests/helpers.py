"""Shared test doubles and builders."""

import json
from typing import Any

from drifter.models import Character, DayLog, Event


class StubLLM:
    """Deterministic LLM stand-in for tests.

    Provide a dict mapping stage name → list of responses (in call order).
    A response that is an Exception instance is raised instead of returned.
    Raises if a stage is called more times than responses were provided.
    """

    def __init__(self, responses: dict[str, list[Any]]) -> None:
        self._queues: dict[str, list[Any]] = {k: list(v) for k, v in responses.items()}
        self.calls: list[tuple[str, str, dict]] = []

    async def __call__(self, stage: str, prompt: str, **kwargs: Any) -> str:
        self.calls.append((stage, prompt, kwargs))
        queue = self._queues.get(stage)
        if not queue:
            raise AssertionError(
                f"StubLLM: unexpected call to stage={stage!r} "
                f"(no responses queued). calls so far: {len(self.calls)}"
            )
        response = queue.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    def stage_calls(self, stage: str) -> list[tuple[str, str, dict]]:
        return [c for c in self.calls if c[0] == stage]

    def assert_exhausted(self) -> None:
        """Assert every queued response was consumed, to catch missing LLM calls."""
        leftover = {k: v for k, v in self._queues.items() if v}
        if leftover:
            raise AssertionError(f"StubLLM: unused responses remain: {leftover}")


def make_character(id: str, name: str, **fields: Any) -> Character:
    return Character(id=id, name=name, uid=f"DRFT-{1000 + len(id)}", **fields)


def day_payload(day: int, **overrides: Any) -> dict[str, Any]:
    """A complete, valid day response as the generator would send it."""
    payload: dict[str, Any] = {
        "day": day,
        "events": [{"text": f"Routine checks on day {day}.", "time": "08:30"}],
        "statusUpdates": [],
        "isDanger": False,
        "dialogues": [],
        "moodScore": 70,
        "resourceChanges": {"oxygen": -2, "food": -2, "water": -2},
        "skillUnlocks": [],
    }
    payload.update(overrides)
    return payload


def day_json(day: int, **overrides: Any) -> str:
    return json.dumps(day_payload(day, **overrides))


def make_log(day: int, **fields: Any) -> DayLog:
    fields.setdefault("events", [Event(text=f"Day {day} passes.", time="09:00")])
    fields.setdefault("mood_score", 60)
    return DayLog(day=day, **fields)
