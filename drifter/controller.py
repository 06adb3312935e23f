"""Game controller — the single owner of GameState.

Every mutation goes through this class: registration before the voyage,
start/advance_day (which apply DayLogs through the reducer), reset and
load. The HTTP routes hold one controller and never touch state fields.

Concurrency: one day request at a time. A busy flag rejects overlapping
advances; the generator call is raced against a deadline and a late result
is ignored (the request itself is not cancelled). State is replaced only
after a request has fully resolved, with a real log or a fallback.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from drifter.llm import LLM
from drifter.models import (
    CAMPAIGN_DAYS,
    MAX_CREW,
    MIN_CREW,
    Character,
    DayLog,
    Ending,
    GameState,
)
from drifter.pipeline import (
    DaySignals,
    apply_day_log,
    compare_states,
    fallback_day_log,
    fallback_ending,
    simulate_day,
    simulate_ending,
)
from drifter.rng import GameRNG
from drifter.storage import DEFAULT_SAVE_NAME, SnapshotError, Storage

logger = logging.getLogger(__name__)

DEFAULT_DEADLINE = 60.0
DEADLINE_MESSAGE = "Data processing error. Rebooting systems..."


class CampaignError(ValueError):
    """The requested operation is not valid for the current game state."""


class CampaignBusyError(CampaignError):
    """A simulation request is already in flight."""


class NoSessionError(CampaignError):
    """There is no resumable session to load."""


@dataclass
class AdvanceResult:
    log: DayLog
    signals: DaySignals
    ending: Ending | None = None
    saved: bool = True


class GameController:
    """Holds the live GameState and applies every change to it.

    Args:
        storage:  Snapshot store.
        llm:      Generation capability.
        rng:      Randomness for decay and ids. Unseeded when omitted.
        settings: The ``simulation`` config section.
        prompts:  The ``prompts`` config section (template overrides).
    """

    def __init__(
        self,
        storage: Storage,
        llm: LLM,
        *,
        rng: GameRNG | None = None,
        settings: dict[str, Any] | None = None,
        prompts: dict[str, str] | None = None,
    ) -> None:
        self._storage = storage
        self._rng = rng or GameRNG()
        self.configure(llm, settings or {}, prompts or {})

        self._state = GameState()
        self._busy = False
        self._ending_task: asyncio.Task | None = None

    def configure(
        self,
        llm: LLM,
        settings: dict[str, Any],
        prompts: dict[str, str],
    ) -> None:
        """(Re)apply connection, timing and template settings. Takes effect on the next request."""
        self._llm = llm
        self._deadline = float(settings.get("deadline_seconds", DEFAULT_DEADLINE))
        self._retry_delay = float(settings.get("retry_delay_seconds", 1.0))
        self._day_max_tokens = int(settings.get("day_max_tokens", 4096))
        self._ending_max_tokens = int(settings.get("ending_max_tokens", 2048))
        self._save_name = settings.get("save_name") or DEFAULT_SAVE_NAME
        self._day_template = prompts.get("day") or None
        self._ending_template = prompts.get("ending") or None

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def state(self) -> GameState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def ending_loading(self) -> bool:
        return self._ending_task is not None and not self._ending_task.done()

    def status(self) -> dict[str, Any]:
        """Snapshot plus the in-progress flags the client renders."""
        return {
            "state": self._state.model_dump(by_alias=True),
            "busy": self._busy,
            "endingLoading": self.ending_loading,
            "hasSave": self.has_save(),
        }

    # ------------------------------------------------------------------
    # Session and crew registration (before the voyage starts)
    # ------------------------------------------------------------------

    def login(self, nickname: str, code: str) -> None:
        nickname, code = nickname.strip(), code.strip()
        if not nickname or not code:
            raise CampaignError("Nickname and access code are both required")
        self._state = self._state.model_copy(update={"nickname": nickname, "code": code})

    def mark_intro_seen(self) -> None:
        self._state = self._state.model_copy(update={"has_seen_system_info": True})

    def _require_registration_open(self) -> None:
        if self._state.started:
            raise CampaignError("The crew cannot change once the voyage has started")

    def register_character(
        self,
        name: str,
        *,
        age: int = 25,
        gender: str = "",
        keywords: list[str] | None = None,
        mbti: str = "ISTJ",
        image: str = "",
    ) -> Character:
        """Add a crew member. Ids are random and unique within the roster."""
        self._require_registration_open()
        name = name.strip()
        if not name:
            raise CampaignError("Character name is required")
        if len(self._state.characters) >= MAX_CREW:
            raise CampaignError(f"The crew is limited to {MAX_CREW} members")

        taken = {c.id for c in self._state.characters}
        char_id = self._rng.token()
        while char_id in taken:
            char_id = self._rng.token()
        try:
            character = Character(
                id=char_id,
                name=name,
                uid=f"DRFT-{self._rng.randint(1000, 9999)}",
                age=age,
                gender=gender,
                keywords=keywords or [],
                mbti=mbti,
                image=image or f"https://picsum.photos/seed/{name}/200/300",
            )
        except ValidationError as e:
            raise CampaignError(f"Invalid character: {e}") from e

        self._state = self._state.model_copy(
            update={"characters": [*self._state.characters, character]}
        )
        logger.info("Registered %s (%s)", character.name, character.id)
        return character

    def remove_character(self, character_id: str) -> None:
        self._require_registration_open()
        remaining = [c for c in self._state.characters if c.id != character_id]
        if len(remaining) == len(self._state.characters):
            raise CampaignError(f"No crew member with id {character_id!r}")
        self._state = self._state.model_copy(update={"characters": remaining})

    # ------------------------------------------------------------------
    # Voyage
    # ------------------------------------------------------------------

    async def start(self) -> AdvanceResult:
        """Simulate day 1."""
        self._require_not_busy()
        if self._state.started:
            raise CampaignError("The voyage has already started")
        if not self._state.nickname or not self._state.code:
            raise CampaignError("Log in before starting the voyage")
        if not MIN_CREW <= len(self._state.characters) <= MAX_CREW:
            raise CampaignError(f"The crew needs {MIN_CREW} to {MAX_CREW} members")
        return await self._run_day()

    async def advance_day(self) -> AdvanceResult:
        """Simulate the next day; on the final day also produce the ending."""
        self._require_not_busy()
        if not self._state.started:
            raise CampaignError("The voyage has not started")
        if self._state.is_over:
            raise CampaignError(f"The voyage ended on day {CAMPAIGN_DAYS}")
        return await self._run_day()

    def _require_not_busy(self) -> None:
        if self._busy:
            raise CampaignBusyError("A day is already being simulated")

    async def _run_day(self) -> AdvanceResult:
        self._require_not_busy()
        self._busy = True
        try:
            old = self._state
            day = old.current_day + 1
            log = await self._generate_day(old, day)
            new = apply_day_log(old, log, self._rng)
            self._state = new
            logger.info("Day %d applied (mood %d, hull %.1f)", day, new.mood, new.integrity)
            saved = self._autosave()
        finally:
            self._busy = False

        result = AdvanceResult(log=log, signals=compare_states(old, new), saved=saved)
        if new.is_over:
            result.ending = await self.ensure_ending()
        return result

    async def _generate_day(self, state: GameState, day: int) -> DayLog:
        task = asyncio.ensure_future(simulate_day(
            day,
            state.characters,
            state.logs,
            state.resources,
            llm=self._llm,
            integrity=state.integrity,
            retry_delay=self._retry_delay,
            max_tokens=self._day_max_tokens,
            template=self._day_template,
        ))
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self._deadline)
        except asyncio.TimeoutError:
            logger.error("Day %d exceeded the %.0fs deadline, using fallback log", day, self._deadline)
            task.add_done_callback(_log_late_result)
            return fallback_day_log(day, mood_score=state.mood, message=DEADLINE_MESSAGE)

    # ------------------------------------------------------------------
    # Ending (exactly once per voyage)
    # ------------------------------------------------------------------

    async def ensure_ending(self) -> Ending:
        """Return the voyage ending, generating it on first call only."""
        if self._state.ending is not None:
            return self._state.ending
        if not self._state.is_over:
            raise CampaignError("The voyage has not reached its final day")
        if self._ending_task is None:
            self._ending_task = asyncio.ensure_future(self._generate_ending())
        task = self._ending_task
        try:
            return await asyncio.shield(task)
        except Exception:
            # a failed generation must not stick; the next call starts over
            if self._ending_task is task:
                self._ending_task = None
            raise

    async def _generate_ending(self) -> Ending:
        state = self._state
        task = asyncio.ensure_future(simulate_ending(
            state.characters,
            state.logs,
            llm=self._llm,
            retry_delay=self._retry_delay,
            max_tokens=self._ending_max_tokens,
            template=self._ending_template,
        ))
        try:
            ending = await asyncio.wait_for(asyncio.shield(task), timeout=self._deadline)
        except asyncio.TimeoutError:
            logger.error("Ending exceeded the %.0fs deadline, using fallback ending", self._deadline)
            task.add_done_callback(_log_late_result)
            ending = fallback_ending()
        self._state = self._state.model_copy(update={"ending": ending})
        logger.info("Voyage ended: %s (%s)", ending.title, ending.outcome)
        self._autosave()
        return ending

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _require_idle(self) -> None:
        if self._busy or self.ending_loading:
            raise CampaignBusyError("Wait for the current simulation to finish")

    def _autosave(self) -> bool:
        try:
            self._storage.save_game(self._state, self._save_name)
        except (OSError, ValueError):
            logger.exception("Autosave failed at day %d", self._state.current_day)
            return False
        return True

    def save(self) -> None:
        """Explicit save. Errors propagate to the caller."""
        self._storage.save_game(self._state, self._save_name)

    def has_save(self) -> bool:
        return self._storage.has_game(self._save_name)

    def delete_save(self) -> bool:
        return self._storage.delete_game(self._save_name)

    def load(self) -> GameState:
        """Replace the live state with the snapshot. In-memory state survives failures."""
        self._require_idle()
        try:
            loaded = self._storage.load_game(self._save_name)
        except SnapshotError as e:
            logger.error("Cannot resume session: %s", e)
            raise NoSessionError("No resumable session") from e
        if loaded is None:
            raise NoSessionError("No resumable session")
        self._state = loaded
        self._ending_task = None
        logger.info("Loaded session at day %d", loaded.current_day)
        return loaded

    def reset(self) -> None:
        """Discard the live state. The snapshot on disk is left alone."""
        self._require_idle()
        self._state = GameState()
        self._ending_task = None


def _log_late_result(task: asyncio.Future) -> None:
    """Result of a request that lost the race against the deadline; discarded."""
    if task.cancelled():
        return
    if task.exception() is not None:
        logger.warning("Late simulation request failed: %s", task.exception())
    else:
        logger.info("Late simulation result discarded")
