"""JSON file storage for game snapshots.

The snapshot is one named blob holding the whole GameState. There is no
database, no versioning and no locking: the last write wins, and a blob is
read back verbatim into the shape it was written in.

Directory layout:

    {base}/
      config.json             ← app settings (see drifter.config)
      saves/
        {name}.json           ← GameState snapshot, camelCase keys
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from pydantic import ValidationError

from drifter.models import GameState

logger = logging.getLogger(__name__)

DEFAULT_SAVE_NAME = "drifter_save"

SAVE_NAME_PATTERN = r"^[A-Za-z0-9_-]+$"
_NAME_RE = re.compile(SAVE_NAME_PATTERN)


class SnapshotError(RuntimeError):
    """A snapshot exists but cannot be read back into a GameState."""


class Storage:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._save_root = base_path / "saves"
        self._save_root.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _save_file(self, name: str) -> Path:
        if not _NAME_RE.match(name):
            raise ValueError(f"Invalid save name: {name!r}")
        return self._save_root / f"{name}.json"

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def save_game(self, state: GameState, name: str = DEFAULT_SAVE_NAME) -> None:
        """Overwrite the named snapshot with ``state``."""
        self._save_file(name).write_text(state.model_dump_json(by_alias=True, indent=2))
        logger.info("Saved %r at day %d", name, state.current_day)

    def load_game(self, name: str = DEFAULT_SAVE_NAME) -> GameState | None:
        """Read the named snapshot. None if absent; SnapshotError if corrupt."""
        path = self._save_file(name)
        if not path.is_file():
            return None
        try:
            return GameState.model_validate_json(path.read_text())
        except (ValidationError, ValueError, OSError) as e:
            raise SnapshotError(f"Snapshot {name!r} is unreadable: {e}") from e

    def has_game(self, name: str = DEFAULT_SAVE_NAME) -> bool:
        return self._save_file(name).is_file()

    def delete_game(self, name: str = DEFAULT_SAVE_NAME) -> bool:
        path = self._save_file(name)
        if not path.is_file():
            return False
        path.unlink()
        return True
