"""Injectable randomness.

Everything non-deterministic in the engine (hull decay, crew ids and
uids) draws from a ``GameRNG``. Production code uses an unseeded
instance; tests pass a seeded one.
"""

from __future__ import annotations

import random
import string

_ID_ALPHABET = string.ascii_lowercase + string.digits


class GameRNG:
    """Thin wrapper over :class:`random.Random` with the draws the game needs."""

    def __init__(self, seed: int | None = None) -> None:
        self._seed = seed
        # nosec B311 - pseudo-RNG acceptable for game mechanics
        self._random = random.Random(seed)

    @property
    def seed(self) -> int | None:
        return self._seed

    def uniform(self, a: float, b: float) -> float:
        return self._random.uniform(a, b)

    def randint(self, a: int, b: int) -> int:
        return self._random.randint(a, b)

    def token(self, length: int = 9) -> str:
        """Random lowercase base-36 string, used for character ids."""
        return "".join(self._random.choice(_ID_ALPHABET) for _ in range(length))


__all__ = ["GameRNG"]
