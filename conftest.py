from pathlib import Path

import pytest

from drifter.rng import GameRNG
from drifter.storage import Storage


@pytest.fixture
def storage(tmp_path: Path) -> Storage:
    """Fresh snapshot store per test."""
    return Storage(tmp_path)


@pytest.fixture
def rng() -> GameRNG:
    return GameRNG(seed=1234)
