import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from drifter.config import get_config
from drifter.controller import GameController
from drifter.llm import LLM, build_llm
from drifter.rng import GameRNG
from drifter.routes import router
from drifter.storage import Storage

load_dotenv(Path(__file__).parent.parent / ".env")

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def create_app(
    data_dir: Path | None = None,
    llm: LLM | None = None,
    rng: GameRNG | None = None,
) -> FastAPI:
    """Build the app. ``llm`` and ``rng`` are injectable for tests."""
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    storage = Storage(resolved)
    config = get_config(resolved)

    app = FastAPI(title="DRIFTER")
    app.state.data_dir = resolved
    app.state.fixed_llm = llm
    app.state.controller = GameController(
        storage,
        llm or build_llm(config["llm"]),
        rng=rng,
        settings=config["simulation"],
        prompts=config["prompts"],
    )
    app.include_router(router, prefix="/api")
    return app
