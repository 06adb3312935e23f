"""Health check and settings endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Request

from drifter.config import ConfigError, get_config, public_config, update_config
from drifter.controller import GameController
from drifter.llm import build_llm

from .deps import get_controller

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings(request: Request):
    """Get app settings (LLM connection, simulation timing, prompt overrides)."""
    return public_config(get_config(request.app.state.data_dir))


@router.patch("/settings")
async def update_settings(
    body: dict, request: Request, controller: GameController = Depends(get_controller)
):
    """Update app settings (partial merge per section). Applies to the next request."""
    try:
        config = update_config(request.app.state.data_dir, body)
    except ConfigError as e:
        raise HTTPException(400, str(e))
    llm = request.app.state.fixed_llm or build_llm(config["llm"])
    controller.configure(llm, config["simulation"], config["prompts"])
    return public_config(config)
