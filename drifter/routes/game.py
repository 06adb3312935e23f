"""Voyage endpoints: session, start/advance, ending, save/load/reset."""

from fastapi import APIRouter, Depends, HTTPException

from drifter.controller import AdvanceResult, CampaignError, GameController

from .deps import get_controller, http_error
from .models import LoginBody

router = APIRouter()


def _advance_response(controller: GameController, result: AdvanceResult) -> dict:
    return {
        "log": result.log.model_dump(by_alias=True),
        "signals": {
            "crisis": result.signals.crisis,
            "glow": result.signals.glow,
            "deaths": result.signals.deaths,
        },
        "ending": result.ending.model_dump(by_alias=True) if result.ending else None,
        "saved": result.saved,
        "state": controller.state.model_dump(by_alias=True),
    }


@router.get("/game")
async def get_game(controller: GameController = Depends(get_controller)):
    """Current state plus busy / ending-loading / save-exists flags."""
    return controller.status()


@router.post("/game/login")
async def login(body: LoginBody, controller: GameController = Depends(get_controller)):
    """Set the session identity (nickname + access code)."""
    try:
        controller.login(body.nickname, body.code)
    except CampaignError as e:
        raise http_error(e)
    return {"ok": True}


@router.post("/game/intro-seen")
async def intro_seen(controller: GameController = Depends(get_controller)):
    """Record that the one-time system briefing was shown."""
    controller.mark_intro_seen()
    return {"ok": True}


@router.post("/game/start")
async def start(controller: GameController = Depends(get_controller)):
    """Launch the voyage and simulate day 1."""
    try:
        result = await controller.start()
    except CampaignError as e:
        raise http_error(e)
    return _advance_response(controller, result)


@router.post("/game/advance")
async def advance(controller: GameController = Depends(get_controller)):
    """Simulate the next day (and the ending, on the final day)."""
    try:
        result = await controller.advance_day()
    except CampaignError as e:
        raise http_error(e)
    return _advance_response(controller, result)


@router.get("/game/ending")
async def get_ending(controller: GameController = Depends(get_controller)):
    """The voyage ending. Generated here when a finished voyage was resumed without one."""
    if not controller.state.is_over:
        raise HTTPException(404, "The voyage has not ended")
    try:
        ending = await controller.ensure_ending()
    except CampaignError as e:
        raise http_error(e)
    return ending.model_dump(by_alias=True)


@router.post("/game/save")
async def save(controller: GameController = Depends(get_controller)):
    """Write the current state to the save blob."""
    try:
        controller.save()
    except OSError as e:
        raise HTTPException(500, f"Save failed: {e}")
    return {"ok": True}


@router.post("/game/load")
async def load(controller: GameController = Depends(get_controller)):
    """Resume the saved session."""
    try:
        controller.load()
    except CampaignError as e:
        raise http_error(e)
    return controller.status()


@router.get("/game/saved")
async def has_save(controller: GameController = Depends(get_controller)):
    """Whether a resumable session exists."""
    return {"exists": controller.has_save()}


@router.delete("/game/saved")
async def delete_save(controller: GameController = Depends(get_controller)):
    """Delete the save blob."""
    if not controller.delete_save():
        raise HTTPException(404, "No saved session")
    return {"ok": True}


@router.post("/game/reset")
async def reset(controller: GameController = Depends(get_controller)):
    """Discard the in-memory state (the save blob is kept)."""
    try:
        controller.reset()
    except CampaignError as e:
        raise http_error(e)
    return controller.status()
