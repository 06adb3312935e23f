"""Crew registration endpoints (only before the voyage starts)."""

from fastapi import APIRouter, Depends

from drifter.controller import CampaignError, GameController

from .deps import get_controller, http_error
from .models import CreateCharacter

router = APIRouter()


@router.post("/game/crew")
async def add_crew_member(
    body: CreateCharacter, controller: GameController = Depends(get_controller)
):
    """Register a crew member (at most 6)."""
    try:
        character = controller.register_character(
            body.name,
            age=body.age,
            gender=body.gender,
            keywords=body.keywords,
            mbti=body.mbti,
            image=body.image,
        )
    except CampaignError as e:
        raise http_error(e)
    return character.model_dump(by_alias=True)


@router.delete("/game/crew/{character_id}")
async def remove_crew_member(
    character_id: str, controller: GameController = Depends(get_controller)
):
    """Remove a registered crew member."""
    try:
        controller.remove_character(character_id)
    except CampaignError as e:
        raise http_error(e)
    return {"ok": True}
