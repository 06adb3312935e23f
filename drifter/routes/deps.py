"""Shared route helpers: controller lookup and error mapping."""

from fastapi import HTTPException, Request

from drifter.controller import (
    CampaignBusyError,
    CampaignError,
    GameController,
    NoSessionError,
)


def get_controller(request: Request) -> GameController:
    return request.app.state.controller


def http_error(e: CampaignError) -> HTTPException:
    """Busy → 409, no session → 404, any other rule violation → 400."""
    if isinstance(e, CampaignBusyError):
        return HTTPException(409, str(e))
    if isinstance(e, NoSessionError):
        return HTTPException(404, str(e))
    return HTTPException(400, str(e))
