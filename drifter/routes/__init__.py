"""FastAPI API endpoints under /api.

Endpoint groups: health + settings, crew registration, voyage
(session, start/advance, ending, save/load/reset). All game endpoints act
on the single GameController stored on app.state.
"""

from fastapi import APIRouter

from .crew import router as crew_router
from .game import router as game_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(crew_router)
router.include_router(game_router)
