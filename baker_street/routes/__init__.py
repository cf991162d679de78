"""FastAPI API endpoints under /api.

Endpoint groups: health, the game session (stream, reveal, challenges,
companion decision, advance) and on-demand evidence reports.
"""

from fastapi import APIRouter

from .evidence import router as evidence_router
from .session import router as session_router

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


router.include_router(session_router)
router.include_router(evidence_router)
