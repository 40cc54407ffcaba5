"""
API routes aggregation.
"""

from fastapi import APIRouter

from .access import router as access_router
from .roster import router as roster_router

router = APIRouter()

router.include_router(access_router, prefix="/access", tags=["access"])
router.include_router(roster_router, prefix="/roster", tags=["roster"])
