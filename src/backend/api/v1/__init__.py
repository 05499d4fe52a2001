"""
API v1 router aggregating all endpoints.
"""

from fastapi import APIRouter

from api.v1.admin import router as admin_router
from api.v1.security import router as security_router
from api.v1.votes import router as votes_router

router = APIRouter()

router.include_router(security_router, prefix="/security", tags=["Security"])
router.include_router(votes_router, prefix="/votes", tags=["Votes"])
router.include_router(admin_router, prefix="/admin/security", tags=["Admin Security"])
