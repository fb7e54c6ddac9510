"""
API v1 router aggregating all endpoints.
"""

from fastapi import APIRouter

from api.v1.campaigns import router as campaigns_router
from api.v1.verify import router as verify_router

router = APIRouter()

router.include_router(campaigns_router, prefix="/campaigns", tags=["Campaigns"])
router.include_router(verify_router, prefix="/verify", tags=["Verification"])
