"""
Verification API endpoints.

Validates the request envelope and the campaign precondition, then hands the
claim to the verification service:
1. Missing or malformed fields -> 400
2. Unknown campaign -> 404
3. Inactive or expired campaign -> 400
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from api.deps import get_campaign_repository, get_code_engine, get_verification_service
from core.clock import now_ms
from core.otp import OneTimeCodeEngine, RedemptionTokenValidation
from repositories.campaign_repository import CampaignRepositoryProtocol
from schemas.verification import RejectionReason, VerificationRequest, VerificationResult
from services.verification_service import VerificationService, rejected

logger = structlog.get_logger(__name__)

router = APIRouter()


# =============================================================================
# Schemas
# =============================================================================


class SessionResponse(BaseModel):
    """A fresh dwell-session id."""

    session_id: str


class RedemptionTokenRequest(BaseModel):
    """Token scanned from a user's QR code."""

    payload: str = Field(..., min_length=1)


# =============================================================================
# Helper Functions
# =============================================================================


def _error_response(status_code: int, result: VerificationResult) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=result.model_dump(mode="json", exclude_none=True),
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/session", response_model=SessionResponse)
async def start_session(
    service: Annotated[VerificationService, Depends(get_verification_service)],
) -> SessionResponse:
    """Start a dwell session. The id is single-use."""
    return SessionResponse(session_id=service.generate_session_id())


@router.post(
    "",
    response_model=VerificationResult,
    response_model_exclude_none=True,
)
async def verify_redemption(
    request: Request,
    service: Annotated[VerificationService, Depends(get_verification_service)],
    campaigns: Annotated[CampaignRepositoryProtocol, Depends(get_campaign_repository)],
):
    """Verify a dwell claim and issue a redemption token when it passes."""
    try:
        body = await request.json()
        verification_request = VerificationRequest.model_validate(body)
    except (ValueError, ValidationError) as e:
        logger.info("verification_malformed", error=type(e).__name__)
        return _error_response(
            status.HTTP_400_BAD_REQUEST,
            rejected(RejectionReason.MALFORMED_INPUT, "Missing required fields"),
        )

    campaign = await campaigns.get_by_id(verification_request.campaign_id)
    if campaign is None:
        return _error_response(
            status.HTTP_404_NOT_FOUND,
            rejected(RejectionReason.CAMPAIGN_UNAVAILABLE, "Campaign not found"),
        )

    if not campaign.is_available(now_ms()):
        return _error_response(
            status.HTTP_400_BAD_REQUEST,
            rejected(RejectionReason.CAMPAIGN_UNAVAILABLE, "Campaign is not active or has expired"),
        )

    return service.verify(verification_request, campaign)


@router.post("/redemption-token", response_model=RedemptionTokenValidation)
async def validate_redemption_token(
    token: RedemptionTokenRequest,
    engine: Annotated[OneTimeCodeEngine, Depends(get_code_engine)],
) -> RedemptionTokenValidation:
    """Validate a scanned redemption QR payload (staff scanning surface)."""
    return engine.validate_redemption_token(token.payload)
