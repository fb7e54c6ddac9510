"""
Shared dependencies for API endpoints.

Thin wrappers so tests can swap collaborators via app.dependency_overrides.
"""

from core.otp import OneTimeCodeEngine, get_otp_engine
from repositories.campaign_repository import CampaignRepositoryProtocol
from repositories.campaign_repository import get_campaign_repository as _get_campaign_repository
from services.verification_service import VerificationService
from services.verification_service import get_verification_service as _get_verification_service


def get_campaign_repository() -> CampaignRepositoryProtocol:
    return _get_campaign_repository()


def get_verification_service() -> VerificationService:
    return _get_verification_service()


def get_code_engine() -> OneTimeCodeEngine:
    return get_otp_engine()
