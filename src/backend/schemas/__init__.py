"""Schemas module initialization."""

from schemas.campaign import BusinessHours, Campaign, CampaignCreate, CampaignUpdate, Coordinates
from schemas.verification import (
    FraudFlag,
    FraudFlagType,
    GPSTelemetry,
    RejectionReason,
    Severity,
    TelemetryAnalysis,
    VerificationRequest,
    VerificationResult,
)

__all__ = [
    "BusinessHours",
    "Campaign",
    "CampaignCreate",
    "CampaignUpdate",
    "Coordinates",
    "FraudFlag",
    "FraudFlagType",
    "GPSTelemetry",
    "RejectionReason",
    "Severity",
    "TelemetryAnalysis",
    "VerificationRequest",
    "VerificationResult",
]
