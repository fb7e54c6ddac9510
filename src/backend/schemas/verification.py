"""
Verification-related Pydantic schemas.

These schemas carry the GPS evidence a user submits and the engine's verdict.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class FraudFlagType(str, Enum):
    """Kinds of fraud signal the engine can raise."""

    IMPOSSIBLE_SPEED = "IMPOSSIBLE_SPEED"
    GPS_SPOOF = "GPS_SPOOF"
    ACCURACY_ANOMALY = "ACCURACY_ANOMALY"
    TIMESTAMP_DRIFT = "TIMESTAMP_DRIFT"
    ALTITUDE_MISMATCH = "ALTITUDE_MISMATCH"
    BUSINESS_HOURS = "BUSINESS_HOURS"
    REPLAY_ATTACK = "REPLAY_ATTACK"


class Severity(str, Enum):
    """Fraud flag severity."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class RejectionReason(str, Enum):
    """Why a verification was denied."""

    MALFORMED_INPUT = "malformed_input"
    CAMPAIGN_UNAVAILABLE = "campaign_unavailable"
    REPLAY_ATTACK = "replay_attack"
    RATE_LIMITED = "rate_limited"
    OUTSIDE_BUSINESS_HOURS = "outside_business_hours"
    FRAUD_SUSPECTED = "fraud_suspected"


class GPSTelemetry(BaseModel):
    """
    One GPS reading collected on the device during a dwell session.

    Only non-finite numbers and timestamps outside the float-exact integer
    range are rejected. Implausible readings (out-of-range coordinates,
    extreme altitudes, negative accuracy) are evidence for the fraud engine,
    not a validation error.
    """

    latitude: float
    longitude: float
    accuracy: float = Field(..., description="Horizontal accuracy in meters")
    altitude: Optional[float] = None
    altitude_accuracy: Optional[float] = None
    heading: Optional[float] = None  # degrees from north
    speed: Optional[float] = None  # meters per second
    timestamp: int = Field(
        ..., ge=-(2**53), le=2**53, description="Epoch milliseconds, within float-exact range"
    )

    model_config = {"allow_inf_nan": False}


class FraudFlag(BaseModel):
    """A single fraud signal. Immutable once raised."""

    type: FraudFlagType
    severity: Severity
    message: str
    data: Optional[dict[str, Any]] = None

    model_config = {"frozen": True}


class TelemetryAnalysis(BaseModel):
    """Fraud engine output for one telemetry sequence."""

    flags: list[FraudFlag] = Field(default_factory=list)
    risk_score: int = Field(0, ge=0, le=100)


class VerificationRequest(BaseModel):
    """A user's claim that they dwelled inside a campaign geofence."""

    session_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    campaign_id: str = Field(..., min_length=1)
    telemetry: list[GPSTelemetry]
    device_fingerprint: str = ""
    client_timestamp: int = Field(..., description="Epoch milliseconds on the device")


class VerificationResult(BaseModel):
    """Verdict returned to the caller. Persisting it is the caller's job."""

    success: bool
    redemption_id: Optional[str] = None
    redemption_token: Optional[str] = Field(
        None, description="Base64 QR payload carrying the one-time code"
    )
    expires_at: Optional[int] = None
    error: Optional[str] = None
    rejection_reason: Optional[RejectionReason] = None
    risk_score: int = Field(0, ge=0, le=100)
    fraud_flags: Optional[list[FraudFlag]] = None
