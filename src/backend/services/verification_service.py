"""
Redemption verification orchestrator.

Sequences one verification attempt:
    sweep -> replay check -> rate limit -> business hours
          -> telemetry analysis -> decision -> record + issue token

Campaign existence and availability are the caller's precondition; this
service assumes an active, unexpired campaign.
"""

import secrets
from functools import lru_cache
from typing import Optional

import structlog

from core.clock import Clock, now_ms
from core.otp import OneTimeCodeEngine, get_otp_engine
from schemas.campaign import Campaign
from schemas.verification import (
    FraudFlag,
    FraudFlagType,
    RejectionReason,
    Severity,
    VerificationRequest,
    VerificationResult,
)
from services.business_hours import is_within_business_hours
from services.fraud_detection import FraudConfig, TelemetryAnalysisService
from services.redemption_guard import GuardOutcome, RedemptionGuard, get_redemption_guard

logger = structlog.get_logger(__name__)

BUSINESS_HOURS_RISK_SCORE = 50


def rejected(
    reason: RejectionReason,
    error: str,
    risk_score: int = 0,
    fraud_flags: Optional[list[FraudFlag]] = None,
) -> VerificationResult:
    """Build a rejected verification result."""
    return VerificationResult(
        success=False,
        error=error,
        rejection_reason=reason,
        risk_score=risk_score,
        fraud_flags=fraud_flags if fraud_flags is not None else [],
    )


def replay_rejection() -> VerificationResult:
    return rejected(
        RejectionReason.REPLAY_ATTACK,
        "Session already used - possible replay attack",
        risk_score=FraudConfig.MAX_RISK_SCORE,
        fraud_flags=[
            FraudFlag(
                type=FraudFlagType.REPLAY_ATTACK,
                severity=Severity.CRITICAL,
                message="Duplicate session ID detected",
            )
        ],
    )


def rate_limit_rejection() -> VerificationResult:
    return rejected(
        RejectionReason.RATE_LIMITED,
        "Already redeemed this campaign in the last 24 hours",
    )


class VerificationService:
    """
    Entry point for redemption verification.

    All collaborators are injectable; defaults are the process-wide guard and
    the code engine keyed with the configured secret.
    """

    def __init__(
        self,
        guard: Optional[RedemptionGuard] = None,
        analysis_service: Optional[TelemetryAnalysisService] = None,
        otp_engine: Optional[OneTimeCodeEngine] = None,
        clock: Clock = now_ms,
        default_timezone: Optional[str] = None,
    ):
        self._clock = clock
        self.guard = guard if guard is not None else get_redemption_guard()
        self.analysis_service = analysis_service or TelemetryAnalysisService(clock=clock)
        self.otp_engine = otp_engine or get_otp_engine()
        self.default_timezone = default_timezone

    def generate_session_id(self) -> str:
        """Issue a fresh, unguessable session id for a dwell session."""
        return f"sess_{self._clock()}_{secrets.token_hex(16)}"

    def generate_redemption_id(self) -> str:
        return f"r_{self._clock()}_{secrets.token_hex(8)}"

    def verify(self, request: VerificationRequest, campaign: Campaign) -> VerificationResult:
        """
        Verify a dwell claim and, if it passes, issue a redemption token.

        Guard rejections short-circuit before any analysis and carry no
        telemetry flags. Fraud rejections keep the computed score and flags
        for audit.
        """
        log = logger.bind(
            session=request.session_id[:8],
            user=request.user_id[:8],
            campaign=request.campaign_id[:8],
        )

        self.guard.sweep()

        # 1. Replay attack check
        if self.guard.is_replay(request.session_id):
            log.warning("verification_rejected", reason=RejectionReason.REPLAY_ATTACK.value)
            return replay_rejection()

        # 2. Rate limiting (1 redemption per campaign per user per 24h)
        if self.guard.is_rate_limited(request.user_id, request.campaign_id):
            log.info("verification_rejected", reason=RejectionReason.RATE_LIMITED.value)
            return rate_limit_rejection()

        # 3. Business hours (only when the campaign declares them)
        if campaign.business_hours:
            hours_check = is_within_business_hours(
                request.client_timestamp,
                campaign.business_hours,
                campaign.timezone,
                self.default_timezone,
            )
            if not hours_check.valid:
                message = hours_check.message or "Outside business hours"
                log.info("verification_rejected", reason=RejectionReason.OUTSIDE_BUSINESS_HOURS.value)
                return rejected(
                    RejectionReason.OUTSIDE_BUSINESS_HOURS,
                    message,
                    risk_score=BUSINESS_HOURS_RISK_SCORE,
                    fraud_flags=[
                        FraudFlag(
                            type=FraudFlagType.BUSINESS_HOURS,
                            severity=Severity.HIGH,
                            message=message,
                        )
                    ],
                )

        # 4. Telemetry analysis
        analysis = self.analysis_service.analyze(request.telemetry, campaign, request.user_id)

        # 5. Decision
        if analysis.risk_score >= FraudConfig.REJECT_THRESHOLD:
            log.warning(
                "verification_rejected",
                reason=RejectionReason.FRAUD_SUSPECTED.value,
                risk_score=analysis.risk_score,
                flags=[f.type.value for f in analysis.flags],
            )
            return rejected(
                RejectionReason.FRAUD_SUSPECTED,
                "Verification failed: Suspicious activity detected",
                risk_score=analysis.risk_score,
                fraud_flags=analysis.flags,
            )

        # 6. Success - claim the session and issue the token
        outcome = self.guard.record(request.session_id, request.user_id, request.campaign_id)
        if outcome == GuardOutcome.REPLAY_ATTACK:
            log.warning("verification_rejected", reason=RejectionReason.REPLAY_ATTACK.value, race=True)
            return replay_rejection()
        if outcome == GuardOutcome.RATE_LIMITED:
            log.info("verification_rejected", reason=RejectionReason.RATE_LIMITED.value, race=True)
            return rate_limit_rejection()

        redemption_id = self.generate_redemption_id()
        token = self.otp_engine.issue_redemption_token(
            redemption_id, request.user_id, request.campaign_id
        )

        log.info("verification_succeeded", redemption=redemption_id[:12], risk_score=analysis.risk_score)
        return VerificationResult(
            success=True,
            redemption_id=redemption_id,
            redemption_token=token.payload,
            expires_at=token.expires_at,
            risk_score=analysis.risk_score,
            fraud_flags=analysis.flags or None,
        )


@lru_cache
def get_verification_service() -> VerificationService:
    """Get the process-wide verification service."""
    from core.config import settings

    return VerificationService(default_timezone=settings.DEFAULT_TIMEZONE)
