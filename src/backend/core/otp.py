"""
One-time redemption codes.

Codes are 6-digit values bound to a 30 second window and a per-redemption
secret, keyed with the server-side TOTP secret. The derivation is NOT RFC 6238:
the HMAC input is "<secret>-<counter>", the digest is read as hex, and the
truncation offset comes from its last hex digit. Issued tokens and scanning
clients depend on this exact scheme, so it must not be swapped for a
standard TOTP library.
"""

import base64
import hashlib
import hmac
from enum import Enum
from functools import lru_cache
from typing import Optional

import structlog
from pydantic import BaseModel, Field

from core.clock import Clock, now_ms

logger = structlog.get_logger(__name__)


class OTPConfig:
    """One-time code constants (shared with scanning clients)."""

    WINDOW_MS = 30_000
    DIGITS = 6
    DEFAULT_VERIFY_WINDOW = 1


class OTPConfigurationError(ValueError):
    """Raised when the code engine is constructed without a signing secret."""


class TokenErrorKind(str, Enum):
    """Why a redemption token failed validation."""

    EXPIRED = "expired"
    INVALID_CODE = "invalid_code"
    MALFORMED = "malformed"


# =============================================================================
# Schemas
# =============================================================================


class RedemptionTokenPayload(BaseModel):
    """Wire shape of a redemption token (base64 of this JSON object)."""

    rid: str
    uid: str
    cid: str
    code: str
    exp: int


class IssuedRedemptionToken(BaseModel):
    """Opaque token handed to the user for display as a QR code."""

    payload: str
    expires_at: int


class RedemptionTokenData(BaseModel):
    """Identifiers recovered from a valid token."""

    redemption_id: str
    user_id: str
    campaign_id: str


class RedemptionTokenValidation(BaseModel):
    """Outcome of validating a scanned redemption token."""

    valid: bool
    data: Optional[RedemptionTokenData] = None
    error: Optional[str] = None
    error_kind: Optional[TokenErrorKind] = Field(None, description="Set only when valid is False")


# =============================================================================
# Engine
# =============================================================================


class OneTimeCodeEngine:
    """
    Generates and verifies time-windowed redemption codes.

    Holds no state beyond the signing secret and the clock.
    """

    def __init__(self, signing_secret: str, clock: Clock = now_ms):
        if not signing_secret:
            raise OTPConfigurationError("A TOTP signing secret must be configured")
        self._signing_secret = signing_secret.encode()
        self._clock = clock

    def generate_code(self, secret: str, timestamp: Optional[int] = None) -> str:
        """Generate the 6-digit code for a secret at a point in time."""
        time_ms = self._clock() if timestamp is None else timestamp
        counter = int(time_ms // OTPConfig.WINDOW_MS)

        digest = hmac.new(
            self._signing_secret,
            f"{secret}-{counter}".encode(),
            hashlib.sha256,
        ).hexdigest()

        offset = int(digest[-1], 16)
        truncated = int(digest[offset * 2 : offset * 2 + 8], 16)
        return str(truncated % 10**OTPConfig.DIGITS).zfill(OTPConfig.DIGITS)

    def verify_code(
        self,
        code: str,
        secret: str,
        window: int = OTPConfig.DEFAULT_VERIFY_WINDOW,
    ) -> bool:
        """Accept a code generated up to `window` periods before or after now."""
        now = self._clock()
        expected = code.encode()
        for i in range(-window, window + 1):
            candidate = self.generate_code(secret, now + i * OTPConfig.WINDOW_MS)
            if hmac.compare_digest(candidate.encode(), expected):
                return True
        return False

    @staticmethod
    def redemption_secret(redemption_id: str, user_id: str, campaign_id: str) -> str:
        return f"{redemption_id}-{user_id}-{campaign_id}"

    def issue_redemption_token(
        self,
        redemption_id: str,
        user_id: str,
        campaign_id: str,
    ) -> IssuedRedemptionToken:
        """Package a fresh code with its ids into a base64 QR payload."""
        now = self._clock()
        secret = self.redemption_secret(redemption_id, user_id, campaign_id)
        expires_at = now + OTPConfig.WINDOW_MS

        payload = RedemptionTokenPayload(
            rid=redemption_id,
            uid=user_id,
            cid=campaign_id,
            code=self.generate_code(secret, now),
            exp=expires_at,
        )
        encoded = base64.b64encode(payload.model_dump_json().encode()).decode()
        return IssuedRedemptionToken(payload=encoded, expires_at=expires_at)

    def validate_redemption_token(self, encoded_payload: str) -> RedemptionTokenValidation:
        """
        Validate a scanned token.

        Never raises: undecodable input is reported as MALFORMED.
        """
        try:
            raw = base64.b64decode(encoded_payload, validate=True)
            payload = RedemptionTokenPayload.model_validate_json(raw)
        except (ValueError, TypeError) as e:
            logger.info("redemption_token_malformed", error=type(e).__name__)
            return RedemptionTokenValidation(
                valid=False,
                error="Invalid QR payload",
                error_kind=TokenErrorKind.MALFORMED,
            )

        if self._clock() > payload.exp:
            logger.info("redemption_token_expired", rid=payload.rid[:8])
            return RedemptionTokenValidation(
                valid=False,
                error="QR code expired",
                error_kind=TokenErrorKind.EXPIRED,
            )

        secret = self.redemption_secret(payload.rid, payload.uid, payload.cid)
        if not self.verify_code(payload.code, secret):
            logger.warning("redemption_token_invalid_code", rid=payload.rid[:8])
            return RedemptionTokenValidation(
                valid=False,
                error="Invalid verification code",
                error_kind=TokenErrorKind.INVALID_CODE,
            )

        return RedemptionTokenValidation(
            valid=True,
            data=RedemptionTokenData(
                redemption_id=payload.rid,
                user_id=payload.uid,
                campaign_id=payload.cid,
            ),
        )


@lru_cache
def get_otp_engine() -> OneTimeCodeEngine:
    """Engine keyed with the configured TOTP secret."""
    from core.config import settings

    return OneTimeCodeEngine(settings.TOTP_SECRET)
