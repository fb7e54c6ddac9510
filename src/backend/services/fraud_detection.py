"""
Telemetry Fraud Detection Service for GeoVerify.

Adjudicates whether a stream of client-reported GPS readings plausibly shows a
real person dwelling inside a campaign geofence:
1. Impossible Speed - Teleporting between consecutive readings
2. Accuracy Anomaly - Wild swings in reported horizontal accuracy
3. Perfect Coordinates - Emulators replaying one fixed point
4. Timestamp Drift - Device clock far from server clock
5. Altitude Consistency - Implausible vertical jumps
6. Dwell Time - Not enough time actually spent inside the zone

Risk is additive across checks and clamped to 0-100. The constants below are
heuristics that existing risk thresholds were tuned against; keep them as-is.
"""

import math
from typing import Optional

import structlog

from core.clock import Clock, now_ms
from core.geohash import haversine_distance
from schemas.campaign import Campaign
from schemas.verification import (
    FraudFlag,
    FraudFlagType,
    GPSTelemetry,
    Severity,
    TelemetryAnalysis,
)

logger = structlog.get_logger(__name__)


# =============================================================================
# Configuration
# =============================================================================


class FraudConfig:
    """Fraud detection configuration."""

    # Speed limits (meters/second)
    DRIVING_SPEED = 35.0  # ~126 km/h
    MAX_POSSIBLE_SPEED = 100.0  # ~360 km/h, airliner territory

    # A fast hop shorter than this is treated as GPS jitter
    MIN_SUSPICIOUS_HOP_METERS = 100.0

    MIN_TELEMETRY_SAMPLES = 2
    ACCURACY_DEVIATION_METERS = 50.0
    STATIC_SPOOF_MIN_SAMPLES = 6
    MAX_CLOCK_DRIFT_MS = 60_000
    MIN_ALTITUDE_SAMPLES = 4
    MAX_ALTITUDE_RANGE_METERS = 500.0

    # Dwell
    ZONE_GRACE_METERS = 20.0
    DWELL_TOLERANCE = 0.8

    # Risk score contributions
    SCORE_INSUFFICIENT_DATA = 40
    SCORE_TELEPORT = 100
    SCORE_SUSPICIOUS_SPEED = 30
    SCORE_ACCURACY_ANOMALY = 20
    SCORE_STATIC_SPOOF = 100
    SCORE_TIMESTAMP_DRIFT = 25
    SCORE_ALTITUDE_MISMATCH = 15
    SCORE_DWELL_SHORTFALL = 35

    # Risk score thresholds (0-100)
    MAX_RISK_SCORE = 100
    REJECT_THRESHOLD = 70


def _kmh(speed_mps: float) -> int:
    return round(speed_mps * 3.6)


def _whole(value: float) -> float:
    """Round for display; overflowed values are shown as-is."""
    return round(value) if math.isfinite(value) else value


def _finite(value: float) -> Optional[float]:
    """Flag data must stay JSON-serializable."""
    return value if math.isfinite(value) else None


# =============================================================================
# Telemetry Analysis Service
# =============================================================================


class TelemetryAnalysisService:
    """
    Score a telemetry sequence against a campaign geofence.

    All checks are independent and run regardless of earlier findings, except
    that fewer than two readings short-circuits the analysis.
    """

    def __init__(self, clock: Clock = now_ms):
        self._clock = clock

    def analyze(
        self,
        telemetry: list[GPSTelemetry],
        campaign: Campaign,
        user_id: Optional[str] = None,
    ) -> TelemetryAnalysis:
        """
        Analyze telemetry and return flags with a risk score (0-100).

        Never raises on implausible readings; they become flags instead.
        """
        if len(telemetry) < FraudConfig.MIN_TELEMETRY_SAMPLES:
            flag = FraudFlag(
                type=FraudFlagType.GPS_SPOOF,
                severity=Severity.CRITICAL,
                message="Insufficient telemetry data - possible single-point spoof",
                data={"samples": len(telemetry)},
            )
            return TelemetryAnalysis(flags=[flag], risk_score=FraudConfig.SCORE_INSUFFICIENT_DATA)

        readings = sorted(telemetry, key=lambda t: t.timestamp)

        score = 0
        flags: list[FraudFlag] = []
        for check in (
            self._check_speed,
            self._check_accuracy,
            self._check_static_coordinates,
            self._check_timestamp_drift,
            self._check_altitude,
        ):
            check_score, check_flags = check(readings)
            score += check_score
            flags.extend(check_flags)

        dwell_score, dwell_flags = self._check_dwell_time(readings, campaign)
        score += dwell_score
        flags.extend(dwell_flags)

        risk_score = min(score, FraudConfig.MAX_RISK_SCORE)
        if flags:
            logger.info(
                "telemetry_flagged",
                user=(user_id or "")[:8],
                campaign=campaign.id[:8],
                risk_score=risk_score,
                flags=[f.type.value for f in flags],
            )
        return TelemetryAnalysis(flags=flags, risk_score=risk_score)

    def _check_speed(self, readings: list[GPSTelemetry]) -> tuple[int, list[FraudFlag]]:
        """Flag every consecutive pair that moves faster than physically plausible."""
        score = 0
        flags = []

        for prev, curr in zip(readings, readings[1:]):
            time_delta = (curr.timestamp - prev.timestamp) / 1000
            if time_delta <= 0:
                continue

            distance = haversine_distance(prev.latitude, prev.longitude, curr.latitude, curr.longitude)
            speed = distance / time_delta

            if speed > FraudConfig.MAX_POSSIBLE_SPEED:
                flags.append(
                    FraudFlag(
                        type=FraudFlagType.IMPOSSIBLE_SPEED,
                        severity=Severity.CRITICAL,
                        message=f"Teleportation detected: {_kmh(speed)} km/h between readings",
                        data={"speed": speed, "distance": distance, "time_delta": time_delta},
                    )
                )
                score += FraudConfig.SCORE_TELEPORT
            elif speed > FraudConfig.DRIVING_SPEED and distance > FraudConfig.MIN_SUSPICIOUS_HOP_METERS:
                flags.append(
                    FraudFlag(
                        type=FraudFlagType.IMPOSSIBLE_SPEED,
                        severity=Severity.HIGH,
                        message=f"Suspicious speed: {_kmh(speed)} km/h",
                        data={"speed": speed, "distance": distance},
                    )
                )
                score += FraudConfig.SCORE_SUSPICIOUS_SPEED

        return score, flags

    def _check_accuracy(self, readings: list[GPSTelemetry]) -> tuple[int, list[FraudFlag]]:
        """Real receivers drift smoothly; a reading far from the mean is suspicious."""
        accuracies = [t.accuracy for t in readings]
        avg_accuracy = sum(accuracies) / len(accuracies)

        if any(abs(a - avg_accuracy) > FraudConfig.ACCURACY_DEVIATION_METERS for a in accuracies):
            flag = FraudFlag(
                type=FraudFlagType.ACCURACY_ANOMALY,
                severity=Severity.MEDIUM,
                message="GPS accuracy fluctuating abnormally",
                data={"avg_accuracy": _finite(avg_accuracy), "accuracies": accuracies},
            )
            return FraudConfig.SCORE_ACCURACY_ANOMALY, [flag]
        return 0, []

    def _check_static_coordinates(self, readings: list[GPSTelemetry]) -> tuple[int, list[FraudFlag]]:
        """Bit-identical coordinates across many readings only come from a mock provider."""
        if len(readings) < FraudConfig.STATIC_SPOOF_MIN_SAMPLES:
            return 0, []

        first = readings[0]
        if all(t.latitude == first.latitude and t.longitude == first.longitude for t in readings):
            flag = FraudFlag(
                type=FraudFlagType.GPS_SPOOF,
                severity=Severity.CRITICAL,
                message="Coordinates are perfectly static - definite spoof",
            )
            return FraudConfig.SCORE_STATIC_SPOOF, [flag]
        return 0, []

    def _check_timestamp_drift(self, readings: list[GPSTelemetry]) -> tuple[int, list[FraudFlag]]:
        drift = abs(self._clock() - readings[-1].timestamp)

        if drift > FraudConfig.MAX_CLOCK_DRIFT_MS:
            flag = FraudFlag(
                type=FraudFlagType.TIMESTAMP_DRIFT,
                severity=Severity.MEDIUM,
                message=f"Client clock drift: {round(drift / 1000)}s",
                data={"drift": drift},
            )
            return FraudConfig.SCORE_TIMESTAMP_DRIFT, [flag]
        return 0, []

    def _check_altitude(self, readings: list[GPSTelemetry]) -> tuple[int, list[FraudFlag]]:
        altitudes = [t.altitude for t in readings if t.altitude is not None]
        if len(altitudes) < FraudConfig.MIN_ALTITUDE_SAMPLES:
            return 0, []

        altitude_range = max(altitudes) - min(altitudes)
        if altitude_range > FraudConfig.MAX_ALTITUDE_RANGE_METERS:
            flag = FraudFlag(
                type=FraudFlagType.ALTITUDE_MISMATCH,
                severity=Severity.MEDIUM,
                message=f"Altitude variance of {_whole(altitude_range)}m is suspicious",
                data={"altitude_range": _finite(altitude_range)},
            )
            return FraudConfig.SCORE_ALTITUDE_MISMATCH, [flag]
        return 0, []

    def _check_dwell_time(
        self,
        readings: list[GPSTelemetry],
        campaign: Campaign,
    ) -> tuple[int, list[FraudFlag]]:
        """Time between the first and last in-zone reading must cover the required dwell."""
        zone_radius = campaign.radius + FraudConfig.ZONE_GRACE_METERS
        in_zone = [
            t
            for t in readings
            if haversine_distance(t.latitude, t.longitude, campaign.coordinates.lat, campaign.coordinates.lng)
            <= zone_radius
        ]

        actual_dwell = (in_zone[-1].timestamp - in_zone[0].timestamp) / 1000 if len(in_zone) > 1 else 0

        if actual_dwell < campaign.dwell_time_required * FraudConfig.DWELL_TOLERANCE:
            flag = FraudFlag(
                type=FraudFlagType.GPS_SPOOF,
                severity=Severity.HIGH,
                message=(
                    f"Dwell time {round(actual_dwell)}s is below required "
                    f"{round(campaign.dwell_time_required)}s"
                ),
                data={"actual_dwell_time": actual_dwell, "required": campaign.dwell_time_required},
            )
            return FraudConfig.SCORE_DWELL_SHORTFALL, [flag]
        return 0, []
