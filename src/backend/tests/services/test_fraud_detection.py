"""
Tests for Telemetry Fraud Detection Service.

Tests the GPS telemetry checks including:
- Insufficient data short-circuit
- Impossible speed
- Accuracy anomalies
- Perfectly static coordinates
- Clock drift and altitude consistency
- Dwell time
"""

import pytest
from conftest import CENTER_LAT, CENTER_LNG, walk_telemetry
from pydantic import ValidationError

from schemas.verification import FraudFlagType, GPSTelemetry, Severity
from services.fraud_detection import FraudConfig, TelemetryAnalysisService


def reading(timestamp: int, lat: float = CENTER_LAT, lng: float = CENTER_LNG, **kwargs) -> GPSTelemetry:
    kwargs.setdefault("accuracy", 10.0)
    return GPSTelemetry(latitude=lat, longitude=lng, timestamp=timestamp, **kwargs)


def flag_types(analysis) -> list[FraudFlagType]:
    return [f.type for f in analysis.flags]


@pytest.fixture
def service(clock):
    return TelemetryAnalysisService(clock=clock)


class TestFlagTypes:
    """Every declared flag type is one the pipeline can raise."""

    def test_declared_types(self):
        assert {t.value for t in FraudFlagType} == {
            "IMPOSSIBLE_SPEED",
            "GPS_SPOOF",
            "ACCURACY_ANOMALY",
            "TIMESTAMP_DRIFT",
            "ALTITUDE_MISMATCH",
            "BUSINESS_HOURS",
            "REPLAY_ATTACK",
        }


class TestInsufficientData:
    """Fewer than two readings short-circuits the analysis."""

    def test_single_reading(self, service, campaign, clock):
        analysis = service.analyze([reading(clock.now)], campaign, "user-1")

        assert analysis.risk_score == 40
        assert len(analysis.flags) == 1
        assert analysis.flags[0].type == FraudFlagType.GPS_SPOOF
        assert analysis.flags[0].severity == Severity.CRITICAL
        assert "single-point spoof" in analysis.flags[0].message

    def test_no_readings(self, service, campaign):
        analysis = service.analyze([], campaign, "user-1")

        assert analysis.risk_score == 40
        assert flag_types(analysis) == [FraudFlagType.GPS_SPOOF]

    def test_other_checks_skipped(self, service, campaign, clock):
        """A single stale, inaccurate reading still only scores 40."""
        stale = reading(clock.now - 10 * 60_000, accuracy=500.0, lat=10.0, lng=10.0)
        analysis = service.analyze([stale], campaign, "user-1")

        assert analysis.risk_score == 40
        assert len(analysis.flags) == 1


class TestLegitimateTelemetry:
    """A genuine visit should pass cleanly."""

    def test_walk_scores_zero(self, service, campaign, clock):
        analysis = service.analyze(walk_telemetry(clock.now), campaign, "user-1")

        assert analysis.risk_score == 0
        assert analysis.flags == []

    def test_unordered_readings_are_sorted(self, service, campaign, clock):
        readings = walk_telemetry(clock.now)
        shuffled = readings[::2] + readings[1::2]

        analysis = service.analyze(shuffled, campaign, "user-1")

        assert analysis.risk_score == 0
        assert analysis.flags == []


class TestImpossibleSpeed:
    """Tests for the speed check."""

    def test_teleport_200km_in_one_second(self, service, campaign, clock):
        readings = [
            reading(clock.now - 1_000),
            reading(clock.now, lat=CENTER_LAT + 1.8),  # ~200km north
        ]

        analysis = service.analyze(readings, campaign, "user-1")

        speed_flags = [f for f in analysis.flags if f.type == FraudFlagType.IMPOSSIBLE_SPEED]
        assert len(speed_flags) == 1
        assert speed_flags[0].severity == Severity.CRITICAL
        assert "Teleportation detected" in speed_flags[0].message
        assert analysis.risk_score == 100

    def test_driving_speed_over_long_hop(self, service, clock, campaign):
        """~500m in 10s is 50 m/s: suspicious but possible."""
        big_zone = campaign.model_copy(update={"radius": 1000})
        readings = [
            reading(clock.now - 10_000),
            reading(clock.now, lat=CENTER_LAT + 0.0045),
        ]

        analysis = service.analyze(readings, big_zone, "user-1")

        speed_flags = [f for f in analysis.flags if f.type == FraudFlagType.IMPOSSIBLE_SPEED]
        assert len(speed_flags) == 1
        assert speed_flags[0].severity == Severity.HIGH
        # +30 speed, +35 dwell shortfall (10s of 300s)
        assert analysis.risk_score == 65

    def test_fast_short_hop_is_jitter(self, service, campaign, clock):
        """50m in one second is above driving speed but under the hop minimum."""
        readings = walk_telemetry(clock.now)
        readings.append(reading(readings[-1].timestamp + 1_000, lat=CENTER_LAT + 0.00045))

        analysis = service.analyze(readings, campaign, "user-1")

        assert FraudFlagType.IMPOSSIBLE_SPEED not in flag_types(analysis)

    def test_each_pair_flagged(self, service, campaign, clock):
        readings = [
            reading(clock.now - 2_000),
            reading(clock.now - 1_000, lat=CENTER_LAT + 1.0),
            reading(clock.now),
        ]

        analysis = service.analyze(readings, campaign, "user-1")

        assert flag_types(analysis).count(FraudFlagType.IMPOSSIBLE_SPEED) == 2
        assert analysis.risk_score == 100

    def test_duplicate_and_backwards_timestamps_skipped(self, service, campaign, clock):
        readings = [
            reading(clock.now - 5_000),
            reading(clock.now - 5_000, lat=CENTER_LAT + 1.0),
        ]

        analysis = service.analyze(readings, campaign, "user-1")

        assert FraudFlagType.IMPOSSIBLE_SPEED not in flag_types(analysis)


class TestAccuracyAnomaly:
    """Tests for the accuracy check."""

    def test_single_wild_reading(self, service, campaign, clock):
        readings = walk_telemetry(clock.now)
        readings[3] = readings[3].model_copy(update={"accuracy": 300.0})

        analysis = service.analyze(readings, campaign, "user-1")

        assert flag_types(analysis) == [FraudFlagType.ACCURACY_ANOMALY]
        assert analysis.flags[0].severity == Severity.MEDIUM
        assert analysis.risk_score == 20

    def test_flagged_once_for_many_outliers(self, service, campaign, clock):
        readings = walk_telemetry(clock.now)
        for i in range(0, len(readings), 2):
            readings[i] = readings[i].model_copy(update={"accuracy": 200.0})

        analysis = service.analyze(readings, campaign, "user-1")

        assert flag_types(analysis).count(FraudFlagType.ACCURACY_ANOMALY) == 1

    def test_negative_accuracy_does_not_raise(self, service, campaign, clock):
        readings = walk_telemetry(clock.now, accuracy=-5.0)

        analysis = service.analyze(readings, campaign, "user-1")

        assert 0 <= analysis.risk_score <= 100


class TestStaticCoordinates:
    """Tests for the perfect-coordinate spoof check."""

    def _static(self, clock, count):
        start = clock.now - 5_000 - (count - 1) * 60_000
        return [reading(start + i * 60_000) for i in range(count)]

    def test_six_identical_readings(self, service, campaign, clock):
        analysis = service.analyze(self._static(clock, 6), campaign, "user-1")

        spoof = [f for f in analysis.flags if "perfectly static" in f.message]
        assert len(spoof) == 1
        assert spoof[0].type == FraudFlagType.GPS_SPOOF
        assert spoof[0].severity == Severity.CRITICAL
        assert analysis.risk_score == 100

    def test_five_identical_readings_not_flagged(self, service, campaign, clock):
        analysis = service.analyze(self._static(clock, 5), campaign, "user-1")

        assert not any("perfectly static" in f.message for f in analysis.flags)


class TestTimestampDrift:
    """Tests for the clock drift check."""

    def test_stale_telemetry(self, service, campaign, clock):
        readings = walk_telemetry(clock.now - 2 * 60_000)

        analysis = service.analyze(readings, campaign, "user-1")

        assert flag_types(analysis) == [FraudFlagType.TIMESTAMP_DRIFT]
        assert analysis.risk_score == 25

    def test_future_telemetry(self, service, campaign, clock):
        readings = walk_telemetry(clock.now + 5 * 60_000)

        analysis = service.analyze(readings, campaign, "user-1")

        assert FraudFlagType.TIMESTAMP_DRIFT in flag_types(analysis)

    def test_small_drift_allowed(self, service, campaign, clock):
        readings = walk_telemetry(clock.now + 50_000)

        analysis = service.analyze(readings, campaign, "user-1")

        assert FraudFlagType.TIMESTAMP_DRIFT not in flag_types(analysis)


class TestAltitudeConsistency:
    """Tests for the altitude check."""

    def test_large_altitude_range(self, service, campaign, clock):
        readings = walk_telemetry(clock.now)
        for i, altitude in enumerate([1650.0, 1655.0, 2300.0, 1652.0]):
            readings[i] = readings[i].model_copy(update={"altitude": altitude})

        analysis = service.analyze(readings, campaign, "user-1")

        assert flag_types(analysis) == [FraudFlagType.ALTITUDE_MISMATCH]
        assert analysis.risk_score == 15

    def test_needs_more_than_three_altitudes(self, service, campaign, clock):
        readings = walk_telemetry(clock.now)
        for i, altitude in enumerate([1650.0, 3000.0, 1652.0]):
            readings[i] = readings[i].model_copy(update={"altitude": altitude})

        analysis = service.analyze(readings, campaign, "user-1")

        assert FraudFlagType.ALTITUDE_MISMATCH not in flag_types(analysis)


class TestDwellTime:
    """Tests for the dwell time check."""

    def test_never_in_zone(self, service, campaign, clock):
        readings = walk_telemetry(clock.now, lat=CENTER_LAT + 0.02)  # ~2km away

        analysis = service.analyze(readings, campaign, "user-1")

        assert flag_types(analysis) == [FraudFlagType.GPS_SPOOF]
        assert analysis.flags[0].severity == Severity.HIGH
        assert analysis.flags[0].data["actual_dwell_time"] == 0
        assert analysis.risk_score == 35

    def test_short_visit(self, service, campaign, clock):
        readings = walk_telemetry(clock.now, count=5)  # 120 seconds

        analysis = service.analyze(readings, campaign, "user-1")

        assert flag_types(analysis) == [FraudFlagType.GPS_SPOOF]
        assert "below required 300s" in analysis.flags[0].message

    def test_eighty_percent_is_enough(self, service, campaign, clock):
        readings = walk_telemetry(clock.now, count=9)  # 240 seconds

        analysis = service.analyze(readings, campaign, "user-1")

        assert analysis.flags == []

    def test_grace_margin(self, service, campaign, clock):
        """Readings ~115m out count for a 100m zone with 20m grace."""
        readings = walk_telemetry(clock.now, lat=CENTER_LAT + 0.00103)

        analysis = service.analyze(readings, campaign, "user-1")

        assert analysis.flags == []


class TestRiskScore:
    """Tests for score accumulation."""

    def test_clamped_to_maximum(self, service, campaign, clock):
        readings = [reading(clock.now - 3 * 60_000 + i * 1_000, lat=CENTER_LAT + (i % 2)) for i in range(8)]

        analysis = service.analyze(readings, campaign, "user-1")

        assert analysis.risk_score == FraudConfig.MAX_RISK_SCORE

    def test_out_of_range_coordinates_degrade_to_flags(self, service, campaign, clock):
        readings = [reading(clock.now - 1_000, lat=200.0, lng=500.0), reading(clock.now, lat=-300.0)]

        analysis = service.analyze(readings, campaign, "user-1")

        assert 0 <= analysis.risk_score <= 100
        assert analysis.flags

    def test_additive_across_checks(self, service, campaign, clock):
        """Stale (+25), inaccurate (+20) and far away (+35)."""
        readings = walk_telemetry(clock.now - 2 * 60_000, lat=CENTER_LAT + 0.02)
        readings[0] = readings[0].model_copy(update={"accuracy": 400.0})

        analysis = service.analyze(readings, campaign, "user-1")

        assert set(flag_types(analysis)) == {
            FraudFlagType.TIMESTAMP_DRIFT,
            FraudFlagType.ACCURACY_ANOMALY,
            FraudFlagType.GPS_SPOOF,
        }
        assert analysis.risk_score == 80

    def test_extreme_altitudes_flagged_without_overflow(self, service, campaign, clock):
        readings = walk_telemetry(clock.now)
        for i, altitude in enumerate([1e308, -1e308, 0.0, 1.0]):
            readings[i] = readings[i].model_copy(update={"altitude": altitude})

        analysis = service.analyze(readings, campaign, "user-1")

        altitude_flags = [f for f in analysis.flags if f.type == FraudFlagType.ALTITUDE_MISMATCH]
        assert len(altitude_flags) == 1
        assert altitude_flags[0].data["altitude_range"] is None
        assert analysis.risk_score == 15

    def test_extreme_latitudes_degrade_to_flags(self, service, campaign, clock):
        readings = [
            reading(clock.now - 1_000, lat=1e308),
            reading(clock.now, lat=-1e308),
        ]

        analysis = service.analyze(readings, campaign, "user-1")

        assert FraudFlagType.IMPOSSIBLE_SPEED not in flag_types(analysis)
        # One second of evidence can never satisfy the dwell requirement
        assert FraudFlagType.GPS_SPOOF in flag_types(analysis)
        assert 0 <= analysis.risk_score <= 100

    def test_extreme_accuracy_keeps_flag_data_finite(self, service, campaign, clock):
        readings = walk_telemetry(clock.now)
        readings[0] = readings[0].model_copy(update={"accuracy": 1e308})
        readings[1] = readings[1].model_copy(update={"accuracy": 1e308})

        analysis = service.analyze(readings, campaign, "user-1")

        accuracy_flags = [f for f in analysis.flags if f.type == FraudFlagType.ACCURACY_ANOMALY]
        assert len(accuracy_flags) == 1
        assert accuracy_flags[0].data["avg_accuracy"] is None

    @pytest.mark.parametrize("timestamp", [10**400, 2**53 + 1, -(2**53) - 1])
    def test_unrepresentable_timestamp_rejected_at_input(self, timestamp):
        with pytest.raises(ValidationError):
            GPSTelemetry(latitude=CENTER_LAT, longitude=CENTER_LNG, accuracy=10.0, timestamp=timestamp)

    def test_timestamps_at_input_bounds(self, service, campaign):
        readings = [reading(-(2**53)), reading(2**53)]

        analysis = service.analyze(readings, campaign, "user-1")

        assert FraudFlagType.TIMESTAMP_DRIFT in flag_types(analysis)
        assert 0 <= analysis.risk_score <= 100
