"""
Pytest fixtures for GeoVerify backend tests.
"""

import os
from collections.abc import AsyncGenerator, Callable
from typing import Any, Optional

import pytest
from httpx import ASGITransport, AsyncClient

# Set test environment variables before importing app
os.environ.setdefault("TOTP_SECRET", "test-totp-secret-for-testing")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")

from core.otp import OneTimeCodeEngine  # noqa: E402
from schemas.campaign import Campaign, Coordinates  # noqa: E402
from schemas.verification import GPSTelemetry, VerificationRequest  # noqa: E402

# Monday 2024-01-15 10:00:00 UTC (13:00 in Africa/Nairobi)
MONDAY_10_UTC_MS = 1_705_312_800_000

CENTER_LAT = -1.2921
CENTER_LNG = 36.8219


class FakeClock:
    """Controllable epoch-millisecond clock."""

    def __init__(self, now: int = MONDAY_10_UTC_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def walk_telemetry(
    end_ms: int,
    count: int = 12,
    interval_ms: int = 30_000,
    lat: float = CENTER_LAT,
    lng: float = CENTER_LNG,
    accuracy: float = 10.0,
) -> list[GPSTelemetry]:
    """
    Readings of someone pottering around a point at walking pace.

    The last reading is 5 seconds before end_ms.
    """
    start = end_ms - 5_000 - (count - 1) * interval_ms
    readings = []
    for i in range(count):
        # Jitter of roughly a meter so no two readings are identical
        offset = ((i % 3) - 1) * 0.00001
        readings.append(
            GPSTelemetry(
                latitude=lat + offset,
                longitude=lng + (i % 2) * 0.00001,
                accuracy=accuracy + (i % 4),
                timestamp=start + i * interval_ms,
            )
        )
    return readings


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def code_engine(clock: FakeClock) -> OneTimeCodeEngine:
    return OneTimeCodeEngine("test-signing-secret", clock=clock)


@pytest.fixture
def campaign(clock: FakeClock) -> Campaign:
    """An active campaign requiring five minutes inside a 100m geofence."""
    return Campaign(
        id="c_test_campaign",
        title="Coffee on us",
        coordinates=Coordinates(lat=CENTER_LAT, lng=CENTER_LNG),
        radius=100,
        dwell_time_required=300,
        reward="Free coffee",
        expiry_date=clock.now + 7 * 24 * 60 * 60 * 1000,
        active=True,
    )


@pytest.fixture
def make_request(clock: FakeClock) -> Callable[..., VerificationRequest]:
    """Factory for verification requests with legitimate telemetry by default."""

    def _make(
        session_id: str = "sess_1",
        user_id: str = "user-123",
        campaign_id: str = "c_test_campaign",
        telemetry: Optional[list[GPSTelemetry]] = None,
        client_timestamp: Optional[int] = None,
    ) -> VerificationRequest:
        return VerificationRequest(
            session_id=session_id,
            user_id=user_id,
            campaign_id=campaign_id,
            telemetry=telemetry if telemetry is not None else walk_telemetry(clock.now),
            device_fingerprint="fp-abc",
            client_timestamp=client_timestamp if client_timestamp is not None else clock.now,
        )

    return _make


@pytest.fixture
async def app() -> Any:
    """Create FastAPI application for testing."""
    from main import app as fastapi_app

    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
async def client(app: Any) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
