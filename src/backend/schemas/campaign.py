"""
Campaign-related Pydantic schemas.

Campaigns are owned by the campaign store; the verification engine only reads them.
"""

from typing import Optional

from pydantic import BaseModel, Field


class Coordinates(BaseModel):
    """A point in WGS84 degrees."""

    lat: float
    lng: float


class BusinessHours(BaseModel):
    """Opening window for one day of the week (0 = Sunday, 6 = Saturday)."""

    day_of_week: int = Field(..., ge=0, le=6)
    open_time: str = Field(..., pattern=r"^\d{2}:\d{2}$", description="Local time, HH:MM")
    close_time: str = Field(..., pattern=r"^\d{2}:\d{2}$", description="Local time, HH:MM")


class CampaignBase(BaseModel):
    """Fields supplied when a campaign is created."""

    title: str = ""
    description: str = ""
    coordinates: Coordinates
    radius: float = Field(..., gt=0, description="Geofence radius in meters")
    dwell_time_required: float = Field(..., gt=0, description="Required dwell in seconds")
    reward: str = ""
    image: str = ""
    expiry_date: int = Field(..., description="Epoch milliseconds")
    active: bool = True
    business_id: Optional[str] = None
    business_hours: Optional[list[BusinessHours]] = None
    timezone: Optional[str] = None


class CampaignCreate(CampaignBase):
    """Schema for creating a campaign."""


class CampaignUpdate(BaseModel):
    """Partial update; only fields present in the request are applied."""

    title: Optional[str] = None
    description: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    radius: Optional[float] = Field(None, gt=0)
    dwell_time_required: Optional[float] = Field(None, gt=0)
    reward: Optional[str] = None
    image: Optional[str] = None
    expiry_date: Optional[int] = None
    active: Optional[bool] = None
    business_id: Optional[str] = None
    business_hours: Optional[list[BusinessHours]] = None
    timezone: Optional[str] = None


class Campaign(CampaignBase):
    """A stored campaign."""

    id: str
    geohash: Optional[str] = None

    model_config = {"from_attributes": True}

    def is_available(self, now_ms: int) -> bool:
        """Whether the campaign is active and not yet expired."""
        return self.active and self.expiry_date > now_ms


class NearbyCampaign(BaseModel):
    """A campaign returned from a proximity search."""

    campaign: Campaign
    distance_meters: float
