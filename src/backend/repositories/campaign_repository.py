"""
Campaign repository.

Campaign persistence lives outside the verification engine; this module
defines the interface the engine and API depend on plus an in-process
implementation used for local development and tests.
"""

import asyncio
import secrets
from typing import Optional, Protocol, runtime_checkable

import structlog

from core.clock import now_ms
from core.geohash import DEFAULT_PRECISION, encode_geohash, get_geohashes_for_radius, haversine_distance
from schemas.campaign import Campaign, CampaignCreate, Coordinates, NearbyCampaign

logger = structlog.get_logger(__name__)


@runtime_checkable
class CampaignRepositoryProtocol(Protocol):
    """Protocol defining campaign repository operations."""

    async def get_by_id(self, campaign_id: str) -> Optional[Campaign]: ...
    async def list_active(self) -> list[Campaign]: ...
    async def create(self, data: CampaignCreate) -> Campaign: ...
    async def update(self, campaign_id: str, **updates) -> Optional[Campaign]: ...
    async def delete(self, campaign_id: str) -> bool: ...
    async def find_nearby(self, point: Coordinates, radius_meters: float) -> list[NearbyCampaign]: ...


class InMemoryCampaignRepository:
    """
    Repository for campaigns held in process memory.

    Each campaign is indexed by its precision-7 geohash so proximity queries
    only scan the cells returned by get_geohashes_for_radius.
    """

    def __init__(self) -> None:
        self._campaigns: dict[str, Campaign] = {}
        self._lock = asyncio.Lock()

    async def get_by_id(self, campaign_id: str) -> Optional[Campaign]:
        return self._campaigns.get(campaign_id)

    async def list_active(self) -> list[Campaign]:
        """Get campaigns that are active and not expired."""
        now = now_ms()
        return [c for c in self._campaigns.values() if c.is_available(now)]

    async def create(self, data: CampaignCreate) -> Campaign:
        """Store a campaign, assigning its id and geohash."""
        campaign = Campaign(
            **data.model_dump(),
            id=f"c_{now_ms()}_{secrets.token_hex(4)}",
            geohash=encode_geohash(data.coordinates.lat, data.coordinates.lng, DEFAULT_PRECISION),
        )
        async with self._lock:
            self._campaigns[campaign.id] = campaign
        logger.info("campaign_created", campaign=campaign.id, geohash=campaign.geohash)
        return campaign

    async def update(self, campaign_id: str, **updates) -> Optional[Campaign]:
        """
        Apply a partial update.

        Re-computes the geohash when coordinates change.
        """
        async with self._lock:
            campaign = self._campaigns.get(campaign_id)
            if campaign is None:
                return None

            merged = campaign.model_dump()
            merged.update(updates)
            if "coordinates" in updates:
                coordinates = Coordinates.model_validate(merged["coordinates"])
                merged["geohash"] = encode_geohash(coordinates.lat, coordinates.lng, DEFAULT_PRECISION)

            updated = Campaign.model_validate(merged)
            self._campaigns[campaign_id] = updated
        return updated

    async def delete(self, campaign_id: str) -> bool:
        async with self._lock:
            return self._campaigns.pop(campaign_id, None) is not None

    async def find_nearby(self, point: Coordinates, radius_meters: float) -> list[NearbyCampaign]:
        """
        Find available campaigns whose center lies within radius_meters of a point.

        Returns:
            Matches sorted by distance, nearest first
        """
        cells = get_geohashes_for_radius(point.lat, point.lng, radius_meters)
        now = now_ms()

        matches = []
        for campaign in self._campaigns.values():
            if not campaign.geohash or not campaign.geohash.startswith(tuple(cells)):
                continue
            if not campaign.is_available(now):
                continue
            distance = haversine_distance(
                point.lat, point.lng, campaign.coordinates.lat, campaign.coordinates.lng
            )
            if distance <= radius_meters:
                matches.append(NearbyCampaign(campaign=campaign, distance_meters=distance))

        return sorted(matches, key=lambda m: m.distance_meters)


_campaign_repository = InMemoryCampaignRepository()


def get_campaign_repository() -> CampaignRepositoryProtocol:
    """Get the configured campaign repository."""
    return _campaign_repository
