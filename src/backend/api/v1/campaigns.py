"""
Campaign endpoints.

CRUD surface over the campaign repository, including the geohash-backed
proximity search clients use to find campaigns around them.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ValidationError

from api.deps import get_campaign_repository
from repositories.campaign_repository import CampaignRepositoryProtocol
from schemas.campaign import Campaign, CampaignCreate, CampaignUpdate, Coordinates, NearbyCampaign

router = APIRouter()

CampaignRepo = Annotated[CampaignRepositoryProtocol, Depends(get_campaign_repository)]


class DeleteResponse(BaseModel):
    success: bool


@router.get("", response_model=list[Campaign])
async def list_campaigns(campaigns: CampaignRepo) -> list[Campaign]:
    """List active, unexpired campaigns."""
    return await campaigns.list_active()


@router.get("/nearby", response_model=list[NearbyCampaign])
async def find_nearby_campaigns(
    campaigns: CampaignRepo,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius: float = Query(1000, gt=0, le=50_000, description="Search radius in meters"),
) -> list[NearbyCampaign]:
    """Find available campaigns near a point, nearest first."""
    return await campaigns.find_nearby(Coordinates(lat=lat, lng=lng), radius)


@router.get("/{campaign_id}", response_model=Campaign)
async def get_campaign(campaign_id: str, campaigns: CampaignRepo) -> Campaign:
    campaign = await campaigns.get_by_id(campaign_id)
    if campaign is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Campaign not found")
    return campaign


@router.post("", response_model=Campaign, status_code=status.HTTP_201_CREATED)
async def create_campaign(data: CampaignCreate, campaigns: CampaignRepo) -> Campaign:
    return await campaigns.create(data)


@router.put("/{campaign_id}", response_model=Campaign)
async def update_campaign(campaign_id: str, data: CampaignUpdate, campaigns: CampaignRepo) -> Campaign:
    """
    Update a campaign.

    Moving the campaign re-computes its geohash.
    """
    try:
        updated = await campaigns.update(campaign_id, **data.model_dump(exclude_unset=True))
    except ValidationError as e:
        # e.g. an explicit null for a required field
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid campaign update") from e
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Campaign not found")
    return updated


@router.delete("/{campaign_id}", response_model=DeleteResponse)
async def delete_campaign(campaign_id: str, campaigns: CampaignRepo) -> DeleteResponse:
    if not await campaigns.delete(campaign_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Campaign not found")
    return DeleteResponse(success=True)
