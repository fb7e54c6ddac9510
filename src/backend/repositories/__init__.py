"""Repository modules for campaign lookup."""

from repositories.campaign_repository import (
    CampaignRepositoryProtocol,
    InMemoryCampaignRepository,
    get_campaign_repository,
)

__all__ = [
    "CampaignRepositoryProtocol",
    "InMemoryCampaignRepository",
    "get_campaign_repository",
]
