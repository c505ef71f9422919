from db.models.campaign import Campaign
from db.models.endpoint import Endpoint, EndpointHealthUpdate
from db.models.link import Link

__all__ = [
    "Campaign",
    "Endpoint",
    "EndpointHealthUpdate",
    "Link",
]
