from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from db.models.endpoint import Endpoint
from db.models.link import Link


ROTATION_STRATEGIES = ("priority", "priority_desc", "round_robin")


class Campaign(BaseModel):
    """Campaign model matching the database schema.

    Owns a set of endpoints and links. Endpoints/links are only populated by
    queries that load them (auto-checker listing).
    """

    id: int
    name: str

    # Auto-check
    auto_check_enabled: bool = False
    auto_check_interval: int = Field(default=60, ge=5)  # seconds

    rotation_strategy: str = "priority"

    endpoints: List[Endpoint] = Field(default_factory=list)
    links: List[Link] = Field(default_factory=list)

    # Metadata
    created_at: Optional[datetime] = None

    @field_validator("rotation_strategy", mode="before")
    @classmethod
    def strategy_none_to_default(cls, v):
        """Handle NULL from database by defaulting to priority."""
        return v if v is not None else "priority"

    model_config = ConfigDict(from_attributes=True)

    @property
    def primary_slug(self) -> str:
        """Slug used in alerts; "?" when the campaign has no link."""
        return self.links[0].slug if self.links else "?"
