from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

SLUG_PATTERN = r"^[A-Za-z0-9_-]+$"


class Link(BaseModel):
    """Public short link model matching the database schema."""

    id: int
    slug: str = Field(pattern=SLUG_PATTERN)  # globally unique
    campaign_id: int
    fallback_url: Optional[str] = None

    # Metadata
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
