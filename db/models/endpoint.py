from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class Endpoint(BaseModel):
    """Endpoint model matching the database schema."""

    id: int
    campaign_id: int
    url: str
    priority: int = 0  # lower = tried first

    # Health snapshot (the only fields the engine writes)
    is_active: bool = True
    consecutive_failures: int = Field(default=0, ge=0)
    last_error: Optional[str] = None
    last_checked_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None

    # Metadata
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class EndpointHealthUpdate(BaseModel):
    """Result of an atomic health write.

    was_active and previous_failures are read under the same row lock as the
    update, so transitions can be detected without a race.
    """

    endpoint: Endpoint
    was_active: bool
    previous_failures: int

    @property
    def deactivated(self) -> bool:
        """This update flipped is_active true -> false."""
        return self.was_active and not self.endpoint.is_active

    @property
    def recovered(self) -> bool:
        """Success after the endpoint was degraded or deactivated."""
        return self.endpoint.is_active and (self.previous_failures > 0 or not self.was_active)
