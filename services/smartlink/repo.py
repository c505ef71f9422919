"""Smart-link repository: database operations for resolution and health.

The engine only reads campaigns/endpoints/links and writes the endpoint
health columns. Health writes are single atomic statements so concurrent
resolutions and the auto-checker never lose an increment.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional

from db.client import queries, get_conn
from db.models.campaign import Campaign
from db.models.endpoint import Endpoint, EndpointHealthUpdate
from db.models.link import Link


class IRepo(ABC):
    """Interface for smart-link storage."""

    @abstractmethod
    async def find_link_by_slug(self, slug: str) -> Optional[Link]:
        """Exact, case-sensitive slug lookup."""
        pass

    @abstractmethod
    async def get_campaign(self, campaign_id: int) -> Optional[Campaign]:
        """Campaign without endpoints/links populated."""
        pass

    @abstractmethod
    async def get_endpoint(self, endpoint_id: int) -> Optional[Endpoint]:
        pass

    @abstractmethod
    async def list_endpoints_for_campaign(self, campaign_id: int) -> List[Endpoint]:
        pass

    @abstractmethod
    async def list_campaigns_with_auto_check_enabled(self) -> List[Campaign]:
        """Campaigns with auto-check on, each with endpoints and links loaded."""
        pass

    @abstractmethod
    async def mark_endpoint_success(self, endpoint_id: int, at: datetime) -> Optional[EndpointHealthUpdate]:
        """Reset failures, clear error, reactivate, stamp last_used/checked."""
        pass

    @abstractmethod
    async def mark_endpoint_failure(
        self,
        endpoint_id: int,
        error: str,
        at: datetime,
        threshold: int,
    ) -> Optional[EndpointHealthUpdate]:
        """Increment failures atomically, deactivating at the threshold."""
        pass


def _health_update(row) -> Optional[EndpointHealthUpdate]:
    if not row:
        return None
    data = dict(row)
    was_active = data.pop("was_active")
    previous_failures = data.pop("previous_failures")
    return EndpointHealthUpdate(
        endpoint=Endpoint.model_validate(data),
        was_active=was_active,
        previous_failures=previous_failures,
    )


class SmartLinkRepo(IRepo):
    """Postgres implementation (asyncpg + aiosql)."""

    async def find_link_by_slug(self, slug: str) -> Optional[Link]:
        async with get_conn() as conn:
            result = await queries.find_link_by_slug(conn, slug=slug)
            if result:
                return Link.model_validate(dict(result))
            return None

    async def get_campaign(self, campaign_id: int) -> Optional[Campaign]:
        async with get_conn() as conn:
            result = await queries.get_campaign(conn, campaign_id=campaign_id)
            if result:
                return Campaign.model_validate(dict(result))
            return None

    async def get_endpoint(self, endpoint_id: int) -> Optional[Endpoint]:
        async with get_conn() as conn:
            result = await queries.get_endpoint(conn, endpoint_id=endpoint_id)
            if result:
                return Endpoint.model_validate(dict(result))
            return None

    async def list_endpoints_for_campaign(self, campaign_id: int) -> List[Endpoint]:
        async with get_conn() as conn:
            results = await queries.list_endpoints_for_campaign(conn, campaign_id=campaign_id)
            return [Endpoint.model_validate(dict(row)) for row in results]

    async def list_campaigns_with_auto_check_enabled(self) -> List[Campaign]:
        async with get_conn() as conn:
            campaign_rows = await queries.list_auto_check_campaigns(conn)
            if not campaign_rows:
                return []
            ids = [row["id"] for row in campaign_rows]
            endpoint_rows = await queries.list_endpoints_for_campaigns(conn, campaign_ids=ids)
            link_rows = await queries.list_links_for_campaigns(conn, campaign_ids=ids)

        endpoints: Dict[int, List[Endpoint]] = defaultdict(list)
        for row in endpoint_rows:
            endpoints[row["campaign_id"]].append(Endpoint.model_validate(dict(row)))
        links: Dict[int, List[Link]] = defaultdict(list)
        for row in link_rows:
            links[row["campaign_id"]].append(Link.model_validate(dict(row)))

        return [
            Campaign.model_validate({
                **dict(row),
                "endpoints": endpoints.get(row["id"], []),
                "links": links.get(row["id"], []),
            })
            for row in campaign_rows
        ]

    async def mark_endpoint_success(self, endpoint_id: int, at: datetime) -> Optional[EndpointHealthUpdate]:
        async with get_conn() as conn:
            result = await queries.mark_endpoint_success(conn, endpoint_id=endpoint_id, checked_at=at)
            return _health_update(result)

    async def mark_endpoint_failure(
        self,
        endpoint_id: int,
        error: str,
        at: datetime,
        threshold: int,
    ) -> Optional[EndpointHealthUpdate]:
        async with get_conn() as conn:
            result = await queries.mark_endpoint_failure(
                conn, endpoint_id=endpoint_id, error=error, checked_at=at, threshold=threshold,
            )
            return _health_update(result)


class MockRepo(IRepo):
    """In-memory repo for unit testing.

    Holds plain dicts of models; updates replace the stored Endpoint so
    callers never see their copies mutated.
    """

    def __init__(
        self,
        campaigns: Optional[List[Campaign]] = None,
        endpoints: Optional[List[Endpoint]] = None,
        links: Optional[List[Link]] = None,
    ):
        self.campaigns: Dict[int, Campaign] = {c.id: c for c in campaigns or []}
        self.endpoints: Dict[int, Endpoint] = {e.id: e for e in endpoints or []}
        self.links: Dict[str, Link] = {link.slug: link for link in links or []}
        self.fail_with: Optional[Exception] = None  # raise from every call when set
        self.success_calls: List[int] = []
        self.failure_calls: List[int] = []

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def find_link_by_slug(self, slug: str) -> Optional[Link]:
        self._check()
        return self.links.get(slug)

    async def get_campaign(self, campaign_id: int) -> Optional[Campaign]:
        self._check()
        campaign = self.campaigns.get(campaign_id)
        return campaign.model_copy(update={"endpoints": [], "links": []}) if campaign else None

    async def get_endpoint(self, endpoint_id: int) -> Optional[Endpoint]:
        self._check()
        return self.endpoints.get(endpoint_id)

    async def list_endpoints_for_campaign(self, campaign_id: int) -> List[Endpoint]:
        self._check()
        return [e for e in self.endpoints.values() if e.campaign_id == campaign_id]

    async def list_campaigns_with_auto_check_enabled(self) -> List[Campaign]:
        self._check()
        return [
            c.model_copy(update={
                "endpoints": [e for e in self.endpoints.values() if e.campaign_id == c.id],
                "links": [link for link in self.links.values() if link.campaign_id == c.id],
            })
            for c in self.campaigns.values()
            if c.auto_check_enabled
        ]

    async def mark_endpoint_success(self, endpoint_id: int, at: datetime) -> Optional[EndpointHealthUpdate]:
        self._check()
        prev = self.endpoints.get(endpoint_id)
        if prev is None:
            return None
        self.success_calls.append(endpoint_id)
        updated = prev.model_copy(update={
            "consecutive_failures": 0,
            "last_error": None,
            "is_active": True,
            "last_used_at": at,
            "last_checked_at": at,
        })
        self.endpoints[endpoint_id] = updated
        return EndpointHealthUpdate(
            endpoint=updated, was_active=prev.is_active, previous_failures=prev.consecutive_failures,
        )

    async def mark_endpoint_failure(
        self,
        endpoint_id: int,
        error: str,
        at: datetime,
        threshold: int,
    ) -> Optional[EndpointHealthUpdate]:
        self._check()
        prev = self.endpoints.get(endpoint_id)
        if prev is None:
            return None
        self.failure_calls.append(endpoint_id)
        failures = prev.consecutive_failures + 1
        updated = prev.model_copy(update={
            "consecutive_failures": failures,
            "last_error": error,
            "last_checked_at": at,
            "is_active": False if failures >= threshold else prev.is_active,
        })
        self.endpoints[endpoint_id] = updated
        return EndpointHealthUpdate(
            endpoint=updated, was_active=prev.is_active, previous_failures=prev.consecutive_failures,
        )
