"""Unit tests for smart-link repository helpers and the in-memory repo."""

from datetime import datetime, timezone

import pytest

from db.client import queries
from db.models.campaign import Campaign
from db.models.endpoint import Endpoint
from db.models.link import Link
from services.smartlink.repo import MockRepo, _health_update

pytestmark = pytest.mark.no_db

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_sql_queries_loaded():
    for name in (
        "find_link_by_slug",
        "get_campaign",
        "get_endpoint",
        "list_endpoints_for_campaign",
        "list_auto_check_campaigns",
        "list_endpoints_for_campaigns",
        "list_links_for_campaigns",
        "mark_endpoint_success",
        "mark_endpoint_failure",
    ):
        assert hasattr(queries, name), name


def test_health_update_from_row():
    row = {
        "id": 5, "campaign_id": 1, "url": "https://a.example.com/", "priority": 0,
        "is_active": False, "consecutive_failures": 3, "last_error": "Timeout",
        "last_checked_at": NOW, "last_used_at": None, "created_at": NOW,
        "was_active": True, "previous_failures": 2,
    }
    update = _health_update(row)

    assert update.endpoint.id == 5
    assert update.endpoint.is_active is False
    assert update.was_active is True
    assert update.previous_failures == 2
    assert update.deactivated is True
    assert update.recovered is False


def test_health_update_missing_row():
    assert _health_update(None) is None


class TestMockRepo:
    def _repo(self):
        return MockRepo(
            campaigns=[
                Campaign(id=1, name="On", auto_check_enabled=True),
                Campaign(id=2, name="Off"),
            ],
            endpoints=[
                Endpoint(id=1, campaign_id=1, url="https://a.example.com/"),
                Endpoint(id=2, campaign_id=2, url="https://b.example.com/"),
            ],
            links=[Link(id=1, slug="on", campaign_id=1)],
        )

    @pytest.mark.asyncio
    async def test_auto_check_listing_includes_endpoints_and_links(self):
        campaigns = await self._repo().list_campaigns_with_auto_check_enabled()

        assert [c.id for c in campaigns] == [1]
        assert [e.id for e in campaigns[0].endpoints] == [1]
        assert campaigns[0].primary_slug == "on"

    @pytest.mark.asyncio
    async def test_failure_increments_and_deactivates_at_threshold(self):
        repo = self._repo()
        first = await repo.mark_endpoint_failure(1, "Timeout", NOW, threshold=2)
        second = await repo.mark_endpoint_failure(1, "Timeout", NOW, threshold=2)

        assert first.endpoint.consecutive_failures == 1
        assert first.deactivated is False
        assert second.endpoint.consecutive_failures == 2
        assert second.deactivated is True

    @pytest.mark.asyncio
    async def test_success_reports_recovery(self):
        repo = self._repo()
        await repo.mark_endpoint_failure(1, "Timeout", NOW, threshold=3)
        update = await repo.mark_endpoint_success(1, NOW)

        assert update.recovered is True
        assert update.endpoint.consecutive_failures == 0
        assert update.endpoint.last_error is None

    @pytest.mark.asyncio
    async def test_unknown_endpoint(self):
        repo = self._repo()
        assert await repo.mark_endpoint_success(99, NOW) is None
        assert await repo.mark_endpoint_failure(99, "x", NOW, threshold=3) is None


class TestModels:
    def test_slug_pattern(self):
        with pytest.raises(ValueError):
            Link(id=1, slug="bad slug!", campaign_id=1)

    def test_interval_minimum(self):
        with pytest.raises(ValueError):
            Campaign(id=1, name="x", auto_check_interval=2)

    def test_null_strategy_defaults(self):
        assert Campaign(id=1, name="x", rotation_strategy=None).rotation_strategy == "priority"
