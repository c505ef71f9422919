"""Smart-link resolution service.

Resolves a public slug to the first endpoint of its campaign that passes a
live deep probe right now. Probing is sequential: each outcome decides
whether to continue, and a failing endpoint only advances to the next one.
Uses dependency injection for repo, prober and notifier.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Mapping, Optional

from loguru import logger

from db.models.campaign import Campaign
from db.models.endpoint import Endpoint
from db.models.link import Link
from lib.smartlink.models import ErrorCode, Fallback, NoOffer, ProbeResult, Redirect, Resolution
from lib.smartlink.prober import HttpProber, IProber, failure
from lib.smartlink.urls import merge_query_params
from services.smartlink.config import SmartLinkConfig
from services.smartlink.health import HealthTracker
from services.smartlink.notifier import FailureContext, INotifier, NotificationDispatcher, TelegramNotifier
from services.smartlink.ordering import order_endpoints
from services.smartlink.repo import IRepo, SmartLinkRepo


LINK_NOT_FOUND = "Link not found"
NO_ENDPOINT = "No endpoint available"
NO_OFFER = "No offer available right now."
SERVICE_UNAVAILABLE = "Service temporarily unavailable"


class ISmartLinkService(ABC):
    """Interface for the smart-link service."""

    @abstractmethod
    async def resolve(self, slug: str, query_params: Optional[Mapping[str, str]] = None) -> Resolution:
        """Resolve a slug to Redirect, Fallback or NoOffer."""
        pass

    @abstractmethod
    async def check_endpoint(self, endpoint_id: int) -> Optional[ProbeResult]:
        """Deep-probe one endpoint on demand. None if it does not exist."""
        pass


class SmartLinkService(ISmartLinkService):
    """Implementation of the smart-link service."""

    def __init__(
        self,
        repo: Optional[IRepo] = None,
        prober: Optional[IProber] = None,
        notifier: Optional[INotifier] = None,
        config: Optional[SmartLinkConfig] = None,
        notifications: Optional[NotificationDispatcher] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or SmartLinkConfig.from_env()
        self.repo = repo or SmartLinkRepo()
        self.prober = prober or HttpProber()
        if notifications is None:
            notifier = notifier or TelegramNotifier(
                self.config.telegram_bot_token,
                self.config.telegram_chat_id,
                tz=self.config.notify_timezone,
            )
            notifications = NotificationDispatcher(notifier)
        self.notifications = notifications
        self.health = HealthTracker(self.repo, self.notifications, self.config.failure_threshold, now=now)

    async def probe(self, url: str) -> ProbeResult:
        """Deep probe with the configured timeout/statuses. Never raises."""
        try:
            return await self.prober.probe(url, self.config.probe_options(deep=True))
        except Exception as e:
            logger.exception(f"Prober raised for {url}")
            return failure(ErrorCode.UNKNOWN, error=f"{type(e).__name__}: {e}")

    # =========================================================================
    # Resolution
    # =========================================================================

    async def resolve(self, slug: str, query_params: Optional[Mapping[str, str]] = None) -> Resolution:
        try:
            link = await self.repo.find_link_by_slug(slug)
            if link is None:
                logger.info(f"/go/{slug}: link not found")
                return NoOffer(LINK_NOT_FOUND)
            campaign = await self.repo.get_campaign(link.campaign_id)
            endpoints = await self.repo.list_endpoints_for_campaign(link.campaign_id)
        except Exception:
            logger.exception(f"/go/{slug}: failed to load link")
            return NoOffer(SERVICE_UNAVAILABLE)

        if campaign is None:
            logger.warning(f"/go/{slug}: campaign {link.campaign_id} not found")
            return NoOffer(LINK_NOT_FOUND)

        ordered = order_endpoints(endpoints, campaign.rotation_strategy)
        if not ordered:
            logger.info(f"/go/{slug}: no active endpoints")
            return self._fallback(link, query_params, NO_ENDPOINT)

        context = FailureContext(slug=link.slug, total_endpoints=len(endpoints), active_endpoints=len(ordered))
        for endpoint in ordered:
            result = await self.probe(endpoint.url)
            if result.ok:
                await self._record_success(campaign, endpoint)
                url = merge_query_params(endpoint.url, query_params)
                logger.info(f"/go/{slug} -> endpoint {endpoint.id} (priority {endpoint.priority})")
                return Redirect(url=url, endpoint_id=endpoint.id)

            reason = result.failure_reason
            logger.warning(f"/go/{slug}: endpoint {endpoint.id} failed probe: {reason}")
            await self._record_failure(campaign, endpoint, reason, context)

        logger.warning(f"/go/{slug}: all {len(ordered)} active endpoints failed")
        return self._fallback(link, query_params, NO_OFFER)

    def _fallback(self, link: Link, query_params: Optional[Mapping[str, str]], message: str) -> Resolution:
        if link.fallback_url:
            logger.info(f"/go/{link.slug}: using fallback URL")
            return Fallback(url=merge_query_params(link.fallback_url, query_params))
        return NoOffer(message)

    async def _record_success(self, campaign: Campaign, endpoint: Endpoint) -> None:
        # Bookkeeping errors never change the decision
        try:
            await self.health.record_success(campaign, endpoint)
        except Exception:
            logger.exception(f"Failed to record success for endpoint {endpoint.id}")

    async def _record_failure(
        self,
        campaign: Campaign,
        endpoint: Endpoint,
        reason: str,
        context: FailureContext,
    ) -> None:
        try:
            await self.health.record_failure(campaign, endpoint, reason, context)
        except Exception:
            logger.exception(f"Failed to record failure for endpoint {endpoint.id}")

    # =========================================================================
    # Manual check
    # =========================================================================

    async def check_endpoint(self, endpoint_id: int) -> Optional[ProbeResult]:
        endpoint = await self.repo.get_endpoint(endpoint_id)
        if endpoint is None:
            return None
        campaign = await self.repo.get_campaign(endpoint.campaign_id)
        if campaign is None:
            campaign = Campaign(id=endpoint.campaign_id, name=f"Campaign {endpoint.campaign_id}")

        result = await self.probe(endpoint.url)
        if result.ok:
            await self.health.record_success(campaign, endpoint)
            logger.info(f"Manual check of endpoint {endpoint_id}: ok ({result.status})")
            return result

        reason = result.failure_reason
        update = await self.health.record_failure(campaign, endpoint, reason, notify=False)
        was_deactivated = update is not None and not update.endpoint.is_active
        logger.warning(f"Manual check of endpoint {endpoint_id} failed: {reason}")
        await self.notifications.manual_check_failed(campaign, endpoint.url, reason, was_deactivated)
        return result

    async def aclose(self) -> None:
        """Release the prober client and wait for queued notifications."""
        await self.notifications.drain()
        aclose = getattr(self.prober, "aclose", None)
        if aclose is not None:
            await aclose()
