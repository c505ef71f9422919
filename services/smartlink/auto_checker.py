"""Background auto-checker.

Every poll period, deep-probes the endpoints of auto-check campaigns that are
overdue for their campaign interval and records the outcome through the same
state machine as resolution. Inactive endpoints are probed too, so a fixed
endpoint is brought back without operator action.

Ticks run strictly one after another in a single task; stop() lets the
in-flight tick finish.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from loguru import logger

from db.models.campaign import Campaign
from db.models.endpoint import Endpoint
from services.smartlink.health import utcnow
from services.smartlink.notifier import FailureContext
from services.smartlink.service import SmartLinkService


@dataclass
class TickStats:
    """Result of one auto-check pass."""
    campaigns: int = 0
    checked: int = 0
    failed: int = 0
    errors: int = 0
    all_down: int = 0


def is_due(endpoint: Endpoint, interval_seconds: int, now: datetime) -> bool:
    """Never checked, or last check at least one interval ago."""
    if endpoint.last_checked_at is None:
        return True
    return now - endpoint.last_checked_at >= timedelta(seconds=interval_seconds)


class AutoChecker:
    """Periodic prober for campaigns with auto-check enabled."""

    def __init__(
        self,
        service: SmartLinkService,
        poll_interval: Optional[float] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self._service = service
        self.poll_interval = poll_interval or service.config.auto_check_poll_sec
        self._now = now or utcnow
        self._stop = asyncio.Event()
        self._tick_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Spawn the poll loop. The first tick runs immediately."""
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._loop(), name="smartlink-auto-checker")
        logger.info(f"Auto-checker started (poll every {self.poll_interval:g}s)")

    def request_shutdown(self) -> None:
        """Stop after the in-flight tick. Safe to call from a signal handler."""
        if not self._stop.is_set():
            logger.info("Auto-checker shutdown requested")
        self._stop.set()

    async def stop(self) -> None:
        """Request shutdown and wait for the in-flight tick to finish."""
        self.request_shutdown()
        if self._task is not None:
            await self._task
            self._task = None
            logger.info("Auto-checker stopped")

    async def run_forever(self) -> None:
        self.start()
        await self._task

    async def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("Auto-check tick failed")
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

    # =========================================================================
    # Tick
    # =========================================================================

    async def run_once(self) -> TickStats:
        """One pass over all auto-check campaigns. Never overlaps another pass."""
        async with self._tick_lock:
            return await self._tick()

    async def _tick(self) -> TickStats:
        stats = TickStats()
        try:
            campaigns = await self._service.repo.list_campaigns_with_auto_check_enabled()
        except Exception:
            logger.exception("Auto-check: failed to list campaigns")
            return stats

        for campaign in campaigns:
            stats.campaigns += 1
            await self._check_campaign(campaign, stats)

        if stats.checked or stats.errors:
            logger.info(
                f"Auto-check: {stats.campaigns} campaigns, {stats.checked} probed, "
                f"{stats.failed} failed, {stats.errors} errors"
            )
        return stats

    async def _check_campaign(self, campaign: Campaign, stats: TickStats) -> None:
        now = self._now()
        due = [e for e in campaign.endpoints if is_due(e, campaign.auto_check_interval, now)]
        if not due:
            return

        health = self._service.health
        context = FailureContext(
            slug=campaign.primary_slug,
            total_endpoints=len(campaign.endpoints),
            active_endpoints=sum(1 for e in campaign.endpoints if e.is_active),
        )

        any_failed = False
        for endpoint in due:
            try:
                result = await self._service.probe(endpoint.url)
                stats.checked += 1
                if result.ok:
                    await health.record_success(campaign, endpoint)
                else:
                    any_failed = True
                    stats.failed += 1
                    logger.warning(
                        f"Auto-check [{campaign.name}] endpoint {endpoint.id} failed: {result.failure_reason}"
                    )
                    await health.record_failure(campaign, endpoint, result.failure_reason, context)
            except Exception:
                stats.errors += 1
                logger.exception(f"Auto-check [{campaign.name}] endpoint {endpoint.id} errored")

        if any_failed:
            await self._check_all_down(campaign, stats)

    async def _check_all_down(self, campaign: Campaign, stats: TickStats) -> None:
        try:
            endpoints = await self._service.repo.list_endpoints_for_campaign(campaign.id)
        except Exception:
            logger.exception(f"Auto-check [{campaign.name}]: failed to re-read endpoints")
            return

        if endpoints and not any(e.is_active and e.consecutive_failures == 0 for e in endpoints):
            stats.all_down += 1
            logger.error(f"Auto-check [{campaign.name}]: all {len(endpoints)} endpoints are down")
            await self._service.notifications.all_down(campaign, campaign.primary_slug, len(endpoints))
