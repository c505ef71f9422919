"""Failure/recovery bookkeeping shared by resolution, auto-check and manual check.

States per endpoint:
    ACTIVE       is_active, no failures since last success
    DEGRADED     is_active, consecutive_failures > 0
    DEACTIVATED  is_active = false

Each probe outcome is one atomic repo write; transitions are detected from
the row values read under the same lock, so concurrent recorders cannot
double-fire a deactivation.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from loguru import logger

from db.models.campaign import Campaign
from db.models.endpoint import Endpoint, EndpointHealthUpdate
from services.smartlink.notifier import FailureContext, NotificationDispatcher
from services.smartlink.repo import IRepo


class EndpointState(str, Enum):
    ACTIVE = "active"
    DEGRADED = "degraded"
    DEACTIVATED = "deactivated"


def endpoint_state(endpoint: Endpoint) -> EndpointState:
    if not endpoint.is_active:
        return EndpointState.DEACTIVATED
    if endpoint.consecutive_failures > 0:
        return EndpointState.DEGRADED
    return EndpointState.ACTIVE


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthTracker:
    """Applies probe outcomes to the repo and emits transition events."""

    def __init__(
        self,
        repo: IRepo,
        notifications: NotificationDispatcher,
        failure_threshold: int = 3,
        now: Optional[Callable[[], datetime]] = None,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self._repo = repo
        self._notifications = notifications
        self.failure_threshold = failure_threshold
        self._now = now or utcnow

    async def record_success(self, campaign: Campaign, endpoint: Endpoint) -> Optional[EndpointHealthUpdate]:
        """Reset health after a passing probe. Emits recovered when leaving DEGRADED/DEACTIVATED."""
        update = await self._repo.mark_endpoint_success(endpoint.id, self._now())
        if update is None:
            logger.warning(f"Endpoint {endpoint.id} disappeared before success could be recorded")
            return None

        if update.recovered:
            logger.info(f"Endpoint {endpoint.id} recovered ({endpoint.url})")
            await self._notifications.recovered(campaign, update.endpoint.url)
        return update

    async def record_failure(
        self,
        campaign: Campaign,
        endpoint: Endpoint,
        reason: str,
        context: Optional[FailureContext] = None,
        notify: bool = True,
    ) -> Optional[EndpointHealthUpdate]:
        """Count a failed probe. Emits deactivated on the threshold crossing, else first_failure on count 1.

        notify=False records the transition without alerting (manual check sends its own alert).
        """
        update = await self._repo.mark_endpoint_failure(endpoint.id, reason, self._now(), self.failure_threshold)
        if update is None:
            logger.warning(f"Endpoint {endpoint.id} disappeared before failure could be recorded")
            return None

        failures = update.endpoint.consecutive_failures
        if update.deactivated:
            logger.warning(
                f"Endpoint {endpoint.id} deactivated after {failures} consecutive failures: {reason}"
            )
        if not notify:
            return update

        if update.deactivated:
            await self._notifications.deactivated(campaign, update.endpoint.url, reason, failures)
        elif failures == 1:
            await self._notifications.first_failure(campaign, update.endpoint.url, reason, failures, context)
        return update
