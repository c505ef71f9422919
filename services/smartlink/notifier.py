"""Outbound alerts on endpoint state transitions.

Events: first failure, deactivated, recovered, all endpoints down and a
failed manual check. Delivery is best-effort: NotificationDispatcher runs
each call as a background task and only logs delivery errors, so alerting
can never change a resolution or probe outcome.
"""

import asyncio
import html
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger

from db.models.campaign import Campaign
from infra import telegram


@dataclass
class FailureContext:
    """Extra detail attached to a first-failure alert."""
    slug: Optional[str] = None
    total_endpoints: Optional[int] = None
    active_endpoints: Optional[int] = None


class INotifier(ABC):
    """Interface for state-transition notifications."""

    @abstractmethod
    async def notify_first_failure(
        self,
        campaign: Campaign,
        endpoint_url: str,
        reason: str,
        failure_count: int,
        context: Optional[FailureContext] = None,
    ) -> None:
        pass

    @abstractmethod
    async def notify_deactivated(self, campaign: Campaign, endpoint_url: str, reason: str, failure_count: int) -> None:
        pass

    @abstractmethod
    async def notify_recovered(self, campaign: Campaign, endpoint_url: str) -> None:
        pass

    @abstractmethod
    async def notify_all_down(self, campaign: Campaign, slug: str, total_endpoints: int) -> None:
        pass

    @abstractmethod
    async def notify_manual_check_failed(
        self,
        campaign: Campaign,
        endpoint_url: str,
        reason: str,
        was_deactivated: bool,
    ) -> None:
        pass


# =============================================================================
# Message shaping (Telegram HTML)
# =============================================================================


def esc(value: Any) -> str:
    return html.escape(str(value), quote=False)


def _n(value: Optional[int]) -> str:
    return "?" if value is None else str(value)


def first_failure_message(
    campaign_name: str,
    endpoint_url: str,
    reason: str,
    failure_count: int,
    at: str,
    context: Optional[FailureContext] = None,
) -> str:
    ctx = ""
    if context:
        ctx = (
            f"\n<b>Link:</b> /go/{esc(context.slug or '?')}"
            f"\n<b>Active endpoints:</b> {_n(context.active_endpoints)}/{_n(context.total_endpoints)}"
        )
    return (
        "⚠️ <b>Checkout failing</b>\n\n"
        f"<b>Campaign:</b> {esc(campaign_name)}\n"
        f"<b>URL:</b> <code>{esc(endpoint_url)}</code>\n"
        f"<b>Error:</b> {esc(reason)}\n"
        f"<b>Consecutive failures:</b> {failure_count}{ctx}\n"
        f"<b>Time:</b> {at}\n\n"
        "Traffic is going to the next endpoints in line."
    )


def deactivated_message(campaign_name: str, endpoint_url: str, reason: str, failure_count: int, at: str) -> str:
    return (
        "🔴 <b>Checkout DEACTIVATED</b>\n\n"
        f"<b>Campaign:</b> {esc(campaign_name)}\n"
        f"<b>URL:</b> <code>{esc(endpoint_url)}</code>\n"
        f"<b>Reason:</b> {esc(reason)}\n"
        f"<b>Consecutive failures:</b> {failure_count}\n"
        f"<b>Time:</b> {at}\n\n"
        "This endpoint was removed from rotation and gets no more traffic."
    )


def recovered_message(campaign_name: str, endpoint_url: str, at: str) -> str:
    return (
        "✅ <b>Checkout recovered</b>\n\n"
        f"<b>Campaign:</b> {esc(campaign_name)}\n"
        f"<b>URL:</b> <code>{esc(endpoint_url)}</code>\n"
        f"<b>Time:</b> {at}\n\n"
        "The endpoint is healthy again and back in rotation."
    )


def all_down_message(campaign_name: str, slug: str, total_endpoints: int, at: str) -> str:
    return (
        "🚨🚨🚨 <b>ALL CHECKOUTS ARE DOWN</b>\n\n"
        f"<b>Campaign:</b> {esc(campaign_name)}\n"
        f"<b>Link:</b> /go/{esc(slug)}\n"
        f"<b>Endpoints:</b> {total_endpoints} (none healthy)\n"
        f"<b>Time:</b> {at}\n\n"
        "<b>URGENT:</b> paid traffic is being lost. Check the endpoints now or pause the ads."
    )


def manual_check_failed_message(
    campaign_name: str,
    endpoint_url: str,
    reason: str,
    was_deactivated: bool,
    at: str,
) -> str:
    status = "🔴 <b>Manual check: checkout DEACTIVATED</b>" if was_deactivated else "⚠️ <b>Manual check: checkout failing</b>"
    return (
        f"{status}\n\n"
        f"<b>Campaign:</b> {esc(campaign_name)}\n"
        f"<b>URL:</b> <code>{esc(endpoint_url)}</code>\n"
        f"<b>Error:</b> {esc(reason)}\n"
        f"<b>Time:</b> {at}"
    )


# =============================================================================
# Telegram
# =============================================================================


class TelegramNotifier(INotifier):
    """Sends HTML alerts to one Telegram chat."""

    def __init__(
        self,
        bot_token: Optional[str] = None,
        chat_id: Optional[str] = None,
        tz: str = "America/Sao_Paulo",
        send: Optional[Callable[..., Awaitable[bool]]] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._send_fn = send or telegram.send_message
        self._now = now or (lambda: datetime.now(timezone.utc))
        try:
            self._tz = ZoneInfo(tz)
        except ZoneInfoNotFoundError:
            logger.warning(f"Unknown timezone '{tz}', alert timestamps will be UTC")
            self._tz = timezone.utc

    def _timestamp(self) -> str:
        return self._now().astimezone(self._tz).strftime("%d/%m/%Y %H:%M:%S")

    async def _send(self, text: str) -> bool:
        return await self._send_fn(text, bot_token=self._bot_token, chat_id=self._chat_id)

    async def notify_first_failure(self, campaign, endpoint_url, reason, failure_count, context=None) -> None:
        await self._send(first_failure_message(
            campaign.name, endpoint_url, reason, failure_count, self._timestamp(), context,
        ))

    async def notify_deactivated(self, campaign, endpoint_url, reason, failure_count) -> None:
        await self._send(deactivated_message(campaign.name, endpoint_url, reason, failure_count, self._timestamp()))

    async def notify_recovered(self, campaign, endpoint_url) -> None:
        await self._send(recovered_message(campaign.name, endpoint_url, self._timestamp()))

    async def notify_all_down(self, campaign, slug, total_endpoints) -> None:
        await self._send(all_down_message(campaign.name, slug, total_endpoints, self._timestamp()))

    async def notify_manual_check_failed(self, campaign, endpoint_url, reason, was_deactivated) -> None:
        await self._send(manual_check_failed_message(
            campaign.name, endpoint_url, reason, was_deactivated, self._timestamp(),
        ))


# =============================================================================
# Fire-and-forget dispatch
# =============================================================================


class NotificationDispatcher:
    """Wraps an INotifier so callers never wait on, or fail because of, delivery.

    background=True schedules each notification as an asyncio task;
    background=False awaits inline (tests) but still swallows errors.
    """

    def __init__(self, notifier: INotifier, background: bool = True):
        self._notifier = notifier
        self._background = background
        self._pending: Set[asyncio.Task] = set()

    @property
    def notifier(self) -> INotifier:
        return self._notifier

    async def _guard(self, event: str, coro: Awaitable[None]) -> None:
        try:
            await coro
        except Exception:
            logger.exception(f"Notification '{event}' failed")

    async def _dispatch(self, event: str, coro: Awaitable[None]) -> None:
        if not self._background:
            await self._guard(event, coro)
            return
        task = asyncio.create_task(self._guard(event, coro))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def first_failure(self, campaign, endpoint_url, reason, failure_count, context=None) -> None:
        await self._dispatch("first_failure", self._notifier.notify_first_failure(
            campaign, endpoint_url, reason, failure_count, context,
        ))

    async def deactivated(self, campaign, endpoint_url, reason, failure_count) -> None:
        await self._dispatch("deactivated", self._notifier.notify_deactivated(
            campaign, endpoint_url, reason, failure_count,
        ))

    async def recovered(self, campaign, endpoint_url) -> None:
        await self._dispatch("recovered", self._notifier.notify_recovered(campaign, endpoint_url))

    async def all_down(self, campaign, slug, total_endpoints) -> None:
        await self._dispatch("all_down", self._notifier.notify_all_down(campaign, slug, total_endpoints))

    async def manual_check_failed(self, campaign, endpoint_url, reason, was_deactivated) -> None:
        await self._dispatch("manual_check_failed", self._notifier.notify_manual_check_failed(
            campaign, endpoint_url, reason, was_deactivated,
        ))

    async def drain(self) -> None:
        """Wait for all in-flight notifications (shutdown, tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


class MockNotifier(INotifier):
    """Mock notifier for unit testing. Records (event, payload) tuples."""

    def __init__(self, fail: bool = False):
        self.events: List[Tuple[str, Dict[str, Any]]] = []
        self.fail = fail

    def _record(self, event: str, **payload) -> None:
        self.events.append((event, payload))
        if self.fail:
            raise RuntimeError(f"notifier down ({event})")

    def names(self) -> List[str]:
        return [event for event, _ in self.events]

    async def notify_first_failure(self, campaign, endpoint_url, reason, failure_count, context=None) -> None:
        self._record(
            "first_failure", campaign=campaign.name, endpoint_url=endpoint_url,
            reason=reason, failure_count=failure_count, context=context,
        )

    async def notify_deactivated(self, campaign, endpoint_url, reason, failure_count) -> None:
        self._record(
            "deactivated", campaign=campaign.name, endpoint_url=endpoint_url,
            reason=reason, failure_count=failure_count,
        )

    async def notify_recovered(self, campaign, endpoint_url) -> None:
        self._record("recovered", campaign=campaign.name, endpoint_url=endpoint_url)

    async def notify_all_down(self, campaign, slug, total_endpoints) -> None:
        self._record("all_down", campaign=campaign.name, slug=slug, total_endpoints=total_endpoints)

    async def notify_manual_check_failed(self, campaign, endpoint_url, reason, was_deactivated) -> None:
        self._record(
            "manual_check_failed", campaign=campaign.name, endpoint_url=endpoint_url,
            reason=reason, was_deactivated=was_deactivated,
        )
