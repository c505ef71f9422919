"""
Smart-link engine configuration.

Process-wide settings read from the environment (.env is loaded by
python-dotenv). Threshold and allowed statuses are global, never per endpoint.
"""

import os
from typing import FrozenSet, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from lib.smartlink.models import DEFAULT_ALLOWED_STATUSES, ProbeOptions


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class SmartLinkConfig(BaseModel):
    """Runtime configuration for resolution, health tracking and polling."""

    # Probing
    probe_timeout: float = Field(default=5.0, gt=0, description="Per-request probe timeout in seconds")
    allowed_statuses: FrozenSet[int] = Field(default=DEFAULT_ALLOWED_STATUSES)

    # Health tracking
    failure_threshold: int = Field(default=3, ge=1, description="Consecutive failures before deactivation")

    # Auto-checker
    auto_check_enabled: bool = True
    auto_check_poll_sec: float = Field(default=15.0, gt=0)

    # Notifications
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    notify_timezone: str = "America/Sao_Paulo"

    # HTTP
    port: int = Field(default=3000, ge=1, le=65535)

    model_config = ConfigDict(frozen=True)

    @field_validator("allowed_statuses", mode="before")
    @classmethod
    def parse_statuses(cls, v):
        """Accept a comma-separated string like "200,302"."""
        if isinstance(v, str):
            v = [int(part) for part in v.split(",") if part.strip()]
        if not v:
            raise ValueError("allowed_statuses must not be empty")
        return frozenset(v)

    @property
    def telegram_configured(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    def probe_options(self, deep: bool = True) -> ProbeOptions:
        return ProbeOptions(
            timeout=self.probe_timeout,
            allowed_statuses=self.allowed_statuses,
            deep=deep,
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SmartLinkConfig":
        """Build config from environment variables. Unset vars keep defaults."""
        if environ is None:
            load_dotenv()
            environ = os.environ

        values = {}
        if environ.get("HEALTH_CHECK_TIMEOUT_MS"):
            values["probe_timeout"] = int(environ["HEALTH_CHECK_TIMEOUT_MS"]) / 1000.0
        if environ.get("HEALTH_CHECK_ALLOWED_STATUSES"):
            values["allowed_statuses"] = environ["HEALTH_CHECK_ALLOWED_STATUSES"]
        if environ.get("FAILURE_THRESHOLD"):
            values["failure_threshold"] = environ["FAILURE_THRESHOLD"]
        if environ.get("AUTO_CHECK_ENABLED"):
            values["auto_check_enabled"] = _parse_bool(environ["AUTO_CHECK_ENABLED"])
        if environ.get("AUTO_CHECK_POLL_SEC"):
            values["auto_check_poll_sec"] = environ["AUTO_CHECK_POLL_SEC"]
        if environ.get("TELEGRAM_BOT_TOKEN"):
            values["telegram_bot_token"] = environ["TELEGRAM_BOT_TOKEN"]
        if environ.get("TELEGRAM_CHAT_ID"):
            values["telegram_chat_id"] = environ["TELEGRAM_CHAT_ID"]
        if environ.get("NOTIFY_TIMEZONE"):
            values["notify_timezone"] = environ["NOTIFY_TIMEZONE"]
        if environ.get("PORT"):
            values["port"] = environ["PORT"]
        return cls(**values)
