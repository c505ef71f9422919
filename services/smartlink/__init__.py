"""Smart-link service: public interface."""

from services.smartlink.auto_checker import AutoChecker, TickStats
from services.smartlink.config import SmartLinkConfig
from services.smartlink.service import ISmartLinkService, SmartLinkService

__all__ = [
    "AutoChecker",
    "TickStats",
    "SmartLinkConfig",
    "ISmartLinkService",
    "SmartLinkService",
]
