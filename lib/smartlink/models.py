"""Value types for endpoint probing and link resolution."""

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional, Union


class ErrorCode(str, Enum):
    """Why a probe failed."""

    INVALID_URL = "INVALID_URL"
    TIMEOUT = "TIMEOUT"
    DNS_ERROR = "DNS_ERROR"
    CONNECTION_REFUSED = "CONNECTION_REFUSED"
    SSL_ERROR = "SSL_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    HTTP_ERROR = "HTTP_ERROR"
    INACTIVE_OFFER = "INACTIVE_OFFER"
    FETCH_ERROR = "FETCH_ERROR"
    UNKNOWN = "UNKNOWN"


ERROR_MESSAGES = {
    ErrorCode.INVALID_URL: "Invalid or blocked URL",
    ErrorCode.TIMEOUT: "Timeout: endpoint did not respond in time",
    ErrorCode.DNS_ERROR: "DNS error: domain could not be resolved",
    ErrorCode.CONNECTION_REFUSED: "Connection refused by the server",
    ErrorCode.SSL_ERROR: "SSL/TLS certificate error",
    ErrorCode.NETWORK_ERROR: "Network error while contacting the endpoint",
    ErrorCode.HTTP_ERROR: "Unexpected HTTP status",
    ErrorCode.INACTIVE_OFFER: "Offer is no longer available",
    ErrorCode.FETCH_ERROR: "Failed to fetch the endpoint",
    ErrorCode.UNKNOWN: "Unknown error",
}


DEFAULT_ALLOWED_STATUSES: FrozenSet[int] = frozenset({200, 302})


@dataclass(frozen=True)
class InactiveVerdict:
    """A reachable page that signals the offer was withdrawn."""

    reason: str
    platform: str  # "hotmart", "eduzz", "generic"


@dataclass(frozen=True)
class ProbeOptions:
    """Knobs for a single probe."""

    timeout: float = 5.0  # seconds, per request
    allowed_statuses: FrozenSet[int] = DEFAULT_ALLOWED_STATUSES
    deep: bool = False  # follow redirects and inspect final URL + body


@dataclass
class ProbeResult:
    """Outcome of one liveness check. Every outcome is a value."""

    ok: bool
    status: Optional[int] = None
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    inactive_reason: Optional[str] = None
    final_url: Optional[str] = None

    @property
    def failure_reason(self) -> str:
        """Best human-readable reason for a failed probe."""
        if self.inactive_reason:
            return self.inactive_reason
        if self.error:
            return self.error
        return f"HTTP {self.status if self.status is not None else '?'}"

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "status": self.status,
            "error": self.error,
            "errorCode": self.error_code.value if self.error_code else None,
            "inactiveReason": self.inactive_reason,
        }


# ---------------------------------------------------------------------------
# Resolution outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Redirect:
    """Send the visitor to an endpoint that just passed a live probe."""

    url: str
    endpoint_id: Optional[int] = None


@dataclass(frozen=True)
class Fallback:
    """Operator-configured escape hatch."""

    url: str


@dataclass(frozen=True)
class NoOffer:
    """Nothing to redirect to."""

    message: str


Resolution = Union[Redirect, Fallback, NoOffer]

