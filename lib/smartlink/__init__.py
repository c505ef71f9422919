"""Endpoint probing for smart links.

Shared library: value types, offer-validity classifier, URL helpers and the
HTTP prober. No DB access.
Business logic lives in services/smartlink/.
API layer lives in api/smartlink/.
"""

from lib.smartlink.models import (
    ErrorCode,
    Fallback,
    InactiveVerdict,
    NoOffer,
    ProbeOptions,
    ProbeResult,
    Redirect,
    Resolution,
)

__all__ = [
    "ErrorCode",
    "Fallback",
    "InactiveVerdict",
    "NoOffer",
    "ProbeOptions",
    "ProbeResult",
    "Redirect",
    "Resolution",
]
