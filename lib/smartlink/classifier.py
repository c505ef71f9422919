"""Offer-validity classifier.

Decides whether a reachable page is nonetheless commercially inactive
(sales closed, checkout removed). Pure functions: no I/O, never raise.
`None` means "no signal", i.e. active.
"""

from typing import Optional
from urllib.parse import urlparse

from lib.smartlink.models import InactiveVerdict
from lib.smartlink.patterns import (
    BODY_PHRASE_GROUPS,
    BODY_SCAN_LIMIT,
    PLATFORM_MARKERS,
    THIN_PAGE_RULES,
    URL_RULES,
)


def classify_url(final_url: Optional[str]) -> Optional[InactiveVerdict]:
    """Match the post-redirect URL against the URL rule table."""
    if not final_url or not isinstance(final_url, str):
        return None

    for rule in URL_RULES:
        if rule.pattern.search(final_url):
            return InactiveVerdict(reason=rule.reason, platform=rule.platform)
    return None


def classify_body(body: Optional[str]) -> Optional[InactiveVerdict]:
    """Scan the head of a response body for "offer ended" signals."""
    if not body or not isinstance(body, str):
        return None

    head = body[:BODY_SCAN_LIMIT]
    head_lower = head.lower()

    for group in BODY_PHRASE_GROUPS:
        for phrase in group.phrases:
            if phrase in head_lower:
                return InactiveVerdict(reason=group.reason, platform=group.platform)

    platform = detect_platform(head_lower)
    for rule in THIN_PAGE_RULES:
        if platform != rule.platform or len(head) >= rule.max_length:
            continue
        if not any(marker in head_lower for marker in rule.checkout_markers):
            return InactiveVerdict(reason=rule.reason, platform=rule.platform)

    return None


def detect_platform(url_or_html: Optional[str]) -> str:
    """Return "hotmart", "eduzz" or "other" from a URL or page content."""
    if not url_or_html:
        return "other"
    lower = url_or_html.lower()
    for platform, markers in PLATFORM_MARKERS.items():
        if any(marker in lower for marker in markers):
            return platform
    return "other"


def is_valid_hotmart_checkout_url(url: str) -> bool:
    """True for pay.hotmart.com/<PRODUCT_CODE> URLs that are not error pages."""
    try:
        parsed = urlparse(url)
    except (ValueError, TypeError):
        return False

    if "pay.hotmart.com" not in (parsed.hostname or ""):
        return False
    if "/error" in parsed.path:
        return False

    segment = parsed.path.lstrip("/").split("/", 1)[0]
    return bool(segment) and segment.isalnum()
