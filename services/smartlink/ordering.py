"""Endpoint ordering for a resolution attempt.

Only active endpoints are returned. The default strategy is ascending
priority with the oldest endpoint first on ties; the other two are legacy
per-campaign options.
"""

from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from loguru import logger

from db.models.endpoint import Endpoint

DEFAULT_STRATEGY = "priority"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _ts(value: Optional[datetime]) -> float:
    """Sortable timestamp; missing values sort first."""
    if value is None:
        return float("-inf")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH).total_seconds()


def _by_priority(e: Endpoint) -> Tuple:
    return (e.priority, _ts(e.created_at), e.id)


def _by_priority_desc(e: Endpoint) -> Tuple:
    return (-e.priority, _ts(e.created_at), e.id)


def _least_recently_used(e: Endpoint) -> Tuple:
    # Never-used endpoints go first
    return (_ts(e.last_used_at), _ts(e.created_at), e.id)


STRATEGIES: Dict[str, Callable[[Endpoint], Tuple]] = {
    "priority": _by_priority,
    "priority_desc": _by_priority_desc,
    "round_robin": _least_recently_used,
}


def order_endpoints(endpoints: Iterable[Endpoint], strategy: Optional[str] = DEFAULT_STRATEGY) -> List[Endpoint]:
    """Active endpoints in the order they should be probed."""
    key = STRATEGIES.get(strategy or DEFAULT_STRATEGY)
    if key is None:
        logger.warning(f"Unknown rotation strategy '{strategy}', using {DEFAULT_STRATEGY}")
        key = STRATEGIES[DEFAULT_STRATEGY]
    return sorted((e for e in endpoints if e.is_active), key=key)
