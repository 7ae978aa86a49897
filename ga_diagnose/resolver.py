"""Pick which dimension and metrics to ask GA4 for, given what the property exposes.

Properties differ: a web stream has ``pagePath`` and ``views``, an app-only
property may only have ``screenName`` and ``sessions``. Every choice here is
"first candidate in a fixed priority list that the property supports".
"""

import logging
from dataclasses import dataclass
from typing import AbstractSet, Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

# ============================================================================
# CANDIDATES (order matters: first match wins)
# ============================================================================

DIM_CANDIDATES = ('pagePath', 'pageLocation', 'pageTitle', 'screenName')
VIEW_METRICS = ('views', 'screenPageViews', 'eventCount', 'sessions')
EXTRA_METRICS = ('bounceRate', 'engagementRate', 'averageSessionDuration', 'totalUsers', 'sessions')

TRAFFIC_DIMS = {
    'sourcemedium': 'sessionSourceMedium',
    'channel': 'sessionDefaultChannelGroup',
    'source': 'sessionSource',
    'medium': 'sessionMedium',
    'referrer': 'fullReferrer',
}
DEFAULT_TRAFFIC_DIM = 'sourcemedium'
TRAFFIC_FALLBACK = (
    'sessionSourceMedium',
    'sessionDefaultChannelGroup',
    'sessionSource',
    'sessionMedium',
    'fullReferrer',
)


class NotAvailable(Exception):
    """None of the candidates exist in the property's schema."""


@dataclass(frozen=True)
class Capabilities:
    dimensions: AbstractSet[str]
    metrics: AbstractSet[str]

    @classmethod
    def of(cls, dimensions: Iterable[str], metrics: Iterable[str]) -> "Capabilities":
        return cls(frozenset(dimensions), frozenset(metrics))


@dataclass(frozen=True)
class FieldSelection:
    dimension: str
    view_metric: str
    extra_metrics: Tuple[str, ...]

    @property
    def metrics(self) -> List[str]:
        """Metrics in request order: view metric first, then the extras."""
        return [self.view_metric, *self.extra_metrics]


def first_available(candidates: Sequence[str], available: AbstractSet[str]) -> Optional[str]:
    for name in candidates:
        if name in available:
            return name
    return None


def resolve(caps: Capabilities,
            dim_priority: Sequence[str] = DIM_CANDIDATES,
            view_priority: Sequence[str] = VIEW_METRICS,
            extra_metrics: Sequence[str] = EXTRA_METRICS) -> FieldSelection:
    dimension = first_available(dim_priority, caps.dimensions)
    view_metric = first_available(view_priority, caps.metrics)
    if dimension is None or view_metric is None:
        raise NotAvailable('Required dimensions/metrics not available in this property.')

    # GA4 rejects a request that names the same metric twice
    extras = tuple(m for m in extra_metrics if m in caps.metrics and m != view_metric)
    logger.debug("Resolved dimension=%s view=%s extras=%s", dimension, view_metric, extras)
    return FieldSelection(dimension, view_metric, extras)


def resolve_traffic_dimension(caps: Capabilities, dim_key: Optional[str] = None) -> str:
    """Map the caller's ``dim`` key to a GA4 dimension, falling back when missing.

    An unknown key behaves like an unavailable dimension: the fixed fallback
    order is tried instead.
    """
    requested = TRAFFIC_DIMS.get(dim_key or DEFAULT_TRAFFIC_DIM)
    if requested and requested in caps.dimensions:
        return requested

    chosen = first_available(TRAFFIC_FALLBACK, caps.dimensions)
    if chosen is None:
        raise NotAvailable('No suitable traffic dimension available')
    logger.info("Traffic dimension %s unavailable, falling back to %s", requested or dim_key, chosen)
    return chosen
