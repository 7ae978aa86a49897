"""Median-relative diagnosis of page rows.

Each rule compares a row against the median of the same metric over the
whole report. Rules are independent and can all fire; a row nobody flags is
"standard".
"""

from typing import List, Mapping

from .stats import is_defined

BOUNCE_HIGH = "bounce rate high (needs improvement)"
BOUNCE_LOW = "bounce rate low (healthy)"
ENGAGEMENT_HEALTHY = "engagement healthy"
LOW_VISIBILITY = "low visibility (under-exposed)"
STANDARD = "standard"

TAG_SEPARATOR = " / "

# Thresholds in percentage points (rates are already on the 0-100 scale)
BOUNCE_HIGH_MARGIN = 15
BOUNCE_LOW_FLOOR = 40
BOUNCE_LOW_MARGIN = 10
ENGAGEMENT_MARGIN = 10
LOW_VISIBILITY_RATIO = 0.5


def _pair(row: Mapping, medians: Mapping, name: str):
    value, base = row.get(name), medians.get(name)
    if is_defined(value) and is_defined(base):
        return value, base
    return None


def classify(row: Mapping[str, float], medians: Mapping[str, float], view_metric: str) -> List[str]:
    tags = []

    bounce = _pair(row, medians, 'bounceRate')
    if bounce:
        value, base = bounce
        # high and low are checked separately, neither short-circuits the other
        if value >= base + BOUNCE_HIGH_MARGIN:
            tags.append(BOUNCE_HIGH)
        if value <= max(BOUNCE_LOW_FLOOR, base - BOUNCE_LOW_MARGIN):
            tags.append(BOUNCE_LOW)

    engagement = _pair(row, medians, 'engagementRate')
    if engagement:
        value, base = engagement
        if value >= base + ENGAGEMENT_MARGIN:
            tags.append(ENGAGEMENT_HEALTHY)

    views = _pair(row, medians, view_metric)
    if views:
        value, base = views
        if value < base * LOW_VISIBILITY_RATIO:
            tags.append(LOW_VISIBILITY)

    if not tags:
        tags.append(STANDARD)
    return tags


def diagnosis_text(tags: List[str]) -> str:
    return TAG_SEPARATOR.join(tags)
