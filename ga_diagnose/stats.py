"""Population statistics over a report's rows."""

import math
from typing import Dict, Iterable, List, Mapping, Sequence


def safe_float(val) -> float:
    """GA4 returns metric values as strings; anything unparseable or non-finite counts as 0."""
    if val is None:
        return 0.0
    try:
        num = float(val)
    except (TypeError, ValueError):
        return 0.0
    return num if math.isfinite(num) else 0.0


def is_defined(val) -> bool:
    return isinstance(val, (int, float)) and not isinstance(val, bool) and math.isfinite(val)


def median(values: Iterable[float]) -> float:
    """Median of the finite values, or NaN when there are none."""
    a = sorted(v for v in values if is_defined(v))
    if not a:
        return math.nan
    m = len(a) // 2
    if len(a) % 2:
        return a[m]
    return (a[m - 1] + a[m]) / 2


def median_table(rows: Sequence[Mapping[str, float]], metrics: List[str]) -> Dict[str, float]:
    """Median per metric over all rows. Metrics with no finite value are left out."""
    medians = {}
    for name in metrics:
        if name in medians:
            continue
        m = median(row.get(name) for row in rows)
        if not math.isnan(m):
            medians[name] = m
    return medians
