"""One pipeline, three reports.

Every report runs the same steps::

    authorize -> plan fields -> query GA4 -> normalise -> (medians + diagnosis) -> Report

What differs per report (which fields, ordering, row shape, whether rows get
diagnosed) lives in a ``ReportSpec``. ``PAGE_REPORT``, ``TRAFFIC_REPORT`` and
``TIMESERIES_REPORT`` are the three instances.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .auth import AccessGate
from .diagnosis import classify, diagnosis_text
from .errors import BadRequest
from .ga4 import AnalyticsBackend, ContainsFilter, ReportQuery
from .resolver import NotAvailable, resolve, resolve_traffic_dimension, TRAFFIC_DIMS
from .stats import median_table, safe_float

logger = logging.getLogger(__name__)

DEFAULT_START = '28daysAgo'
DEFAULT_END = 'yesterday'
NO_ROWS_NOTE = 'No rows. Check date range or data availability.'
NOT_SET = '(not set)'

# GA4 returns at most this many rows per request
MAX_LIMIT = 250000

# GA4 reports these on a 0-1 scale
PERCENT_METRICS = frozenset({'bounceRate', 'engagementRate'})

TRAFFIC_METRICS = ('sessions', 'totalUsers', 'engagementRate', 'bounceRate', 'averageSessionDuration')

# GA4 metric -> output key, in request order
TIMESERIES_METRICS = {
    'sessions': 'sessions',
    'screenPageViews': 'pageViews',
    'totalUsers': 'users',
    'averageSessionDuration': 'avgSessionSec',
    'engagementRate': 'erPercent',
    'bounceRate': 'brPercent',
}


# ============================================================================
# REQUEST / RESULT TYPES
# ============================================================================

@dataclass(frozen=True)
class ReportRequest:
    property_id: str
    start_date: str = DEFAULT_START
    end_date: str = DEFAULT_END
    limit: int = 1000
    dim: Optional[str] = None
    page_path_contains: str = ''

    @classmethod
    def from_body(cls, body: Mapping[str, Any], default_limit: int) -> "ReportRequest":
        property_id = property_id_from(body)
        if not property_id:
            raise BadRequest('propertyId is required')

        limit = body.get('limit')
        if limit is None:
            limit = default_limit
        elif not _is_whole(limit) or limit < 1:
            raise BadRequest('limit must be a positive integer')
        else:
            limit = min(int(limit), MAX_LIMIT)

        dim = body.get('dim')
        path = body.get('pagePathContains')
        return cls(
            property_id=property_id,
            start_date=_date_or(body.get('startDate'), DEFAULT_START),
            end_date=_date_or(body.get('endDate'), DEFAULT_END),
            limit=int(limit),
            dim=dim if isinstance(dim, str) else None,
            page_path_contains=path.strip() if isinstance(path, str) else '',
        )


def property_id_from(body: Mapping[str, Any]) -> str:
    pid = body.get('propertyId')
    if isinstance(pid, bool):
        return ''
    if isinstance(pid, int):
        return str(pid)
    return pid.strip() if isinstance(pid, str) else ''


def _is_whole(value) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, float):
        return value.is_integer()
    return isinstance(value, int)


def _date_or(value, default: str) -> str:
    return value if isinstance(value, str) and value else default


@dataclass(frozen=True)
class QueryPlan:
    """Fields chosen for one request."""
    dimension: str
    metrics: Sequence[str]
    order_metric: Optional[str] = None
    order_dimension: Optional[str] = None
    desc: bool = True
    contains: Optional[ContainsFilter] = None
    view_metric: Optional[str] = None
    extra_metrics: Sequence[str] = ()


@dataclass
class Report:
    kind: str
    meta: Dict[str, Any]
    rows: List[Dict[str, Any]]
    rows_key: str = 'rows'
    medians: Optional[Dict[str, float]] = None
    note: Optional[str] = None
    dimension: str = ''


@dataclass(frozen=True)
class ReportSpec:
    kind: str
    default_limit: int
    plan: Callable[[AnalyticsBackend, ReportRequest], QueryPlan]
    shape: Callable[[QueryPlan, str, Dict[str, float]], Dict[str, Any]]
    meta: Callable[[QueryPlan, ReportRequest], Dict[str, Any]]
    rows_key: str = 'rows'
    diagnose: bool = False


# ============================================================================
# NORMALISATION
# ============================================================================

def metric_values(names: Sequence[str], raw: Sequence[str]) -> Dict[str, float]:
    """Parse raw metric strings, rescaling rates from 0-1 to 0-100.

    This is the only place rates are rescaled; everything downstream sees
    percentages.
    """
    values = {}
    for i, name in enumerate(names):
        num = safe_float(raw[i]) if i < len(raw) else 0.0
        if name in PERCENT_METRICS:
            num = num * 100
        values[name] = num
    return values


def format_ga_date(value: str) -> str:
    """``20240131`` -> ``2024-01-31``; anything else is returned unchanged."""
    if value and len(value) == 8 and value.isdigit():
        return f"{value[:4]}-{value[4:6]}-{value[6:]}"
    return str(value)


# ============================================================================
# PIPELINE
# ============================================================================

def run_report(spec: ReportSpec, gate: AccessGate, backend: AnalyticsBackend,
               credential: Optional[str], body: Mapping[str, Any]) -> Report:
    body = body if isinstance(body, Mapping) else {}

    decision = gate.authorize(credential, property_id_from(body))
    decision.raise_for_credential()
    req = ReportRequest.from_body(body, spec.default_limit)
    decision.raise_for_property()

    plan = _plan(spec, backend, req)
    query = ReportQuery(
        property_id=req.property_id,
        start_date=req.start_date,
        end_date=req.end_date,
        dimension=plan.dimension,
        metrics=list(plan.metrics),
        limit=req.limit,
        order_metric=plan.order_metric,
        order_dimension=plan.order_dimension,
        desc=plan.desc,
        contains=plan.contains,
    )
    raw_rows = backend.run_report(query)

    parsed = [(r.dimension_value, metric_values(plan.metrics, r.metric_values)) for r in raw_rows]

    report = Report(
        kind=spec.kind,
        meta=spec.meta(plan, req),
        rows=[],
        rows_key=spec.rows_key,
        medians={} if spec.diagnose else None,
        dimension=plan.dimension,
    )
    if not parsed:
        report.note = NO_ROWS_NOTE
        return report

    if spec.diagnose:
        report.medians = median_table([values for _, values in parsed], list(plan.metrics))

    for dim_value, values in parsed:
        row = spec.shape(plan, dim_value, values)
        if spec.diagnose:
            tags = classify(values, report.medians, plan.view_metric)
            row['diagnosis'] = diagnosis_text(tags)
        report.rows.append(row)
    return report


def _plan(spec: ReportSpec, backend: AnalyticsBackend, req: ReportRequest) -> QueryPlan:
    try:
        return spec.plan(backend, req)
    except NotAvailable as e:
        logger.info("Property %s: %s", req.property_id, e)
        raise BadRequest(str(e)) from e


# ============================================================================
# PAGE DIAGNOSTIC REPORT
# ============================================================================

def _plan_pages(backend: AnalyticsBackend, req: ReportRequest) -> QueryPlan:
    sel = resolve(backend.get_capabilities(req.property_id))
    return QueryPlan(
        dimension=sel.dimension,
        metrics=sel.metrics,
        order_metric=sel.view_metric,
        view_metric=sel.view_metric,
        extra_metrics=sel.extra_metrics,
    )


def _shape_page(plan: QueryPlan, dim_value: str, values: Dict[str, float]) -> Dict[str, Any]:
    return {plan.dimension: dim_value or '', **values}


def _meta_pages(plan: QueryPlan, req: ReportRequest) -> Dict[str, Any]:
    return {
        'dimension': plan.dimension,
        'viewMetric': plan.view_metric,
        'extraMetrics': list(plan.extra_metrics),
        'propertyId': req.property_id,
        'startDate': req.start_date,
        'endDate': req.end_date,
    }


PAGE_REPORT = ReportSpec(
    kind='pages',
    default_limit=1000,
    plan=_plan_pages,
    shape=_shape_page,
    meta=_meta_pages,
    rows_key='pages',
    diagnose=True,
)


# ============================================================================
# TRAFFIC BREAKDOWN REPORT
# ============================================================================

def _plan_traffic(backend: AnalyticsBackend, req: ReportRequest) -> QueryPlan:
    caps = backend.get_capabilities(req.property_id)
    return QueryPlan(
        dimension=resolve_traffic_dimension(caps, req.dim),
        metrics=TRAFFIC_METRICS,
        order_metric='sessions',
    )


def _shape_traffic(plan: QueryPlan, dim_value: str, values: Dict[str, float]) -> Dict[str, Any]:
    return {'label': dim_value or NOT_SET, **values}


def _meta_traffic(plan: QueryPlan, req: ReportRequest) -> Dict[str, Any]:
    return {
        'propertyId': req.property_id,
        'startDate': req.start_date,
        'endDate': req.end_date,
        'dimension': plan.dimension,
        'requestedDim': req.dim if req.dim in TRAFFIC_DIMS else None,
    }


TRAFFIC_REPORT = ReportSpec(
    kind='traffic',
    default_limit=50,
    plan=_plan_traffic,
    shape=_shape_traffic,
    meta=_meta_traffic,
)


# ============================================================================
# TIME-SERIES REPORT
# ============================================================================

def _plan_timeseries(backend: AnalyticsBackend, req: ReportRequest) -> QueryPlan:
    contains = None
    if req.page_path_contains:
        contains = ContainsFilter('pagePath', req.page_path_contains)
    return QueryPlan(
        dimension='date',
        metrics=tuple(TIMESERIES_METRICS),
        order_dimension='date',
        desc=False,
        contains=contains,
    )


def _shape_timeseries(plan: QueryPlan, dim_value: str, values: Dict[str, float]) -> Dict[str, Any]:
    row = {'date': format_ga_date(dim_value)}
    row.update({out: values[name] for name, out in TIMESERIES_METRICS.items()})
    return row


def _meta_timeseries(plan: QueryPlan, req: ReportRequest) -> Dict[str, Any]:
    return {
        'propertyId': req.property_id,
        'startDate': req.start_date,
        'endDate': req.end_date,
        'dimension': plan.dimension,
        'pagePathContains': req.page_path_contains,
    }


TIMESERIES_REPORT = ReportSpec(
    kind='timeseries',
    default_limit=366,
    plan=_plan_timeseries,
    shape=_shape_timeseries,
    meta=_meta_timeseries,
)

REPORTS = {spec.kind: spec for spec in (PAGE_REPORT, TRAFFIC_REPORT, TIMESERIES_REPORT)}
