"""Render a Report as its JSON payload or as CSV text."""

import csv
import io
from typing import Any, Dict, List

from .errors import BadRequest
from .reports import Report

# Page report CSV columns after the dimension; metrics the property lacks stay empty
CSV_COLUMNS = [
    ('views', 'views'),
    ('screenPageViews', 'screenPageViews'),
    ('eventCount', 'eventCount'),
    ('sessions', 'sessions'),
    ('bounceRate', 'bounceRate(%)'),
    ('engagementRate', 'engagementRate(%)'),
    ('averageSessionDuration', 'averageSessionDuration'),
    ('totalUsers', 'totalUsers'),
    ('diagnosis', 'diagnosis'),
]


def to_json(report: Report) -> Dict[str, Any]:
    payload: Dict[str, Any] = {'meta': report.meta}
    if report.medians is not None:
        payload['medians'] = report.medians
    payload[report.rows_key] = report.rows
    if report.note:
        payload['note'] = report.note
    return payload


def csv_header(report: Report) -> List[str]:
    return [report.dimension] + [label for _, label in CSV_COLUMNS]


def to_csv(report: Report) -> str:
    if report.kind != 'pages':
        raise BadRequest('CSV output is only available for the page report')

    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator='\n')
    writer.writerow(csv_header(report))
    for row in report.rows:
        writer.writerow([_cell(row.get(report.dimension))] +
                        [_cell(row.get(key)) for key, _ in CSV_COLUMNS])
    return buf.getvalue()


def _cell(value) -> str:
    if value is None:
        return ''
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def csv_filename(report: Report) -> str:
    meta = report.meta
    return f"ga4-diagnose-{meta['propertyId']}-{meta['startDate']}_{meta['endDate']}.csv"
