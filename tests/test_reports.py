import pytest

from ga_diagnose.auth import AccessGate
from ga_diagnose.diagnosis import BOUNCE_HIGH, BOUNCE_LOW, LOW_VISIBILITY, STANDARD
from ga_diagnose.errors import BadRequest, Forbidden, Unauthorized, UpstreamFailure
from ga_diagnose.reports import (
    NO_ROWS_NOTE, PAGE_REPORT, TIMESERIES_REPORT, TRAFFIC_REPORT,
    ReportRequest, format_ga_date, metric_values, run_report,
)

from conftest import FakeBackend

OPEN = AccessGate()


# ── Request parsing ──


def test_request_defaults():
    req = ReportRequest.from_body({'propertyId': '123'}, 50)
    assert (req.start_date, req.end_date, req.limit) == ('28daysAgo', 'yesterday', 50)


def test_request_accepts_integer_property_id():
    assert ReportRequest.from_body({'propertyId': 123}, 1).property_id == '123'


@pytest.mark.parametrize('body', [{}, {'propertyId': ''}, {'propertyId': None}, {'propertyId': True}])
def test_request_requires_property(body):
    with pytest.raises(BadRequest, match='propertyId is required'):
        ReportRequest.from_body(body, 10)


@pytest.mark.parametrize('limit', [0, -5, 'ten', 2.5, True])
def test_request_rejects_bad_limit(limit):
    with pytest.raises(BadRequest):
        ReportRequest.from_body({'propertyId': '1', 'limit': limit}, 10)


@pytest.mark.parametrize('limit', [10**20, 1e20, 250001])
def test_request_caps_huge_limit(limit):
    assert ReportRequest.from_body({'propertyId': '1', 'limit': limit}, 10).limit == 250000


def test_request_empty_dates_fall_back():
    req = ReportRequest.from_body({'propertyId': '1', 'startDate': '', 'endDate': 5}, 10)
    assert (req.start_date, req.end_date) == ('28daysAgo', 'yesterday')


# ── Normalisation ──


def test_rates_are_rescaled_once():
    values = metric_values(['bounceRate', 'engagementRate', 'sessions'], ['0.0423', '0.5', '12'])
    assert values['bounceRate'] == pytest.approx(4.23)
    assert values['engagementRate'] == pytest.approx(50.0)
    assert values['sessions'] == 12.0


def test_missing_metric_values_become_zero():
    assert metric_values(['views', 'sessions'], ['7']) == {'views': 7.0, 'sessions': 0.0}


@pytest.mark.parametrize('raw, expected', [
    ('20240131', '2024-01-31'),
    ('2024-01-31', '2024-01-31'),
    ('', ''),
    ('(other)', '(other)'),
])
def test_format_ga_date(raw, expected):
    assert format_ga_date(raw) == expected


# ── Page diagnostic report ──


def test_page_report_end_to_end(page_rows):
    backend = FakeBackend(rows=page_rows)
    report = run_report(PAGE_REPORT, OPEN, backend, None, {'propertyId': '42'})

    query = backend.queries[0]
    assert query.dimension == 'pagePath'
    assert list(query.metrics) == [
        'views', 'bounceRate', 'engagementRate', 'averageSessionDuration', 'totalUsers', 'sessions',
    ]
    assert query.order_metric == 'views' and query.desc
    assert query.limit == 1000

    assert report.meta == {
        'dimension': 'pagePath',
        'viewMetric': 'views',
        'extraMetrics': ['bounceRate', 'engagementRate', 'averageSessionDuration', 'totalUsers', 'sessions'],
        'propertyId': '42',
        'startDate': '28daysAgo',
        'endDate': 'yesterday',
    }
    assert report.medians['views'] == 350.0
    assert report.medians['bounceRate'] == pytest.approx(52.5)

    pages = {r['pagePath']: r for r in report.rows}
    assert pages['/']['bounceRate'] == pytest.approx(30.0)
    assert pages['/']['diagnosis'] == BOUNCE_LOW
    assert pages['/pricing']['diagnosis'] == BOUNCE_HIGH
    assert pages['/blog']['diagnosis'] == STANDARD
    assert pages['/old-page']['diagnosis'] == LOW_VISIBILITY
    assert report.note is None


def test_page_report_two_rows_scenario():
    rows = [('/a', ['100', '0.30']), ('/b', ['100', '0.80'])]
    backend = FakeBackend(rows=rows, metrics=['views', 'bounceRate'])
    report = run_report(PAGE_REPORT, OPEN, backend, None, {'propertyId': '1'})
    assert report.medians['bounceRate'] == pytest.approx(55.0)
    by_path = {r['pagePath']: r['diagnosis'] for r in report.rows}
    assert by_path == {'/a': BOUNCE_LOW, '/b': BOUNCE_HIGH}


def test_page_report_app_property_uses_screen_name():
    backend = FakeBackend(rows=[('Home', ['5'])], dimensions=['screenName'], metrics=['sessions'])
    report = run_report(PAGE_REPORT, OPEN, backend, None, {'propertyId': '1'})
    assert report.meta['dimension'] == 'screenName'
    assert report.meta['extraMetrics'] == []
    assert report.rows == [{'screenName': 'Home', 'sessions': 5.0, 'diagnosis': STANDARD}]


def test_page_report_empty_result_is_not_an_error():
    report = run_report(PAGE_REPORT, OPEN, FakeBackend(), None, {'propertyId': '1'})
    assert report.rows == []
    assert report.medians == {}
    assert report.note == NO_ROWS_NOTE


def test_page_report_unsupported_property_is_bad_request():
    backend = FakeBackend(dimensions=['country'], metrics=['views'])
    with pytest.raises(BadRequest, match='not available'):
        run_report(PAGE_REPORT, OPEN, backend, None, {'propertyId': '1'})
    assert backend.queries == []


def test_caller_limit_is_forwarded():
    backend = FakeBackend()
    run_report(PAGE_REPORT, OPEN, backend, None, {'propertyId': '1', 'limit': 25})
    assert backend.queries[0].limit == 25


# ── Authorization inside the pipeline ──


def test_unauthorized_wins_over_missing_property():
    gate = AccessGate({'k': ['1']})
    with pytest.raises(Unauthorized):
        run_report(PAGE_REPORT, gate, FakeBackend(), 'wrong', {})


def test_missing_property_with_valid_key_is_bad_request():
    gate = AccessGate({'k': ['1']})
    with pytest.raises(BadRequest):
        run_report(PAGE_REPORT, gate, FakeBackend(), 'k', {})


def test_forbidden_property_never_reaches_backend():
    gate = AccessGate({'k': ['1001', '1002']})
    backend = FakeBackend()
    with pytest.raises(Forbidden) as exc:
        run_report(TRAFFIC_REPORT, gate, backend, 'k', {'propertyId': '2000'})
    assert exc.value.allowed == ['1001', '1002']
    assert backend.capability_calls == [] and backend.queries == []


def test_upstream_failure_propagates():
    backend = FakeBackend(error=UpstreamFailure('Deadline Exceeded'))
    with pytest.raises(UpstreamFailure, match='Deadline Exceeded'):
        run_report(TIMESERIES_REPORT, OPEN, backend, None, {'propertyId': '1'})


# ── Traffic breakdown report ──


def test_traffic_report():
    rows = [('google / organic', ['120', '100', '0.61', '0.39', '75.2']), ('', ['3', '3', '0', '1', '0'])]
    backend = FakeBackend(rows=rows)
    report = run_report(TRAFFIC_REPORT, OPEN, backend, None, {'propertyId': '7', 'dim': 'channel'})

    query = backend.queries[0]
    assert query.dimension == 'sessionDefaultChannelGroup'
    assert query.order_metric == 'sessions'
    assert query.limit == 50

    assert report.medians is None
    assert report.meta['dimension'] == 'sessionDefaultChannelGroup'
    first, second = report.rows
    assert first['label'] == 'google / organic'
    assert first['engagementRate'] == pytest.approx(61.0)
    assert first['bounceRate'] == pytest.approx(39.0)
    assert first['averageSessionDuration'] == pytest.approx(75.2)
    assert 'diagnosis' not in first
    assert second['label'] == '(not set)'
    assert second['bounceRate'] == pytest.approx(100.0)


def test_traffic_report_falls_back_when_dimension_missing():
    backend = FakeBackend(dimensions=['sessionSource'])
    report = run_report(TRAFFIC_REPORT, OPEN, backend, None, {'propertyId': '7', 'dim': 'sourcemedium'})
    assert report.meta['dimension'] == 'sessionSource'
    assert report.note == NO_ROWS_NOTE


def test_traffic_report_without_traffic_dimensions():
    backend = FakeBackend(dimensions=['pagePath'])
    with pytest.raises(BadRequest, match='No suitable traffic dimension'):
        run_report(TRAFFIC_REPORT, OPEN, backend, None, {'propertyId': '7'})


# ── Time-series report ──


def test_timeseries_report():
    rows = [
        ('20240101', ['10', '25', '8', '61.5', '0.6', '0.4']),
        ('20240102', ['12', '30', '9', '58', '0.5', '0.5']),
    ]
    backend = FakeBackend(rows=rows)
    body = {'propertyId': '9', 'startDate': '2024-01-01', 'endDate': '2024-01-02',
            'pagePathContains': '  /Blog '}
    report = run_report(TIMESERIES_REPORT, OPEN, backend, None, body)

    query = backend.queries[0]
    assert query.dimension == 'date'
    assert query.order_dimension == 'date' and not query.desc
    assert query.limit == 366
    assert query.contains.field_name == 'pagePath'
    assert query.contains.value == '/Blog'
    assert backend.capability_calls == []

    assert report.meta['pagePathContains'] == '/Blog'
    assert report.rows[0] == {
        'date': '2024-01-01',
        'sessions': 10.0,
        'pageViews': 25.0,
        'users': 8.0,
        'avgSessionSec': 61.5,
        'erPercent': pytest.approx(60.0),
        'brPercent': pytest.approx(40.0),
    }
    assert report.rows[1]['date'] == '2024-01-02'


def test_timeseries_without_filter():
    backend = FakeBackend()
    run_report(TIMESERIES_REPORT, OPEN, backend, None, {'propertyId': '9', 'pagePathContains': '   '})
    assert backend.queries[0].contains is None
