"""Shared test fixtures for ga_diagnose tests."""

import sys
from pathlib import Path

import pytest

# Add repo root to path so tests can import ga_diagnose without installing
sys.path.insert(0, str(Path(__file__).parent.parent))

from ga_diagnose.config import Settings  # noqa: E402
from ga_diagnose.ga4 import RawRow  # noqa: E402
from ga_diagnose.resolver import Capabilities  # noqa: E402

WEB_DIMENSIONS = [
    'pagePath', 'pageLocation', 'pageTitle', 'date',
    'sessionSourceMedium', 'sessionDefaultChannelGroup', 'sessionSource', 'sessionMedium',
]
WEB_METRICS = [
    'views', 'screenPageViews', 'eventCount', 'sessions', 'bounceRate',
    'engagementRate', 'averageSessionDuration', 'totalUsers',
]


class FakeBackend:
    """In-memory AnalyticsBackend that records every query it receives."""

    def __init__(self, rows=None, dimensions=WEB_DIMENSIONS, metrics=WEB_METRICS, error=None):
        self.rows = list(rows or [])
        self.caps = Capabilities.of(dimensions, metrics)
        self.error = error
        self.queries = []
        self.capability_calls = []

    def get_capabilities(self, property_id):
        self.capability_calls.append(property_id)
        return self.caps

    def run_report(self, query):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return [RawRow(dim, list(values)) for dim, values in self.rows]


@pytest.fixture
def page_rows():
    """Rows for views, bounceRate, engagementRate, averageSessionDuration, totalUsers, sessions."""
    return [
        ('/', ['1000', '0.30', '0.60', '65.5', '800', '900']),
        ('/pricing', ['400', '0.80', '0.40', '20', '350', '380']),
        ('/blog', ['300', '0.55', '0.55', '40', '250', '260']),
        ('/old-page', ['10', '0.50', '0.50', '30', '9', '9']),
    ]


@pytest.fixture
def tenant_settings():
    return Settings(clients={'key-a': ('1001', '1002'), 'key-empty': ()})
