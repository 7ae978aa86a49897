"""GA4 Data API adapter.

Reports only talk to ``AnalyticsBackend``; ``GA4Backend`` is the real one,
tests plug in fakes.
"""

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from google.analytics.data_v1beta import BetaAnalyticsDataClient
from google.analytics.data_v1beta.types import (
    DateRange, Dimension, Metric, RunReportRequest, GetMetadataRequest,
    OrderBy, Filter, FilterExpression
)
from google.api_core import exceptions as api_exceptions
from google.auth import exceptions as auth_exceptions
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials

from .config import CREDENTIALS_PATH, SCOPES, Settings
from .errors import ConfigurationError, UpstreamFailure
from .resolver import Capabilities

logger = logging.getLogger(__name__)

TOKEN_URI = 'https://oauth2.googleapis.com/token'


# ============================================================================
# BACKEND CONTRACT
# ============================================================================

@dataclass(frozen=True)
class ContainsFilter:
    """Case-insensitive substring match on a dimension, evaluated by GA4."""
    field_name: str
    value: str


@dataclass(frozen=True)
class ReportQuery:
    property_id: str
    start_date: str
    end_date: str
    dimension: str
    metrics: Sequence[str]
    limit: int
    order_metric: Optional[str] = None
    order_dimension: Optional[str] = None
    desc: bool = True
    contains: Optional[ContainsFilter] = None


@dataclass
class RawRow:
    dimension_value: str
    metric_values: List[str] = field(default_factory=list)


class AnalyticsBackend(Protocol):
    def get_capabilities(self, property_id: str) -> Capabilities: ...

    def run_report(self, query: ReportQuery) -> List[RawRow]: ...


# ============================================================================
# AUTH
# ============================================================================

def get_credentials(settings: Settings):
    """Service account from env first, then a saved authorized-user token."""
    if settings.has_service_account:
        info = {
            'type': 'service_account',
            'client_email': settings.client_email,
            'private_key': settings.private_key,
            'token_uri': TOKEN_URI,
        }
        try:
            return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)
        except ValueError as e:
            raise ConfigurationError(f"Invalid GA4 service account key: {e}") from e

    token_path = Path(settings.token_path)
    if not token_path.exists():
        raise ConfigurationError('Missing GA4_CLIENT_EMAIL or GA4_PRIVATE_KEY')

    from google.auth.transport.requests import Request

    creds = Credentials.from_authorized_user_file(str(token_path), SCOPES)
    if not creds.valid and creds.expired and creds.refresh_token:
        try:
            creds.refresh(Request())
        except auth_exceptions.RefreshError as e:
            raise ConfigurationError(f"GA4 token refresh failed: {e}") from e
        token_path.write_text(creds.to_json())
        logger.info("Refreshed GA4 token at %s", token_path)
    return creds


def login(settings: Settings, client_secrets: Path = CREDENTIALS_PATH) -> Credentials:
    """Run the installed-app OAuth flow and save the token for later runs."""
    from google_auth_oauthlib.flow import InstalledAppFlow

    if not client_secrets.exists():
        raise ConfigurationError(f"Need OAuth client secrets at {client_secrets}")
    flow = InstalledAppFlow.from_client_secrets_file(str(client_secrets), SCOPES)
    creds = flow.run_local_server(port=0)
    token_path = Path(settings.token_path)
    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.write_text(creds.to_json())
    logger.info("Saved GA4 token to %s", token_path)
    return creds


# ============================================================================
# GA4 CLIENT
# ============================================================================

def build_request(query: ReportQuery) -> RunReportRequest:
    req = RunReportRequest(
        property=f"properties/{query.property_id}",
        date_ranges=[DateRange(start_date=query.start_date, end_date=query.end_date)],
        dimensions=[Dimension(name=query.dimension)],
        metrics=[Metric(name=m) for m in query.metrics],
        limit=query.limit
    )
    if query.order_metric:
        req.order_bys = [OrderBy(metric=OrderBy.MetricOrderBy(metric_name=query.order_metric),
                                 desc=query.desc)]
    elif query.order_dimension:
        req.order_bys = [OrderBy(dimension=OrderBy.DimensionOrderBy(dimension_name=query.order_dimension),
                                 desc=query.desc)]
    if query.contains:
        req.dimension_filter = FilterExpression(filter=Filter(
            field_name=query.contains.field_name,
            string_filter=Filter.StringFilter(
                match_type=Filter.StringFilter.MatchType.CONTAINS,
                value=query.contains.value,
                case_sensitive=False,
            ),
        ))
    return req


class GA4Backend:
    def __init__(self, settings: Settings, client=None):
        self.settings = settings
        self.timeout = settings.timeout
        self._client = client
        self._client_lock = threading.Lock()

    @property
    def client(self) -> BetaAnalyticsDataClient:
        # one client per backend, even when the first requests race
        with self._client_lock:
            if self._client is None:
                self._client = BetaAnalyticsDataClient(credentials=get_credentials(self.settings))
        return self._client

    def get_capabilities(self, property_id: str) -> Capabilities:
        req = GetMetadataRequest(name=f"properties/{property_id}/metadata")
        try:
            meta = self.client.get_metadata(request=req, timeout=self.timeout)
        except (api_exceptions.GoogleAPIError, auth_exceptions.TransportError) as e:
            logger.warning("GA4 metadata call failed for property %s: %s", property_id, e)
            raise UpstreamFailure(_upstream_message(e), e) from e
        return Capabilities.of((d.api_name for d in meta.dimensions),
                               (m.api_name for m in meta.metrics))

    def run_report(self, query: ReportQuery) -> List[RawRow]:
        logger.info("GA4 report property=%s dim=%s metrics=%s range=%s..%s limit=%s",
                    query.property_id, query.dimension, ",".join(query.metrics),
                    query.start_date, query.end_date, query.limit)
        try:
            resp = self.client.run_report(request=build_request(query), timeout=self.timeout)
        except (api_exceptions.GoogleAPIError, auth_exceptions.TransportError) as e:
            logger.warning("GA4 report failed for property %s: %s", query.property_id, e)
            raise UpstreamFailure(_upstream_message(e), e) from e

        rows = []
        for row in resp.rows:
            dim = row.dimension_values[0].value if row.dimension_values else ''
            rows.append(RawRow(dim, [mv.value for mv in row.metric_values]))
        logger.info("GA4 report property=%s returned %d rows", query.property_id, len(rows))
        return rows


def _upstream_message(e: Exception) -> str:
    msg = getattr(e, 'message', None) or str(e)
    return msg or type(e).__name__
