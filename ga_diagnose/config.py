"""Process configuration, read from the environment once at startup.

Nothing here is reloaded while the process runs: build a ``Settings`` with
``Settings.from_env()`` and hand it to the gate, backend and app.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

# ============================================================================
# CONFIG
# ============================================================================

SCOPES = ['https://www.googleapis.com/auth/analytics.readonly']
CONFIG_DIR = Path.home() / '.config' / 'ga-diagnose'
TOKEN_PATH = CONFIG_DIR / 'token.json'
CREDENTIALS_PATH = CONFIG_DIR / 'credentials.json'

DEFAULT_TIMEOUT_SECONDS = 30.0

# Known properties (name -> property_id), extended by GA_DIAGNOSE_PROPERTIES
PROPERTIES: Dict[str, str] = {
    # 'mysite': 'YOUR_GA4_PROPERTY_ID',
}

TRUTHY = {"1", "true", "yes", "on"}

ClientsTable = Dict[str, Tuple[str, ...]]


def normalize_private_key(raw: Optional[str]) -> str:
    """Undo the escaping PEM keys get when stored in a single env line."""
    if not raw:
        return ''
    if '\\n' in raw:
        return raw.replace('\\n', '\n')
    return raw.replace('\r', '')


def parse_clients(raw: Optional[str]) -> ClientsTable:
    """Parse CLIENTS_JSON into credential -> tuple of property ids.

    Property ids are normalised to strings, so ``{"key": [1001]}`` and
    ``{"key": ["1001"]}`` grant the same access. Broken JSON gives an empty
    table, which drops the gate back to API_KEY / no-auth mode.
    """
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError as e:
        logger.warning("CLIENTS_JSON is not valid JSON, ignoring it: %s", e)
        return {}
    if not isinstance(parsed, dict):
        logger.warning("CLIENTS_JSON must be a JSON object, got %s", type(parsed).__name__)
        return {}

    table = {}
    for key, ids in parsed.items():
        if isinstance(ids, (str, int)) and not isinstance(ids, bool):
            ids = [ids]
        if not isinstance(ids, list):
            logger.warning("CLIENTS_JSON entry has a non-list value, treating it as empty")
            ids = []
        table[str(key)] = tuple(str(v) for v in ids if v is not None)
    return table


def parse_properties(raw: Optional[str]) -> Dict[str, str]:
    props = dict(PROPERTIES)
    if not raw:
        return props
    try:
        parsed = json.loads(raw)
    except ValueError as e:
        logger.warning("GA_DIAGNOSE_PROPERTIES is not valid JSON, ignoring it: %s", e)
        return props
    if isinstance(parsed, dict):
        props.update({str(k).lower(): str(v) for k, v in parsed.items()})
    return props


def _float_env(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, '').strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("%s=%r is not a number, using %s", name, raw, default)
        return default
    return value if value > 0 else default


@dataclass(frozen=True)
class Settings:
    clients: ClientsTable = field(default_factory=dict)
    api_key: str = ''
    client_email: str = ''
    private_key: str = ''
    token_path: Path = TOKEN_PATH
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    debug_endpoints: bool = False
    properties: Dict[str, str] = field(default_factory=dict)
    log_level: str = 'INFO'
    clients_raw_length: int = 0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        raw_clients = env.get('CLIENTS_JSON', '')
        token_path = env.get('GA4_TOKEN_PATH', '').strip()
        return cls(
            clients=parse_clients(raw_clients),
            api_key=env.get('API_KEY', '').strip(),
            client_email=env.get('GA4_CLIENT_EMAIL', '').strip(),
            private_key=normalize_private_key(env.get('GA4_PRIVATE_KEY')),
            token_path=Path(token_path).expanduser() if token_path else TOKEN_PATH,
            timeout=_float_env(env, 'GA4_TIMEOUT_SECONDS', DEFAULT_TIMEOUT_SECONDS),
            debug_endpoints=env.get('GA_DIAGNOSE_DEBUG_ENDPOINTS', '').strip().lower() in TRUTHY,
            properties=parse_properties(env.get('GA_DIAGNOSE_PROPERTIES')),
            log_level=(env.get('LOG_LEVEL', '').strip() or 'INFO').upper(),
            clients_raw_length=len(raw_clients),
        )

    @property
    def has_service_account(self) -> bool:
        return bool(self.client_email and self.private_key)

    def resolve_property(self, name_or_id: str) -> str:
        """Map a known property alias to its id; anything else is taken as an id."""
        return self.properties.get(name_or_id.lower(), name_or_id)


def configure_logging(level: str = 'INFO') -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
