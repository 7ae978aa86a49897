"""Access control: which caller keys may query which GA4 properties.

Three modes, picked from configuration at construction time:

- multi-tenant: a non-empty clients table maps each key to its property ids
- legacy: no table, a single shared API key unlocks every property
- open: neither is configured, every request is allowed (not recommended)
"""

import enum
import hmac
import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Tuple

from .config import Settings
from .errors import Forbidden, Unauthorized

logger = logging.getLogger(__name__)


class Access(enum.Enum):
    ALLOWED = "allowed"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class Decision:
    access: Access
    allowed: Optional[Tuple[str, ...]] = None

    @property
    def ok(self) -> bool:
        return self.access is Access.ALLOWED

    def raise_for_credential(self) -> None:
        if self.access is Access.UNAUTHORIZED:
            raise Unauthorized()

    def raise_for_property(self) -> None:
        self.raise_for_credential()
        if self.access is Access.FORBIDDEN:
            raise Forbidden(list(self.allowed or ()))


ALLOW = Decision(Access.ALLOWED)
DENY = Decision(Access.UNAUTHORIZED)


class AccessGate:
    def __init__(self, clients: Optional[Mapping[str, Sequence[str]]] = None, api_key: str = ''):
        self._clients = {k: tuple(v) for k, v in (clients or {}).items()}
        self._api_key = api_key or ''

    @classmethod
    def from_settings(cls, settings: Settings) -> "AccessGate":
        return cls(settings.clients, settings.api_key)

    @property
    def mode(self) -> str:
        if self._clients:
            return "clients"
        if self._api_key:
            return "api_key"
        return "open"

    def authorize(self, credential: Optional[str], property_id: str) -> Decision:
        """Pure check of (credential, property) against the configured table."""
        credential = (credential or '').strip()

        if self._clients:
            allowed = self._clients.get(credential) if credential else None
            if not allowed:
                logger.info("Rejected request: unknown or empty credential")
                return DENY
            if property_id not in allowed:
                logger.info("Rejected request for property %s: not in key's allowed list", property_id)
                return Decision(Access.FORBIDDEN, allowed)
            return Decision(Access.ALLOWED, allowed)

        if self._api_key:
            if not hmac.compare_digest(credential.encode('utf-8'), self._api_key.encode('utf-8')):
                logger.info("Rejected request: API key mismatch")
                return DENY
            return ALLOW

        return ALLOW
