"""Request-level errors. Each one ends the request with no partial data."""

from typing import Dict, List, Optional


class ReportError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict:
        return {"error": self.message}


class Unauthorized(ReportError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class Forbidden(ReportError):
    """Credential is valid but the property is outside its allowed list.

    The allowed list is echoed back on purpose so a client can see which
    property ids its key was actually issued for.
    """

    status_code = 403

    def __init__(self, allowed: List[str], message: str = "Forbidden propertyId for this key"):
        super().__init__(message)
        self.allowed = list(allowed)

    def to_dict(self) -> Dict:
        return {"error": self.message, "allowed": self.allowed}


class BadRequest(ReportError):
    status_code = 400


class UpstreamFailure(ReportError):
    status_code = 502

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ConfigurationError(ReportError):
    status_code = 500
