"""
Error Taxonomy for the Commission Engine

Raised errors abort an operation with no partial mutation. Integrity
warnings are never raised: they ride along on results so the caller can
show them next to the figures they affect.
"""

from dataclasses import dataclass


class CommissionEngineError(Exception):
    """Base class for all engine failures."""

    status = "failed"


class ValidationError(CommissionEngineError, ValueError):
    """Malformed input: bad period, payment payload, pagination, data source."""

    status = "validation_failed"


class PermissionDenied(CommissionEngineError):
    """Caller lacks the permission or the organizational scope."""

    status = "permission_denied"


class InvalidState(CommissionEngineError):
    """Transition attempted on a record whose state does not allow it."""

    status = "invalid_state"


class ConcurrencyConflict(InvalidState):
    """Stored record moved on since the writer read it."""

    status = "conflict"


class NotFound(CommissionEngineError):
    """Unknown commission record or station."""

    status = "not_found"


@dataclass
class DataIntegrityWarning:
    """A non-fatal data anomaly surfaced alongside computed figures."""

    kind: str  # 'negative_volume', 'default_rate', 'missing_data'
    station_id: str
    message: str
    date: str | None = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "station_id": self.station_id,
            "date": self.date,
            "message": self.message,
        }


HTTP_STATUS_CODES = {
    ValidationError: 400,
    PermissionDenied: 403,
    NotFound: 404,
    InvalidState: 409,
}


def http_status_for(error: CommissionEngineError) -> int:
    """Most specific HTTP status for an engine error."""
    for error_type in type(error).__mro__:
        if error_type in HTTP_STATUS_CODES:
            return HTTP_STATUS_CODES[error_type]
    return 500
