"""
Rate Resolver

Determines the commission rate (currency per liter) for a station.
"""

from decimal import Decimal

from ..config import DEFAULT_COMMISSION_RATE
from ..models import CommissionRecord, Station

RATE_FROM_RECORD = "record"
RATE_FROM_STATION = "station"
RATE_DEFAULT = "default"


class RateResolver:
    """Resolves a rate with a fixed precedence. Never fails."""

    def __init__(self, default_rate: Decimal = DEFAULT_COMMISSION_RATE):
        self.default_rate = default_rate

    def resolve(
        self,
        record: CommissionRecord | None,
        station: Station | None,
    ) -> tuple[Decimal, str]:
        """
        Resolve the rate and report where it came from.

        Priority order (first positive wins):
        1. Rate stored on the commission record
        2. Station's configured rate
        3. Default rate
        """
        if record is not None and record.commission_rate and record.commission_rate > 0:
            return record.commission_rate, RATE_FROM_RECORD

        if station is not None and station.commission_rate and station.commission_rate > 0:
            return station.commission_rate, RATE_FROM_STATION

        return self.default_rate, RATE_DEFAULT

    def resolve_rate(self, record: CommissionRecord | None, station: Station | None) -> Decimal:
        rate, _ = self.resolve(record, station)
        return rate
