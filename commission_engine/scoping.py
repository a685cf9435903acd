"""
Visibility Scoper

Restricts stations, commission records and query filters to what the
caller's organizational role may see.
"""

from dataclasses import replace

from .config import ROLE_ADMIN, ROLE_DEALER, ROLE_OMC
from .models import Caller, CommissionFilters


class VisibilityScoper:
    """Role-based visibility over stations and commission records.

    - admin: everything
    - omc: items whose omc_id is the caller's
    - dealer: items whose dealer_id is the caller's
    - any other role: the caller's own station only
    """

    def can_see(self, item, caller: Caller) -> bool:
        if caller.role == ROLE_ADMIN:
            return True
        if caller.role == ROLE_OMC:
            return caller.omc_id is not None and item.omc_id == caller.omc_id
        if caller.role == ROLE_DEALER:
            return caller.dealer_id is not None and item.dealer_id == caller.dealer_id
        return caller.station_id is not None and _station_id_of(item) == caller.station_id

    def scope(self, items: list, caller: Caller) -> list:
        """Keep only the items visible to the caller."""
        return [item for item in items if self.can_see(item, caller)]

    def scope_filters(self, filters: CommissionFilters, caller: Caller) -> CommissionFilters | None:
        """
        Pin the caller's organization onto query filters so the store never
        counts or pages foreign records.

        Returns None when the requested filters contradict the caller's
        scope: the query can only ever be empty.
        """
        if caller.role == ROLE_ADMIN:
            return filters

        if caller.role == ROLE_OMC:
            return self._pin(filters, "omc_id", caller.omc_id)

        if caller.role == ROLE_DEALER:
            return self._pin(filters, "dealer_id", caller.dealer_id)

        return self._pin(filters, "station_id", caller.station_id)

    def _pin(self, filters: CommissionFilters, key: str, value: str | None) -> CommissionFilters | None:
        if value is None:
            return None
        requested = getattr(filters, key)
        if requested is not None and requested != value:
            return None
        return replace(filters, **{key: value})


def _station_id_of(item) -> str | None:
    # Commission records carry station_id; stations are their own id
    station_id = getattr(item, "station_id", None)
    if station_id is not None:
        return station_id
    return getattr(item, "id", None)
