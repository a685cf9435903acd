"""
Station Cache

Read-through cache of station lookups (name, code, owners, rate) keyed by
station id. Invalidate a station whenever it is updated.
"""

import logging
import threading

from .models import Station

logger = logging.getLogger(__name__)


class StationCache:
    """Caches stations from the store until invalidated."""

    def __init__(self, store):
        self._store = store
        self._stations: dict[str, Station] = {}
        self._listed = False
        # Bumped on every invalidation; a listing read across a bump is not cached
        self._generation = 0
        self._lock = threading.Lock()

    def get(self, station_id: str) -> Station | None:
        with self._lock:
            if station_id in self._stations:
                return self._stations[station_id]
            generation = self._generation

        station = self._store.get_station(station_id)
        if station is not None:
            with self._lock:
                if self._generation == generation:
                    self._stations[station_id] = station
        return station

    def list(self) -> list[Station]:
        """All stations. The first call loads the full listing from the store."""
        with self._lock:
            if self._listed:
                return sorted(self._stations.values(), key=lambda s: s.id)
            generation = self._generation

        stations = self._store.list_stations()
        with self._lock:
            if self._generation == generation:
                self._stations = {s.id: s for s in stations}
                self._listed = True
        return stations

    def invalidate(self, station_id: str) -> None:
        """Drop one station; the next listing reloads from the store."""
        with self._lock:
            self._stations.pop(station_id, None)
            self._listed = False
            self._generation += 1
        logger.info(f"Station cache invalidated: {station_id}")

    def clear(self) -> None:
        with self._lock:
            self._stations = {}
            self._listed = False
            self._generation += 1
