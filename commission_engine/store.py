"""
Store Interface

The engine reads raw data and persists commission records through a
CommissionStore. InMemoryCommissionStore is the reference implementation
used by the local API and the tests.

Writes to a commission record carry the version the writer read. The store
serializes writes per (station, period) key and rejects a write whose
expected version is stale, so a paid record can never be overwritten by a
recalculation that started before the payment.
"""

import copy
import threading
from dataclasses import replace
from datetime import date
from typing import Protocol
from uuid import uuid4

from .errors import ConcurrencyConflict
from .models import (
    AdjustmentRule,
    CommissionFilters,
    CommissionRecord,
    DailyTankStock,
    SaleEntry,
    Station,
)

# Record writes are serialized through a fixed set of locks picked by key hash
LOCK_STRIPES = 64


class CommissionStore(Protocol):
    """Queryable store consumed by the engine."""

    def get_daily_tank_stocks(self, station_id: str, start: date, end: date) -> list[DailyTankStock]: ...

    def get_sales(self, station_id: str, start: date, end: date) -> list[SaleEntry]: ...

    def get_station(self, station_id: str) -> Station | None: ...

    def list_stations(self) -> list[Station]: ...

    def get_adjustment_rules(self, station_id: str, start: date, end: date) -> list[AdjustmentRule]: ...

    def list_adjustment_rules(self, station_id: str | None = None) -> list[AdjustmentRule]: ...

    def add_adjustment_rule(self, rule: AdjustmentRule) -> None: ...

    def get_commission_record(self, record_id: str) -> CommissionRecord | None: ...

    def find_commission_record(self, station_id: str, period: str) -> CommissionRecord | None: ...

    def upsert_commission_record(
        self, record: CommissionRecord, expected_version: int | None
    ) -> CommissionRecord: ...

    def list_commission_records(
        self, filters: CommissionFilters, page: int | None = None, limit: int | None = None
    ) -> tuple[list[CommissionRecord], int]: ...


class InMemoryCommissionStore:
    """Thread-safe in-memory store. Returns copies so callers never alias stored state."""

    def __init__(self):
        self._stations: dict[str, Station] = {}
        self._tank_stocks: list[DailyTankStock] = []
        self._sales: list[SaleEntry] = []
        self._rules: list[AdjustmentRule] = []
        self._records: dict[str, CommissionRecord] = {}
        self._record_keys: dict[tuple[str, str], str] = {}

        self._lock = threading.Lock()
        self._key_locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    # -------------------------------------------------------------------------
    # Seeding (the real platform owns these through CRUD screens)
    # -------------------------------------------------------------------------

    def add_station(self, station: Station) -> None:
        with self._lock:
            self._stations[station.id] = copy.deepcopy(station)

    def update_station(self, station: Station) -> None:
        self.add_station(station)

    def add_tank_stock(self, row: DailyTankStock) -> None:
        with self._lock:
            self._tank_stocks.append(copy.deepcopy(row))

    def add_sale(self, row: SaleEntry) -> None:
        with self._lock:
            self._sales.append(copy.deepcopy(row))

    def add_adjustment_rule(self, rule: AdjustmentRule) -> None:
        with self._lock:
            self._rules.append(copy.deepcopy(rule))

    def seed_from_dict(self, data: dict) -> None:
        """Load stations, stock, sales and adjustment rules from a fixture dict."""
        for item in data.get("stations", []):
            self.add_station(Station.from_dict(item))
        for item in data.get("daily_tank_stocks", []):
            self.add_tank_stock(DailyTankStock.from_dict(item))
        for item in data.get("sales", []):
            self.add_sale(SaleEntry.from_dict(item))
        for item in data.get("adjustment_rules", []):
            self.add_adjustment_rule(AdjustmentRule.from_dict(item))

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_daily_tank_stocks(self, station_id: str, start: date, end: date) -> list[DailyTankStock]:
        with self._lock:
            rows = [
                r for r in self._tank_stocks
                if r.station_id == station_id and start <= r.date <= end
            ]
            return copy.deepcopy(sorted(rows, key=lambda r: r.date))

    def get_sales(self, station_id: str, start: date, end: date) -> list[SaleEntry]:
        with self._lock:
            rows = [
                r for r in self._sales
                if r.station_id == station_id and start <= r.date <= end
            ]
            return copy.deepcopy(sorted(rows, key=lambda r: r.date))

    def get_station(self, station_id: str) -> Station | None:
        with self._lock:
            return copy.deepcopy(self._stations.get(station_id))

    def list_stations(self) -> list[Station]:
        with self._lock:
            return copy.deepcopy(sorted(self._stations.values(), key=lambda s: s.id))

    def get_adjustment_rules(self, station_id: str, start: date, end: date) -> list[AdjustmentRule]:
        with self._lock:
            return copy.deepcopy([
                r for r in self._rules
                if r.station_id == station_id and r.applies_to(start, end)
            ])

    def list_adjustment_rules(self, station_id: str | None = None) -> list[AdjustmentRule]:
        """Every rule, active or not, in creation order."""
        with self._lock:
            return copy.deepcopy([
                r for r in self._rules
                if station_id is None or r.station_id == station_id
            ])

    def get_commission_record(self, record_id: str) -> CommissionRecord | None:
        with self._lock:
            return copy.deepcopy(self._records.get(record_id))

    def find_commission_record(self, station_id: str, period: str) -> CommissionRecord | None:
        with self._lock:
            record_id = self._record_keys.get((station_id, period))
            if record_id is None:
                return None
            return copy.deepcopy(self._records[record_id])

    def list_commission_records(
        self,
        filters: CommissionFilters,
        page: int | None = None,
        limit: int | None = None,
    ) -> tuple[list[CommissionRecord], int]:
        """Matching records, newest period first. page/limit of None returns everything."""
        with self._lock:
            matching = [r for r in self._records.values() if filters.matches(r)]
        matching.sort(key=lambda r: (r.period, r.station_id), reverse=True)
        total = len(matching)

        if page is not None and limit is not None:
            offset = (page - 1) * limit
            matching = matching[offset:offset + limit]

        return copy.deepcopy(matching), total

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def upsert_commission_record(
        self,
        record: CommissionRecord,
        expected_version: int | None,
    ) -> CommissionRecord:
        """
        Insert or overwrite the record for (station, period).

        expected_version is None for a writer that believes no record exists
        yet, otherwise the version it read. Any mismatch raises
        ConcurrencyConflict and leaves the stored record untouched.
        """
        key = (record.station_id, record.period)
        with self._key_lock(key):
            with self._lock:
                current_id = self._record_keys.get(key)
                current = self._records.get(current_id) if current_id else None

            if current is None and expected_version is not None:
                raise ConcurrencyConflict(
                    f"Commission record for station {record.station_id} period {record.period} no longer exists"
                )
            if current is not None and current.version != expected_version:
                raise ConcurrencyConflict(
                    f"Commission record {current.id} changed since it was read "
                    f"(expected version {expected_version}, found {current.version})"
                )

            stored = replace(
                copy.deepcopy(record),
                id=current.id if current is not None else (record.id or uuid4().hex),
                version=(current.version + 1) if current is not None else 1,
            )
            with self._lock:
                self._records[stored.id] = stored
                self._record_keys[key] = stored.id
            return copy.deepcopy(stored)

    def _key_lock(self, key: tuple[str, str]) -> threading.Lock:
        return self._key_locks[hash(key) % LOCK_STRIPES]
