"""
Commission Service - Main Orchestrator

Wires the calculators, aggregator, scoper and lifecycle manager together and
exposes the operations UI and API callers use. Every operation applies the
caller's visibility scope both to what it computes and to what it returns.
"""

import json
import logging
import os
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Any, Dict
from uuid import uuid4

from .aggregator import CommissionAggregator
from .cache import StationCache
from .calculators import AdjustmentCalculator, DailyAccrualCalculator, RateResolver, StatsCalculator
from .config import CALCULATE_COMMISSIONS, MANAGE_ADJUSTMENT_RULES, EngineConfig
from .errors import NotFound, PermissionDenied, ValidationError
from .models import (
    AdjustmentRule,
    CalculationResult,
    Caller,
    CommissionFilters,
    CommissionPage,
    CommissionRecord,
    CommissionStats,
    Pagination,
    PaymentRequest,
    ProgressiveDay,
    Station,
    parse_date,
)
from .output import OutputBuilder
from .payments import PaymentLifecycleManager
from .periods import parse_period, period_of, previous_period
from .policy import ApprovalPolicy
from .scoping import VisibilityScoper
from .store import InMemoryCommissionStore
from .validators import InputValidator

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CommissionService:
    """
    Main entry point of the commission engine.

    Operations:
    - calculate_commissions
    - get_commissions / get_commission
    - get_commission_stats
    - get_progressive_commissions
    - mark_commission_as_paid / approve_commission / cancel_commission / attach_receipt
    - list_adjustment_rules / create_adjustment_rule
    - invalidate_station
    """

    def __init__(self, store, config: EngineConfig | None = None, clock=None):
        self.store = store
        self.config = config or EngineConfig()
        self.clock = clock or utc_now

        self.validator = InputValidator(self.config)
        self.scoper = VisibilityScoper()
        self.station_cache = StationCache(store)
        self.rate_resolver = RateResolver(self.config.default_rate)
        self.daily_calculator = DailyAccrualCalculator()
        self.stats_calculator = StatsCalculator()
        self.payments = PaymentLifecycleManager(
            store,
            self.config,
            self.clock,
            scoper=self.scoper,
            validator=self.validator,
            approval_policy=ApprovalPolicy(),
        )
        self.aggregator = CommissionAggregator(
            store,
            self.config,
            self.clock,
            rate_resolver=self.rate_resolver,
            daily_calculator=self.daily_calculator,
            adjustment_calculator=AdjustmentCalculator(),
            lifecycle=self.payments,
        )
        self.output_builder = OutputBuilder()

    # -------------------------------------------------------------------------
    # Calculation
    # -------------------------------------------------------------------------

    def calculate_commissions(
        self,
        period: str,
        caller: Caller,
        station_ids: list[str] | None = None,
        data_source: str | None = None,
        force_recalculation: bool = False,
    ) -> CalculationResult:
        """
        Calculate (or recalculate) commissions for a period.

        Without station_ids every active station in the caller's scope is
        calculated. Explicit station ids outside the scope are refused.
        Pending records are always recalculated; approved records only when
        force_recalculation is set, and otherwise come back as skipped.
        """
        data_source = data_source or self.config.default_data_source
        self.validator.validate_calculation(period, data_source)

        if not self.config.has_permission(caller.role, CALCULATE_COMMISSIONS):
            raise PermissionDenied(f"Role {caller.role} cannot calculate commissions")

        visible = self._scoped_stations(caller)
        if station_ids:
            by_id = {s.id: s for s in visible}
            outside = [sid for sid in station_ids if sid not in by_id]
            if outside:
                raise PermissionDenied(f"Stations outside caller scope: {', '.join(outside)}")
            stations = [by_id[sid] for sid in dict.fromkeys(station_ids)]
        else:
            stations = [s for s in visible if s.is_active]

        logger.info(f"Calculating commissions for {period}: {len(stations)} stations ({data_source})")
        result = self.aggregator.calculate(period, stations, data_source, caller, force_recalculation)
        logger.info(
            f"Commission calculation for {period} done: {len(result.records)} records, "
            f"{len(result.skipped)} kept, {len(result.failures)} failures, "
            f"{result.stations_using_default_rate} on default rate"
        )
        return result

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_commissions(
        self,
        caller: Caller,
        filters: CommissionFilters | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> CommissionPage:
        if limit is None:
            limit = self.config.default_page_size
        self.validator.validate_pagination(page, limit)

        scoped = self.scoper.scope_filters(filters or CommissionFilters(), caller)
        if scoped is None:
            return CommissionPage(records=[], pagination=Pagination.build(page, limit, 0))

        records, total = self.store.list_commission_records(scoped, page, limit)
        return CommissionPage(
            records=self.scoper.scope(records, caller),
            pagination=Pagination.build(page, limit, total),
        )

    def get_commission(self, record_id: str, caller: Caller) -> CommissionRecord:
        record = self.store.get_commission_record(record_id)
        # Out-of-scope records are reported as missing
        if record is None or not self.scoper.can_see(record, caller):
            raise NotFound(f"Commission not found: {record_id}")
        return record

    def get_commission_stats(
        self,
        caller: Caller,
        filters: CommissionFilters | None = None,
        as_of: date | None = None,
    ) -> CommissionStats:
        """
        Stats for filters.period (default: the current month).

        Current-month figures come from the live accrual series; the previous
        month comes from stored records.
        """
        filters = filters or CommissionFilters()
        as_of = as_of or self.clock().date()
        period = filters.period or period_of(as_of)
        parse_period(period)

        scoped = self.scoper.scope_filters(filters, caller)
        if scoped is None:
            return self.stats_calculator.calculate(
                period, as_of, [], [], [], {}, {}, synced_at=self.clock()
            )

        records, _ = self.store.list_commission_records(scoped)
        previous, _ = self.store.list_commission_records(
            replace(scoped, period=previous_period(period), status=None)
        )
        stations = [s for s in self._scoped_stations(caller) if _station_matches(s, scoped)]

        series_by_station = {}
        rates_by_station = {}
        for station in stations:
            series, rate = self.aggregator.station_series(station, period, through=as_of)
            series_by_station[station.id] = series
            rates_by_station[station.id] = rate

        return self.stats_calculator.calculate(
            period,
            as_of,
            self.scoper.scope(records, caller),
            self.scoper.scope(previous, caller),
            stations,
            series_by_station,
            rates_by_station,
            synced_at=self.clock(),
        )

    def get_progressive_commissions(
        self,
        period: str,
        caller: Caller,
        station_id: str | None = None,
        data_source: str | None = None,
        as_of: date | None = None,
    ) -> list[ProgressiveDay]:
        """
        Day-by-day accrual through as_of (default today). Without a station
        the series is summed across every station the caller can see.
        """
        parse_period(period)
        as_of = as_of or self.clock().date()

        if station_id:
            station = self._visible_station(station_id, caller)
            series, _ = self.aggregator.station_series(station, period, data_source, through=as_of)
            return series

        series_list = [
            self.aggregator.station_series(s, period, data_source, through=as_of)[0]
            for s in self._scoped_stations(caller)
        ]
        return self.daily_calculator.merge_series([s for s in series_list if s])

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def mark_commission_as_paid(self, payment: PaymentRequest, caller: Caller) -> CommissionRecord:
        return self.payments.mark_paid(payment, caller)

    def approve_commission(self, record_id: str, caller: Caller) -> CommissionRecord:
        return self.payments.approve(record_id, caller)

    def cancel_commission(self, record_id: str, caller: Caller, reason: str | None = None) -> CommissionRecord:
        return self.payments.cancel(record_id, caller, reason)

    def attach_receipt(self, record_id: str, receipt_reference: str, caller: Caller) -> CommissionRecord:
        return self.payments.attach_receipt(record_id, receipt_reference, caller)

    def invalidate_station(self, station_id: str) -> None:
        """Call after a station's owners or rate change."""
        self.station_cache.invalidate(station_id)

    # -------------------------------------------------------------------------
    # Windfall / shortfall rules
    # -------------------------------------------------------------------------

    def list_adjustment_rules(self, caller: Caller, station_id: str | None = None) -> list[AdjustmentRule]:
        """Rules of every station the caller can see, or of one station."""
        if station_id:
            station = self._visible_station(station_id, caller)
            return self.store.list_adjustment_rules(station.id)

        visible = {s.id for s in self._scoped_stations(caller)}
        return [r for r in self.store.list_adjustment_rules() if r.station_id in visible]

    def create_adjustment_rule(self, rule: AdjustmentRule, caller: Caller) -> AdjustmentRule:
        """
        Add a windfall, shortfall or signed adjustment rule to a station.

        Admins and OMCs only, and only for stations in their scope. The rule
        applies from the next calculation of any period it overlaps.
        """
        if not self.config.has_permission(caller.role, MANAGE_ADJUSTMENT_RULES):
            raise PermissionDenied(f"Role {caller.role} cannot manage windfall/shortfall rules")

        self.validator.validate_adjustment_rule(rule)
        station = self.station_cache.get(rule.station_id)
        if station is None:
            raise ValidationError(f"Unknown station: {rule.station_id}")
        if not self.scoper.can_see(station, caller):
            raise PermissionDenied(f"Station {rule.station_id} is outside caller scope")

        created = replace(
            rule,
            id=rule.id or uuid4().hex,
            omc_id=station.omc_id,
            created_by=caller.user_id,
            created_at=self.clock(),
        )
        self.store.add_adjustment_rule(created)
        logger.info(
            f"Adjustment rule {created.id} ({created.type} {created.rate}/L) "
            f"created for station {station.id} by {caller.user_id}"
        )
        return created

    def _visible_station(self, station_id: str, caller: Caller) -> Station:
        station = self.station_cache.get(station_id)
        if station is None:
            raise NotFound(f"Station not found: {station_id}")
        if not self.scoper.can_see(station, caller):
            raise PermissionDenied(f"Station {station_id} is outside caller scope")
        return station

    def _scoped_stations(self, caller: Caller) -> list[Station]:
        return self.scoper.scope(self.station_cache.list(), caller)

    # -------------------------------------------------------------------------
    # Dictionary entry points (API usage)
    # -------------------------------------------------------------------------

    def calculate_from_dict(self, data: Dict[str, Any], caller: Caller) -> Dict[str, Any]:
        if not data.get("period"):
            raise ValidationError("period is required")
        result = self.calculate_commissions(
            data["period"],
            caller,
            station_ids=data.get("station_ids") or None,
            data_source=data.get("data_source"),
            force_recalculation=_bool_param(data, "force_recalculation"),
        )
        return self.output_builder.calculation(result)

    def list_from_dict(self, params: Dict[str, Any], caller: Caller) -> Dict[str, Any]:
        page = self.get_commissions(
            caller,
            CommissionFilters.from_dict(params),
            page=_int_param(params, "page", 1),
            limit=_int_param(params, "limit", self.config.default_page_size),
        )
        return self.output_builder.page(page)

    def stats_from_dict(self, params: Dict[str, Any], caller: Caller) -> Dict[str, Any]:
        as_of = parse_date(params["as_of"]) if params.get("as_of") else None
        stats = self.get_commission_stats(caller, CommissionFilters.from_dict(params), as_of=as_of)
        return self.output_builder.stats(stats)

    def progressive_from_dict(self, params: Dict[str, Any], caller: Caller) -> Dict[str, Any]:
        as_of = parse_date(params["as_of"]) if params.get("as_of") else None
        period = params.get("period") or period_of(as_of or self.clock().date())
        series = self.get_progressive_commissions(
            period,
            caller,
            station_id=params.get("station_id") or None,
            data_source=params.get("data_source") or None,
            as_of=as_of,
        )
        return {"period": period, "days": self.output_builder.progressive(series)}

    def pay_from_dict(self, commission_id: str, data: Dict[str, Any], caller: Caller) -> Dict[str, Any]:
        payment = PaymentRequest.from_dict({**data, "commission_id": commission_id})
        return self.output_builder.record(self.mark_commission_as_paid(payment, caller))

    def approve_from_dict(self, commission_id: str, caller: Caller) -> Dict[str, Any]:
        return self.output_builder.record(self.approve_commission(commission_id, caller))

    def cancel_from_dict(self, commission_id: str, data: Dict[str, Any], caller: Caller) -> Dict[str, Any]:
        record = self.cancel_commission(commission_id, caller, data.get("reason"))
        return self.output_builder.record(record)

    def receipt_from_dict(self, commission_id: str, data: Dict[str, Any], caller: Caller) -> Dict[str, Any]:
        record = self.attach_receipt(commission_id, data.get("receipt_reference") or "", caller)
        return self.output_builder.record(record)

    def rules_from_dict(self, params: Dict[str, Any], caller: Caller) -> Dict[str, Any]:
        rules = self.list_adjustment_rules(caller, station_id=params.get("station_id") or None)
        return {"rules": [self.output_builder.adjustment_rule(r) for r in rules]}

    def create_rule_from_dict(self, data: Dict[str, Any], caller: Caller) -> Dict[str, Any]:
        missing = [key for key in ("station_id", "type", "effective_date") if not data.get(key)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        rule = AdjustmentRule.from_dict({**data, "id": data.get("id") or ""})
        return self.output_builder.adjustment_rule(self.create_adjustment_rule(rule, caller))


def _station_matches(station: Station, filters: CommissionFilters) -> bool:
    if filters.station_id and station.id != filters.station_id:
        return False
    if filters.dealer_id and station.dealer_id != filters.dealer_id:
        return False
    if filters.omc_id and station.omc_id != filters.omc_id:
        return False
    return True


def _int_param(params: Dict[str, Any], name: str, default: int) -> int:
    raw = params.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer, got: {raw}")


def _bool_param(data: Dict[str, Any], name: str) -> bool:
    raw = data.get(name)
    if isinstance(raw, str):
        return raw.strip().lower() in ("1", "true", "yes")
    return bool(raw)


def build_service(seed_file: str | None = None) -> CommissionService:
    """
    Service over an in-memory store for the HTTP entry points.

    The store is seeded from seed_file, or from COMMISSION_SEED_FILE when
    no file is given.
    """
    store = InMemoryCommissionStore()
    seed_file = seed_file or os.environ.get("COMMISSION_SEED_FILE")
    if seed_file:
        with open(seed_file) as f:
            store.seed_from_dict(json.load(f))
        logger.info(f"Seeded store from {seed_file}")
    return CommissionService(store, EngineConfig.from_env())
