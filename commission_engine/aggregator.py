"""
Commission Aggregator

Rolls daily accrual series into per-station, per-period commission records
and builds the month-to-date series the stats and progressive views use.
"""

import logging
from datetime import date
from decimal import Decimal
from uuid import uuid4

from .calculators import AdjustmentCalculator, DailyAccrualCalculator, RateResolver
from .calculators.daily import DayVolume, volumes_from_sales, volumes_from_tank_stocks
from .calculators.rates import RATE_DEFAULT
from .config import EngineConfig
from .errors import DataIntegrityWarning, InvalidState
from .models import (
    SOURCE_SALES,
    CalculationResult,
    Caller,
    CommissionRecord,
    ProgressiveDay,
    Station,
    StationFailure,
)
from .payments import PaymentLifecycleManager
from .periods import period_bounds

logger = logging.getLogger(__name__)


class CommissionAggregator:
    """
    Calculates commission records for a set of already-scoped stations.

    Pipeline per station:
    1. Ask the lifecycle manager whether the stored record may be overwritten
    2. Resolve rate
    3. Build daily series
    4. Apply windfall/shortfall rules
    5. Decide status through the lifecycle manager
    6. Upsert keyed by (station, period)
    """

    def __init__(
        self,
        store,
        config: EngineConfig,
        clock,
        rate_resolver: RateResolver,
        daily_calculator: DailyAccrualCalculator,
        adjustment_calculator: AdjustmentCalculator,
        lifecycle: PaymentLifecycleManager,
    ):
        self.store = store
        self.config = config
        self.clock = clock
        self.rate_resolver = rate_resolver
        self.daily_calculator = daily_calculator
        self.adjustment_calculator = adjustment_calculator
        self.lifecycle = lifecycle

    def calculate(
        self,
        period: str,
        stations: list[Station],
        data_source: str,
        caller: Caller,
        force_recalculation: bool = False,
    ) -> CalculationResult:
        """
        Calculate every station. A station whose record cannot be recalculated
        is reported as a failure; the rest of the batch still runs.
        """
        result = CalculationResult(period=period, data_source=data_source)

        for station in stations:
            try:
                record = self.calculate_station(station, period, data_source, caller, force_recalculation)
            except InvalidState as e:
                logger.warning(f"Skipping station {station.id} for {period}: {e}")
                result.failures.append(StationFailure(station_id=station.id, error=e))
                continue
            if record is None:
                result.skipped.append(station.id)
                continue
            result.records.append(record)
            result.warnings.extend(record.warnings)

        return result

    def calculate_station(
        self,
        station: Station,
        period: str,
        data_source: str,
        caller: Caller,
        force_recalculation: bool = False,
    ) -> CommissionRecord | None:
        """The stored record after recalculation, or None when an approved record is kept."""
        existing = self.store.find_commission_record(station.id, period)
        if not self.lifecycle.should_recalculate(existing, caller, force_recalculation):
            logger.info(f"Keeping approved commission {existing.id} for station {station.id} period {period}")
            return None

        start, end = period_bounds(period)

        # A fresh calculation always reflects the station's current rate
        rate, rate_source = self.rate_resolver.resolve(None, station)
        volumes = self.daily_volumes(station.id, start, end, data_source)
        series = self.daily_calculator.build_series(volumes, period, rate)

        total_volume = series[-1].cumulative_volume
        base_commission = series[-1].cumulative_commission
        total_sales = sum((v.sales_amount for v in volumes.values()), Decimal("0"))

        rules = self.store.get_adjustment_rules(station.id, start, end)
        adjustments = self.adjustment_calculator.calculate(rules, total_volume, start, end)
        total_commission = base_commission + adjustments.windfall_amount - adjustments.shortfall_amount

        status, approved_at, approved_by = self.lifecycle.recalculated_status(existing, total_commission, caller)

        record = CommissionRecord(
            id=existing.id if existing is not None else uuid4().hex,
            station_id=station.id,
            dealer_id=station.dealer_id,
            omc_id=station.omc_id,
            period=period,
            total_volume=total_volume,
            total_sales=total_sales,
            commission_rate=rate,
            rate_source=rate_source,
            base_commission=base_commission,
            windfall_amount=adjustments.windfall_amount,
            shortfall_amount=adjustments.shortfall_amount,
            total_commission=total_commission,
            status=status,
            data_source=data_source,
            calculated_at=self.clock(),
            calculated_by=caller.user_id,
            approved_at=approved_at,
            approved_by=approved_by,
            warnings=self._warnings(station, rate_source, series, volumes),
        )

        expected_version = existing.version if existing is not None else None
        return self.store.upsert_commission_record(record, expected_version)

    def station_series(
        self,
        station: Station,
        period: str,
        data_source: str | None = None,
        through: date | None = None,
    ) -> tuple[list[ProgressiveDay], tuple[Decimal, str]]:
        """
        Month-to-date series for one station, with the rate it used.

        A stored record for the period supplies both the rate and the data
        source, so the view matches what was calculated.
        """
        record = self.store.find_commission_record(station.id, period)
        rate, rate_source = self.rate_resolver.resolve(record, station)
        if record is not None and record.rate_source == RATE_DEFAULT:
            # Still the fallback rate, even though it is stored on the record
            rate_source = RATE_DEFAULT
        if data_source is None:
            data_source = record.data_source if record is not None else self.config.default_data_source

        start, end = period_bounds(period)
        if through is not None:
            end = min(end, through)
        if end < start:
            return [], (rate, rate_source)

        volumes = self.daily_volumes(station.id, start, end, data_source)
        series = self.daily_calculator.build_series(volumes, period, rate, through=end)
        return series, (rate, rate_source)

    def daily_volumes(
        self,
        station_id: str,
        start: date,
        end: date,
        data_source: str,
    ) -> dict[date, DayVolume]:
        if data_source == SOURCE_SALES:
            return volumes_from_sales(self.store.get_sales(station_id, start, end))
        return volumes_from_tank_stocks(self.store.get_daily_tank_stocks(station_id, start, end))

    def _warnings(
        self,
        station: Station,
        rate_source: str,
        series: list[ProgressiveDay],
        volumes: dict[date, DayVolume],
    ) -> list[DataIntegrityWarning]:
        warnings = []

        if rate_source == RATE_DEFAULT:
            warnings.append(
                DataIntegrityWarning(
                    kind="default_rate",
                    station_id=station.id,
                    message=f"No commission rate configured; default {self.rate_resolver.default_rate} per liter applied",
                )
            )

        for day in series:
            if day.volume_clamped:
                warnings.append(
                    DataIntegrityWarning(
                        kind="negative_volume",
                        station_id=station.id,
                        date=day.date.isoformat(),
                        message="Closing stock exceeds opening plus received; volume clamped to 0",
                    )
                )

        if not volumes:
            warnings.append(
                DataIntegrityWarning(
                    kind="missing_data",
                    station_id=station.id,
                    message="No stock or sales data for the period",
                )
            )

        return warnings
