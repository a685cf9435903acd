"""
Stats Calculator

Aggregates commission records and month-to-date accrual series into
CommissionStats. Tolerates partial data: every numeric field is coerced
to a finite Decimal before it is summed.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

from ..errors import DataIntegrityWarning
from ..models import (
    STATUS_CANCELLED,
    STATUS_PAID,
    OPEN_STATUSES,
    CommissionRecord,
    CommissionStats,
    ProgressiveDay,
    Station,
    to_decimal,
)
from ..periods import days_in_month, parse_period, period_bounds
from .daily import quantize_money
from .rates import RATE_DEFAULT


def quantize_rate(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)


class StatsCalculator:
    """Builds CommissionStats for one period."""

    def calculate(
        self,
        period: str,
        as_of: date,
        records: list[CommissionRecord],
        previous_records: list[CommissionRecord],
        stations: list[Station],
        series_by_station: dict[str, list[ProgressiveDay]],
        rates_by_station: dict[str, tuple[Decimal, str]],
        synced_at: datetime | None = None,
    ) -> CommissionStats:
        stats = CommissionStats(last_synced_at=synced_at)

        self._apply_record_totals(stats, records)
        self._apply_station_counts(stats, period, records, stations)
        self._apply_month_figures(stats, period, as_of, previous_records, series_by_station)
        self._apply_rates(stats, stations, rates_by_station)
        self._collect_series_warnings(stats, series_by_station)

        return stats

    def _apply_record_totals(self, stats: CommissionStats, records: list[CommissionRecord]) -> None:
        by_period: dict[str, Decimal] = {}

        for record in records:
            amount = to_decimal(record.total_commission)
            stats.total_records += 1

            if record.status == STATUS_PAID:
                stats.paid_count += 1
                stats.paid_commission += amount
            elif record.status == STATUS_CANCELLED:
                stats.cancelled_count += 1
                stats.cancelled_commission += amount
                continue
            else:
                stats.pending_count += 1
                stats.pending_commission += amount

            by_period[record.period] = by_period.get(record.period, Decimal("0")) + amount

        # Cancelled amounts are excluded from the total
        stats.total_commission = stats.paid_commission + stats.pending_commission
        stats.by_period = dict(sorted(by_period.items()))

    def _apply_station_counts(
        self,
        stats: CommissionStats,
        period: str,
        records: list[CommissionRecord],
        stations: list[Station],
    ) -> None:
        status_by_station = {r.station_id: r.status for r in records if r.period == period}

        for station in stations:
            status = status_by_station.get(station.id)
            if status == STATUS_PAID:
                stats.stations_paid += 1
            elif status in OPEN_STATUSES:
                stats.stations_pending += 1
            else:
                stats.stations_without_record += 1

    def _apply_month_figures(
        self,
        stats: CommissionStats,
        period: str,
        as_of: date,
        previous_records: list[CommissionRecord],
        series_by_station: dict[str, list[ProgressiveDay]],
    ) -> None:
        current = Decimal("0")
        for series in series_by_station.values():
            if series:
                current += to_decimal(series[-1].cumulative_commission)

        previous = sum(
            (to_decimal(r.total_commission) for r in previous_records if r.status != STATUS_CANCELLED),
            Decimal("0"),
        )

        stats.current_month_commission = current
        stats.previous_month_commission = previous
        if previous > 0:
            stats.month_over_month_change = quantize_money((current - previous) / previous * Decimal("100"))

        elapsed, total_days = self._elapsed_days(period, as_of)
        stats.month_completion_percentage = quantize_money(
            Decimal(elapsed) / Decimal(total_days) * Decimal("100")
        )
        stats.projected_month_end_commission = self.project(current, elapsed, total_days)

    def project(self, month_to_date: Decimal, elapsed_days: int, total_days: int) -> Decimal:
        """
        Linear extrapolation of the month-to-date run rate:
        month_to_date / (elapsed_days / total_days).
        Day 0 has no run rate yet, so the month-to-date value is returned.
        """
        if elapsed_days <= 0 or total_days <= 0:
            return quantize_money(month_to_date)
        return quantize_money(month_to_date * Decimal(total_days) / Decimal(elapsed_days))

    def _elapsed_days(self, period: str, as_of: date) -> tuple[int, int]:
        year, month = parse_period(period)
        total_days = days_in_month(year, month)
        start, end = period_bounds(period)

        if as_of < start:
            return 0, total_days
        if as_of > end:
            return total_days, total_days
        return as_of.day, total_days

    def _apply_rates(
        self,
        stats: CommissionStats,
        stations: list[Station],
        rates_by_station: dict[str, tuple[Decimal, str]],
    ) -> None:
        rates = []
        for station in stations:
            if station.id not in rates_by_station:
                continue
            rate, source = rates_by_station[station.id]
            rates.append(to_decimal(rate))
            if source == RATE_DEFAULT:
                stats.stations_using_default_rate += 1
                stats.warnings.append(
                    DataIntegrityWarning(
                        kind="default_rate",
                        station_id=station.id,
                        message=f"Station {station.name or station.id} has no commission rate; default applied",
                    )
                )

        if rates:
            stats.average_commission_rate = quantize_rate(sum(rates, Decimal("0")) / len(rates))

    def _collect_series_warnings(
        self,
        stats: CommissionStats,
        series_by_station: dict[str, list[ProgressiveDay]],
    ) -> None:
        for station_id, series in series_by_station.items():
            for day in series:
                if day.volume_clamped:
                    stats.warnings.append(
                        DataIntegrityWarning(
                            kind="negative_volume",
                            station_id=station_id,
                            date=day.date.isoformat(),
                            message="Closing stock exceeds opening plus received; volume clamped to 0",
                        )
                    )
