"""
Daily Accrual Calculator

Turns daily stock movement (or point-of-sale volume) into a contiguous
month-to-date series of ProgressiveDay entries.
All money uses Decimal with ROUND_HALF_UP rounding at two places.
"""

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from ..models import DailyTankStock, ProgressiveDay, SaleEntry
from ..periods import iter_days, period_bounds


def quantize_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places using ROUND_HALF_UP."""
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


@dataclass
class DayVolume:
    """Volume sold on one day, after clamping."""

    volume: Decimal = Decimal("0")
    sales_amount: Decimal = Decimal("0")
    clamped: bool = False


class DailyAccrualCalculator:
    """Computes per-day commission, cumulative totals and trends."""

    TREND_UP_FACTOR = Decimal("1.10")
    TREND_DOWN_FACTOR = Decimal("0.90")
    FULL_PROGRESS = Decimal("100")

    def compute_day(
        self,
        tank_stock: DailyTankStock,
        previous: ProgressiveDay | None,
        rate: Decimal,
    ) -> ProgressiveDay:
        """Compute one day of the series from a tank-stock record."""
        raw = tank_stock.raw_volume_sold
        return self.accrue(
            tank_stock.date,
            DayVolume(volume=max(Decimal("0"), raw), clamped=raw < 0),
            previous,
            rate,
        )

    def accrue(
        self,
        day: date,
        day_volume: DayVolume,
        previous: ProgressiveDay | None,
        rate: Decimal,
    ) -> ProgressiveDay:
        volume = max(Decimal("0"), day_volume.volume)
        earned = quantize_money(volume * rate)
        return self._build_day(day, volume, earned, previous, day_volume.clamped)

    def build_series(
        self,
        daily_volumes: dict[date, DayVolume],
        period: str,
        rate: Decimal,
        through: date | None = None,
    ) -> list[ProgressiveDay]:
        """
        Build the series from the 1st of the period through `through`
        (default: last day of the month).

        Days without data are zero-volume days so cumulative totals stay
        contiguous.
        """
        start, end = period_bounds(period)
        if through is not None:
            end = min(end, through)

        series = []
        previous = None
        for day in iter_days(start, end):
            current = self.accrue(day, daily_volumes.get(day, DayVolume()), previous, rate)
            series.append(current)
            previous = current
        return series

    def merge_series(self, series_list: list[list[ProgressiveDay]]) -> list[ProgressiveDay]:
        """
        Combine per-station series into one fleet series.

        Volumes and earned commission are summed per day, then cumulative
        values, trends and progress are derived again from the sums.
        """
        if not series_list:
            return []

        by_day: dict[date, list[ProgressiveDay]] = {}
        for series in series_list:
            for entry in series:
                by_day.setdefault(entry.date, []).append(entry)

        merged = []
        previous = None
        for day in sorted(by_day):
            entries = by_day[day]
            volume = sum((e.volume for e in entries), Decimal("0"))
            earned = sum((e.commission_earned for e in entries), Decimal("0"))
            clamped = any(e.volume_clamped for e in entries)
            current = self._build_day(day, volume, earned, previous, clamped)
            merged.append(current)
            previous = current
        return merged

    def _build_day(
        self,
        day: date,
        volume: Decimal,
        earned: Decimal,
        previous: ProgressiveDay | None,
        clamped: bool,
    ) -> ProgressiveDay:
        if previous is None:
            # First day has nothing to compare against
            return ProgressiveDay(
                date=day,
                day_of_month=day.day,
                volume=volume,
                commission_earned=earned,
                cumulative_volume=volume,
                cumulative_commission=earned,
                trend="neutral",
                daily_progress=self.FULL_PROGRESS,
                volume_clamped=clamped,
            )

        return ProgressiveDay(
            date=day,
            day_of_month=day.day,
            volume=volume,
            commission_earned=earned,
            cumulative_volume=previous.cumulative_volume + volume,
            cumulative_commission=previous.cumulative_commission + earned,
            trend=self._classify_trend(earned, previous.commission_earned),
            daily_progress=self._progress(earned, previous.cumulative_commission),
            volume_clamped=clamped,
        )

    def _classify_trend(self, current: Decimal, previous: Decimal) -> str:
        """Up or down only outside a +/-10% band around the previous day."""
        if current > previous * self.TREND_UP_FACTOR:
            return "up"
        if current < previous * self.TREND_DOWN_FACTOR:
            return "down"
        return "neutral"

    def _progress(self, earned: Decimal, previous_cumulative: Decimal) -> Decimal:
        """Day's earnings as a percentage of the previous cumulative, in [0, 100]."""
        if previous_cumulative <= 0:
            return self.FULL_PROGRESS if earned > 0 else Decimal("0")
        pct = quantize_money(earned / previous_cumulative * Decimal("100"))
        return max(Decimal("0"), min(self.FULL_PROGRESS, pct))


# =============================================================================
# DAILY VOLUME EXTRACTION
# =============================================================================


def volumes_from_tank_stocks(rows: list[DailyTankStock]) -> dict[date, DayVolume]:
    """
    Volume sold per day from tank-stock rows.

    Each row is clamped on its own before rows of the same day are summed,
    so a bad reading never cancels out a good one.
    """
    volumes: dict[date, DayVolume] = {}
    for row in rows:
        raw = row.raw_volume_sold
        entry = volumes.setdefault(row.date, DayVolume())
        entry.volume += max(Decimal("0"), raw)
        entry.sales_amount += row.sales_amount
        entry.clamped = entry.clamped or raw < 0
    return volumes


def volumes_from_sales(rows: list[SaleEntry]) -> dict[date, DayVolume]:
    """Volume sold per day from point-of-sale records."""
    volumes: dict[date, DayVolume] = {}
    for row in rows:
        entry = volumes.setdefault(row.date, DayVolume())
        if row.volume < 0:
            entry.clamped = True
        else:
            entry.volume += row.volume
        entry.sales_amount += row.amount
    return volumes
