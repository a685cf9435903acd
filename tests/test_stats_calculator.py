"""
Unit Tests for Stats Calculator

Tests verify totals by status, month figures, projection and rate warnings.
"""

from datetime import date
from decimal import Decimal

import pytest

from commission_engine.calculators.stats import StatsCalculator
from commission_engine.models import CommissionRecord, ProgressiveDay, Station


def _record(station_id, status, amount, period="2026-06") -> CommissionRecord:
    return CommissionRecord(
        id=f"{station_id}-{period}",
        station_id=station_id,
        omc_id="O1",
        period=period,
        total_commission=Decimal(str(amount)),
        status=status,
    )


def _series_ending_at(cumulative, day=15, clamped=False) -> list[ProgressiveDay]:
    return [
        ProgressiveDay(
            date=date(2026, 6, day),
            day_of_month=day,
            cumulative_commission=Decimal(str(cumulative)),
            volume_clamped=clamped,
        )
    ]


class TestRecordTotals:
    """Test totals by status."""

    @pytest.fixture
    def calculator(self):
        return StatsCalculator()

    def test_cancelled_amounts_excluded_from_total(self, calculator):
        records = [
            _record("S1", "paid", 100),
            _record("S2", "pending", 50),
            _record("S3", "approved", 25),
            _record("S4", "cancelled", 1000),
        ]
        stats = calculator.calculate("2026-06", date(2026, 6, 15), records, [], [], {}, {})

        assert stats.total_commission == Decimal("175")
        assert stats.paid_commission == Decimal("100")
        assert stats.pending_commission == Decimal("75")
        assert stats.cancelled_commission == Decimal("1000")
        assert stats.total_records == 4
        assert stats.pending_count == 2
        assert stats.cancelled_count == 1

    def test_total_equals_paid_plus_pending(self, calculator):
        records = [_record(f"S{i}", "paid" if i % 2 else "pending", i * 7) for i in range(1, 10)]
        stats = calculator.calculate("2026-06", date(2026, 6, 15), records, [], [], {}, {})

        assert stats.total_commission == stats.paid_commission + stats.pending_commission

    def test_by_period_sums_non_cancelled(self, calculator):
        records = [
            _record("S1", "paid", 100, period="2026-05"),
            _record("S1", "pending", 40, period="2026-06"),
            _record("S2", "cancelled", 60, period="2026-06"),
        ]
        stats = calculator.calculate("2026-06", date(2026, 6, 15), records, [], [], {}, {})

        assert stats.by_period == {"2026-05": Decimal("100"), "2026-06": Decimal("40")}

    def test_station_counts(self, calculator):
        stations = [Station(id=f"S{i}", omc_id="O1") for i in range(1, 4)]
        records = [_record("S1", "paid", 10), _record("S2", "approved", 10)]
        stats = calculator.calculate("2026-06", date(2026, 6, 15), records, [], stations, {}, {})

        assert stats.stations_paid == 1
        assert stats.stations_pending == 1
        assert stats.stations_without_record == 1


class TestMonthFigures:
    """Test current/previous month figures and projection."""

    @pytest.fixture
    def calculator(self):
        return StatsCalculator()

    def test_projection_on_day_fifteen_of_thirty(self, calculator):
        """1,000 accrued with half the month elapsed projects to 2,000."""
        stats = calculator.calculate(
            "2026-06", date(2026, 6, 15), [], [], [], {"S1": _series_ending_at(1000)}, {}
        )

        assert stats.current_month_commission == Decimal("1000")
        assert stats.month_completion_percentage == Decimal("50.00")
        assert stats.projected_month_end_commission == Decimal("2000.00")

    def test_month_over_month_change(self, calculator):
        previous = [_record("S1", "paid", 800, period="2026-05"), _record("S2", "cancelled", 500, period="2026-05")]
        stats = calculator.calculate(
            "2026-06", date(2026, 6, 15), [], previous, [], {"S1": _series_ending_at(1000)}, {}
        )

        assert stats.previous_month_commission == Decimal("800")
        assert stats.month_over_month_change == Decimal("25.00")

    def test_no_previous_month_means_no_change(self, calculator):
        stats = calculator.calculate(
            "2026-06", date(2026, 6, 15), [], [], [], {"S1": _series_ending_at(1000)}, {}
        )
        assert stats.month_over_month_change == Decimal("0")

    def test_past_period_is_complete(self, calculator):
        stats = calculator.calculate("2026-05", date(2026, 6, 15), [], [], [], {}, {})

        assert stats.month_completion_percentage == Decimal("100.00")

    def test_projection_at_day_zero_is_month_to_date(self, calculator):
        assert calculator.project(Decimal("123.45"), 0, 30) == Decimal("123.45")

    def test_current_month_sums_every_station(self, calculator):
        series = {"S1": _series_ending_at(600), "S2": _series_ending_at(400), "S3": []}
        stats = calculator.calculate("2026-06", date(2026, 6, 15), [], [], [], series, {})

        assert stats.current_month_commission == Decimal("1000")


class TestRatesAndWarnings:
    """Test average rate and integrity warnings."""

    @pytest.fixture
    def calculator(self):
        return StatsCalculator()

    def test_average_rate_and_default_count(self, calculator):
        stations = [Station(id="S1", omc_id="O1", name="Airport"), Station(id="S2", omc_id="O1")]
        rates = {"S1": (Decimal("0.05"), "default"), "S2": (Decimal("0.07"), "station")}
        stats = calculator.calculate("2026-06", date(2026, 6, 15), [], [], stations, {}, rates)

        assert stats.average_commission_rate == Decimal("0.0600")
        assert stats.stations_using_default_rate == 1
        assert [w.kind for w in stats.warnings] == ["default_rate"]
        assert "Airport" in stats.warnings[0].message

    def test_clamped_days_are_reported(self, calculator):
        series = {"S1": _series_ending_at(0, day=3, clamped=True)}
        stats = calculator.calculate("2026-06", date(2026, 6, 15), [], [], [], series, {})

        assert len(stats.warnings) == 1
        assert stats.warnings[0].kind == "negative_volume"
        assert stats.warnings[0].date == "2026-06-03"

    def test_malformed_amounts_count_as_zero(self, calculator):
        record = _record("S1", "paid", 0)
        record.total_commission = None
        stats = calculator.calculate("2026-06", date(2026, 6, 15), [record], [], [], {}, {})

        assert stats.paid_commission == Decimal("0")
        assert stats.paid_count == 1
