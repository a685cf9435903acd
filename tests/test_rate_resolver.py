"""
Unit Tests for Rate Resolver

Tests verify rate precedence: record, then station, then default.
"""

from decimal import Decimal

import pytest

from commission_engine.calculators.rates import (
    RATE_DEFAULT,
    RATE_FROM_RECORD,
    RATE_FROM_STATION,
    RateResolver,
)
from commission_engine.models import CommissionRecord, Station


def _station(rate=None) -> Station:
    return Station(id="S1", omc_id="O1", commission_rate=rate)


def _record(rate) -> CommissionRecord:
    return CommissionRecord(id="C1", station_id="S1", omc_id="O1", period="2026-06", commission_rate=rate)


class TestRateResolver:
    """Test rate precedence."""

    @pytest.fixture
    def resolver(self):
        return RateResolver(Decimal("0.05"))

    def test_record_rate_wins(self, resolver):
        rate, source = resolver.resolve(_record(Decimal("0.08")), _station(Decimal("0.06")))

        assert rate == Decimal("0.08")
        assert source == RATE_FROM_RECORD

    def test_station_rate_when_record_has_none(self, resolver):
        rate, source = resolver.resolve(_record(Decimal("0")), _station(Decimal("0.06")))

        assert rate == Decimal("0.06")
        assert source == RATE_FROM_STATION

    def test_station_rate_without_record(self, resolver):
        rate, source = resolver.resolve(None, _station(Decimal("0.07")))

        assert rate == Decimal("0.07")
        assert source == RATE_FROM_STATION

    def test_default_rate_when_nothing_configured(self, resolver):
        rate, source = resolver.resolve(None, _station(None))

        assert rate == Decimal("0.05")
        assert source == RATE_DEFAULT

    def test_zero_and_negative_rates_fall_through(self, resolver):
        """Only a positive rate counts as configured."""
        rate, source = resolver.resolve(_record(Decimal("-0.01")), _station(Decimal("0")))

        assert rate == Decimal("0.05")
        assert source == RATE_DEFAULT

    def test_missing_station_uses_default(self, resolver):
        assert resolver.resolve_rate(None, None) == Decimal("0.05")

    def test_configured_default_is_used(self):
        resolver = RateResolver(Decimal("0.035"))
        assert resolver.resolve_rate(None, _station()) == Decimal("0.035")
