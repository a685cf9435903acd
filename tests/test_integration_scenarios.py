"""
Integration Test Scenarios for the Station Commission Engine

These tests run the whole service (store, calculators, scoping, lifecycle)
over realistic station data and check the business rules end to end.

Run with: python -m pytest tests/test_integration_scenarios.py -v

IMPORTANT: This file has a companion business summary document:
    docs/test_scenarios_business_summary.md

When adding or modifying tests, please update the business summary document
to keep them in sync. The summary provides plain-English explanations of
each test scenario for business stakeholders.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from commission_engine import (
    Caller,
    CommissionService,
    ConcurrencyConflict,
    InMemoryCommissionStore,
    InvalidState,
    PaymentRequest,
    PermissionDenied,
    ValidationError,
)
from commission_engine.models import CommissionFilters

NOW = datetime(2026, 6, 15, 18, 30, tzinfo=timezone.utc)

ADMIN = Caller(role="admin", user_id="admin-user")
OMC_ONE = Caller(role="omc", user_id="omc-one-user", omc_id="OMC-1")
OMC_TWO = Caller(role="omc", user_id="omc-two-user", omc_id="OMC-2")
DEALER = Caller(role="dealer", user_id="dealer-user", dealer_id="DEALER-1")


def _tank_day(station_id, day, opening, closing, received=0):
    return {
        "station_id": station_id,
        "date": f"2026-06-{day:02d}",
        "opening_stock": opening,
        "closing_stock": closing,
        "received_stock": received,
    }


def _service(seed) -> CommissionService:
    store = InMemoryCommissionStore()
    store.seed_from_dict(seed)
    return CommissionService(store, clock=lambda: NOW)


def _payment(commission_id, **overrides) -> PaymentRequest:
    data = {
        "commission_id": commission_id,
        "payment_method": "bank_transfer",
        "reference_number": "GCB-240615-01",
        "payment_date": "2026-06-15",
        "notes": "June settlement",
    }
    data.update(overrides)
    return PaymentRequest.from_dict(data)


@pytest.fixture
def network():
    """Two OMCs, three stations, the first days of June."""
    return {
        "stations": [
            {"id": "ACC-01", "omc_id": "OMC-1", "dealer_id": "DEALER-1", "name": "Accra Central",
             "code": "ACC01", "commission_rate": 0.05},
            {"id": "KSI-02", "omc_id": "OMC-1", "dealer_id": "DEALER-2", "name": "Kumasi Ring Road",
             "code": "KSI02", "commission_rate": 0.04},
            {"id": "TKD-03", "omc_id": "OMC-2", "dealer_id": "DEALER-1", "name": "Takoradi Harbour",
             "code": "TKD03"},
        ],
        "daily_tank_stocks": [
            _tank_day("ACC-01", 1, 5000, 4000),
            _tank_day("ACC-01", 2, 4000, 2800),
            _tank_day("KSI-02", 1, 8000, 6500),
            _tank_day("KSI-02", 2, 6500, 9500, received=4000),
            _tank_day("TKD-03", 1, 3000, 2200),
        ],
        "adjustment_rules": [
            {"id": "WF-ACC", "station_id": "ACC-01", "type": "windfall", "rate": 0.01,
             "effective_date": "2026-06-01"},
            {"id": "SF-ACC", "station_id": "ACC-01", "type": "shortfall", "rate": 0.002,
             "effective_date": "2026-06-01"},
        ],
    }


class TestDailyAccrualScenario:
    """Day-by-day commission for a single station."""

    def test_two_day_up_trend(self, network):
        """1,000 L then 1,200 L at 0.05/L: 50.00, then 60.00 for 110.00 cumulative, trending up."""
        service = _service(network)
        series = service.get_progressive_commissions("2026-06", ADMIN, station_id="ACC-01", as_of=date(2026, 6, 2))

        assert series[0].commission_earned == Decimal("50.00")
        assert series[0].trend == "neutral"
        assert series[1].commission_earned == Decimal("60.00")
        assert series[1].cumulative_commission == Decimal("110.00")
        assert series[1].trend == "up"

    def test_cumulative_volume_matches_running_sum(self):
        """Irregular fractional volumes for a full month never drift."""
        seed = {
            "stations": [{"id": "ACC-01", "omc_id": "OMC-1", "commission_rate": 0.0525}],
            "daily_tank_stocks": [
                _tank_day("ACC-01", day, f"{9000 + day * 13.37:.2f}", f"{8000 - day * 7.91:.2f}")
                for day in range(1, 31) if day % 4
            ],
        }
        service = _service(seed)
        series = service.get_progressive_commissions("2026-06", ADMIN, station_id="ACC-01", as_of=date(2026, 6, 30))

        assert len(series) == 30
        running = Decimal("0")
        for day in series:
            running += day.volume
            assert day.cumulative_volume == running

    def test_missing_day_keeps_series_contiguous(self, network):
        """No dip on day 3 is a zero-volume day, not a gap."""
        service = _service(network)
        series = service.get_progressive_commissions("2026-06", ADMIN, station_id="ACC-01", as_of=date(2026, 6, 4))

        assert [d.day_of_month for d in series] == [1, 2, 3, 4]
        assert series[2].volume == Decimal("0")
        assert series[3].cumulative_commission == Decimal("110.00")

    def test_negative_volume_clamped_with_warning(self, network):
        """A closing dip above opening plus deliveries counts as zero and is flagged."""
        network["daily_tank_stocks"].append(_tank_day("TKD-03", 2, 2200, 2600))
        service = _service(network)

        result = service.calculate_commissions("2026-06", ADMIN, station_ids=["TKD-03"])
        record = result.records[0]

        assert record.total_volume == Decimal("800")
        assert any(w.kind == "negative_volume" and w.date == "2026-06-02" for w in record.warnings)


class TestRecalculationIdempotence:
    """Recalculating a period overwrites instead of duplicating."""

    def test_second_calculation_overwrites_first(self, network):
        service = _service(network)
        service.calculate_commissions("2026-06", ADMIN, station_ids=["ACC-01"])
        service.calculate_commissions("2026-06", ADMIN, station_ids=["ACC-01"], force_recalculation=True)

        page = service.get_commissions(ADMIN, CommissionFilters(station_id="ACC-01", period="2026-06"))

        assert page.pagination.total == 1
        assert page.records[0].version == 2

    def test_total_equals_base_plus_windfall_minus_shortfall(self, network):
        """2,200 L: base 110.00, windfall 22.00, shortfall 4.40, total 127.60."""
        service = _service(network)
        result = service.calculate_commissions("2026-06", ADMIN)
        acc = next(r for r in result.records if r.station_id == "ACC-01")

        assert acc.base_commission == Decimal("110.00")
        assert acc.windfall_amount == Decimal("22.00")
        assert acc.shortfall_amount == Decimal("4.40")
        assert acc.total_commission == Decimal("127.60")
        for record in result.records:
            assert record.total_commission == record.base_commission + record.windfall_amount - record.shortfall_amount


class TestPaidRecordImmutability:
    """Paid commissions are final."""

    def test_recalculating_paid_record_is_invalid_state(self, network):
        service = _service(network)
        record = service.calculate_commissions("2026-06", DEALER, station_ids=["ACC-01"]).records[0]
        paid = service.mark_commission_as_paid(_payment(record.id), OMC_ONE)
        snapshot = service.get_commission(paid.id, ADMIN).to_dict()

        # More fuel sold after payment
        service.store.add_tank_stock(service.store.get_daily_tank_stocks(
            "ACC-01", date(2026, 6, 1), date(2026, 6, 1))[0])
        result = service.calculate_commissions("2026-06", ADMIN, station_ids=["ACC-01"])

        assert result.records == []
        assert isinstance(result.failures[0].error, InvalidState)
        assert service.get_commission(paid.id, ADMIN).to_dict() == snapshot

    def test_receipt_is_only_change_after_payment(self, network):
        service = _service(network)
        record = service.calculate_commissions("2026-06", DEALER, station_ids=["ACC-01"]).records[0]
        paid = service.mark_commission_as_paid(_payment(record.id), OMC_ONE)

        with_receipt = service.attach_receipt(paid.id, "RCPT-0615", OMC_ONE)

        assert with_receipt.receipt_reference == "RCPT-0615"
        assert with_receipt.total_commission == paid.total_commission
        with pytest.raises(InvalidState):
            service.cancel_commission(paid.id, OMC_ONE, reason="Wrong station")


class TestPaymentDuringRecalculation:
    """A payment that lands while a recalculation is running wins."""

    def test_recalculation_started_before_payment_cannot_overwrite_it(self, network, monkeypatch):
        service = _service(network)
        record = service.calculate_commissions("2026-06", DEALER, station_ids=["ACC-01"]).records[0]
        read_record = service.store.find_commission_record
        paid = {}

        def read_then_pay(station_id, period):
            # The recalculation reads the pending record, then the payment commits
            snapshot = read_record(station_id, period)
            if not paid:
                paid["record"] = service.mark_commission_as_paid(_payment(record.id), OMC_ONE)
            return snapshot

        monkeypatch.setattr(service.store, "find_commission_record", read_then_pay)
        result = service.calculate_commissions("2026-06", DEALER, station_ids=["ACC-01"])
        stored = service.get_commission(record.id, ADMIN)

        assert result.records == []
        assert [f.station_id for f in result.failures] == ["ACC-01"]
        assert isinstance(result.failures[0].error, ConcurrencyConflict)
        assert stored.status == "paid"
        assert stored.to_dict() == paid["record"].to_dict()


class TestApprovedRecordRecalculation:
    """An approval survives recalculation by someone who cannot approve."""

    def test_dealer_recalculation_leaves_approval_in_place(self, network):
        service = _service(network)
        approved = service.calculate_commissions("2026-06", OMC_ONE, station_ids=["ACC-01"]).records[0]

        kept = service.calculate_commissions("2026-06", DEALER, station_ids=["ACC-01"])
        forced = service.calculate_commissions("2026-06", DEALER, station_ids=["ACC-01"], force_recalculation=True)
        stored = service.get_commission(approved.id, ADMIN)

        assert kept.skipped == ["ACC-01"]
        assert isinstance(forced.failures[0].error, InvalidState)
        assert stored.status == "approved"
        assert stored.approved_by == "omc-one-user"
        assert stored.to_dict() == approved.to_dict()

    def test_forced_recalculation_by_approver_picks_up_new_data(self, network):
        service = _service(network)
        service.calculate_commissions("2026-06", OMC_ONE, station_ids=["ACC-01"])
        service.store.add_tank_stock(service.store.get_daily_tank_stocks(
            "ACC-01", date(2026, 6, 1), date(2026, 6, 1))[0])

        record = service.calculate_commissions(
            "2026-06", OMC_ONE, station_ids=["ACC-01"], force_recalculation=True
        ).records[0]

        # 3,200 L: base 160.00, windfall 32.00, shortfall 6.40
        assert record.total_commission == Decimal("185.60")
        assert record.status == "approved"


class TestVisibilityScoping:
    """Each organization sees only its own commissions."""

    def test_omc_never_sees_foreign_records(self, network):
        service = _service(network)
        service.calculate_commissions("2026-06", ADMIN)

        attempts = [
            CommissionFilters(),
            CommissionFilters(omc_id="OMC-2"),
            CommissionFilters(station_id="TKD-03"),
            CommissionFilters(dealer_id="DEALER-1"),
        ]
        for filters in attempts:
            page = service.get_commissions(OMC_ONE, filters)
            assert all(r.omc_id == "OMC-1" for r in page.records)

    def test_calculation_and_listing_use_same_scope(self, network):
        service = _service(network)
        calculated = service.calculate_commissions("2026-06", OMC_ONE)
        listed = service.get_commissions(OMC_ONE)
        stats = service.get_commission_stats(OMC_ONE, as_of=date(2026, 6, 15))

        assert {r.station_id for r in calculated.records} == {"ACC-01", "KSI-02"}
        assert {r.station_id for r in listed.records} == {"ACC-01", "KSI-02"}
        assert stats.total_records == 2


class TestPaymentValidation:
    """Payments are checked before anything changes."""

    def test_empty_reference_keeps_record_pending(self, network):
        service = _service(network)
        record = service.calculate_commissions("2026-06", DEALER, station_ids=["ACC-01"]).records[0]

        with pytest.raises(ValidationError):
            service.mark_commission_as_paid(_payment(record.id, reference_number=""), OMC_ONE)

        assert service.get_commission(record.id, ADMIN).status == "pending"

    def test_dealer_cannot_approve_foreign_record(self, network):
        """A dealer approving another organization's station is refused."""
        service = _service(network)
        record = service.calculate_commissions("2026-06", OMC_ONE, station_ids=["KSI-02"]).records[0]

        with pytest.raises(PermissionDenied):
            service.approve_commission(record.id, DEALER)

    def test_foreign_omc_cannot_pay(self, network):
        service = _service(network)
        record = service.calculate_commissions("2026-06", DEALER, station_ids=["ACC-01"]).records[0]

        with pytest.raises(PermissionDenied):
            service.mark_commission_as_paid(_payment(record.id), OMC_TWO)
        assert service.get_commission(record.id, ADMIN).status == "pending"


class TestMonthEndProjection:
    """Month-to-date run rate projected to month end."""

    def test_projection_day_fifteen_of_thirty(self):
        """500.00 earned by 15 June projects to 1,000.00 for the month."""
        # 14 days of 600 L, then 1,600 L on the 15th
        seed = {
            "stations": [{"id": "ACC-01", "omc_id": "OMC-1", "commission_rate": 0.05}],
            "daily_tank_stocks": [
                _tank_day("ACC-01", day, 10000, 9400 if day < 15 else 8400)
                for day in range(1, 16)
            ],
        }
        service = _service(seed)

        stats = service.get_commission_stats(ADMIN, as_of=date(2026, 6, 15))

        assert stats.current_month_commission == Decimal("500.00")
        assert stats.month_completion_percentage == Decimal("50.00")
        assert stats.projected_month_end_commission == Decimal("1000.00")
