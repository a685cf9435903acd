"""
Output Builder

Constructs API responses from engine results.
"""

from decimal import Decimal

from .models import (
    AdjustmentRule,
    CalculationResult,
    CommissionPage,
    CommissionRecord,
    CommissionStats,
    Pagination,
    ProgressiveDay,
)


def to_money(value: Decimal) -> float:
    """Convert Decimal to float with 2 decimal places."""
    return round(float(value), 2)


def to_rate(value: Decimal) -> float:
    return round(float(value), 4)


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


class OutputBuilder:
    """Builds the JSON-ready dictionaries returned by the HTTP surfaces."""

    def record(self, record: CommissionRecord) -> dict:
        return {
            "id": record.id,
            "station_id": record.station_id,
            "dealer_id": record.dealer_id,
            "omc_id": record.omc_id,
            "period": record.period,
            "total_volume": to_money(record.total_volume),
            "total_sales": to_money(record.total_sales),
            "commission_rate": to_rate(record.commission_rate),
            "rate_source": record.rate_source,
            "base_commission": to_money(record.base_commission),
            "windfall_amount": to_money(record.windfall_amount),
            "shortfall_amount": to_money(record.shortfall_amount),
            "total_commission": to_money(record.total_commission),
            "status": record.status,
            "data_source": record.data_source,
            "calculated_at": _iso(record.calculated_at),
            "calculated_by": record.calculated_by,
            "approved_at": _iso(record.approved_at),
            "approved_by": record.approved_by,
            "paid_at": _iso(record.paid_at),
            "paid_by": record.paid_by,
            "payment_method": record.payment_method,
            "payment_reference": record.payment_reference,
            "payment_date": _iso(record.payment_date),
            "payment_notes": record.payment_notes,
            "receipt_reference": record.receipt_reference,
            "cancelled_at": _iso(record.cancelled_at),
            "cancelled_by": record.cancelled_by,
            "cancellation_reason": record.cancellation_reason,
            "warnings": [w.to_dict() for w in record.warnings],
        }

    def calculation(self, result: CalculationResult) -> dict:
        return {
            "period": result.period,
            "data_source": result.data_source,
            "records": [self.record(r) for r in result.records],
            "failures": [
                {"station_id": f.station_id, "error": str(f.error), "status": f.status}
                for f in result.failures
            ],
            "skipped": result.skipped,
            "warnings": [w.to_dict() for w in result.warnings],
            "stations_using_default_rate": result.stations_using_default_rate,
        }

    def adjustment_rule(self, rule: AdjustmentRule) -> dict:
        return {
            "id": rule.id,
            "station_id": rule.station_id,
            "omc_id": rule.omc_id,
            "type": rule.type,
            "rate": to_rate(rule.rate),
            "threshold_volume": to_money(rule.threshold_volume) if rule.threshold_volume is not None else None,
            "effective_date": _iso(rule.effective_date),
            "end_date": _iso(rule.end_date),
            "is_active": rule.is_active,
            "created_by": rule.created_by,
            "created_at": _iso(rule.created_at),
        }

    def pagination(self, pagination: Pagination) -> dict:
        return {
            "page": pagination.page,
            "limit": pagination.limit,
            "total": pagination.total,
            "total_pages": pagination.total_pages,
            "has_next": pagination.has_next,
            "has_prev": pagination.has_prev,
        }

    def page(self, page: CommissionPage) -> dict:
        return {
            "records": [self.record(r) for r in page.records],
            "pagination": self.pagination(page.pagination),
        }

    def stats(self, stats: CommissionStats) -> dict:
        return {
            "total_commission": to_money(stats.total_commission),
            "paid_commission": to_money(stats.paid_commission),
            "pending_commission": to_money(stats.pending_commission),
            "cancelled_commission": to_money(stats.cancelled_commission),
            "total_records": stats.total_records,
            "paid_count": stats.paid_count,
            "pending_count": stats.pending_count,
            "cancelled_count": stats.cancelled_count,
            "stations_paid": stats.stations_paid,
            "stations_pending": stats.stations_pending,
            "stations_without_record": stats.stations_without_record,
            "current_month_commission": to_money(stats.current_month_commission),
            "previous_month_commission": to_money(stats.previous_month_commission),
            "month_over_month_change": to_money(stats.month_over_month_change),
            "month_completion_percentage": to_money(stats.month_completion_percentage),
            "projected_month_end_commission": to_money(stats.projected_month_end_commission),
            "average_commission_rate": to_rate(stats.average_commission_rate),
            "stations_using_default_rate": stats.stations_using_default_rate,
            "by_period": {period: to_money(amount) for period, amount in stats.by_period.items()},
            "warnings": [w.to_dict() for w in stats.warnings],
            "last_synced_at": _iso(stats.last_synced_at),
        }

    def progressive_day(self, day: ProgressiveDay) -> dict:
        return {
            "date": day.date.isoformat(),
            "day_of_month": day.day_of_month,
            "volume": to_money(day.volume),
            "commission_earned": to_money(day.commission_earned),
            "cumulative_volume": to_money(day.cumulative_volume),
            "cumulative_commission": to_money(day.cumulative_commission),
            "trend": day.trend,
            "daily_progress": to_money(day.daily_progress),
            "volume_clamped": day.volume_clamped,
        }

    def progressive(self, series: list[ProgressiveDay]) -> list[dict]:
        return [self.progressive_day(day) for day in series]
