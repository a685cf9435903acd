"""
Input Validation for the Commission Engine

Validates requests before any data is read or written.
Raises ValidationError with clear messages for any constraint violations.
"""

from datetime import date

from .config import EngineConfig
from .errors import ValidationError
from .models import (
    DATA_SOURCES,
    PAYMENT_METHODS,
    RULE_ADJUSTMENT,
    RULE_TYPES,
    AdjustmentRule,
    PaymentRequest,
)
from .periods import parse_period


class InputValidator:
    """Validates calculation, payment, pagination and adjustment rule input."""

    def __init__(self, config: EngineConfig | None = None):
        self.config = config or EngineConfig()

    def validate_calculation(self, period: str, data_source: str) -> None:
        parse_period(period)
        if data_source not in DATA_SOURCES:
            raise ValidationError(
                f"Invalid data_source: {data_source}. Must be one of {', '.join(DATA_SOURCES)}"
            )

    def validate_payment(self, payment: PaymentRequest, today: date) -> None:
        """
        Run all payment checks. Raises ValidationError if any check fails.
        """
        if not payment.reference_number or not payment.reference_number.strip():
            raise ValidationError("reference_number is required")

        if payment.payment_date > today:
            raise ValidationError(
                f"payment_date cannot be in the future, got: {payment.payment_date.isoformat()}"
            )

        if payment.payment_method not in PAYMENT_METHODS:
            raise ValidationError(
                f"Invalid payment_method: {payment.payment_method}. "
                f"Must be one of {', '.join(PAYMENT_METHODS)}"
            )

    def validate_pagination(self, page: int, limit: int) -> None:
        if page < 1:
            raise ValidationError(f"page must be 1 or greater, got: {page}")
        if not 1 <= limit <= self.config.max_page_size:
            raise ValidationError(
                f"limit must be between 1 and {self.config.max_page_size}, got: {limit}"
            )

    def validate_adjustment_rule(self, rule: AdjustmentRule) -> None:
        """
        Rates are per liter and never zero. Only signed 'adjustment' rules may
        carry a negative rate; windfall and shortfall give the direction.
        """
        if rule.type not in RULE_TYPES:
            raise ValidationError(
                f"Invalid rule type: {rule.type}. Must be one of {', '.join(RULE_TYPES)}"
            )

        if rule.rate == 0:
            raise ValidationError("rate must be non-zero")

        if rule.rate < 0 and rule.type != RULE_ADJUSTMENT:
            raise ValidationError(f"A {rule.type} rate must be positive, got: {rule.rate}")

        if rule.threshold_volume is not None and rule.threshold_volume < 0:
            raise ValidationError(f"threshold_volume cannot be negative, got: {rule.threshold_volume}")

        if rule.end_date is not None and rule.end_date < rule.effective_date:
            raise ValidationError(
                f"end_date {rule.end_date.isoformat()} is before effective_date {rule.effective_date.isoformat()}"
            )
