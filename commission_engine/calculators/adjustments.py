"""
Adjustment Calculator

Windfall/shortfall amounts from configured adjustment rules. Configured
shortfall rules are the only shortfall signal: violation counts and
tank-stock variance do not feed into commissions.
"""

from datetime import date
from decimal import Decimal

from ..models import RULE_ADJUSTMENT, RULE_SHORTFALL, RULE_WINDFALL, AdjustmentResult, AdjustmentRule
from .daily import quantize_money


class AdjustmentCalculator:
    """Applies windfall, shortfall and signed adjustment rules to period volume."""

    def calculate(
        self,
        rules: list[AdjustmentRule],
        total_volume: Decimal,
        start: date,
        end: date,
    ) -> AdjustmentResult:
        windfall = Decimal("0")
        shortfall = Decimal("0")
        applied = []

        for rule in rules:
            if not rule.applies_to(start, end):
                continue
            if rule.threshold_volume is not None and total_volume < rule.threshold_volume:
                continue

            amount = quantize_money(total_volume * rule.rate)
            if rule.type == RULE_WINDFALL:
                windfall += abs(amount)
            elif rule.type == RULE_SHORTFALL:
                shortfall += abs(amount)
            elif rule.type == RULE_ADJUSTMENT:
                if amount >= 0:
                    windfall += amount
                else:
                    shortfall += -amount
            else:
                # Unknown rule types are ignored
                continue
            applied.append(rule.id)

        return AdjustmentResult(
            windfall_amount=windfall,
            shortfall_amount=shortfall,
            applied_rule_ids=applied,
        )
