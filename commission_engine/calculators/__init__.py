"""
Calculators Package

Provides all calculation components for commission accrual.
"""

from .adjustments import AdjustmentCalculator
from .daily import DailyAccrualCalculator
from .rates import RateResolver
from .stats import StatsCalculator

__all__ = [
    "RateResolver",
    "DailyAccrualCalculator",
    "AdjustmentCalculator",
    "StatsCalculator",
]
