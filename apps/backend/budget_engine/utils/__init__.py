"""
Utils package
"""

from .money import MINOR_UNIT, ZERO, round_money, to_money
from .calendar import days_in_month, half_month_days, half_of, inclusive_days, to_day

__all__ = [
    "MINOR_UNIT",
    "ZERO",
    "round_money",
    "to_money",
    "days_in_month",
    "half_month_days",
    "half_of",
    "inclusive_days",
    "to_day",
]
