"""
Append-only ledgers: completed tasks and AI token usage.
"""

from canon.ledgers.progress import ProgressLedger
from canon.ledgers.tokens import TokenLedger, UsageTotals, estimate_cost, estimate_co2

__all__ = [
    "ProgressLedger",
    "TokenLedger",
    "UsageTotals",
    "estimate_cost",
    "estimate_co2",
]
