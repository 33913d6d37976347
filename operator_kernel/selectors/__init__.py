"""Selectors for the operator kernel (read side)."""

from operator_kernel.selectors.balance_selector import BalanceSelector, classify_payment

__all__ = [
    "BalanceSelector",
    "classify_payment",
]
