"""
Module: operator_kernel.db.types
Responsibility: Annotated type aliases and rounding helpers for currency
    columns.  Centralizes the minor-unit convention so every model and
    selector uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    CRITICAL: No floats anywhere in the kernel.  Amounts are integer minor
           units; sums accumulate as ``int`` and the only rounding step is
           ``average_minor_units()``.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import BigInteger, String

# Currency amount in integer minor units (VND has no sub-unit)
MinorUnits = Annotated[int, BigInteger]

# SHA-256 hash as hex string (64 characters)
PayloadHash = Annotated[str, String(64)]


DEFAULT_ROUNDING = ROUND_HALF_UP


def average_minor_units(total: int, count: int, rounding: str = DEFAULT_ROUNDING) -> int:
    """
    Average of ``count`` amounts summing to ``total``, rounded to a whole unit.

    This is the ONLY sanctioned rounding function for amounts in the kernel.

    Postconditions: Returns 0 when count is 0; otherwise ``total / count``
        rounded with ``rounding`` (half-up by default).

    Example:
        average_minor_units(800_000, 2) -> 400_000
        average_minor_units(5, 2) -> 3
    """
    if count == 0:
        return 0
    quotient = Decimal(total) / Decimal(count)
    return int(quotient.quantize(Decimal("1"), rounding=rounding))
