"""
Module: shipment_kernel.db.types
Responsibility: Column type definitions for weights and dimensions, and the
    canonical rounding helper for reported weights.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for weights or dimensions; all use Decimal with explicit
      precision.
    - round_weight() is the only sanctioned rounding for reported weights.
      Persisted values keep full column precision.
"""

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import Numeric

# Weight in kilograms / length in the shipment's unit.
# 18 digits total, 6 decimal places.
WEIGHT_PRECISION = 18
WEIGHT_SCALE = 6

WEIGHT_DECIMAL_PLACES = 3
DEFAULT_ROUNDING = ROUND_HALF_UP


def weight_column_type() -> Numeric:
    """Numeric type used for every weight and dimension column."""
    return Numeric(WEIGHT_PRECISION, WEIGHT_SCALE, asdecimal=True)


def round_weight(value: Decimal, places: int = WEIGHT_DECIMAL_PLACES) -> Decimal:
    """
    Round a weight to the given number of decimal places (ROUND_HALF_UP).

    Args:
        value: Weight in kilograms.
        places: Decimal places to keep (default 3, i.e. grams).

    Returns:
        Rounded Decimal.
    """
    quantum = Decimal(1).scaleb(-places)
    return value.quantize(quantum, rounding=DEFAULT_ROUNDING)
