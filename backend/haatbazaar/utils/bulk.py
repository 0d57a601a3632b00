# haatbazaar/utils/bulk.py
# Quantity normalization for the bulk-buy listing
from typing import Any, Optional

GRAM_UNITS = frozenset({"g", "gm", "gram", "grams"})


def to_kilograms(quantity: Any, unit: Optional[str] = "kg") -> float:
    """Converts a stock quantity to kilograms. Invalid or negative input counts as zero."""
    try:
        value = float(quantity)
    except (TypeError, ValueError):
        return 0.0
    if value != value or value < 0:  # NaN or negative
        return 0.0
    if unit and unit.strip().lower() in GRAM_UNITS:
        return value / 1000.0
    return value


def meets_threshold(quantity_kg: float, threshold_kg: float, inclusive: bool = False) -> bool:
    return quantity_kg >= threshold_kg if inclusive else quantity_kg > threshold_kg
