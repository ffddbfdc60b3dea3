# --- src/circuitsim_core/units.py ---
import logging
import math
from typing import Any, Optional

import pint

logger = logging.getLogger(__name__)
ureg = pint.UnitRegistry()
Quantity = ureg.Quantity
logger.info("Pint Unit Registry initialized.")

# Define [impedance] dimension to align with project terminology.
ureg.define("[impedance] = [voltage] / [current]")

PARSE_ERRORS = (
    pint.UndefinedUnitError,
    pint.DimensionalityError,
    ValueError,
    TypeError,
    AttributeError,
    SyntaxError,
)


def parse_magnitude(raw_value: Any, unit: Optional[str] = None) -> float:
    """
    Converts a raw parameter value to a float in the declared SI unit.

    Numbers pass through unchanged. Strings are parsed by pint, so "4.7 kohm"
    becomes 4700.0 when `unit` is "ohm". Plain numeric strings ("1e3", "inf")
    are accepted as magnitudes in the declared unit.

    Raises:
        ValueError: The value cannot be interpreted as a finite or infinite number.
    """
    if isinstance(raw_value, bool):
        raise ValueError(f"Boolean '{raw_value}' is not a numeric parameter value.")
    if isinstance(raw_value, (int, float)):
        value = float(raw_value)
    elif isinstance(raw_value, str):
        text = raw_value.strip()
        if not text:
            raise ValueError("Empty string is not a numeric parameter value.")
        try:
            value = float(text)
        except ValueError:
            try:
                quantity = Quantity(text)
                if unit and not quantity.dimensionless:
                    value = float(quantity.to(unit).magnitude)
                else:
                    value = float(quantity.magnitude)
            except PARSE_ERRORS as e:
                raise ValueError(f"Cannot parse '{raw_value}' as a quantity: {e}") from e
    else:
        raise ValueError(f"Unsupported parameter value type '{type(raw_value).__name__}'.")

    if math.isnan(value):
        raise ValueError(f"Parameter value '{raw_value}' is NaN.")
    return value
