import math
import re
from typing import Any

import numpy as np

# Plain decimal with an optional exponent: no thousands separators, no nan/inf.
DECIMAL_PATTERN = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)


def format_invariant(value: Any) -> str:
    """Format a value for the hub, independent of the current locale."""
    if isinstance(value, (bool, np.bool_)):
        return "true" if value else "false"

    if isinstance(value, (int, np.integer)):
        return str(int(value))

    if isinstance(value, (float, np.floating)):
        number = float(value)
        if math.isfinite(number) and number.is_integer():
            return str(int(number))
        return repr(number)

    return str(value)


def parse_decimal(text: Any) -> float:
    """Parse an invariant decimal string. Raises ValueError on failure."""
    if isinstance(text, (bool, np.bool_)):
        raise ValueError(f"'{text}' is a boolean, not a decimal number")

    if isinstance(text, (int, float, np.integer, np.floating)):
        return float(text)

    stripped = str(text).strip()
    if not DECIMAL_PATTERN.fullmatch(stripped):
        raise ValueError(f"'{text}' is not an invariant decimal number")

    number = float(stripped)
    if not math.isfinite(number):
        raise ValueError(f"'{text}' is out of range")
    return number


def is_number(value: Any) -> bool:
    try:
        parse_decimal(value)
    except (TypeError, ValueError):
        return False
    return True
