"""
Integer amount handling for agt-20 operations.
Amounts are arbitrary-precision non-negative integers encoded as decimal strings on the wire.
"""

import re
from typing import Optional, Union

_DIGITS = re.compile(r"^[0-9]+$")


def parse_amount(value: Union[str, int, None]) -> Optional[int]:
    """Parse a wire amount into an int, or None when it is not a non-negative integer.

    Decimal-digit strings and JSON integers are accepted. Booleans, floats,
    signs, whitespace and fractional parts are not.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if not isinstance(value, str):
        return None
    if not _DIGITS.match(value):
        return None
    return int(value)

