"""Destination phone number normalization."""

import re
from typing import Any

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: Any, country_code: str = "55") -> str:
    """Normalize a phone number to the digits-only form the gateway expects.

    Non-digits are stripped. A number of 10 or 11 digits that does not
    already start with the country code is treated as national and gets the
    country code prefixed. Anything else is returned as the bare digits; an
    empty result means the item has no usable phone.

    Examples:
        >>> normalize_phone("(11) 98765-4321")
        '5511987654321'
        >>> normalize_phone("+55 11 98765-4321")
        '5511987654321'
    """
    if raw is None:
        return ""

    digits = _NON_DIGITS.sub("", str(raw))
    if not digits:
        return ""

    if not digits.startswith(country_code) and len(digits) in (10, 11):
        digits = f"{country_code}{digits}"

    return digits
