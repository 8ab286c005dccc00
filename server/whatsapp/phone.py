"""
Phone number normalization for outbound chats.
"""

from __future__ import annotations

import re
from typing import Optional

from server.core.errors import InvalidArgument

# E.164 allows up to 15 digits; shorter than 8 is never a reachable mobile
MIN_DIGITS = 8
MAX_DIGITS = 15

CHAT_SUFFIX = "@c.us"


def normalize_phone(
    phone: str,
    default_country_code: Optional[str] = None,
    national_length: int = 10,
) -> str:
    """
    Normalize a phone number to international digits (no +).

    Input starting with "+" or "00" is already international. Anything else
    is treated as a national number when it has at most `national_length`
    digits and gets `default_country_code` prepended, if one is configured.

    Args:
        phone: Phone number string (e.g., "+1 (555) 123-4567", "98765 43210")
        default_country_code: Digits to prepend to national numbers (e.g., "91")
        national_length: Longest digit count treated as a national number

    Returns:
        Digits only (e.g., "15551234567")

    Raises:
        InvalidArgument: no digits, or the result is not 8-15 digits long
    """
    raw = str(phone or "").strip()
    digits = re.sub(r"\D", "", raw)

    international = raw.startswith("+")
    if raw.startswith("00"):
        international = True
        digits = digits[2:]

    if not digits:
        raise InvalidArgument("Phone number is required")

    if (
        not international
        and default_country_code
        and len(digits) <= national_length
    ):
        digits = f"{default_country_code}{digits.lstrip('0')}"

    if not MIN_DIGITS <= len(digits) <= MAX_DIGITS:
        raise InvalidArgument(f"Invalid phone number: {phone}")

    return digits


def to_chat_id(digits: str) -> str:
    """Chat id of a private chat for a normalized number."""
    return f"{digits}{CHAT_SUFFIX}"
