"""
phone_utils.py
--------------
North American phone normalization used for customer lookup and SMS.

Customers are matched by phone, so every phone is stored in the same
E.164 form: +1 followed by ten digits.
"""

import re

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(phone: str) -> str:
    """
    Normalize a free-form phone number to '+1XXXXXXXXXX'.

    - 10 digits            -> +1 + digits
    - 11 digits, leading 1 -> + + digits
    - longer, leading 1    -> first 11 digits
    - anything else        -> +1 + last 10 digits
    Returns '' for input without digits.
    """
    digits = _NON_DIGITS.sub("", phone or "")
    if not digits:
        return ""
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    if digits.startswith("1") and len(digits) > 11:
        return f"+{digits[:11]}"
    return f"+1{digits[-10:]}"


def format_phone_display(phone: str) -> str:
    """'+16475016039' -> '+1 (647) 501-6039'."""
    normalized = normalize_phone(phone)
    digits = _NON_DIGITS.sub("", normalized)
    if len(digits) == 11 and digits.startswith("1"):
        return f"+1 ({digits[1:4]}) {digits[4:7]}-{digits[7:11]}"
    return normalized
