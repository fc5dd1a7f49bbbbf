"""
Display helpers: password strength and partial redaction.

Masking works on plaintext for display only; stored ciphertexts are
never touched.
"""

from __future__ import annotations

from typing import Final, Optional

WEAK: Final[str] = "weak"
MEDIUM: Final[str] = "medium"
STRONG: Final[str] = "strong"

_DIGITS: Final[frozenset[str]] = frozenset("0123456789")


def password_strength(password: Optional[str]) -> str:
    """Length-only strength rating: <8 weak, <12 medium, otherwise strong."""
    length = len(password or "")
    if length < 8:
        return WEAK
    if length < 12:
        return MEDIUM
    return STRONG


def _mask_leading_digits(value: str, keep: int = 4) -> str:
    # Grouping characters (spaces, dashes) stay where they are
    to_mask = max(sum(1 for c in value if c in _DIGITS) - keep, 0)
    out = []
    for c in value:
        if c in _DIGITS and to_mask > 0:
            out.append("*")
            to_mask -= 1
        else:
            out.append(c)
    return "".join(out)


def mask_account_number(number: Optional[str], visible: bool = False) -> Optional[str]:
    """
    Hide every digit but the last four.

    >>> mask_account_number("12345678901234")
    '**********1234'
    >>> mask_account_number("4111 1111 1111 1111")
    '**** **** **** 1111'
    """
    if visible or not number:
        return number
    return _mask_leading_digits(number)


mask_card_number = mask_account_number


def mask_document_number(number: Optional[str], doc_type: str) -> Optional[str]:
    """
    Type-dependent masking of identity document numbers.

    aadhaar: last four digits visible.
    pan: first two and everything from position 5 visible.
    anything else: trailing four characters visible.
    """
    if not number:
        return number

    if doc_type == "aadhaar":
        return _mask_leading_digits(number)

    if doc_type == "pan":
        return number[:2] + "***" + number[5:]

    if len(number) <= 4:
        return number
    return "*" * (len(number) - 4) + number[-4:]
