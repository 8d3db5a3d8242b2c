"""
Conversion between decimal amount strings and integer cents.

Amounts arrive over HTTP as strings such as "100.50": strictly positive,
at most two fractional digits. They are parsed with decimal.Decimal and
turned into integer cents; float never touches money.
"""

import re
from decimal import Decimal, InvalidOperation

from bank_ledger.exceptions import InvalidAmountError


# Largest amount accepted in one posting: $1,000,000,000.00
MAX_AMOUNT_CENTS = 100_000_000_000

_AMOUNT_PATTERN = re.compile(r"^\d+(\.\d{1,2})?$")


def parse_amount_to_cents(value: str) -> int:
    """
    Parse a decimal amount string into positive integer cents.

    "10" -> 1000, "10.5" -> 1050, "0.01" -> 1.

    Raises:
        InvalidAmountError: If the string is not a plain positive decimal
                            with at most two fractional digits, or exceeds
                            MAX_AMOUNT_CENTS.
    """
    if not isinstance(value, str):
        raise InvalidAmountError("Amount must be a decimal string, e.g. \"100.50\"")

    text = value.strip()
    if not _AMOUNT_PATTERN.match(text):
        raise InvalidAmountError(
            f"Invalid amount {value!r}: use a positive decimal with at most 2 decimal places"
        )

    try:
        cents = int(Decimal(text) * 100)
    except InvalidOperation:
        raise InvalidAmountError(f"Invalid amount {value!r}")

    if cents <= 0:
        raise InvalidAmountError("Amount must be greater than zero")
    if cents > MAX_AMOUNT_CENTS:
        raise InvalidAmountError("Amount exceeds the maximum allowed per transaction")
    return cents


def format_cents(cents: int) -> str:
    """Render signed cents as a decimal string: -1050 -> "-10.50"."""
    sign = "-" if cents < 0 else ""
    whole, fraction = divmod(abs(cents), 100)
    return f"{sign}{whole}.{fraction:02d}"
