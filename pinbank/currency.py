"""
Money Handling Module

Decimal helpers for account balances and transaction amounts. Amounts are
always rounded to cents and NEVER kept as float once they enter the ledger.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from typing import Union
import re

from .exceptions import InvalidAmountError

# High precision for intermediate sums
getcontext().prec = 28

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

# Largest amount whose cents fit the snapshot's signed 64-bit money fields
MAX_CENTS = 2 ** 63 - 1
MAX_AMOUNT = Decimal(MAX_CENTS).scaleb(-2)

AmountLike = Union[str, int, float, Decimal]


def to_amount(value: AmountLike) -> Decimal:
    """
    Convert a value to a Decimal rounded half-up to cents

    Args:
        value: Amount as string, int, float or Decimal

    Returns:
        Decimal with exactly two decimal places

    Raises:
        InvalidAmountError: If the value is not a finite number or its
            magnitude exceeds MAX_AMOUNT
    """
    if isinstance(value, bool):
        raise InvalidAmountError(f"Cannot convert {value!r} to an amount")

    if isinstance(value, float):
        # Go through str() so 0.1 stays 0.1 rather than its binary expansion
        value = str(value)

    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError(f"Cannot convert {value!r} to an amount")

    if not amount.is_finite():
        raise InvalidAmountError(f"Cannot convert {value!r} to an amount")

    if amount.copy_abs() > MAX_AMOUNT:
        raise InvalidAmountError(f"Amount exceeds the maximum of ${MAX_AMOUNT:,.2f}")

    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidAmountError(f"Cannot convert {value!r} to an amount")


def parse_amount(text: str) -> Decimal:
    """
    Parse user-entered amount text such as "$1,250.00" or " 75 "

    Currency symbols, whitespace and thousands separators are ignored.
    """
    if not text or not isinstance(text, str):
        raise InvalidAmountError("Amount must be a non-empty string")

    clean_value = re.sub(r'[\s$,]', '', text)
    if not re.fullmatch(r'[+-]?(\d+(\.\d*)?|\.\d+)', clean_value):
        raise InvalidAmountError(f"Cannot convert '{text}' to an amount")

    return to_amount(clean_value)


def to_cents(amount: Decimal) -> int:
    """Convert a cents-rounded Decimal to an integer number of cents"""
    return int(to_amount(amount) * 100)


def from_cents(cents: int) -> Decimal:
    """Convert an integer number of cents back to a Decimal amount"""
    return (Decimal(cents) / 100).quantize(CENT)


def format_amount(amount: Decimal) -> str:
    """Format for display"""
    if amount < 0:
        return f"-${abs(amount):,.2f}"
    return f"${amount:,.2f}"
