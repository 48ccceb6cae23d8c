"""
Currency Support Module

Handles the fixed set of ISO 4217 currencies the ledger accepts, exchange
rates, and proper Decimal precision for financial calculations. NEVER uses
float for monetary values.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Union
from enum import Enum
import re

from .errors import InvalidInput

# Set global decimal context for financial precision
getcontext().prec = 28

# Optional sign, digits with optional comma thousands groups, optional fraction
AMOUNT_PATTERN = re.compile(r'^[+-]?(\d{1,3}(,\d{3})+|\d+)(\.\d+)?$')


class Currency(Enum):
    """ISO 4217 currency codes with precision and display symbol"""
    INR = ("INR", 2, "₹")  # Indian Rupee
    USD = ("USD", 2, "$")  # US Dollar
    EUR = ("EUR", 2, "€")  # Euro
    GBP = ("GBP", 2, "£")  # British Pound

    def __init__(self, code: str, precision: int, symbol: str):
        self.code = code
        self.precision = precision
        self.symbol = symbol


@dataclass
class ExchangeRate:
    """Mid-market exchange rate for a currency pair"""
    from_currency: Currency
    to_currency: Currency
    mid: Decimal
    timestamp: datetime

    def __post_init__(self):
        if not isinstance(self.mid, Decimal):
            self.mid = Decimal(str(self.mid))
        if self.mid <= Decimal('0'):
            raise ValueError(f"Exchange rate {self.from_currency.code}->{self.to_currency.code} must be positive")

    def inverse(self) -> 'ExchangeRate':
        """Rate for the opposite direction"""
        return ExchangeRate(
            from_currency=self.to_currency,
            to_currency=self.from_currency,
            mid=Decimal('1') / self.mid,
            timestamp=self.timestamp
        )


def parse_currency(value: Union[str, Currency]) -> Currency:
    """
    Resolve a currency code (case-insensitive) or Currency member.

    Raises:
        InvalidInput: If the code is not one of the supported currencies
    """
    if isinstance(value, Currency):
        return value
    if not isinstance(value, str):
        raise InvalidInput(f"Unsupported currency: {value!r}")
    try:
        return Currency[value.strip().upper()]
    except KeyError:
        raise InvalidInput(f"Unsupported currency: {value!r}")


def decimal_from_string(value: str) -> Decimal:
    """
    Strictly convert a plain numeric string such as "1,250.75" to Decimal

    Args:
        value: String representation of number

    Returns:
        Decimal value

    Raises:
        ValueError: If string cannot be converted to valid Decimal
    """
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")

    # Surrounding whitespace and comma thousands separators are the only decoration allowed
    clean_value = value.strip()
    if not AMOUNT_PATTERN.match(clean_value):
        raise ValueError(f"Cannot convert '{value}' to Decimal")

    try:
        return Decimal(clean_value.replace(',', ''))
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to Decimal")


def validate_decimal_precision(value: Decimal, currency: Currency) -> Decimal:
    """
    Round decimal to currency precision

    Args:
        value: Decimal to validate
        currency: Currency defining precision

    Returns:
        Properly rounded Decimal
    """
    return value.quantize(
        Decimal('0.1') ** currency.precision,
        rounding=ROUND_HALF_UP
    )


def to_amount(value: Any, currency: Currency, field_name: str = "amount") -> Decimal:
    """
    Coerce caller input into a Decimal rounded to the currency precision.

    Accepts Decimal, int, float and plain numeric strings ("1250.75",
    "1,250.75"). Floats go through str() so 0.1 stays 0.1.

    Raises:
        InvalidInput: For booleans, None, non-numeric text, NaN, infinity
            or values too large to represent at currency precision
    """
    if isinstance(value, bool) or value is None:
        raise InvalidInput(f"{field_name} must be a number, got {value!r}")

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        try:
            amount = decimal_from_string(value)
        except ValueError:
            raise InvalidInput(f"{field_name} must be a number, got {value!r}")
    else:
        raise InvalidInput(f"{field_name} must be a number, got {value!r}")

    if not amount.is_finite():
        raise InvalidInput(f"{field_name} must be finite, got {value!r}")

    try:
        return validate_decimal_precision(amount, currency)
    except InvalidOperation:
        # More digits than the decimal context can hold
        raise InvalidInput(f"{field_name} out of range, got {value!r}")


def format_amount(value: Decimal, currency: Currency) -> str:
    """Format for display, e.g. '₹1,250.00' or '-₹200.00'"""
    rounded = validate_decimal_precision(value, currency)
    sign = "-" if rounded < 0 else ""
    return f"{sign}{currency.symbol}{abs(rounded):,.{currency.precision}f}"
