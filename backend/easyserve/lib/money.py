"""
Money helpers. Amounts are Decimals with two places, stored in Numeric(12, 2) columns.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

from easyserve.api.middleware.error_handler import BadRequestException

CENTS = Decimal("0.01")

# Largest value a Numeric(12, 2) column holds
MAX_AMOUNT = Decimal("9999999999.99")

Amount = Union[Decimal, int, float, str]


def to_money(value: Amount) -> Decimal:
    """Convert an incoming amount to a two-place Decimal (floats go through str to avoid binary noise).

    Raises:
        BadRequestException: Not a finite number, or outside the storable range
    """
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise BadRequestException("Invalid amount", details={"amount": str(value)}) from None
    if not amount.is_finite() or abs(amount) > MAX_AMOUNT:
        raise BadRequestException("Invalid amount", details={"amount": str(value)})
    return amount


def optional_money(value: Optional[Amount]) -> Optional[Decimal]:
    return None if value is None else to_money(value)
