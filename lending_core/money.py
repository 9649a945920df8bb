"""
Decimal Helpers

Rounding policy and safe Decimal conversion shared by the calculators and the
ledger. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from typing import Union

# Set global decimal context for financial precision
getcontext().prec = 28

ZERO = Decimal('0')
HUNDRED = Decimal('100')

Number = Union[Decimal, int, str]


@dataclass(frozen=True)
class RoundingPolicy:
    """
    Rounding applied by the origination calculator and the ledger.

    Charges (interest, initial deduction) are rounded to whole units by
    default; installment amounts and ledger cash to two places.
    """
    charge_places: int = 0
    installment_places: int = 2
    rounding: str = ROUND_HALF_UP

    def round_charge(self, value: Decimal) -> Decimal:
        return quantize(value, self.charge_places, self.rounding)

    def round_installment(self, value: Decimal) -> Decimal:
        return quantize(value, self.installment_places, self.rounding)

    def round_cash(self, value: Decimal) -> Decimal:
        return quantize(value, self.installment_places, self.rounding)


def quantize(value: Decimal, places: int, rounding: str = ROUND_HALF_UP) -> Decimal:
    """Round a Decimal to a fixed number of places"""
    return value.quantize(Decimal('0.1') ** places, rounding=rounding)


def to_decimal(value: Number, field_name: str = "amount") -> Decimal:
    """
    Convert user or storage input to Decimal.

    Accepts Decimal, int and numeric strings. Only surrounding whitespace and
    comma thousands separators are removed; any other stray character makes
    the string invalid. Floats are rejected outright.

    Raises:
        ValueError: If the value cannot be converted to a finite Decimal
    """
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be numeric, got bool")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, str):
        clean_value = value.strip().replace(',', '')
        if not clean_value:
            raise ValueError(f"{field_name} must be a non-empty number")
        try:
            result = Decimal(clean_value)
        except InvalidOperation:
            raise ValueError(f"Cannot convert '{value}' to Decimal for {field_name}")
    else:
        raise ValueError(f"{field_name} must be Decimal, int or str, got {type(value).__name__}")

    if not result.is_finite():
        raise ValueError(f"{field_name} must be finite")
    return result


def percent_of(amount: Decimal, percent: Decimal) -> Decimal:
    """amount × percent / 100, unrounded"""
    return amount * percent / HUNDRED


def non_negative(value: Decimal) -> Decimal:
    return value if value > ZERO else ZERO
