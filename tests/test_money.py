"""
Test suite for the Decimal helpers
"""

import pytest
from decimal import Decimal

from lending_core.money import RoundingPolicy, non_negative, percent_of, quantize, to_decimal


class TestToDecimal:
    """Test conversion of user input to Decimal"""

    def test_accepts_numbers(self):
        assert to_decimal(Decimal('1.50')) == Decimal('1.50')
        assert to_decimal(42) == Decimal('42')
        assert to_decimal(" 10,000.25 ") == Decimal('10000.25')
        assert to_decimal("-5") == Decimal('-5')

    def test_exponent_notation_keeps_its_value(self):
        assert to_decimal("1e2") == Decimal('100')
        assert to_decimal("2.5E1") == Decimal('25')

    def test_rejects_stray_characters(self):
        for value in ["12abc", "$100", "1 000", "10..5", "abc", "", "   "]:
            with pytest.raises(ValueError):
                to_decimal(value)

    def test_rejects_non_finite_and_other_types(self):
        for value in ["NaN", "Infinity", "-inf", 1.5, True, None]:
            with pytest.raises(ValueError):
                to_decimal(value)


class TestRounding:

    def test_half_up(self):
        assert quantize(Decimal('2.5'), 0) == Decimal('3')
        assert quantize(Decimal('132.505'), 2) == Decimal('132.51')

    def test_policy(self):
        policy = RoundingPolicy()
        assert policy.round_charge(Decimal('26.5')) == Decimal('27')
        assert policy.round_installment(Decimal('1000') / 3) == Decimal('333.33')

    def test_helpers(self):
        assert percent_of(Decimal('10000'), Decimal('12.5')) == Decimal('1250')
        assert non_negative(Decimal('-3')) == Decimal('0')
