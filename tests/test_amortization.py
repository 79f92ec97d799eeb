"""
Test suite for amortization module

EMI formula, per-period split, and date helpers. All money math is Decimal.
"""

import pytest
from decimal import Decimal
from datetime import date

from finance_ledger.amortization import (
    ZERO, add_months, compute_emi, month_year, monthly_rate, quantize_amount,
    split_period, to_decimal, to_tenure
)
from finance_ledger.exceptions import ValidationError


class TestComputeEMI:
    """Test EMI calculation"""

    def test_standard_reducing_balance(self):
        """120000 at 12% over 12 months"""
        assert compute_emi(Decimal('120000'), Decimal('12'), 12) == Decimal('10661.85')

    def test_accepts_strings_and_numbers(self):
        assert compute_emi("120000", "12", "12") == Decimal('10661.85')
        assert compute_emi(120000, 12, 12) == Decimal('10661.85')

    def test_zero_rate_is_simple_division(self):
        assert compute_emi(Decimal('12000'), Decimal('0'), 12) == Decimal('1000.00')
        assert compute_emi(Decimal('10000'), Decimal('0'), 3) == Decimal('3333.33')

    def test_single_month_tenure(self):
        """One installment repays principal plus one month of interest"""
        assert compute_emi(Decimal('1000'), Decimal('12'), 1) == Decimal('1010.00')

    def test_result_is_quantized(self):
        emi = compute_emi(Decimal('500000'), Decimal('8.5'), 240)
        assert emi == emi.quantize(Decimal('0.01'))
        assert emi > ZERO

    def test_rounded_emi_can_fall_short_of_principal(self):
        """Half-up rounding can leave a cent for the final installment to settle"""
        assert compute_emi(Decimal('100'), Decimal('0'), 3) * 3 == Decimal('99.99')

    @pytest.mark.parametrize("principal,rate,tenure", [
        (Decimal('0'), Decimal('10'), 12),
        (Decimal('-100'), Decimal('10'), 12),
        (Decimal('1000'), Decimal('-1'), 12),
        (Decimal('1000'), Decimal('10'), 0),
        (Decimal('1000'), Decimal('10'), -3),
        (Decimal('1000'), Decimal('10'), Decimal('12.5')),
        (None, Decimal('10'), 12),
        ("abc", Decimal('10'), 12),
        (Decimal('1000'), "NaN", 12),
        (Decimal('1000'), Decimal('10'), True),
    ])
    def test_invalid_input_rejected(self, principal, rate, tenure):
        with pytest.raises(ValidationError):
            compute_emi(principal, rate, tenure)

    def test_infinite_principal_rejected(self):
        with pytest.raises(ValidationError):
            compute_emi(float('inf'), Decimal('10'), 12)


class TestSplitPeriod:
    """Test interest/principal split"""

    def test_first_period_split(self):
        split = split_period(Decimal('120000.00'), monthly_rate(Decimal('12')), Decimal('10661.85'))

        assert split.interest_portion == Decimal('1200.00')
        assert split.principal_portion == Decimal('9461.85')
        assert split.new_balance == Decimal('110538.15')

    def test_balance_never_negative(self):
        split = split_period(Decimal('50.00'), monthly_rate(Decimal('12')), Decimal('100.00'))
        assert split.new_balance == ZERO

    def test_zero_rate_split(self):
        split = split_period(Decimal('3000.00'), monthly_rate(Decimal('0')), Decimal('1000.00'))
        assert split.interest_portion == ZERO
        assert split.principal_portion == Decimal('1000.00')
        assert split.new_balance == Decimal('2000.00')


class TestConversions:
    """Test input coercion helpers"""

    def test_to_decimal(self):
        assert to_decimal("12.50", "amount") == Decimal('12.50')
        assert to_decimal(3, "amount") == Decimal('3')
        assert to_decimal(0.1, "amount") == Decimal('0.1')

    def test_to_decimal_rejects_bool_and_objects(self):
        with pytest.raises(ValidationError):
            to_decimal(False, "amount")
        with pytest.raises(ValidationError):
            to_decimal([1], "amount")

    def test_to_tenure(self):
        assert to_tenure("24") == 24
        assert to_tenure(Decimal('12.0')) == 12

    def test_quantize_rounds_half_up(self):
        assert quantize_amount(Decimal('1.005')) == Decimal('1.01')
        assert quantize_amount(Decimal('1.004')) == Decimal('1.00')

    @pytest.mark.parametrize("amount", ["1e27", "123456789012345678901234567.89"])
    def test_quantize_beyond_precision_rejected(self, amount):
        with pytest.raises(ValidationError):
            quantize_amount(Decimal(amount))


class TestDates:
    """Test calendar helpers"""

    def test_add_months_clamps_month_end(self):
        start = date(2024, 1, 31)
        assert add_months(start, 1) == date(2024, 2, 29)
        assert add_months(start, 2) == date(2024, 3, 31)
        assert add_months(start, 3) == date(2024, 4, 30)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)

    def test_add_months_crosses_year(self):
        assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)
        assert add_months(date(2024, 2, 10), -3) == date(2023, 11, 10)

    def test_add_months_past_calendar_end(self):
        with pytest.raises(ValueError):
            add_months(date(2024, 1, 1), 120000)

    def test_month_year(self):
        assert month_year(date(2024, 3, 9)) == "2024-03"
