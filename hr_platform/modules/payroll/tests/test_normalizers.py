# hr_platform/modules/payroll/tests/test_normalizers.py

"""
Unit tests for payroll name, amount and period key normalization.
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from hr_platform.modules.payroll.services.normalizers import (
    normalize_payroll_name,
    parse_cell_number,
    parse_period_key,
    period_bounds,
    period_key_to_date,
    period_label_from_key,
    previous_period_key,
    sort_period_keys,
    to_period_key,
)


class TestNormalizePayrollName:
    """Test cases for payroll name folding"""

    @pytest.mark.parametrize("raw, expected", [
        ("  Ali   Raza ", "ali raza"),
        ("ALI RAZA", "ali raza"),
        ("Ali-Raza", "ali raza"),
        ("ALI_RAZA", "ali raza"),
        ("ali__raza ", "ali raza"),
        ("José Núñez", "jose nunez"),
        ("O'Brien,  Sean.", "o brien sean"),
        ("", ""),
        (None, ""),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_payroll_name(raw) == expected

    @pytest.mark.parametrize("raw", ["Zoë  Ahmed-Khan", "  MUHAMMAD   ali ", "a.b.c"])
    def test_idempotent(self, raw):
        once = normalize_payroll_name(raw)
        assert normalize_payroll_name(once) == once


class TestParseCellNumber:
    """Test cases for spreadsheet amount parsing"""

    @pytest.mark.parametrize("value, expected", [
        (15000, Decimal("15000")),
        (1234.5, Decimal("1234.5")),
        (Decimal("10.25"), Decimal("10.25")),
        ("PKR 15,000", Decimal("15000")),
        ("-2,500.75", Decimal("-2500.75")),
        ({"formula": "SUM(B2:B4)", "result": 300}, Decimal("300")),
    ])
    def test_numeric_values(self, value, expected):
        assert parse_cell_number(value) == expected

    @pytest.mark.parametrize("value", [
        None, True, False, "", "n/a", float("nan"), float("inf"), {"formula": "X"}, [1],
    ])
    def test_non_numeric_values(self, value):
        assert parse_cell_number(value) is None


class TestPeriodKeys:
    """Test cases for MM/YYYY period keys"""

    @pytest.mark.parametrize("value, expected", [
        ("3/2025", "03/2025"),
        ("03/2025", "03/2025"),
        ("3-2025", "03/2025"),
        (" 12 / 2024 ", "12/2024"),
        ("2025-03-15", "03/2025"),
        ("2025-03-15T10:00:00Z", "03/2025"),
        ("2025-01-31T22:00:00Z", "02/2025"),
        ("2025-03-31T23:30:00+05:00", "03/2025"),
        (datetime(2024, 12, 31, 20, 0, tzinfo=timezone.utc), "01/2025"),
        (date(2025, 3, 31), "03/2025"),
        (datetime(2024, 1, 1, 8, 30), "01/2024"),
        ({"result": "7/2023"}, "07/2023"),
    ])
    def test_parse_valid(self, value, expected):
        assert parse_period_key(value) == expected

    @pytest.mark.parametrize("value", [
        None, "", "13/2025", "0/2025", "03/2014", "03/2101", "March 2025", 202503, True,
    ])
    def test_parse_invalid(self, value):
        assert parse_period_key(value) is None

    @pytest.mark.parametrize("key", ["01/2015", "06/2024", "12/2100"])
    def test_round_trip(self, key):
        assert to_period_key(period_key_to_date(key)) == key
        assert parse_period_key(key) == key

    def test_to_period_key_uses_payroll_timezone(self):
        assert to_period_key(datetime(2025, 6, 30, 21, 0, tzinfo=timezone.utc)) == "07/2025"
        assert to_period_key(datetime(2025, 6, 30, 21, 0)) == "06/2025"

    def test_period_bounds(self):
        assert period_bounds("02/2024") == (date(2024, 2, 1), date(2024, 2, 29))
        assert period_bounds("02/2025") == (date(2025, 2, 1), date(2025, 2, 28))

    def test_period_bounds_invalid(self):
        with pytest.raises(ValueError):
            period_bounds("2025-02")

    def test_previous_period_key(self):
        assert previous_period_key("01/2025") == "12/2024"
        assert previous_period_key("10/2025") == "09/2025"

    def test_label(self):
        assert period_label_from_key("04/2025") == "Payroll 04/2025"

    def test_sort_period_keys(self):
        keys = ["02/2025", "11/2024", "bogus", "02/2025", "01/2025"]
        assert sort_period_keys(keys) == ["11/2024", "01/2025", "02/2025"]
