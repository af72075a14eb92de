# hr_platform/modules/payroll/tests/test_payroll_tax_engine.py

"""
Unit tests for progressive income tax estimation.
"""

import pytest
from datetime import date
from decimal import Decimal

from hr_platform.modules.payroll.exceptions import (
    PayrollNotFoundError,
    PayrollPolicyError,
    PayrollValidationError,
)
from hr_platform.modules.payroll.models import PayrollFinancialYear, PayrollTaxBracket
from hr_platform.modules.payroll.schemas.error_schemas import PayrollErrorCodes
from hr_platform.modules.payroll.services.payroll_tax_engine import (
    DEFAULT_FINANCIAL_YEAR,
    LEGACY_TAX_SLABS,
    UPDATED_TAX_SLABS,
    PayrollTaxEngine,
    TaxBracket,
    calculate_annual_progressive_tax,
    slabs_for_period,
    validate_tax_brackets,
)


class TestProgressiveTax:
    """Test cases for bracket arithmetic"""

    @pytest.mark.parametrize("annual, expected", [
        (Decimal("0"), Decimal("0")),
        (Decimal("600000"), Decimal("0")),
        (Decimal("1200000"), Decimal("6000")),
        (Decimal("1800000"), Decimal("72000")),
        (Decimal("5000000"), Decimal("931000")),
    ])
    def test_legacy_slabs(self, annual, expected):
        assert calculate_annual_progressive_tax(annual, LEGACY_TAX_SLABS) == expected

    def test_updated_slabs(self):
        # 15000 + (1,800,000 - 1,200,000) * 12.5%
        assert calculate_annual_progressive_tax(Decimal("1800000"), UPDATED_TAX_SLABS) == Decimal("90000")

    def test_negative_income_is_untaxed(self):
        assert calculate_annual_progressive_tax(Decimal("-5000"), LEGACY_TAX_SLABS) == Decimal("0")

    def test_falls_back_to_last_bracket(self):
        brackets = [
            TaxBracket(Decimal("100"), Decimal("200"), Decimal("0"), Decimal("0.1")),
            TaxBracket(Decimal("200"), Decimal("300"), Decimal("10"), Decimal("0.2")),
        ]
        assert calculate_annual_progressive_tax(Decimal("500"), brackets) == Decimal("70")

    def test_empty_brackets(self):
        assert calculate_annual_progressive_tax(Decimal("1000000"), []) == Decimal("0")

    def test_slabs_for_period(self):
        assert slabs_for_period(date(2024, 6, 1)) is LEGACY_TAX_SLABS
        assert slabs_for_period(date(2024, 7, 1)) is UPDATED_TAX_SLABS
        assert slabs_for_period(None) is UPDATED_TAX_SLABS


class TestPayrollTaxEngine:
    """Test cases for configured financial years"""

    def test_estimate_uses_builtin_slabs_without_configuration(self, db_session):
        engine = PayrollTaxEngine(db_session)

        assert engine.estimate_monthly_income_tax(date(2024, 3, 1), Decimal("150000")) == Decimal("6000")
        assert engine.estimate_monthly_income_tax(date(2025, 3, 1), Decimal("150000")) == Decimal("7500")
        assert engine.estimate_monthly_income_tax(date(2025, 3, 1), Decimal("40000")) == Decimal("0")

    def test_estimate_uses_configured_financial_year(self, db_session):
        engine = PayrollTaxEngine(db_session)
        engine.ensure_default_tax_table()

        # FY 2025-2026 is seeded with the legacy brackets
        assert engine.estimate_monthly_income_tax(date(2025, 8, 1), Decimal("150000")) == Decimal("6000")
        assert engine.brackets_for_date(date(2025, 6, 30)) == []

    def test_ensure_default_tax_table_is_idempotent(self, db_session):
        engine = PayrollTaxEngine(db_session)
        first = engine.ensure_default_tax_table()
        second = engine.ensure_default_tax_table()

        assert first.id == second.id
        assert db_session.query(PayrollFinancialYear).count() == 1
        assert len(second.brackets) == len(DEFAULT_FINANCIAL_YEAR["brackets"])
        assert [b.order_index for b in second.brackets] == list(range(1, len(LEGACY_TAX_SLABS) + 1))

    def test_active_year_preferred(self, db_session):
        db_session.add_all([
            PayrollFinancialYear(
                label="Draft FY", start_date=date(2025, 7, 1), end_date=date(2026, 6, 30), is_active=False
            ),
            PayrollFinancialYear(
                label="Active FY", start_date=date(2025, 7, 1), end_date=date(2026, 6, 30), is_active=True
            ),
        ])
        db_session.commit()

        year = PayrollTaxEngine(db_session).get_financial_year_for_date(date(2025, 9, 1))
        assert year.label == "Active FY"


def bracket(income_from, income_to, fixed_tax, tax_rate) -> TaxBracket:
    return TaxBracket(
        Decimal(income_from),
        Decimal(income_to) if income_to is not None else None,
        Decimal(fixed_tax),
        Decimal(tax_rate),
    )


FLAT_TEN_ABOVE_1_2M = [
    bracket("1200000", None, "0", "0.10"),
    bracket("0", "1200000", "0", "0"),
]


class TestTaxTableValidation:
    def test_orders_by_income_from(self):
        ordered = validate_tax_brackets(FLAT_TEN_ABOVE_1_2M)

        assert [b.income_from for b in ordered] == [Decimal("0"), Decimal("1200000")]

    @pytest.mark.parametrize("brackets", [
        [],
        [bracket("0", "100", "0", "1.5")],
        [bracket("0", "100", "-1", "0.1")],
        [bracket("100", "100", "0", "0.1")],
        [bracket("0", None, "0", "0"), bracket("100", "200", "0", "0.1")],
        [bracket("0", "700", "0", "0"), bracket("600", None, "0", "0.05")],
    ])
    def test_rejects_malformed_tables(self, brackets):
        with pytest.raises(PayrollValidationError) as exc_info:
            validate_tax_brackets(brackets)

        assert exc_info.value.code == PayrollErrorCodes.INVALID_TAX_TABLE


class TestTaxTableManagement:
    """Test cases for maintaining financial years and brackets"""

    def test_list_seeds_default_once(self, db_session):
        engine = PayrollTaxEngine(db_session)

        first = engine.list_financial_years()
        second = engine.list_financial_years()

        assert [y.label for y in first] == [DEFAULT_FINANCIAL_YEAR["label"]]
        assert [y.id for y in second] == [first[0].id]

    def test_create_financial_year(self, db_session):
        engine = PayrollTaxEngine(db_session)

        year = engine.create_financial_year(
            " FY 2024-2025 ", date(2024, 7, 1), date(2025, 6, 30), FLAT_TEN_ABOVE_1_2M
        )

        assert year.label == "FY 2024-2025"
        assert year.is_active is False
        assert [b.order_index for b in year.brackets] == [1, 2]
        assert engine.estimate_monthly_income_tax(date(2024, 8, 1), Decimal("150000")) == Decimal("5000")

    def test_create_rejects_reversed_dates(self, db_session):
        with pytest.raises(PayrollValidationError):
            PayrollTaxEngine(db_session).create_financial_year(
                "FY backwards", date(2025, 6, 30), date(2024, 7, 1)
            )

        assert db_session.query(PayrollFinancialYear).count() == 0

    def test_create_rejects_duplicate_label(self, db_session):
        engine = PayrollTaxEngine(db_session)
        engine.ensure_default_tax_table()

        with pytest.raises(PayrollPolicyError) as exc_info:
            engine.create_financial_year(
                DEFAULT_FINANCIAL_YEAR["label"], date(2025, 7, 1), date(2026, 6, 30)
            )

        assert exc_info.value.code == PayrollErrorCodes.DUPLICATE_FINANCIAL_YEAR

    def test_activate_deactivates_others(self, db_session):
        engine = PayrollTaxEngine(db_session)
        default = engine.ensure_default_tax_table()
        revised = engine.create_financial_year(
            "FY 2025-2026 revised", date(2025, 7, 1), date(2026, 6, 30), FLAT_TEN_ABOVE_1_2M
        )

        engine.activate_financial_year(revised.id)

        db_session.refresh(default)
        assert default.is_active is False
        assert revised.is_active is True
        assert engine.get_financial_year_for_date(date(2025, 9, 1)).id == revised.id
        assert engine.estimate_monthly_income_tax(date(2025, 9, 1), Decimal("150000")) == Decimal("5000")

    def test_activate_missing_year(self, db_session):
        with pytest.raises(PayrollNotFoundError):
            PayrollTaxEngine(db_session).activate_financial_year(404)

    def test_replace_tax_brackets(self, db_session):
        engine = PayrollTaxEngine(db_session)
        year = engine.ensure_default_tax_table()

        engine.replace_tax_brackets(year.id, FLAT_TEN_ABOVE_1_2M)

        db_session.refresh(year)
        assert [(b.order_index, b.income_from) for b in year.brackets] == [
            (1, Decimal("0")),
            (2, Decimal("1200000")),
        ]
        assert db_session.query(PayrollTaxBracket).count() == 2

    def test_replace_keeps_table_on_invalid_input(self, db_session):
        engine = PayrollTaxEngine(db_session)
        year = engine.ensure_default_tax_table()

        with pytest.raises(PayrollValidationError):
            engine.replace_tax_brackets(year.id, [bracket("0", "100", "0", "2")])

        db_session.refresh(year)
        assert len(year.brackets) == len(LEGACY_TAX_SLABS)
