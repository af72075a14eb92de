import logging
from datetime import date
from decimal import Decimal
from typing import List, NamedTuple, Optional, Sequence

from sqlalchemy.orm import Session

from ..exceptions import PayrollNotFoundError, PayrollPolicyError, PayrollValidationError
from ..models.payroll_configuration import PayrollFinancialYear, PayrollTaxBracket
from ..schemas.error_schemas import PayrollErrorCodes

logger = logging.getLogger(__name__)


class TaxBracket(NamedTuple):
    """Annual bracket: tax = fixed_tax + (income - income_from) * tax_rate."""
    income_from: Decimal
    income_to: Optional[Decimal]
    fixed_tax: Decimal
    tax_rate: Decimal


def _bracket(income_from, income_to, fixed_tax, tax_rate) -> TaxBracket:
    return TaxBracket(
        Decimal(str(income_from)),
        Decimal(str(income_to)) if income_to is not None else None,
        Decimal(str(fixed_tax)),
        Decimal(str(tax_rate)),
    )


LEGACY_TAX_SLABS = (
    _bracket(0, 600000, 0, "0"),
    _bracket(600000, 1200000, 0, "0.01"),
    _bracket(1200000, 2200000, 6000, "0.11"),
    _bracket(2200000, 3200000, 116000, "0.23"),
    _bracket(3200000, 4100000, 346000, "0.30"),
    _bracket(4100000, None, 616000, "0.35"),
)

UPDATED_TAX_SLABS = (
    _bracket(0, 600000, 0, "0"),
    _bracket(600000, 1200000, 0, "0.025"),
    _bracket(1200000, 2400000, 15000, "0.125"),
    _bracket(2400000, 3600000, 165000, "0.20"),
    _bracket(3600000, 6000000, 405000, "0.25"),
    _bracket(6000000, 12000000, 1005000, "0.325"),
    _bracket(12000000, None, 2955000, "0.35"),
)

# Periods starting on or after this date use the updated slabs
UPDATED_SLABS_EFFECTIVE_FROM = date(2024, 7, 1)

DEFAULT_FINANCIAL_YEAR = {
    "label": "FY 2025-2026",
    "start_date": date(2025, 7, 1),
    "end_date": date(2026, 6, 30),
    "brackets": LEGACY_TAX_SLABS,
}


def calculate_annual_progressive_tax(
    annual_income: Decimal, brackets: Sequence[TaxBracket]
) -> Decimal:
    """
    Annual tax for an income under a progressive bracket table.

    The bracket containing the income is applied; the last bracket is used
    when none matches. The result is never negative.

    Args:
        annual_income: Annual taxable income (negative treated as zero)
        brackets: Brackets ordered by ``income_from``

    Returns:
        Annual tax amount
    """
    if not brackets:
        return Decimal("0")

    taxable = max(Decimal("0"), Decimal(annual_income))
    selected = next(
        (
            b for b in brackets
            if taxable >= b.income_from and (b.income_to is None or taxable < b.income_to)
        ),
        brackets[-1],
    )
    tax = selected.fixed_tax + max(Decimal("0"), taxable - selected.income_from) * selected.tax_rate
    return max(Decimal("0"), tax)


def slabs_for_period(period_start: Optional[date]) -> Sequence[TaxBracket]:
    if period_start is None or period_start >= UPDATED_SLABS_EFFECTIVE_FROM:
        return UPDATED_TAX_SLABS
    return LEGACY_TAX_SLABS


def validate_tax_brackets(brackets: Sequence[TaxBracket]) -> List[TaxBracket]:
    """
    Order a bracket table by ``income_from`` and check it is well formed.

    Brackets must not overlap, rates are fractions in 0..1 and only the
    highest bracket may be open-ended.

    Raises:
        PayrollValidationError: If the table is empty or malformed
    """
    if not brackets:
        raise PayrollValidationError(
            "At least one tax bracket is required",
            field="brackets",
            code=PayrollErrorCodes.INVALID_TAX_TABLE,
        )

    ordered = sorted((_bracket(*b) for b in brackets), key=lambda b: b.income_from)
    for index, bracket in enumerate(ordered):
        field = f"brackets[{index}]"
        if bracket.income_from < 0 or bracket.fixed_tax < 0:
            problem = "income_from and fixed_tax must not be negative"
        elif not Decimal("0") <= bracket.tax_rate <= Decimal("1"):
            problem = "tax_rate must be a fraction between 0 and 1"
        elif bracket.income_to is not None and bracket.income_to <= bracket.income_from:
            problem = "income_to must be greater than income_from"
        elif bracket.income_to is None and index < len(ordered) - 1:
            problem = "only the highest bracket may be open-ended"
        elif index and bracket.income_from < ordered[index - 1].income_to:
            problem = "brackets must not overlap"
        else:
            continue
        raise PayrollValidationError(problem, field=field, code=PayrollErrorCodes.INVALID_TAX_TABLE)
    return ordered


class PayrollTaxEngine:
    """
    Monthly income tax estimation from the configured bracket tables.

    The financial year covering a period supplies the brackets; when no
    configured year applies, the built-in slab tables are used.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_financial_year_for_date(self, on_date: date) -> Optional[PayrollFinancialYear]:
        """Financial year covering ``on_date``, active years first."""
        return (
            self.db.query(PayrollFinancialYear)
            .filter(
                PayrollFinancialYear.start_date <= on_date,
                PayrollFinancialYear.end_date >= on_date,
            )
            .order_by(PayrollFinancialYear.is_active.desc(), PayrollFinancialYear.id)
            .first()
        )

    def brackets_for_date(self, on_date: date) -> List[TaxBracket]:
        financial_year = self.get_financial_year_for_date(on_date)
        if not financial_year or not financial_year.brackets:
            return []
        return [
            TaxBracket(
                Decimal(b.income_from),
                Decimal(b.income_to) if b.income_to is not None else None,
                Decimal(b.fixed_tax),
                Decimal(b.tax_rate),
            )
            for b in financial_year.brackets
        ]

    def estimate_monthly_income_tax(
        self,
        period_start: date,
        monthly_taxable: Decimal,
        brackets: Optional[Sequence[TaxBracket]] = None,
    ) -> Decimal:
        """
        Estimate one month of income tax.

        Args:
            period_start: First day of the payroll month
            monthly_taxable: Monthly taxable base (basic salary plus bonus)
            brackets: Pre-loaded configured brackets for the period, if any

        Returns:
            Monthly tax (annual tax on twelve months divided by twelve)
        """
        if brackets is None:
            brackets = self.brackets_for_date(period_start)
        if not brackets:
            brackets = slabs_for_period(period_start)

        annual = max(Decimal("0"), Decimal(monthly_taxable)) * 12
        return calculate_annual_progressive_tax(annual, brackets) / 12

    def ensure_default_tax_table(self) -> PayrollFinancialYear:
        """
        Seed the default financial year and its brackets.

        Existing brackets are never replaced; the year's dates are refreshed.
        """
        financial_year = self.db.query(PayrollFinancialYear).filter(
            PayrollFinancialYear.label == DEFAULT_FINANCIAL_YEAR["label"]
        ).first()

        if financial_year:
            financial_year.start_date = DEFAULT_FINANCIAL_YEAR["start_date"]
            financial_year.end_date = DEFAULT_FINANCIAL_YEAR["end_date"]
        else:
            financial_year = PayrollFinancialYear(
                label=DEFAULT_FINANCIAL_YEAR["label"],
                start_date=DEFAULT_FINANCIAL_YEAR["start_date"],
                end_date=DEFAULT_FINANCIAL_YEAR["end_date"],
                is_active=True,
            )
            self.db.add(financial_year)
            self.db.flush()

        if not financial_year.brackets:
            self._append_brackets(financial_year, DEFAULT_FINANCIAL_YEAR["brackets"])
            logger.info("Seeded tax brackets for %s", financial_year.label)

        self.db.commit()
        self.db.refresh(financial_year)
        return financial_year

    def list_financial_years(self) -> List[PayrollFinancialYear]:
        """Financial years newest first; the default table is seeded when none exist."""
        if self.db.query(PayrollFinancialYear).count() == 0:
            self.ensure_default_tax_table()
        return (
            self.db.query(PayrollFinancialYear)
            .order_by(PayrollFinancialYear.start_date.desc(), PayrollFinancialYear.id)
            .all()
        )

    def get_financial_year(self, financial_year_id: int) -> PayrollFinancialYear:
        financial_year = self.db.query(PayrollFinancialYear).filter(
            PayrollFinancialYear.id == financial_year_id
        ).first()
        if not financial_year:
            raise PayrollNotFoundError("Financial year", financial_year_id)
        return financial_year

    def create_financial_year(
        self,
        label: str,
        start_date: date,
        end_date: date,
        brackets: Optional[Sequence[TaxBracket]] = None,
    ) -> PayrollFinancialYear:
        """
        Create an inactive financial year, optionally with its bracket table.

        Raises:
            PayrollValidationError: Dates out of order or malformed brackets
            PayrollPolicyError: A year with the same label exists
        """
        label = label.strip()
        if end_date < start_date:
            raise PayrollValidationError(
                "end_date must not be before start_date",
                field="end_date",
                code=PayrollErrorCodes.INVALID_TAX_TABLE,
            )
        ordered = validate_tax_brackets(brackets) if brackets else []

        existing = self.db.query(PayrollFinancialYear).filter(
            PayrollFinancialYear.label == label
        ).first()
        if existing:
            raise PayrollPolicyError(
                f"Financial year {label} already exists",
                code=PayrollErrorCodes.DUPLICATE_FINANCIAL_YEAR,
            )

        financial_year = PayrollFinancialYear(
            label=label, start_date=start_date, end_date=end_date, is_active=False
        )
        self.db.add(financial_year)
        self.db.flush()
        self._append_brackets(financial_year, ordered)

        self.db.commit()
        self.db.refresh(financial_year)
        logger.info(
            "Created financial year %s (%s to %s) with %d brackets",
            label, start_date, end_date, len(ordered),
        )
        return financial_year

    def activate_financial_year(self, financial_year_id: int) -> PayrollFinancialYear:
        """Make one financial year the active one; every other year is deactivated."""
        financial_year = self.get_financial_year(financial_year_id)
        self.db.query(PayrollFinancialYear).filter(
            PayrollFinancialYear.id != financial_year.id,
            PayrollFinancialYear.is_active.is_(True),
        ).update({PayrollFinancialYear.is_active: False}, synchronize_session=False)
        financial_year.is_active = True

        self.db.commit()
        self.db.refresh(financial_year)
        logger.info("Activated financial year %s", financial_year.label)
        return financial_year

    def replace_tax_brackets(
        self, financial_year_id: int, brackets: Sequence[TaxBracket]
    ) -> PayrollFinancialYear:
        """
        Replace a financial year's bracket table.

        Periods recalculated afterwards use the new table; stored computed
        values are not touched.
        """
        financial_year = self.get_financial_year(financial_year_id)
        ordered = validate_tax_brackets(brackets)

        financial_year.brackets.clear()
        self.db.flush()
        self._append_brackets(financial_year, ordered)

        self.db.commit()
        self.db.refresh(financial_year)
        logger.info(
            "Replaced tax brackets for %s (%d brackets)", financial_year.label, len(ordered)
        )
        return financial_year

    def _append_brackets(
        self, financial_year: PayrollFinancialYear, brackets: Sequence[TaxBracket]
    ) -> None:
        for order_index, bracket in enumerate(brackets, start=1):
            financial_year.brackets.append(
                PayrollTaxBracket(
                    order_index=order_index,
                    income_from=bracket.income_from,
                    income_to=bracket.income_to,
                    fixed_tax=bracket.fixed_tax,
                    tax_rate=bracket.tax_rate,
                )
            )
