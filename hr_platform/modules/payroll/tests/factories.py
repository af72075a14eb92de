"""Workbook payload builders for backfill and parser tests"""
import json
from decimal import Decimal
from typing import Any, Dict, List, Optional


def input_row(
    period_key: str,
    payroll_name: str,
    component_key: str,
    amount: Any,
    source_priority: int = 50,
    source_cell: str = "B2",
) -> Dict[str, Any]:
    return {
        "periodKey": period_key,
        "payrollName": payroll_name,
        "componentKey": component_key,
        "amount": amount,
        "sourceSheet": f"Payroll {period_key}",
        "sourceCell": source_cell,
        "sourcePriority": source_priority,
    }


def salary_rows(period_key: str, payroll_name: str, basic: Any = 100000, paid: Any = None):
    """Basic salary with zero income tax; PAID equals the computed net unless given."""
    return [
        input_row(period_key, payroll_name, "BASIC_SALARY", basic, source_cell="B2"),
        input_row(period_key, payroll_name, "INCOME_TAX", 0, source_cell="B3"),
        input_row(
            period_key, payroll_name, "PAID", basic if paid is None else paid, source_cell="B4"
        ),
    ]


def expense_row(
    period_key: Optional[str],
    payroll_name: Optional[str],
    amount: Any,
    category_key: str = "travel",
    row_ref: str = "A2",
) -> Dict[str, Any]:
    return {
        "periodKey": period_key,
        "payrollName": payroll_name,
        "categoryKey": category_key,
        "description": f"{category_key} claim",
        "amount": amount,
        "sheetName": "Expenses",
        "rowRef": row_ref,
    }


def build_workbook(
    input_values: List[Dict[str, Any]],
    expense_entries: Optional[List[Dict[str, Any]]] = None,
    import_rows: Optional[List[Dict[str, Any]]] = None,
    **extra: Any,
) -> bytes:
    payload = {
        "inputValues": input_values,
        "expenseEntries": expense_entries or [],
        "importRows": import_rows or [],
    }
    payload.update(extra)
    return json.dumps(payload, default=str).encode("utf-8")


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))
