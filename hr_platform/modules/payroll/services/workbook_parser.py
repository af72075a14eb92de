# hr_platform/modules/payroll/services/workbook_parser.py

"""
Workbook parser contract and the structured-payload implementation.

Spreadsheet decoding happens upstream; its output is a JSON document with
``inputValues``, ``expenseEntries``, ``importRows``, ``payrollNames`` and
``periodKeys``. The structured parser validates and normalizes that
document so a backfill can be run (or replayed) from it.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Protocol

from pydantic import ValidationError

from ..enums.payroll_enums import PayrollComponentKey
from ..exceptions import PayrollValidationError
from ..schemas.error_schemas import ErrorDetail, PayrollErrorCodes
from ..schemas.workbook_schemas import (
    WorkbookExpenseRow,
    WorkbookImportRow,
    WorkbookInputRow,
    WorkbookParseResult,
)
from .normalizers import normalize_payroll_name, parse_cell_number, parse_period_key, sort_period_keys

logger = logging.getLogger(__name__)

COMPONENT_KEYS = frozenset(key.value for key in PayrollComponentKey)


class WorkbookParser(Protocol):
    def parse(self, buffer: bytes) -> WorkbookParseResult:
        ...


def _first(row: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in row:
            return row[key]
    return None


def dedupe_by_priority(rows: List[WorkbookInputRow]) -> List[WorkbookInputRow]:
    """Keep one row per (period, name, component); higher priority wins, ties go to the later row."""
    by_key: Dict[tuple, WorkbookInputRow] = {}
    for row in rows:
        key = (row.period_key, normalize_payroll_name(row.payroll_name), row.component_key)
        existing = by_key.get(key)
        if existing is None or row.source_priority >= existing.source_priority:
            by_key[key] = row
    return list(by_key.values())


class StructuredWorkbookParser:
    """Parser for already-structured workbook JSON."""

    def parse(self, buffer: bytes) -> WorkbookParseResult:
        """
        Decode and normalize a structured workbook document.

        Rows without a parseable period key, name or amount are skipped.

        Raises:
            PayrollValidationError: If the document is not valid JSON or
                has the wrong shape
        """
        try:
            payload = json.loads(buffer.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PayrollValidationError(
                f"Workbook payload is not valid JSON: {e}",
                field="file",
                code=PayrollErrorCodes.INVALID_DATA_FORMAT,
            )
        if not isinstance(payload, dict):
            raise PayrollValidationError(
                "Workbook payload must be a JSON object",
                field="file",
                code=PayrollErrorCodes.INVALID_DATA_FORMAT,
            )

        try:
            inputs = self._input_rows(payload.get("inputValues") or [])
            expenses = self._expense_rows(payload.get("expenseEntries") or [])
            import_rows = [
                WorkbookImportRow.model_validate(row)
                for row in payload.get("importRows") or []
            ]
        except (ValidationError, TypeError, AttributeError) as e:
            raise PayrollValidationError(
                "Workbook payload rows are malformed",
                field="file",
                code=PayrollErrorCodes.INVALID_DATA_FORMAT,
                details=[ErrorDetail(field="file", message=str(e)[:500])],
            )

        payroll_names = [
            name.strip() for name in payload.get("payrollNames") or [] if isinstance(name, str)
        ]
        if not payroll_names:
            payroll_names = [row.payroll_name for row in inputs]
        payroll_names = list(dict.fromkeys(name for name in payroll_names if name))

        period_keys = [parse_period_key(key) for key in payload.get("periodKeys") or []]
        if not any(period_keys):
            period_keys = [row.period_key for row in inputs]
        period_keys = sort_period_keys(key for key in period_keys if key)

        result = WorkbookParseResult(
            payroll_names=payroll_names,
            period_keys=period_keys,
            input_values=dedupe_by_priority(inputs),
            expense_entries=expenses,
            import_rows=import_rows,
        )
        logger.info(
            "Parsed workbook: %d inputs, %d expenses, %d raw rows, %d periods",
            len(result.input_values),
            len(result.expense_entries),
            len(result.import_rows),
            len(result.period_keys),
        )
        return result

    @staticmethod
    def _input_rows(rows: List[Dict[str, Any]]) -> List[WorkbookInputRow]:
        parsed = []
        for row in rows:
            period_key = parse_period_key(_first(row, "periodKey", "period_key"))
            name = (_first(row, "payrollName", "payroll_name") or "").strip()
            amount = parse_cell_number(row.get("amount"))
            if period_key is None or not name or amount is None:
                logger.debug("Skipping unusable input row: %s", row)
                continue
            component_key = str(_first(row, "componentKey", "component_key") or "").strip().upper()
            if component_key not in COMPONENT_KEYS:
                raise PayrollValidationError(
                    f"Unknown component key in workbook: {component_key or None}",
                    field="componentKey",
                    code=PayrollErrorCodes.INVALID_COMPONENT_KEY,
                )
            parsed.append(WorkbookInputRow.model_validate({
                **row,
                "periodKey": period_key,
                "payrollName": name,
                "componentKey": component_key,
                "amount": amount,
            }))
        return parsed

    @staticmethod
    def _expense_rows(rows: List[Dict[str, Any]]) -> List[WorkbookExpenseRow]:
        parsed = []
        for row in rows:
            amount = parse_cell_number(row.get("amount"))
            if amount is None:
                continue
            period_key: Optional[str] = parse_period_key(_first(row, "periodKey", "period_key"))
            name = (_first(row, "payrollName", "payroll_name") or "").strip() or None
            parsed.append(WorkbookExpenseRow.model_validate({
                **row,
                "periodKey": period_key,
                "payrollName": name,
                "amount": amount,
            }))
        return parsed
