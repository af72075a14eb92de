# hr_platform/modules/payroll/services/backfill_service.py

"""
Multi-month payroll backfill from a historical workbook.

The workbook is parsed once, the most recent eligible months are selected,
their content is replaced in a single transaction and each month is then
recalculated (and optionally approved and locked) on its own so that one
bad month does not sink the others. The run is tracked by a
PayrollImportBatch row.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hr_platform.core.config import settings
from hr_platform.core.database_utils import bulk_insert_chunked
from hr_platform.core.query_logger import log_query_performance
from ..enums.payroll_enums import (
    PayrollComponentKey,
    PayrollIdentityStatus,
    PayrollImportBatchStatus,
    PayrollInputSourceMethod,
    PayrollPeriodStatus,
    PayrollSourceType,
)
from ..exceptions import (
    PayrollException,
    PayrollPolicyError,
    PayrollTransactionError,
    PayrollValidationError,
)
from ..models.payroll_import import PayrollImportBatch, PayrollImportRow
from ..models.payroll_models import (
    PayrollComputedValue,
    PayrollExpenseEntry,
    PayrollInputValue,
    PayrollPeriod,
    PayrollReceipt,
)
from ..schemas.error_schemas import PayrollErrorCodes
from ..schemas.payroll_schemas import (
    MappingSummary,
    PayrollBackfillOptions,
    PayrollBackfillSummary,
)
from ..schemas.workbook_schemas import WorkbookParseResult
from .identity_matcher import (
    MATCHED_STATUSES,
    IdentityMatcher,
    RosterAlias,
    build_roster_alias_map,
)
from .normalizers import normalize_payroll_name, sort_period_keys
from .payroll_calculation_engine import PayrollCalculationEngine
from .payroll_period_service import PayrollPeriodService
from .period_state_machine import apply_transition, reset_to_draft
from .workbook_parser import StructuredWorkbookParser, WorkbookParser

logger = logging.getLogger(__name__)

BACKFILL_APPROVAL_COMMENT = "Automated backfill approval"
BACKFILL_LOCK_COMMENT = "Automated backfill lock"


@dataclass(frozen=True)
class Blocked:
    period_key: str
    names: Tuple[str, ...]


@dataclass(frozen=True)
class Processed:
    period_key: str
    locked: bool
    mismatch_count: int


@dataclass(frozen=True)
class Failed:
    period_key: str
    error: str


PeriodOutcome = Union[Blocked, Processed, Failed]


def clamp_months(months: Optional[int]) -> int:
    """Number of months to backfill, bounded to 1..max (default from settings)."""
    if months is None:
        months = settings.payroll_backfill_default_months
    return max(1, min(settings.payroll_backfill_max_months, int(months)))


def select_latest_period_keys(period_keys: Iterable[str], months: Optional[int]) -> List[str]:
    """The ``months`` most recent distinct valid keys, oldest first."""
    return sort_period_keys(period_keys)[-clamp_months(months):]


def candidate_period_keys(parsed: WorkbookParseResult) -> List[str]:
    """Distinct period keys carrying data, falling back to the parser's key list."""
    keys = [row.period_key for row in parsed.input_values]
    keys.extend(row.period_key for row in parsed.expense_entries if row.period_key)
    ordered = sort_period_keys(keys)
    return ordered or sort_period_keys(parsed.period_keys)


def fold_outcomes(
    summary: PayrollBackfillSummary, outcomes: Sequence[PeriodOutcome]
) -> PayrollBackfillSummary:
    """Accumulate per-period outcomes into the run summary."""
    for outcome in outcomes:
        if isinstance(outcome, Blocked):
            summary.periods_blocked += 1
            summary.blocked_by_period[outcome.period_key] = list(outcome.names)
        elif isinstance(outcome, Processed):
            summary.periods_processed += 1
            if outcome.locked:
                summary.periods_locked += 1
        elif isinstance(outcome, Failed):
            summary.periods_failed += 1
            summary.failed_by_period[outcome.period_key] = outcome.error
    return summary


class PayrollBackfillService:
    """Service for bulk historical payroll imports."""

    def __init__(
        self,
        db: Session,
        parser: Optional[WorkbookParser] = None,
    ):
        """Initialize backfill service.

        Args:
            db: Database session
            parser: Workbook parser, structured JSON by default
        """
        self.db = db
        self.parser = parser or StructuredWorkbookParser()
        self.matcher = IdentityMatcher(db)
        self.engine = PayrollCalculationEngine(db)
        self.period_service = PayrollPeriodService(db)
        self.chunk_size = settings.payroll_backfill_chunk_size

    def run_payroll_backfill(self, options: PayrollBackfillOptions) -> PayrollBackfillSummary:
        """
        Import the most recent months of a workbook.

        Args:
            options: Workbook buffer, actor and backfill flags

        Returns:
            PayrollBackfillSummary, also stored on the COMPLETED import batch

        Raises:
            PayrollValidationError: Empty workbook or empty roster (nothing written)
            PayrollPolicyError: Every candidate month is locked
            PayrollTransactionError: The database rejected the content replacement
        """
        with log_query_performance("payroll_backfill"):
            return self._run(options)

    def _run(self, options: PayrollBackfillOptions) -> PayrollBackfillSummary:
        months = clamp_months(options.months)
        parsed = self.parser.parse(options.buffer)

        ordered_keys = candidate_period_keys(parsed)
        if not ordered_keys:
            raise PayrollValidationError(
                "No period keys found in workbook for backfill",
                field="file",
                code=PayrollErrorCodes.NO_PERIODS_IN_WORKBOOK,
            )

        selected_keys, skipped_locked = self._select_period_keys(
            ordered_keys, months, options.overwrite_locked
        )

        alias_map: Dict[str, RosterAlias] = {}
        if options.use_employee_roster_names:
            alias_map = build_roster_alias_map(
                parsed.payroll_names, self.matcher.load_employee_roster()
            )

        periods_created = 0
        period_ids: Dict[str, int] = {}
        previously_locked: List[str] = []
        for period_key in selected_keys:
            ref = self.period_service.create_or_reuse_period(
                period_key, options.actor_id, PayrollSourceType.WORKBOOK
            )
            periods_created += int(ref.created)
            period_ids[period_key] = ref.id
            if PayrollPeriodStatus(ref.status) == PayrollPeriodStatus.LOCKED:
                previously_locked.append(period_key)

        if options.use_employee_roster_names:
            self.matcher.upsert_roster_aliases(alias_map, self.chunk_size)
            mapping_summary = self._roster_mapping_summary(parsed.payroll_names, alias_map)
        else:
            mapping_summary = self.matcher.sync_identity_mappings(parsed.payroll_names).summary

        batch = PayrollImportBatch(
            source_type=PayrollSourceType.WORKBOOK,
            file_name=options.file_name,
            imported_by_id=options.actor_id,
            status=PayrollImportBatchStatus.PROCESSING,
            summary_json={
                "mode": "BACKFILL",
                "months": months,
                "selected_period_keys": selected_keys,
                "overwritten_locked_period_keys": previously_locked,
                "use_employee_roster_names": options.use_employee_roster_names,
                "persist_import_rows": options.persist_import_rows,
            },
        )
        self.db.add(batch)
        self.db.commit()
        batch_id = batch.id
        logger.info(
            "Backfill batch %s started for %d periods: %s",
            batch_id, len(selected_keys), ", ".join(selected_keys),
        )

        try:
            imported_rows, imported_inputs, imported_expenses = self._replace_period_content(
                batch_id, parsed, period_ids, alias_map, options
            )

            outcomes = [
                self._process_period(
                    period_key, period_ids[period_key], options,
                    relock=period_key in previously_locked,
                )
                for period_key in selected_keys
            ]

            summary = fold_outcomes(
                PayrollBackfillSummary(
                    batch_id=batch_id,
                    selected_period_keys=selected_keys,
                    skipped_locked_period_keys=skipped_locked,
                    overwritten_locked_period_keys=previously_locked,
                    periods_created=periods_created,
                    imported_rows=imported_rows,
                    imported_inputs=imported_inputs,
                    imported_expenses=imported_expenses,
                    mapping_summary=mapping_summary,
                ),
                outcomes,
            )

            batch = self.db.query(PayrollImportBatch).filter(PayrollImportBatch.id == batch_id).one()
            batch.status = PayrollImportBatchStatus.COMPLETED
            batch.summary_json = summary.model_dump(mode="json")
            batch.completed_at = datetime.utcnow()
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            self._mark_batch_failed(batch_id, str(e) or e.__class__.__name__)
            if isinstance(e, SQLAlchemyError):
                raise PayrollTransactionError(str(e), batch_id=batch_id) from e
            raise

        logger.info(
            "Backfill batch %s completed: processed=%d blocked=%d failed=%d locked=%d",
            batch_id,
            summary.periods_processed,
            summary.periods_blocked,
            summary.periods_failed,
            summary.periods_locked,
        )
        return summary

    def _select_period_keys(
        self, ordered_keys: List[str], months: int, overwrite_locked: bool
    ) -> Tuple[List[str], List[str]]:
        """Walk newest to oldest, skipping locked months unless overwriting."""
        selected_desc: List[str] = []
        skipped_locked: List[str] = []

        for period_key in reversed(ordered_keys):
            if len(selected_desc) >= months:
                break
            existing = self.period_service.find_period_for_key(period_key)
            if (
                existing is not None
                and PayrollPeriodStatus(existing.status) == PayrollPeriodStatus.LOCKED
                and not overwrite_locked
            ):
                skipped_locked.append(period_key)
                continue
            selected_desc.append(period_key)

        if not selected_desc:
            raise PayrollPolicyError(
                "No eligible payroll periods found. Unlock historical periods or enable overwrite.",
                code=PayrollErrorCodes.NO_ELIGIBLE_PERIODS,
            )
        return list(reversed(selected_desc)), skipped_locked

    def _roster_mapping_summary(
        self, payroll_names: Sequence[str], alias_map: Dict[str, RosterAlias]
    ) -> MappingSummary:
        """Count the roster names that workbook names were mapped to, by alias status."""
        mapped_names = list(dict.fromkeys(
            (alias_map.get(normalize_payroll_name(name)) or RosterAlias(name, 0)).payroll_name
            for name in payroll_names
            if name and name.strip()
        ))
        mappings = self.matcher.mappings_by_normalized_name()

        summary = MappingSummary(total=len(mapped_names))
        for name in mapped_names:
            mapping = mappings.get(normalize_payroll_name(name))
            if mapping is None:
                continue
            if mapping.status in MATCHED_STATUSES:
                summary.auto_matched += 1
            elif mapping.status == PayrollIdentityStatus.AMBIGUOUS:
                summary.ambiguous += 1
        summary.unresolved = max(0, summary.total - summary.auto_matched - summary.ambiguous)
        return summary

    def _replace_period_content(
        self,
        batch_id: int,
        parsed: WorkbookParseResult,
        period_ids: Dict[str, int],
        alias_map: Dict[str, RosterAlias],
        options: PayrollBackfillOptions,
    ) -> Tuple[int, int, int]:
        """
        Delete and rebuild the selected periods' rows in one transaction.

        Returns:
            Counts of raw import rows, input rows and expense rows written
        """
        ids = list(period_ids.values())
        now = datetime.utcnow()

        imported_rows = 0
        if options.persist_import_rows and parsed.import_rows:
            imported_rows = bulk_insert_chunked(
                self.db,
                PayrollImportRow,
                [
                    {
                        "batch_id": batch_id,
                        "sheet_name": row.sheet_name,
                        "row_number": row.row_number,
                        "row_json": row.row_json,
                        "period_key": row.period_key,
                        "payroll_name": row.payroll_name,
                        "normalized_name": row.normalized_name,
                    }
                    for row in parsed.import_rows
                ],
                self.chunk_size,
            )

        for model in (PayrollInputValue, PayrollExpenseEntry, PayrollComputedValue, PayrollReceipt):
            self.db.query(model).filter(model.period_id.in_(ids)).delete(
                synchronize_session=False
            )

        periods = self.db.query(PayrollPeriod).filter(PayrollPeriod.id.in_(ids)).all()
        for period in periods:
            was_locked = PayrollPeriodStatus(period.status) == PayrollPeriodStatus.LOCKED
            reset_to_draft(
                self.db,
                period,
                options.actor_id,
                f"Backfill batch {batch_id} overwrote locked period" if was_locked
                else f"Backfill batch {batch_id} replaced period content",
                allow_locked=options.overwrite_locked,
            )
            if was_locked:
                period.approved_by_id = None
                period.approved_at = None
            period.source_type = PayrollSourceType.WORKBOOK
            period.summary_json = None

        mappings = self.matcher.mappings_by_normalized_name()

        input_rows: Dict[Tuple[int, str, str], dict] = {}
        for row in parsed.input_values:
            period_id = period_ids.get(row.period_key)
            if period_id is None:
                continue

            alias = alias_map.get(normalize_payroll_name(row.payroll_name))
            payroll_name = alias.payroll_name if alias else row.payroll_name
            mapping = mappings.get(normalize_payroll_name(payroll_name))
            if alias:
                user_id = alias.user_id
            elif mapping is not None and mapping.status in MATCHED_STATUSES:
                user_id = mapping.user_id
            else:
                user_id = None

            key = (period_id, payroll_name, row.component_key)
            existing = input_rows.get(key)
            if existing:
                existing["amount"] += Decimal(row.amount)
                continue

            input_rows[key] = {
                "period_id": period_id,
                "payroll_name": payroll_name,
                "user_id": user_id,
                "component_key": PayrollComponentKey(row.component_key),
                "amount": Decimal(row.amount),
                "source_sheet": row.source_sheet,
                "source_cell": row.source_cell,
                "source_method": PayrollInputSourceMethod.WORKBOOK,
                "is_override": False,
                "provenance_json": {
                    "batch_id": batch_id,
                    "period_key": row.period_key,
                    "source_priority": row.source_priority,
                    "imported_at": now.isoformat(),
                    "backfill": True,
                    "alias_mapped": alias is not None,
                },
            }

        expense_rows: List[dict] = []
        for entry in parsed.expense_entries:
            period_id = period_ids.get(entry.period_key) if entry.period_key else None
            if period_id is None:
                continue

            payroll_name, user_id = entry.payroll_name, None
            if payroll_name:
                alias = alias_map.get(normalize_payroll_name(payroll_name))
                if alias:
                    payroll_name, user_id = alias.payroll_name, alias.user_id

            expense_rows.append({
                "period_id": period_id,
                "payroll_name": payroll_name,
                "user_id": user_id,
                "category_key": entry.category_key,
                "description": entry.description,
                "amount": Decimal(entry.amount),
                "sheet_name": entry.sheet_name,
                "row_ref": entry.row_ref,
                "entered_by_id": options.actor_id,
            })

        imported_inputs = bulk_insert_chunked(
            self.db, PayrollInputValue, list(input_rows.values()), self.chunk_size
        )
        imported_expenses = bulk_insert_chunked(
            self.db, PayrollExpenseEntry, expense_rows, self.chunk_size
        )
        self.db.commit()
        return imported_rows, imported_inputs, imported_expenses

    def _process_period(
        self,
        period_key: str,
        period_id: int,
        options: PayrollBackfillOptions,
        relock: bool = False,
    ) -> PeriodOutcome:
        """
        Recalculate one period in its own transaction.

        The period is then approved and locked when ``lock_approved`` is set,
        or when it was LOCKED before an overwrite (``relock``).
        """
        try:
            blocked = self.matcher.find_blocked_payroll_names(period_id)
            period = self.period_service.get_period(period_id)

            if blocked:
                period.summary_json = {
                    "period_key": period_key,
                    "backfill": True,
                    "blocked_mappings": blocked,
                    "blocked_count": len(blocked),
                    "previously_locked": relock,
                }
                self.db.commit()
                logger.warning(
                    "Backfill period %s blocked by %d unresolved names%s",
                    period_key, len(blocked), " (was locked before overwrite)" if relock else "",
                )
                return Blocked(period_key, tuple(blocked))

            result = self.engine.recalculate_payroll_period(
                period_id, options.tolerance, actor_id=options.actor_id, commit=False
            )

            lock = options.lock_approved or relock
            if lock:
                now = datetime.utcnow()
                period.approved_by_id = options.actor_id
                period.approved_at = now
                apply_transition(
                    self.db, period, PayrollPeriodStatus.APPROVED,
                    options.actor_id, BACKFILL_APPROVAL_COMMENT,
                )
                period.locked_at = now
                apply_transition(
                    self.db, period, PayrollPeriodStatus.LOCKED,
                    options.actor_id, BACKFILL_LOCK_COMMENT,
                )

            self.db.commit()
            return Processed(period_key, lock, result.mismatch_count)
        except (PayrollException, SQLAlchemyError) as e:
            self.db.rollback()
            logger.exception("Backfill period %s failed", period_key)
            return Failed(period_key, getattr(e, "message", None) or str(e))

    def _mark_batch_failed(self, batch_id: int, message: str) -> None:
        batch = self.db.query(PayrollImportBatch).filter(PayrollImportBatch.id == batch_id).first()
        if batch is None:
            return
        batch.status = PayrollImportBatchStatus.FAILED
        batch.error_message = message[:2000]
        batch.completed_at = datetime.utcnow()
        self.db.commit()
        logger.error("Backfill batch %s failed: %s", batch_id, message)
