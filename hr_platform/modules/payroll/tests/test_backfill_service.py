# hr_platform/modules/payroll/tests/test_backfill_service.py

"""
Tests for multi-month workbook backfill.

Tests cover:
- Latest-month selection and month clamping
- End-to-end roster-alias backfill with automatic approve and lock
- Months blocked by unresolved identities
- Locked month skipping and overwrite
- Validation failures before any write
- Batch FAILED on database errors and per-month failure isolation
"""

import pytest
from decimal import Decimal
from unittest.mock import patch

from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from hr_platform.modules.payroll.enums.payroll_enums import (
    PayrollComponentKey as C,
    PayrollImportBatchStatus,
    PayrollPeriodStatus as S,
    PayrollSourceType,
)
from hr_platform.modules.payroll.exceptions import (
    PayrollPolicyError,
    PayrollTransactionError,
    PayrollValidationError,
)
from hr_platform.modules.payroll.models import (
    PayrollApprovalEvent,
    PayrollExpenseEntry,
    PayrollImportBatch,
    PayrollImportRow,
    PayrollInputValue,
    PayrollPeriod,
)
from hr_platform.modules.payroll.schemas.error_schemas import PayrollErrorCodes
from hr_platform.modules.payroll.schemas.payroll_schemas import (
    PayrollBackfillOptions,
    PayrollBackfillSummary,
)
from hr_platform.modules.payroll.services.backfill_service import (
    BACKFILL_APPROVAL_COMMENT,
    BACKFILL_LOCK_COMMENT,
    Blocked,
    Failed,
    PayrollBackfillService,
    Processed,
    clamp_months,
    fold_outcomes,
    select_latest_period_keys,
)
from hr_platform.modules.payroll.services.payroll_calculation_engine import PayrollCalculationEngine
from hr_platform.modules.payroll.tests.factories import (
    build_workbook,
    expense_row,
    salary_rows,
)

FOURTEEN_MONTHS = [f"{m:02d}/2024" for m in range(1, 13)] + ["01/2025", "02/2025"]


def options(buffer: bytes, **overrides) -> PayrollBackfillOptions:
    values = {"buffer": buffer, "actor_id": 1, "file_name": "history.json"}
    values.update(overrides)
    return PayrollBackfillOptions(**values)


def period_for(db_session, period_key):
    month, year = period_key.split("/")
    return (
        db_session.query(PayrollPeriod)
        .filter(PayrollPeriod.label == f"Payroll {int(month):02d}/{year}")
        .one()
    )


def assert_outcomes_add_up(summary: PayrollBackfillSummary):
    assert (
        summary.periods_processed + summary.periods_blocked + summary.periods_failed
        == len(summary.selected_period_keys)
    )


class TestPeriodSelection:
    def test_latest_twelve_of_fourteen(self):
        assert select_latest_period_keys(reversed(FOURTEEN_MONTHS), 12) == FOURTEEN_MONTHS[2:]

    @pytest.mark.parametrize("months, expected", [(0, 1), (-3, 1), (1, 1), (500, 120), (None, 12)])
    def test_clamp_months(self, months, expected):
        assert clamp_months(months) == expected

    def test_fewer_keys_than_months(self):
        assert select_latest_period_keys(["02/2025", "bogus", "01/2025", "02/2025"], 12) == [
            "01/2025",
            "02/2025",
        ]

    def test_fold_outcomes(self):
        summary = fold_outcomes(PayrollBackfillSummary(selected_period_keys=["01/2025", "02/2025", "03/2025"]), [
            Processed("01/2025", locked=True, mismatch_count=0),
            Blocked("02/2025", ("Ghost",)),
            Failed("03/2025", "boom"),
        ])

        assert (summary.periods_processed, summary.periods_locked) == (1, 1)
        assert summary.blocked_by_period == {"02/2025": ["Ghost"]}
        assert summary.failed_by_period == {"03/2025": "boom"}
        assert_outcomes_add_up(summary)

    def test_tolerance_bounds(self):
        assert options(b"{}", tolerance=0).tolerance == Decimal("0")

        with pytest.raises(ValidationError):
            options(b"{}", tolerance=Decimal("-0.01"))


class TestRosterBackfill:
    """Backfill with workbook names aliased onto the employee roster"""

    @pytest.fixture
    def fourteen_month_workbook(self):
        rows = []
        for key in FOURTEEN_MONTHS:
            rows += salary_rows(key, "Worker One", basic=100000)
            rows += salary_rows(key, "Worker Two", basic=80000)
            rows += salary_rows(key, "Worker Three", basic=60000)
            rows += salary_rows(key, "Worker Four", basic=10000)
        return build_workbook(
            rows,
            expense_entries=[expense_row("02/2025", "Worker Two", "2,500")],
            payrollNames=["Worker One", "Worker Two", "Worker Three", "Worker Four"],
        )

    def test_fourteen_months_creates_latest_twelve(self, db_session, roster, fourteen_month_workbook):
        summary = PayrollBackfillService(db_session).run_payroll_backfill(
            options(fourteen_month_workbook, months=12)
        )

        assert summary.selected_period_keys == FOURTEEN_MONTHS[2:]
        assert summary.periods_created == 12
        assert summary.periods_processed == 12
        assert summary.periods_locked == 12
        assert summary.periods_blocked == 0
        assert summary.periods_failed == 0
        assert summary.skipped_locked_period_keys == []
        assert_outcomes_add_up(summary)

        periods = db_session.query(PayrollPeriod).all()
        assert len(periods) == 12
        assert {p.status for p in periods} == {S.LOCKED}
        assert {p.source_type for p in periods} == {PayrollSourceType.WORKBOOK}
        assert all(p.approved_by_id == 1 and p.locked_at is not None for p in periods)

        # Four workbook names map onto three roster employees
        assert summary.mapping_summary.total == 3
        assert summary.mapping_summary.auto_matched == 3
        assert summary.mapping_summary.unresolved == 0
        assert summary.imported_inputs == 12 * 3 * 3
        assert summary.imported_expenses == 1

        batch = db_session.query(PayrollImportBatch).one()
        assert batch.status == PayrollImportBatchStatus.COMPLETED
        assert batch.completed_at is not None
        assert batch.summary_json["periods_locked"] == 12
        assert batch.file_name == "history.json"

    def test_aliased_rows_are_aggregated(self, db_session, roster, fourteen_month_workbook):
        PayrollBackfillService(db_session).run_payroll_backfill(
            options(fourteen_month_workbook, months=1)
        )
        february = period_for(db_session, "02/2025")

        # Sorted roster: Ali Raza, Bilal Ahmed, Sara Khan; Worker Four wraps to Ali Raza
        ali_basic = db_session.query(PayrollInputValue).filter(
            PayrollInputValue.period_id == february.id,
            PayrollInputValue.payroll_name == "Ali Raza",
            PayrollInputValue.component_key == C.BASIC_SALARY,
        ).one()
        assert ali_basic.amount == Decimal("110000")
        assert ali_basic.user_id == roster[0].id
        assert ali_basic.provenance_json["backfill"] is True
        assert ali_basic.provenance_json["alias_mapped"] is True
        assert ali_basic.provenance_json["period_key"] == "02/2025"

        expense = db_session.query(PayrollExpenseEntry).one()
        assert expense.payroll_name == "Bilal Ahmed"
        assert expense.user_id == roster[2].id
        assert expense.entered_by_id == 1

        events = db_session.query(PayrollApprovalEvent).filter(
            PayrollApprovalEvent.period_id == february.id
        ).order_by(PayrollApprovalEvent.id).all()
        assert [(e.from_status, e.to_status) for e in events] == [
            (S.DRAFT, S.CALCULATED),
            (S.CALCULATED, S.APPROVED),
            (S.APPROVED, S.LOCKED),
        ]
        assert [e.comment for e in events[1:]] == [BACKFILL_APPROVAL_COMMENT, BACKFILL_LOCK_COMMENT]

    def test_without_lock(self, db_session, roster, fourteen_month_workbook):
        summary = PayrollBackfillService(db_session).run_payroll_backfill(
            options(fourteen_month_workbook, months=2, lock_approved=False)
        )

        assert summary.periods_processed == 2
        assert summary.periods_locked == 0
        assert {p.status for p in db_session.query(PayrollPeriod).all()} == {S.CALCULATED}

    def test_persist_import_rows(self, db_session, roster):
        buffer = build_workbook(
            salary_rows("03/2025", "Worker One"),
            import_rows=[
                {"sheetName": "Payroll 03/2025", "rowNumber": n, "rowJson": {"A": "Worker One"}}
                for n in (2, 3)
            ],
        )

        summary = PayrollBackfillService(db_session).run_payroll_backfill(
            options(buffer, months=1, persist_import_rows=True)
        )

        assert summary.imported_rows == 2
        assert {r.batch_id for r in db_session.query(PayrollImportRow).all()} == {summary.batch_id}


class TestLiveIdentityBackfill:
    """Backfill resolving workbook names against the roster"""

    def test_blocked_month(self, db_session, roster):
        rows = salary_rows("01/2025", "Ali Raza") + salary_rows("02/2025", "Ali Raza")
        rows += salary_rows("02/2025", "Ghost Worker", basic=5000)
        buffer = build_workbook(rows)

        summary = PayrollBackfillService(db_session).run_payroll_backfill(
            options(buffer, use_employee_roster_names=False)
        )

        assert summary.selected_period_keys == ["01/2025", "02/2025"]
        assert summary.periods_processed == 1
        assert summary.periods_locked == 1
        assert summary.periods_blocked == 1
        assert summary.blocked_by_period == {"02/2025": ["Ghost Worker"]}
        assert summary.mapping_summary.auto_matched == 1
        assert summary.mapping_summary.unresolved == 1
        assert_outcomes_add_up(summary)

        assert period_for(db_session, "01/2025").status == S.LOCKED
        blocked = period_for(db_session, "02/2025")
        assert blocked.status == S.DRAFT
        assert blocked.summary_json["blocked_count"] == 1
        assert blocked.summary_json["blocked_mappings"] == ["Ghost Worker"]

        ali = db_session.query(PayrollInputValue).filter(
            PayrollInputValue.payroll_name == "Ali Raza"
        ).first()
        assert ali.user_id == roster[0].id
        assert ali.provenance_json["alias_mapped"] is False


class TestLockedPeriods:
    @pytest.fixture
    def workbook(self):
        rows = []
        for key in ("01/2025", "02/2025", "03/2025"):
            rows += salary_rows(key, "Worker One", basic=50000)
        return build_workbook(rows)

    def test_locked_month_skipped(self, db_session, roster, workbook):
        service = PayrollBackfillService(db_session)
        service.run_payroll_backfill(options(workbook, months=1))

        summary = service.run_payroll_backfill(options(workbook, months=2))

        assert summary.skipped_locked_period_keys == ["03/2025"]
        assert summary.selected_period_keys == ["01/2025", "02/2025"]
        assert period_for(db_session, "03/2025").status == S.LOCKED

    def test_no_eligible_periods(self, db_session, roster, workbook):
        service = PayrollBackfillService(db_session)
        service.run_payroll_backfill(options(workbook, months=3))

        with pytest.raises(PayrollPolicyError) as exc_info:
            service.run_payroll_backfill(options(workbook, months=3))

        assert exc_info.value.code == PayrollErrorCodes.NO_ELIGIBLE_PERIODS
        assert db_session.query(PayrollImportBatch).count() == 1

    def test_overwrite_relocks(self, db_session, roster, workbook):
        service = PayrollBackfillService(db_session)
        service.run_payroll_backfill(options(workbook, months=1))
        march = period_for(db_session, "03/2025")

        updated = build_workbook(salary_rows("03/2025", "Worker One", basic=65000))
        summary = service.run_payroll_backfill(options(updated, months=1, overwrite_locked=True))

        assert summary.selected_period_keys == ["03/2025"]
        assert summary.periods_created == 0
        assert summary.periods_locked == 1

        db_session.refresh(march)
        assert march.status == S.LOCKED
        basic = db_session.query(PayrollInputValue).filter(
            PayrollInputValue.period_id == march.id,
            PayrollInputValue.component_key == C.BASIC_SALARY,
        ).one()
        assert basic.amount == Decimal("65000")

        transitions = [
            (e.from_status, e.to_status)
            for e in db_session.query(PayrollApprovalEvent)
            .filter(PayrollApprovalEvent.period_id == march.id)
            .order_by(PayrollApprovalEvent.id)
        ]
        assert transitions[3] == (S.LOCKED, S.DRAFT)
        assert transitions[-1] == (S.APPROVED, S.LOCKED)

    def test_overwrite_relocks_without_lock_approved(self, db_session, roster, workbook):
        service = PayrollBackfillService(db_session)
        service.run_payroll_backfill(options(workbook, months=2, lock_approved=False))
        service.run_payroll_backfill(options(workbook, months=1))
        march = period_for(db_session, "03/2025")

        summary = service.run_payroll_backfill(
            options(workbook, months=2, overwrite_locked=True, lock_approved=False)
        )

        assert summary.selected_period_keys == ["02/2025", "03/2025"]
        assert summary.overwritten_locked_period_keys == ["03/2025"]
        assert summary.periods_processed == 2
        assert summary.periods_locked == 1

        db_session.refresh(march)
        assert march.status == S.LOCKED
        assert march.locked_at is not None
        assert march.approved_by_id == 1
        assert period_for(db_session, "02/2025").status == S.CALCULATED

        comments = [
            e.comment
            for e in db_session.query(PayrollApprovalEvent)
            .filter(PayrollApprovalEvent.period_id == march.id)
            .order_by(PayrollApprovalEvent.id)
        ]
        assert comments[-2:] == [BACKFILL_APPROVAL_COMMENT, BACKFILL_LOCK_COMMENT]

    def test_blocked_overwrite_marks_previously_locked(self, db_session, roster):
        service = PayrollBackfillService(db_session)
        service.run_payroll_backfill(options(
            build_workbook(salary_rows("03/2025", "Ali Raza")), use_employee_roster_names=False
        ))

        rows = salary_rows("03/2025", "Ali Raza") + salary_rows("03/2025", "Ghost Worker", basic=5000)
        summary = service.run_payroll_backfill(options(
            build_workbook(rows),
            use_employee_roster_names=False,
            overwrite_locked=True,
            lock_approved=False,
        ))

        assert summary.overwritten_locked_period_keys == ["03/2025"]
        assert summary.blocked_by_period == {"03/2025": ["Ghost Worker"]}
        march = period_for(db_session, "03/2025")
        assert march.status == S.DRAFT
        assert march.summary_json["previously_locked"] is True


class TestBackfillFailures:
    def test_workbook_without_periods(self, db_session, roster):
        buffer = build_workbook([], expense_entries=[expense_row(None, "Ali Raza", 10)])

        with pytest.raises(PayrollValidationError) as exc_info:
            PayrollBackfillService(db_session).run_payroll_backfill(options(buffer))

        assert exc_info.value.code == PayrollErrorCodes.NO_PERIODS_IN_WORKBOOK
        assert db_session.query(PayrollImportBatch).count() == 0

    def test_empty_roster_writes_nothing(self, db_session):
        buffer = build_workbook(salary_rows("03/2025", "Worker One"))

        with pytest.raises(PayrollValidationError) as exc_info:
            PayrollBackfillService(db_session).run_payroll_backfill(options(buffer))

        assert exc_info.value.code == PayrollErrorCodes.EMPTY_ROSTER
        assert db_session.query(PayrollPeriod).count() == 0
        assert db_session.query(PayrollImportBatch).count() == 0

    def test_database_error_marks_batch_failed(self, db_session, roster):
        buffer = build_workbook(salary_rows("03/2025", "Worker One"))
        error = OperationalError("INSERT INTO payroll_input_values", {}, Exception("disk I/O error"))

        with patch(
            "hr_platform.modules.payroll.services.backfill_service.bulk_insert_chunked",
            side_effect=error,
        ):
            with pytest.raises(PayrollTransactionError) as exc_info:
                PayrollBackfillService(db_session).run_payroll_backfill(options(buffer, months=1))

        batch = db_session.query(PayrollImportBatch).one()
        assert exc_info.value.status_code == 500
        assert batch.status == PayrollImportBatchStatus.FAILED
        assert "disk I/O error" in batch.error_message
        assert batch.completed_at is not None
        assert db_session.query(PayrollInputValue).count() == 0

    def test_failed_month_does_not_stop_others(self, db_session, roster):
        rows = []
        for key in ("01/2025", "02/2025", "03/2025"):
            rows += salary_rows(key, "Worker One")
        buffer = build_workbook(rows)
        original = PayrollCalculationEngine.recalculate_payroll_period

        def flaky(engine, period_id, *args, **kwargs):
            if engine._get_period(period_id).label == "Payroll 02/2025":
                raise OperationalError("SELECT", {}, Exception("deadlock detected"))
            return original(engine, period_id, *args, **kwargs)

        with patch.object(PayrollCalculationEngine, "recalculate_payroll_period", autospec=True, side_effect=flaky):
            summary = PayrollBackfillService(db_session).run_payroll_backfill(options(buffer, months=3))

        assert summary.periods_processed == 2
        assert summary.periods_failed == 1
        assert "deadlock detected" in summary.failed_by_period["02/2025"]
        assert_outcomes_add_up(summary)
        assert period_for(db_session, "02/2025").status == S.DRAFT
        assert period_for(db_session, "03/2025").status == S.LOCKED
        assert db_session.query(PayrollImportBatch).one().status == PayrollImportBatchStatus.COMPLETED
