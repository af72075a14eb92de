"""Create staff roster and payroll period tables

Revision ID: 20251019_0900_0001
Revises:
Create Date: 2025-10-19 09:00:00.000000

Creates:
1. staff_members roster
2. payroll_periods with inputs, expenses, computed values and receipts
3. payroll_approval_events trail
4. payroll_import_batches / payroll_import_rows / payroll_identity_mappings
5. payroll_financial_years / payroll_tax_brackets
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '20251019_0900_0001'
down_revision = None
branch_labels = None
depends_on = None


ENUM_TYPES = {
    'staff_role': ('EMPLOYEE', 'HR', 'PAYROLL_MANAGER', 'ADMIN'),
    'staff_status': ('active', 'inactive', 'on_leave', 'terminated'),
    'payroll_period_status': ('DRAFT', 'CALCULATED', 'APPROVED', 'SENDING', 'SENT', 'LOCKED'),
    'payroll_source_type': ('WORKBOOK', 'MANUAL', 'CARRY_FORWARD'),
    'payroll_input_source_method': ('MANUAL', 'WORKBOOK', 'CARRY_FORWARD'),
    'payroll_component_key': (
        'BASIC_SALARY', 'MEDICAL_TAX_EXEMPTION', 'BONUS', 'MEDICAL_ALLOWANCE',
        'TRAVEL_REIMBURSEMENT', 'UTILITY_REIMBURSEMENT', 'MEALS_REIMBURSEMENT',
        'MOBILE_REIMBURSEMENT', 'EXPENSE_REIMBURSEMENT', 'ADVANCE_LOAN',
        'INCOME_TAX', 'ADJUSTMENT', 'LOAN_REPAYMENT', 'PAID',
    ),
    'payroll_metric_key': (
        'TOTAL_TAXABLE_SALARY', 'TOTAL_EARNINGS', 'TOTAL_DEDUCTIONS', 'NET_SALARY', 'BALANCE',
    ),
    'payroll_receipt_status': ('READY', 'SENDING', 'SENT', 'FAILED'),
    'payroll_import_batch_status': ('PROCESSING', 'COMPLETED', 'FAILED'),
    'payroll_identity_status': ('AUTO_MATCHED', 'MANUAL_MATCHED', 'AMBIGUOUS', 'UNRESOLVED'),
}


def _enum(name):
    # Types are created once up front; several tables share payroll_period_status
    return postgresql.ENUM(*ENUM_TYPES[name], name=name, create_type=False)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create payroll period schema."""
    bind = op.get_bind()
    for name, values in ENUM_TYPES.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        'staff_members',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(255), unique=True),
        sa.Column('role', _enum('staff_role'), nullable=False, server_default='EMPLOYEE'),
        sa.Column('status', _enum('staff_status'), nullable=False, server_default='active'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_staff_members_id', 'staff_members', ['id'])
    op.create_index('ix_staff_members_name', 'staff_members', ['name'])

    op.create_table(
        'payroll_periods',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('label', sa.String(100), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('status', _enum('payroll_period_status'), nullable=False, server_default='DRAFT'),
        sa.Column('source_type', _enum('payroll_source_type'), nullable=False, server_default='MANUAL'),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        sa.Column('approved_by_id', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('locked_at', sa.DateTime(), nullable=True),
        sa.Column('summary_json', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('period_start', name='uq_payroll_period_start'),
    )
    op.create_index('ix_payroll_periods_id', 'payroll_periods', ['id'])
    op.create_index('ix_payroll_periods_status', 'payroll_periods', ['status'])

    op.create_table(
        'payroll_input_values',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('period_id', sa.Integer(), sa.ForeignKey('payroll_periods.id'), nullable=False),
        sa.Column('payroll_name', sa.String(200), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('staff_members.id'), nullable=True),
        sa.Column('component_key', _enum('payroll_component_key'), nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('source_sheet', sa.String(100), nullable=True),
        sa.Column('source_cell', sa.String(50), nullable=True),
        sa.Column('source_method', _enum('payroll_input_source_method'), nullable=False,
                  server_default='MANUAL'),
        sa.Column('is_override', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('provenance_json', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('period_id', 'payroll_name', 'component_key',
                            name='uq_payroll_input_period_name_component'),
    )
    op.create_index('ix_payroll_input_values_id', 'payroll_input_values', ['id'])
    op.create_index('ix_payroll_input_values_period_id', 'payroll_input_values', ['period_id'])
    op.create_index('ix_payroll_input_values_user_id', 'payroll_input_values', ['user_id'])

    op.create_table(
        'payroll_expense_entries',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('period_id', sa.Integer(), sa.ForeignKey('payroll_periods.id'), nullable=False),
        sa.Column('payroll_name', sa.String(200), nullable=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('staff_members.id'), nullable=True),
        sa.Column('category_key', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('sheet_name', sa.String(100), nullable=True),
        sa.Column('row_ref', sa.String(50), nullable=True),
        sa.Column('entered_by_id', sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_payroll_expense_entries_id', 'payroll_expense_entries', ['id'])
    op.create_index('ix_payroll_expense_entries_period_id', 'payroll_expense_entries', ['period_id'])

    op.create_table(
        'payroll_computed_values',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('period_id', sa.Integer(), sa.ForeignKey('payroll_periods.id'), nullable=False),
        sa.Column('payroll_name', sa.String(200), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('staff_members.id'), nullable=True),
        sa.Column('metric_key', _enum('payroll_metric_key'), nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('formula_key', sa.String(100), nullable=False),
        sa.Column('formula_version', sa.String(50), nullable=False),
        sa.Column('lineage_json', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('period_id', 'payroll_name', 'metric_key',
                            name='uq_payroll_computed_period_name_metric'),
    )
    op.create_index('ix_payroll_computed_values_id', 'payroll_computed_values', ['id'])
    op.create_index('ix_payroll_computed_values_period_id', 'payroll_computed_values', ['period_id'])
    op.create_index('idx_payroll_computed_name_metric', 'payroll_computed_values',
                    ['payroll_name', 'metric_key'])

    op.create_table(
        'payroll_receipts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('period_id', sa.Integer(), sa.ForeignKey('payroll_periods.id'), nullable=False),
        sa.Column('payroll_name', sa.String(200), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('staff_members.id'), nullable=True),
        sa.Column('receipt_json', sa.JSON(), nullable=False),
        sa.Column('status', _enum('payroll_receipt_status'), nullable=False, server_default='READY'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.UniqueConstraint('period_id', 'payroll_name', name='uq_payroll_receipt_period_name'),
    )
    op.create_index('ix_payroll_receipts_id', 'payroll_receipts', ['id'])
    op.create_index('ix_payroll_receipts_period_id', 'payroll_receipts', ['period_id'])

    op.create_table(
        'payroll_approval_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('period_id', sa.Integer(), sa.ForeignKey('payroll_periods.id'), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('from_status', _enum('payroll_period_status'), nullable=True),
        sa.Column('to_status', _enum('payroll_period_status'), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_payroll_approval_events_id', 'payroll_approval_events', ['id'])
    op.create_index('idx_approval_event_period_created', 'payroll_approval_events',
                    ['period_id', 'created_at'])

    op.create_table(
        'payroll_import_batches',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('source_type', _enum('payroll_source_type'), nullable=False, server_default='WORKBOOK'),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('imported_by_id', sa.Integer(), nullable=True),
        sa.Column('status', _enum('payroll_import_batch_status'), nullable=False,
                  server_default='PROCESSING'),
        sa.Column('summary_json', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_payroll_import_batches_id', 'payroll_import_batches', ['id'])
    op.create_index('ix_payroll_import_batches_status', 'payroll_import_batches', ['status'])

    op.create_table(
        'payroll_import_rows',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('batch_id', sa.Integer(), sa.ForeignKey('payroll_import_batches.id'), nullable=False),
        sa.Column('sheet_name', sa.String(100), nullable=False),
        sa.Column('row_number', sa.Integer(), nullable=False),
        sa.Column('row_json', sa.JSON(), nullable=False),
        sa.Column('period_key', sa.String(7), nullable=True),
        sa.Column('payroll_name', sa.String(200), nullable=True),
        sa.Column('normalized_name', sa.String(200), nullable=True),
    )
    op.create_index('ix_payroll_import_rows_id', 'payroll_import_rows', ['id'])
    op.create_index('ix_payroll_import_rows_batch_id', 'payroll_import_rows', ['batch_id'])

    op.create_table(
        'payroll_identity_mappings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('normalized_payroll_name', sa.String(200), nullable=False),
        sa.Column('display_payroll_name', sa.String(200), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('staff_members.id'), nullable=True),
        sa.Column('status', _enum('payroll_identity_status'), nullable=False,
                  server_default='UNRESOLVED'),
        sa.Column('last_matched_at', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_payroll_identity_mappings_id', 'payroll_identity_mappings', ['id'])
    op.create_index('ix_payroll_identity_mappings_normalized_payroll_name',
                    'payroll_identity_mappings', ['normalized_payroll_name'], unique=True)
    op.create_index('ix_payroll_identity_mappings_user_id', 'payroll_identity_mappings', ['user_id'])

    op.create_table(
        'payroll_financial_years',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('label', sa.String(50), nullable=False, unique=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index('ix_payroll_financial_years_id', 'payroll_financial_years', ['id'])
    op.create_index('idx_financial_year_dates', 'payroll_financial_years', ['start_date', 'end_date'])

    op.create_table(
        'payroll_tax_brackets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('financial_year_id', sa.Integer(), sa.ForeignKey('payroll_financial_years.id'),
                  nullable=False),
        sa.Column('order_index', sa.Integer(), nullable=False),
        sa.Column('income_from', sa.Numeric(16, 2), nullable=False),
        sa.Column('income_to', sa.Numeric(16, 2), nullable=True),
        sa.Column('fixed_tax', sa.Numeric(16, 2), nullable=False, server_default='0'),
        sa.Column('tax_rate', sa.Numeric(6, 4), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('financial_year_id', 'order_index', name='uq_tax_bracket_year_order'),
    )
    op.create_index('ix_payroll_tax_brackets_id', 'payroll_tax_brackets', ['id'])
    op.create_index('ix_payroll_tax_brackets_financial_year_id', 'payroll_tax_brackets',
                    ['financial_year_id'])


def downgrade() -> None:
    """Drop payroll period schema."""
    for table in (
        'payroll_tax_brackets',
        'payroll_financial_years',
        'payroll_identity_mappings',
        'payroll_import_rows',
        'payroll_import_batches',
        'payroll_approval_events',
        'payroll_receipts',
        'payroll_computed_values',
        'payroll_expense_entries',
        'payroll_input_values',
        'payroll_periods',
        'staff_members',
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for name in reversed(list(ENUM_TYPES)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
