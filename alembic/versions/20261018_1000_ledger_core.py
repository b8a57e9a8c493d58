"""Ledger core: chart of accounts, accounting config, periods, journal entries

Revision ID: 20261018_1000_ledger_core
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '20261018_1000_ledger_core'
down_revision = None
branch_labels = None
depends_on = None


ROLE_COLUMNS = (
    'cash_account_id',
    'bank_account_id',
    'accounts_receivable_id',
    'inventory_account_id',
    'accounts_payable_id',
    'tax_payable_id',
    'tax_deductible_id',
    'revenue_account_id',
    'cogs_account_id',
    'inventory_adjustment_id',
    'withholding_received_id',
    'withholding_payable_id',
    'payroll_expense_id',
    'payroll_payable_id',
    'payroll_retentions_id',
    'payroll_contributions_id',
    'payroll_provisions_id',
)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    ]


def upgrade() -> None:
    account_type_enum = postgresql.ENUM(
        'ASSET', 'LIABILITY', 'EQUITY', 'REVENUE', 'EXPENSE', 'COGS',
        name='accounttype',
        create_type=False
    )
    account_type_enum.create(op.get_bind(), checkfirst=True)

    account_nature_enum = postgresql.ENUM('DEBIT', 'CREDIT', name='accountnature', create_type=False)
    account_nature_enum.create(op.get_bind(), checkfirst=True)

    period_status_enum = postgresql.ENUM('OPEN', 'CLOSED', name='accountingperiodstatus', create_type=False)
    period_status_enum.create(op.get_bind(), checkfirst=True)

    entry_status_enum = postgresql.ENUM(
        'DRAFT', 'POSTED', 'VOIDED',
        name='journalentrystatus',
        create_type=False
    )
    entry_status_enum.create(op.get_bind(), checkfirst=True)

    entry_source_enum = postgresql.ENUM(
        'MANUAL', 'INVOICE_SALE', 'INVOICE_CANCEL', 'CREDIT_NOTE', 'DEBIT_NOTE',
        'PAYMENT', 'PURCHASE', 'STOCK_ADJUSTMENT', 'PAYROLL', 'PERIOD_CLOSE',
        name='journalentrysource',
        create_type=False
    )
    entry_source_enum.create(op.get_bind(), checkfirst=True)

    # =========================================================================
    # ACCOUNTS TABLE
    # =========================================================================
    op.create_table(
        'accounts',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('code', sa.String(20), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('type', account_type_enum, nullable=False),
        sa.Column('nature', account_nature_enum, nullable=False),
        sa.Column('parent_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('level', sa.Integer, nullable=False, server_default='1'),
        sa.Column('is_system_account', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_bank_account', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint('tenant_id', 'code', name='uq_accounts_tenant_code'),
    )
    op.create_index('ix_accounts_tenant_type', 'accounts', ['tenant_id', 'type'])
    op.create_index('ix_accounts_tenant_parent', 'accounts', ['tenant_id', 'parent_id'])

    # =========================================================================
    # ACCOUNTING CONFIG TABLE
    # =========================================================================
    op.create_table(
        'accounting_configs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        *[
            sa.Column(role, postgresql.UUID(as_uuid=True), sa.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True)
            for role in ROLE_COLUMNS
        ],
        sa.Column('auto_generate_entries', sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint('tenant_id', name='uq_accounting_configs_tenant'),
    )

    # =========================================================================
    # ACCOUNTING PERIODS TABLE
    # =========================================================================
    op.create_table(
        'accounting_periods',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('start_date', sa.Date, nullable=False),
        sa.Column('end_date', sa.Date, nullable=False),
        sa.Column('status', period_status_enum, nullable=False, server_default='OPEN'),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(),
        sa.CheckConstraint('end_date > start_date', name='ck_accounting_periods_valid_range'),
    )
    op.create_index(
        'ix_accounting_periods_tenant_dates', 'accounting_periods', ['tenant_id', 'start_date', 'end_date'],
    )

    # =========================================================================
    # JOURNAL ENTRIES TABLE
    # =========================================================================
    op.create_table(
        'journal_entries',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('entry_number', sa.String(30), nullable=False),
        sa.Column('entry_date', sa.Date, nullable=False, index=True),
        sa.Column('description', sa.String(500), nullable=False),
        sa.Column('source', entry_source_enum, nullable=False, server_default='MANUAL'),
        sa.Column('status', entry_status_enum, nullable=False, server_default='DRAFT'),
        sa.Column('period_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('accounting_periods.id', ondelete='SET NULL'), nullable=True, index=True),

        # Originating documents
        sa.Column('invoice_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('payment_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('purchase_order_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('stock_movement_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('dian_document_id', postgresql.UUID(as_uuid=True), nullable=True, index=True),

        sa.Column('total_debit', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('total_credit', sa.Numeric(18, 2), nullable=False, server_default='0'),

        sa.Column('created_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('posted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('void_reason', sa.Text, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('tenant_id', 'entry_number', name='uq_journal_entries_tenant_number'),
    )
    op.create_index('ix_journal_entries_tenant_status', 'journal_entries', ['tenant_id', 'status'])
    op.create_index('ix_journal_entries_tenant_source', 'journal_entries', ['tenant_id', 'source'])

    # =========================================================================
    # JOURNAL ENTRY LINES TABLE
    # =========================================================================
    op.create_table(
        'journal_entry_lines',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('journal_entry_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('journal_entries.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('line_number', sa.Integer, nullable=False),
        sa.Column('account_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('accounts.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('cost_center_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('debit', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('credit', sa.Numeric(18, 2), nullable=False, server_default='0'),
        *_timestamps(),
        sa.CheckConstraint(
            '(debit > 0 AND credit = 0) OR (debit = 0 AND credit > 0)',
            name='ck_journal_entry_lines_one_sided_amount',
        ),
    )

    # =========================================================================
    # NUMBERING COUNTERS
    # =========================================================================
    op.create_table(
        'journal_entry_counters',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('last_value', sa.Integer, nullable=False, server_default='0'),
        *_timestamps(),
        sa.UniqueConstraint('tenant_id', name='uq_journal_entry_counters_tenant'),
    )


def downgrade() -> None:
    op.drop_table('journal_entry_counters')
    op.drop_table('journal_entry_lines')
    op.drop_index('ix_journal_entries_tenant_source', table_name='journal_entries')
    op.drop_index('ix_journal_entries_tenant_status', table_name='journal_entries')
    op.drop_table('journal_entries')
    op.drop_index('ix_accounting_periods_tenant_dates', table_name='accounting_periods')
    op.drop_table('accounting_periods')
    op.drop_table('accounting_configs')
    op.drop_index('ix_accounts_tenant_parent', table_name='accounts')
    op.drop_index('ix_accounts_tenant_type', table_name='accounts')
    op.drop_table('accounts')

    for enum_name in (
        'journalentrysource', 'journalentrystatus', 'accountingperiodstatus',
        'accountnature', 'accounttype',
    ):
        op.execute(f'DROP TYPE IF EXISTS {enum_name}')
