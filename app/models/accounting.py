"""
ProLedger - Chart of Accounts & General Ledger Models

Double-entry ledger tables, all scoped by tenant:
- Chart of Accounts (PUC hierarchy) and the per-tenant role mapping
- Accounting periods with an OPEN -> CLOSED lock
- Journal entries with their ordered debit/credit lines
- Per-tenant journal entry counters used for numbering
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text,
    Enum as SQLEnum, UniqueConstraint, Index, CheckConstraint
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, TenantMixin


# =============================================================================
# ENUMS
# =============================================================================

class AccountType(str, Enum):
    """PUC account classes."""
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"
    COGS = "COGS"


class AccountNature(str, Enum):
    """Side on which the account balance increases."""
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class AccountingPeriodStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class JournalEntryStatus(str, Enum):
    """Journal entry lifecycle. VOIDED is terminal."""
    DRAFT = "DRAFT"
    POSTED = "POSTED"
    VOIDED = "VOIDED"


class JournalEntrySource(str, Enum):
    """Origin of a journal entry."""
    MANUAL = "MANUAL"
    INVOICE_SALE = "INVOICE_SALE"
    INVOICE_CANCEL = "INVOICE_CANCEL"
    CREDIT_NOTE = "CREDIT_NOTE"
    DEBIT_NOTE = "DEBIT_NOTE"
    PAYMENT = "PAYMENT"
    PURCHASE = "PURCHASE"
    STOCK_ADJUSTMENT = "STOCK_ADJUSTMENT"
    PAYROLL = "PAYROLL"
    PERIOD_CLOSE = "PERIOD_CLOSE"


def account_level_for_code(code: str) -> int:
    """PUC level from code length: class (1), group (2), account (3-4), sub-account (>4)."""
    if len(code) <= 1:
        return 1
    if len(code) <= 2:
        return 2
    if len(code) <= 4:
        return 3
    return 4


# =============================================================================
# CHART OF ACCOUNTS
# =============================================================================

class Account(BaseModel, TenantMixin):
    """
    A ledger account in the tenant's Chart of Accounts.

    Codes follow the PUC scheme: every child code starts with its parent's
    code, and parents are always created before their children.
    """

    __tablename__ = "accounts"

    code: Mapped[str] = mapped_column(
        String(20), nullable=False,
        comment="Hierarchical PUC code (e.g., 1, 11, 1105, 110505)",
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    type: Mapped[AccountType] = mapped_column(SQLEnum(AccountType), nullable=False)
    nature: Mapped[AccountNature] = mapped_column(SQLEnum(AccountNature), nullable=False)

    # Hierarchy
    parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
    )
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Flags
    is_system_account: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
        comment="Created by tenant setup",
    )
    is_bank_account: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'code', name='uq_accounts_tenant_code'),
        Index('ix_accounts_tenant_type', 'tenant_id', 'type'),
        Index('ix_accounts_tenant_parent', 'tenant_id', 'parent_id'),
    )

    def __repr__(self) -> str:
        return f"<Account({self.code}: {self.name})>"


class AccountingConfig(BaseModel, TenantMixin):
    """
    Per-tenant mapping from semantic roles to concrete accounts.

    The posting bridge reads these roles to decide which accounts each
    business event touches. A role left as NULL disables the rules that
    require it.
    """

    __tablename__ = "accounting_configs"

    cash_account_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True,
    )
    bank_account_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True,
    )
    accounts_receivable_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True,
    )
    inventory_account_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True,
    )
    accounts_payable_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True,
    )
    tax_payable_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True,
        comment="IVA por pagar",
    )
    tax_deductible_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True,
        comment="IVA descontable",
    )
    revenue_account_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True,
    )
    cogs_account_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True,
    )
    inventory_adjustment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True,
    )
    withholding_received_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True,
    )
    withholding_payable_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True,
    )

    # Payroll
    payroll_expense_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True,
    )
    payroll_payable_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True,
    )
    payroll_retentions_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True,
    )
    payroll_contributions_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True,
    )
    payroll_provisions_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True,
    )

    auto_generate_entries: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        UniqueConstraint('tenant_id', name='uq_accounting_configs_tenant'),
    )

    ROLE_FIELDS = (
        "cash_account_id",
        "bank_account_id",
        "accounts_receivable_id",
        "inventory_account_id",
        "accounts_payable_id",
        "tax_payable_id",
        "tax_deductible_id",
        "revenue_account_id",
        "cogs_account_id",
        "inventory_adjustment_id",
        "withholding_received_id",
        "withholding_payable_id",
        "payroll_expense_id",
        "payroll_payable_id",
        "payroll_retentions_id",
        "payroll_contributions_id",
        "payroll_provisions_id",
    )

    REQUIRED_ROLE_FIELDS = (
        "cash_account_id",
        "accounts_receivable_id",
        "inventory_account_id",
        "accounts_payable_id",
        "revenue_account_id",
        "cogs_account_id",
    )

    @property
    def is_configured(self) -> bool:
        """True when the six mandatory roles are all mapped."""
        return all(getattr(self, field) is not None for field in self.REQUIRED_ROLE_FIELDS)


# =============================================================================
# ACCOUNTING PERIODS
# =============================================================================

class AccountingPeriod(BaseModel, TenantMixin):
    """
    A date range that gates manual journal entry creation.

    OPEN -> CLOSED is one-way and only allowed once no DRAFT entries
    reference the period.
    """

    __tablename__ = "accounting_periods"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[AccountingPeriodStatus] = mapped_column(
        SQLEnum(AccountingPeriodStatus),
        default=AccountingPeriodStatus.OPEN,
        nullable=False,
    )
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Filled in by list/get queries; not persisted
    entry_count = 0

    __table_args__ = (
        CheckConstraint('end_date > start_date', name='valid_range'),
        Index('ix_accounting_periods_tenant_dates', 'tenant_id', 'start_date', 'end_date'),
    )

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


# =============================================================================
# JOURNAL ENTRIES
# =============================================================================

class JournalEntry(BaseModel, TenantMixin):
    """
    A balanced set of debit/credit lines recorded against the ledger.

    Manual entries start as DRAFT; automatic entries are created POSTED.
    Lines are never edited after creation; corrections are new entries.
    """

    __tablename__ = "journal_entries"

    entry_number: Mapped[str] = mapped_column(String(30), nullable=False)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)

    source: Mapped[JournalEntrySource] = mapped_column(
        SQLEnum(JournalEntrySource),
        default=JournalEntrySource.MANUAL,
        nullable=False,
    )
    status: Mapped[JournalEntryStatus] = mapped_column(
        SQLEnum(JournalEntryStatus),
        default=JournalEntryStatus.DRAFT,
        nullable=False,
    )

    period_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("accounting_periods.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Originating business documents (owned by external modules)
    invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    payment_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    purchase_order_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    stock_movement_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    dian_document_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True, index=True,
    )

    total_debit: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    total_credit: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )

    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    posted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    voided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    void_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    period: Mapped[Optional["AccountingPeriod"]] = relationship("AccountingPeriod")
    lines: Mapped[List["JournalEntryLine"]] = relationship(
        "JournalEntryLine",
        back_populates="journal_entry",
        cascade="all, delete-orphan",
        order_by="JournalEntryLine.line_number",
    )

    __table_args__ = (
        UniqueConstraint('tenant_id', 'entry_number', name='uq_journal_entries_tenant_number'),
        Index('ix_journal_entries_tenant_status', 'tenant_id', 'status'),
        Index('ix_journal_entries_tenant_source', 'tenant_id', 'source'),
    )

    @property
    def period_name(self) -> Optional[str]:
        return self.period.name if self.period is not None else None

    def __repr__(self) -> str:
        return f"<JournalEntry({self.entry_number}: {self.status.value})>"


class JournalEntryLine(BaseModel):
    """
    One debit or credit movement within a journal entry.
    Exactly one of debit/credit is positive; the other is zero.
    """

    __tablename__ = "journal_entry_lines"

    journal_entry_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("journal_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    cost_center_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    debit: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    credit: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )

    # Relationships
    journal_entry: Mapped["JournalEntry"] = relationship("JournalEntry", back_populates="lines")
    account: Mapped["Account"] = relationship("Account")

    __table_args__ = (
        CheckConstraint(
            '(debit > 0 AND credit = 0) OR (debit = 0 AND credit > 0)',
            name='one_sided_amount',
        ),
    )

    @property
    def account_code(self) -> Optional[str]:
        return self.account.code if self.account is not None else None

    @property
    def account_name(self) -> Optional[str]:
        return self.account.name if self.account is not None else None


class JournalEntryCounter(BaseModel, TenantMixin):
    """
    Last allocated journal entry number per tenant.

    The row is read with SELECT ... FOR UPDATE so concurrent writers for the
    same tenant serialize on it.
    """

    __tablename__ = "journal_entry_counters"

    last_value: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint('tenant_id', name='uq_journal_entry_counters_tenant'),
    )
