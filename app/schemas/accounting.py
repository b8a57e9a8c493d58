"""
ProLedger - Accounting Schemas

Pydantic schemas for Chart of Accounts, configuration, periods and
journal entries.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict

from app.models.accounting import (
    AccountType,
    AccountNature,
    AccountingPeriodStatus,
    JournalEntrySource,
    JournalEntryStatus,
)


# =============================================================================
# CHART OF ACCOUNTS SCHEMAS
# =============================================================================

class AccountBase(BaseModel):
    """Base schema for an account."""
    code: str = Field(..., min_length=1, max_length=20, pattern=r"^\d+$")
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    type: AccountType
    nature: AccountNature
    parent_id: Optional[UUID] = None
    is_bank_account: bool = False


class AccountCreate(AccountBase):
    """Schema for creating an account."""
    pass


class AccountUpdate(BaseModel):
    """Only descriptive fields, the parent link and flags may change."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    parent_id: Optional[UUID] = None
    is_bank_account: Optional[bool] = None
    is_active: Optional[bool] = None


class AccountResponse(AccountBase):
    """Schema for account response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    level: int
    is_system_account: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime


class AccountTree(AccountResponse):
    """Schema for hierarchical account tree."""
    children: List["AccountTree"] = []


# Self-reference for nested tree
AccountTree.model_rebuild()


# =============================================================================
# SETUP & CONFIGURATION SCHEMAS
# =============================================================================

class SetupResult(BaseModel):
    message: str
    accounts_created: int


class AccountingConfigUpdate(BaseModel):
    """Partial update of role mappings; omitted fields are left untouched."""
    cash_account_id: Optional[UUID] = None
    bank_account_id: Optional[UUID] = None
    accounts_receivable_id: Optional[UUID] = None
    inventory_account_id: Optional[UUID] = None
    accounts_payable_id: Optional[UUID] = None
    tax_payable_id: Optional[UUID] = None
    tax_deductible_id: Optional[UUID] = None
    revenue_account_id: Optional[UUID] = None
    cogs_account_id: Optional[UUID] = None
    inventory_adjustment_id: Optional[UUID] = None
    withholding_received_id: Optional[UUID] = None
    withholding_payable_id: Optional[UUID] = None
    payroll_expense_id: Optional[UUID] = None
    payroll_payable_id: Optional[UUID] = None
    payroll_retentions_id: Optional[UUID] = None
    payroll_contributions_id: Optional[UUID] = None
    payroll_provisions_id: Optional[UUID] = None
    auto_generate_entries: Optional[bool] = None


class AccountingConfigResponse(BaseModel):
    """Schema for accounting configuration response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    cash_account_id: Optional[UUID] = None
    bank_account_id: Optional[UUID] = None
    accounts_receivable_id: Optional[UUID] = None
    inventory_account_id: Optional[UUID] = None
    accounts_payable_id: Optional[UUID] = None
    tax_payable_id: Optional[UUID] = None
    tax_deductible_id: Optional[UUID] = None
    revenue_account_id: Optional[UUID] = None
    cogs_account_id: Optional[UUID] = None
    inventory_adjustment_id: Optional[UUID] = None
    withholding_received_id: Optional[UUID] = None
    withholding_payable_id: Optional[UUID] = None
    payroll_expense_id: Optional[UUID] = None
    payroll_payable_id: Optional[UUID] = None
    payroll_retentions_id: Optional[UUID] = None
    payroll_contributions_id: Optional[UUID] = None
    payroll_provisions_id: Optional[UUID] = None
    auto_generate_entries: bool
    is_configured: bool


# =============================================================================
# ACCOUNTING PERIOD SCHEMAS
# =============================================================================

class AccountingPeriodCreate(BaseModel):
    """Schema for creating an accounting period."""
    name: str = Field(..., min_length=1, max_length=100)
    start_date: date
    end_date: date
    notes: Optional[str] = None


class AccountingPeriodResponse(BaseModel):
    """Schema for accounting period response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    name: str
    start_date: date
    end_date: date
    status: AccountingPeriodStatus
    closed_at: Optional[datetime] = None
    closed_by_id: Optional[UUID] = None
    notes: Optional[str] = None
    entry_count: int = 0
    created_at: datetime


# =============================================================================
# JOURNAL ENTRY SCHEMAS
# =============================================================================

class JournalEntryLineCreate(BaseModel):
    """Schema for creating a journal entry line."""
    account_id: UUID
    cost_center_id: Optional[UUID] = None
    description: Optional[str] = Field(None, max_length=500)
    debit: Decimal = Field(default=Decimal("0"), ge=0, max_digits=18, decimal_places=2)
    credit: Decimal = Field(default=Decimal("0"), ge=0, max_digits=18, decimal_places=2)


class JournalEntryLineResponse(BaseModel):
    """Schema for journal entry line response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    line_number: int
    account_id: UUID
    account_code: Optional[str] = None
    account_name: Optional[str] = None
    cost_center_id: Optional[UUID] = None
    description: Optional[str] = None
    debit: Decimal
    credit: Decimal


class JournalEntryCreate(BaseModel):
    """Schema for creating a manual journal entry."""
    entry_date: date
    description: str = Field(..., min_length=3, max_length=500)
    period_id: Optional[UUID] = None
    lines: List[JournalEntryLineCreate] = Field(..., min_length=2)


class JournalEntryVoid(BaseModel):
    """Schema for voiding a journal entry."""
    reason: str = Field(..., min_length=3, max_length=500)


class JournalEntryResponse(BaseModel):
    """Schema for journal entry response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    entry_number: str
    entry_date: date
    description: str
    source: JournalEntrySource
    status: JournalEntryStatus
    period_id: Optional[UUID] = None
    period_name: Optional[str] = None
    invoice_id: Optional[UUID] = None
    payment_id: Optional[UUID] = None
    purchase_order_id: Optional[UUID] = None
    stock_movement_id: Optional[UUID] = None
    dian_document_id: Optional[UUID] = None
    total_debit: Decimal
    total_credit: Decimal
    created_by_id: Optional[UUID] = None
    posted_at: Optional[datetime] = None
    voided_at: Optional[datetime] = None
    void_reason: Optional[str] = None
    created_at: datetime
    lines: List[JournalEntryLineResponse] = []


class JournalEntryListResponse(BaseModel):
    """Schema for paginated journal entries list."""
    items: List[JournalEntryResponse]
    total: int
    page: int
    limit: int
    total_pages: int

