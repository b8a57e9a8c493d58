"""
ProLedger - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin, TenantMixin
from app.models.accounting import (
    AccountType,
    AccountNature,
    AccountingPeriodStatus,
    JournalEntryStatus,
    JournalEntrySource,
    Account,
    AccountingConfig,
    AccountingPeriod,
    JournalEntry,
    JournalEntryLine,
    JournalEntryCounter,
    account_level_for_code,
)

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "TenantMixin",
    "AccountType",
    "AccountNature",
    "AccountingPeriodStatus",
    "JournalEntryStatus",
    "JournalEntrySource",
    "Account",
    "AccountingConfig",
    "AccountingPeriod",
    "JournalEntry",
    "JournalEntryLine",
    "JournalEntryCounter",
    "account_level_for_code",
]
