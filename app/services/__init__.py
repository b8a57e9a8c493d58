"""
ProLedger - Services Package

Business logic services.
"""

from app.services.chart_of_accounts_service import ChartOfAccountsService
from app.services.accounting_period_service import AccountingPeriodService
from app.services.journal_entry_service import JournalEntryService
from app.services.accounting_bridge_service import (
    AccountingBridgeService,
    get_accounting_bridge_service,
    run_accounting_event,
)

__all__ = [
    "ChartOfAccountsService",
    "AccountingPeriodService",
    "JournalEntryService",
    "AccountingBridgeService",
    "get_accounting_bridge_service",
    "run_accounting_event",
]
