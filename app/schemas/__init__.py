"""
ProLedger - Schemas Package

Pydantic schemas for request/response validation.
"""

from app.schemas.accounting import (
    AccountCreate,
    AccountUpdate,
    AccountResponse,
    AccountTree,
    SetupResult,
    AccountingConfigUpdate,
    AccountingConfigResponse,
    AccountingPeriodCreate,
    AccountingPeriodResponse,
    JournalEntryLineCreate,
    JournalEntryLineResponse,
    JournalEntryCreate,
    JournalEntryVoid,
    JournalEntryResponse,
    JournalEntryListResponse,
)
from app.schemas.accounting_events import (
    PaymentMethod,
    CreditNoteReason,
    EventItem,
    InvoiceCreatedEvent,
    InvoiceCancelledEvent,
    PaymentCreatedEvent,
    PurchaseReceivedEvent,
    StockAdjustmentEvent,
    CreditNoteCreatedEvent,
    DebitNoteCreatedEvent,
    PayrollApprovedEvent,
    EventAccepted,
)
