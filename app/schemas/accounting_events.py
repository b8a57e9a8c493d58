"""
ProLedger - Business Event Schemas

Payloads the posting bridge accepts from sales, purchasing, inventory,
DIAN and payroll modules. Amounts are plain decimals without currency.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    NEQUI = "NEQUI"
    DAVIPLATA = "DAVIPLATA"
    OTHER = "OTHER"


class CreditNoteReason(str, Enum):
    """DIAN credit note concept codes."""
    DEVOLUCION_PARCIAL = "DEVOLUCION_PARCIAL"
    ANULACION = "ANULACION"
    REBAJA = "REBAJA"
    DESCUENTO = "DESCUENTO"
    RESCISION = "RESCISION"
    OTROS = "OTROS"
    DEVOLUCION_TOTAL = "DEVOLUCION_TOTAL"


class BusinessEvent(BaseModel):
    """Fields shared by every event."""
    tenant_id: UUID
    entry_date: Optional[date] = Field(None, description="Defaults to today")


class EventItem(BaseModel):
    """Sold or returned item; cost_price is the product's unit cost when known."""
    product_id: Optional[UUID] = None
    quantity: Decimal = Field(..., gt=0)
    cost_price: Optional[Decimal] = Field(None, ge=0)


class InvoiceCreatedEvent(BusinessEvent):
    invoice_id: UUID
    invoice_number: str
    subtotal: Decimal = Field(..., ge=0)
    tax: Decimal = Field(default=Decimal("0"), ge=0)
    total: Decimal = Field(..., ge=0)
    items: List[EventItem] = []
    is_pos_immediate: bool = False
    payment_method: Optional[PaymentMethod] = None


class InvoiceCancelledEvent(BusinessEvent):
    invoice_id: UUID
    invoice_number: str
    subtotal: Decimal = Field(..., ge=0)
    tax: Decimal = Field(default=Decimal("0"), ge=0)
    total: Decimal = Field(..., ge=0)
    items: List[EventItem] = []


class PaymentCreatedEvent(BusinessEvent):
    payment_id: UUID
    invoice_number: str
    amount: Decimal = Field(..., gt=0)
    method: PaymentMethod


class PurchaseReceivedEvent(BusinessEvent):
    purchase_order_id: UUID
    purchase_order_number: str
    subtotal: Decimal = Field(..., ge=0)
    tax: Decimal = Field(default=Decimal("0"), ge=0)
    total: Decimal = Field(..., ge=0)


class StockAdjustmentEvent(BusinessEvent):
    movement_id: UUID
    product_sku: str
    quantity: Decimal
    cost_price: Decimal = Field(..., ge=0)


class CreditNoteCreatedEvent(BusinessEvent):
    dian_document_id: UUID
    note_number: str
    invoice_number: str
    subtotal: Decimal = Field(..., ge=0)
    tax: Decimal = Field(default=Decimal("0"), ge=0)
    total: Decimal = Field(..., ge=0)
    reason_code: CreditNoteReason
    items: List[EventItem] = []


class DebitNoteCreatedEvent(BusinessEvent):
    dian_document_id: UUID
    note_number: str
    invoice_number: str
    subtotal: Decimal = Field(..., ge=0)
    tax: Decimal = Field(default=Decimal("0"), ge=0)
    total: Decimal = Field(..., ge=0)


class PayrollApprovedEvent(BusinessEvent):
    """Totals of an approved payroll period."""
    period_id: UUID
    period_name: str

    total_earnings: Decimal = Field(default=Decimal("0"), ge=0)
    total_deductions: Decimal = Field(default=Decimal("0"), ge=0)
    total_net: Decimal = Field(default=Decimal("0"), ge=0)

    # Employee contributions withheld from pay
    employee_health: Decimal = Field(default=Decimal("0"), ge=0)
    employee_pension: Decimal = Field(default=Decimal("0"), ge=0)
    solidarity_fund: Decimal = Field(default=Decimal("0"), ge=0)
    withholding_tax: Decimal = Field(default=Decimal("0"), ge=0)

    # Employer contributions
    employer_health: Decimal = Field(default=Decimal("0"), ge=0)
    employer_pension: Decimal = Field(default=Decimal("0"), ge=0)
    employer_arl: Decimal = Field(default=Decimal("0"), ge=0)
    employer_family_fund: Decimal = Field(default=Decimal("0"), ge=0)
    employer_sena: Decimal = Field(default=Decimal("0"), ge=0)
    employer_icbf: Decimal = Field(default=Decimal("0"), ge=0)

    # Social benefit provisions
    provision_bonus: Decimal = Field(default=Decimal("0"), ge=0)
    provision_severance: Decimal = Field(default=Decimal("0"), ge=0)
    provision_severance_interest: Decimal = Field(default=Decimal("0"), ge=0)
    provision_vacation: Decimal = Field(default=Decimal("0"), ge=0)


class EventAccepted(BaseModel):
    """Response of the event hook; posting happens after the response."""
    event_type: str
    accepted: bool = True
    dispatch: str
