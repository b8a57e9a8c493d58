"""
ProLedger - Accounting Bridge Service

Turns business events into POSTED journal entries.

Each handler:
1. Loads the tenant's AccountingConfig and does nothing unless
   auto_generate_entries is on and the roles it needs are mapped
2. Builds its lines in a fixed order, primary cash/receivable movement first
3. Posts through JournalEntryService.create_auto_entry inside a SAVEPOINT

Handlers never raise. The operation that produced the event has already
committed, and a failed posting is logged and dropped.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.models.accounting import AccountingConfig, JournalEntry, JournalEntrySource
from app.schemas.accounting_events import (
    BusinessEvent,
    CreditNoteCreatedEvent,
    CreditNoteReason,
    DebitNoteCreatedEvent,
    EventItem,
    InvoiceCancelledEvent,
    InvoiceCreatedEvent,
    PaymentCreatedEvent,
    PaymentMethod,
    PayrollApprovedEvent,
    PurchaseReceivedEvent,
    StockAdjustmentEvent,
)
from app.services.chart_of_accounts_service import ChartOfAccountsService
from app.services.journal_entry_service import JournalEntryService

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")
UNIT = Decimal("1")

# Credit note reasons that return goods to stock
RETURN_REASONS = (CreditNoteReason.DEVOLUCION_PARCIAL, CreditNoteReason.DEVOLUCION_TOTAL)


def round_unit(amount: Decimal) -> Decimal:
    """Round a tax or withholding amount to whole units, half up."""
    return Decimal(amount).quantize(UNIT, rounding=ROUND_HALF_UP)


def to_cents(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def cost_of_items(items: Iterable[EventItem]) -> Decimal:
    """Sum of quantity x unit cost for items whose cost is known."""
    total = sum(
        (item.quantity * item.cost_price for item in items if item.cost_price),
        ZERO,
    )
    return to_cents(total)


def calculate_withholding(subtotal: Decimal) -> Decimal:
    """ReteFuente on a purchase: rate x subtotal when above the minimum base."""
    if subtotal > settings.withholding_min_base:
        return round_unit(subtotal * settings.withholding_rate)
    return ZERO


def _line(account_id: uuid.UUID, description: str, debit: Decimal = ZERO, credit: Decimal = ZERO) -> Dict[str, Any]:
    return {
        "account_id": account_id,
        "description": description,
        "debit": debit,
        "credit": credit,
    }


class AccountingBridgeService:
    """Automatic posting of business events to the ledger."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.config_service = ChartOfAccountsService(db)
        self.journal_service = JournalEntryService(db)

    # =========================================================================
    # GATING
    # =========================================================================

    async def _active_config(self, tenant_id: uuid.UUID) -> Optional[AccountingConfig]:
        config = await self.config_service.get_config_for_tenant(tenant_id)
        if config is None or not config.auto_generate_entries:
            logger.debug(f"Automatic posting disabled for tenant {tenant_id}")
            return None
        return config

    @staticmethod
    def _has_roles(config: AccountingConfig, roles: Tuple[str, ...], what: str) -> bool:
        missing = [role for role in roles if getattr(config, role) is None]
        if missing:
            logger.warning(
                f"Accounting config incomplete for tenant {config.tenant_id}, "
                f"skipping {what} (unmapped: {', '.join(missing)})"
            )
            return False
        return True

    async def _post(self, tenant_id: uuid.UUID, **kwargs: Any) -> JournalEntry:
        # The savepoint discards a half-written entry without touching the caller's work
        async with self.db.begin_nested():
            return await self.journal_service.create_auto_entry(tenant_id=tenant_id, **kwargs)

    @staticmethod
    def _entry_date(event: BusinessEvent) -> date:
        return event.entry_date or date.today()

    # =========================================================================
    # SALES
    # =========================================================================

    async def on_invoice_created(self, event: InvoiceCreatedEvent) -> Optional[JournalEntry]:
        """
        Sale entry.

            DR Receivable (Cash for POS sales)  total
            CR Revenue                          subtotal
            CR Tax payable                      tax
            DR COGS                             sum(qty x cost)
            CR Inventory                        sum(qty x cost)
        """
        try:
            config = await self._active_config(event.tenant_id)
            if config is None:
                return None
            if not self._has_roles(
                config,
                ("accounts_receivable_id", "revenue_account_id", "cogs_account_id", "inventory_account_id"),
                f"invoice {event.invoice_number}",
            ):
                return None

            debit_account = (
                config.cash_account_id
                if event.is_pos_immediate and config.cash_account_id
                else config.accounts_receivable_id
            )
            tax = round_unit(event.tax)

            lines = [
                _line(debit_account, f"Factura {event.invoice_number}", debit=event.total),
                _line(config.revenue_account_id, f"Venta {event.invoice_number}", credit=event.subtotal),
            ]
            if tax > ZERO and config.tax_payable_id:
                lines.append(_line(config.tax_payable_id, f"IVA Factura {event.invoice_number}", credit=tax))

            cogs = cost_of_items(event.items)
            if cogs > ZERO:
                lines.append(_line(config.cogs_account_id, f"Costo de venta {event.invoice_number}", debit=cogs))
                lines.append(_line(config.inventory_account_id, f"Salida inventario {event.invoice_number}", credit=cogs))

            entry = await self._post(
                event.tenant_id,
                entry_date=self._entry_date(event),
                description=f"Venta - Factura {event.invoice_number}",
                source=JournalEntrySource.INVOICE_SALE,
                lines=lines,
                invoice_id=event.invoice_id,
            )
            logger.debug(f"Accounting entry generated for invoice {event.invoice_number}")
            return entry
        except Exception:
            logger.exception(f"Failed to generate accounting entry for invoice {event.invoice_number}")
            return None

    async def on_invoice_cancelled(self, event: InvoiceCancelledEvent) -> Optional[JournalEntry]:
        """
        Reversal of a sale.

            CR Receivable   total
            DR Revenue      subtotal
            DR Tax payable  tax
            CR COGS         sum(qty x cost)
            DR Inventory    sum(qty x cost)
        """
        try:
            config = await self._active_config(event.tenant_id)
            if config is None:
                return None
            if not self._has_roles(
                config,
                ("accounts_receivable_id", "revenue_account_id", "cogs_account_id", "inventory_account_id"),
                f"cancellation of invoice {event.invoice_number}",
            ):
                return None

            tax = round_unit(event.tax)
            lines = [
                _line(config.accounts_receivable_id, f"Anulacion Factura {event.invoice_number}", credit=event.total),
                _line(config.revenue_account_id, f"Anulacion venta {event.invoice_number}", debit=event.subtotal),
            ]
            if tax > ZERO and config.tax_payable_id:
                lines.append(_line(config.tax_payable_id, f"Anulacion IVA {event.invoice_number}", debit=tax))

            cogs = cost_of_items(event.items)
            if cogs > ZERO:
                lines.append(_line(config.cogs_account_id, f"Anulacion costo {event.invoice_number}", credit=cogs))
                lines.append(_line(config.inventory_account_id, f"Devolucion inventario {event.invoice_number}", debit=cogs))

            entry = await self._post(
                event.tenant_id,
                entry_date=self._entry_date(event),
                description=f"Anulacion - Factura {event.invoice_number}",
                source=JournalEntrySource.INVOICE_CANCEL,
                lines=lines,
                invoice_id=event.invoice_id,
            )
            logger.debug(f"Cancellation entry generated for invoice {event.invoice_number}")
            return entry
        except Exception:
            logger.exception(f"Failed to generate cancellation entry for invoice {event.invoice_number}")
            return None

    async def on_payment_created(self, event: PaymentCreatedEvent) -> Optional[JournalEntry]:
        """
        Customer payment.

            DR Cash (method CASH) or Bank (any other method)  amount
            CR Receivable                                     amount
        """
        try:
            config = await self._active_config(event.tenant_id)
            if config is None:
                return None
            if not self._has_roles(config, ("accounts_receivable_id",), f"payment {event.payment_id}"):
                return None

            debit_account = (
                config.cash_account_id if event.method == PaymentMethod.CASH else config.bank_account_id
            )
            if debit_account is None:
                logger.warning(f"No account mapped for payment method {event.method.value}")
                return None

            entry = await self._post(
                event.tenant_id,
                entry_date=self._entry_date(event),
                description=f"Pago recibido - Factura {event.invoice_number} ({event.method.value})",
                source=JournalEntrySource.PAYMENT,
                lines=[
                    _line(debit_account, f"Cobro {event.invoice_number}", debit=event.amount),
                    _line(config.accounts_receivable_id, f"Abono cliente {event.invoice_number}", credit=event.amount),
                ],
                payment_id=event.payment_id,
            )
            logger.debug(f"Payment entry generated for invoice {event.invoice_number}")
            return entry
        except Exception:
            logger.exception(f"Failed to generate payment entry for invoice {event.invoice_number}")
            return None

    # =========================================================================
    # PURCHASING & INVENTORY
    # =========================================================================

    async def on_purchase_received(self, event: PurchaseReceivedEvent) -> Optional[JournalEntry]:
        """
        Purchase order received.

            DR Inventory            subtotal
            DR Tax deductible       tax
            CR Withholding payable  2.5% of subtotal, above the minimum base
            CR Payable              total - withholding
        """
        try:
            config = await self._active_config(event.tenant_id)
            if config is None:
                return None
            if not self._has_roles(
                config,
                ("inventory_account_id", "accounts_payable_id"),
                f"purchase {event.purchase_order_number}",
            ):
                return None

            number = event.purchase_order_number
            tax = round_unit(event.tax)
            lines = [_line(config.inventory_account_id, f"Compra {number}", debit=event.subtotal)]
            if tax > ZERO and config.tax_deductible_id:
                lines.append(_line(config.tax_deductible_id, f"IVA compra {number}", debit=tax))

            withholding = ZERO
            if config.withholding_payable_id:
                withholding = calculate_withholding(event.subtotal)
                if withholding > ZERO:
                    lines.append(_line(
                        config.withholding_payable_id,
                        f"ReteFuente compra {number} ({settings.withholding_rate * 100:g}%)",
                        credit=withholding,
                    ))

            lines.append(_line(config.accounts_payable_id, f"Proveedor {number}", credit=event.total - withholding))

            entry = await self._post(
                event.tenant_id,
                entry_date=self._entry_date(event),
                description=f"Compra recibida - OC {number}",
                source=JournalEntrySource.PURCHASE,
                lines=lines,
                purchase_order_id=event.purchase_order_id,
            )
            logger.debug(f"Purchase entry generated for OC {number}")
            return entry
        except Exception:
            logger.exception(f"Failed to generate purchase entry for OC {event.purchase_order_number}")
            return None

    async def on_stock_adjustment(self, event: StockAdjustmentEvent) -> Optional[JournalEntry]:
        """
        Inventory count adjustment.

            surplus (qty > 0):   DR Inventory, CR Adjustment
            shortage (qty < 0):  DR Adjustment, CR Inventory
        """
        try:
            config = await self._active_config(event.tenant_id)
            if config is None:
                return None
            if not self._has_roles(
                config,
                ("inventory_account_id", "inventory_adjustment_id"),
                f"stock adjustment {event.product_sku}",
            ):
                return None

            amount = to_cents(abs(event.quantity) * event.cost_price)
            if amount == ZERO:
                return None

            sku = event.product_sku
            if event.quantity > 0:
                description = f"Ajuste sobrante - {sku} ({event.quantity} und)"
                lines = [
                    _line(config.inventory_account_id, f"Sobrante {sku}", debit=amount),
                    _line(config.inventory_adjustment_id, f"Ajuste {sku}", credit=amount),
                ]
            else:
                description = f"Ajuste faltante - {sku} ({abs(event.quantity)} und)"
                lines = [
                    _line(config.inventory_adjustment_id, f"Faltante {sku}", debit=amount),
                    _line(config.inventory_account_id, f"Ajuste {sku}", credit=amount),
                ]

            entry = await self._post(
                event.tenant_id,
                entry_date=self._entry_date(event),
                description=description,
                source=JournalEntrySource.STOCK_ADJUSTMENT,
                lines=lines,
                stock_movement_id=event.movement_id,
            )
            logger.debug(f"Adjustment entry generated for {sku}")
            return entry
        except Exception:
            logger.exception(f"Failed to generate adjustment entry for {event.product_sku}")
            return None

    # =========================================================================
    # CREDIT / DEBIT NOTES
    # =========================================================================

    async def on_credit_note_created(self, event: CreditNoteCreatedEvent) -> Optional[JournalEntry]:
        """
        Credit note against a sale.

            CR Receivable   total
            DR Revenue      subtotal
            DR Tax payable  tax
            CR COGS / DR Inventory for returned goods (return reasons only)
        """
        try:
            config = await self._active_config(event.tenant_id)
            if config is None:
                return None
            if not self._has_roles(
                config,
                ("accounts_receivable_id", "revenue_account_id"),
                f"credit note {event.note_number}",
            ):
                return None

            number = event.note_number
            tax = round_unit(event.tax)
            lines = [
                _line(config.accounts_receivable_id, f"Nota credito {number}", credit=event.total),
                _line(config.revenue_account_id, f"Devolucion venta {number}", debit=event.subtotal),
            ]
            if tax > ZERO and config.tax_payable_id:
                lines.append(_line(config.tax_payable_id, f"Devolucion IVA {number}", debit=tax))

            if (
                event.reason_code in RETURN_REASONS
                and config.cogs_account_id
                and config.inventory_account_id
            ):
                cogs = cost_of_items(event.items)
                if cogs > ZERO:
                    lines.append(_line(config.cogs_account_id, f"Devolucion costo {number}", credit=cogs))
                    lines.append(_line(config.inventory_account_id, f"Devolucion inventario {number}", debit=cogs))

            entry = await self._post(
                event.tenant_id,
                entry_date=self._entry_date(event),
                description=f"Nota credito - {number} (Factura {event.invoice_number})",
                source=JournalEntrySource.CREDIT_NOTE,
                lines=lines,
                dian_document_id=event.dian_document_id,
            )
            logger.debug(f"Accounting entry generated for credit note {number}")
            return entry
        except Exception:
            logger.exception(f"Failed to generate accounting entry for credit note {event.note_number}")
            return None

    async def on_debit_note_created(self, event: DebitNoteCreatedEvent) -> Optional[JournalEntry]:
        """
        Debit note (additional charge).

            DR Receivable   total
            CR Revenue      subtotal
            CR Tax payable  tax
        """
        try:
            config = await self._active_config(event.tenant_id)
            if config is None:
                return None
            if not self._has_roles(
                config,
                ("accounts_receivable_id", "revenue_account_id"),
                f"debit note {event.note_number}",
            ):
                return None

            number = event.note_number
            tax = round_unit(event.tax)
            lines = [
                _line(config.accounts_receivable_id, f"Nota debito {number}", debit=event.total),
                _line(config.revenue_account_id, f"Cargo adicional {number}", credit=event.subtotal),
            ]
            if tax > ZERO and config.tax_payable_id:
                lines.append(_line(config.tax_payable_id, f"IVA nota debito {number}", credit=tax))

            entry = await self._post(
                event.tenant_id,
                entry_date=self._entry_date(event),
                description=f"Nota debito - {number} (Factura {event.invoice_number})",
                source=JournalEntrySource.DEBIT_NOTE,
                lines=lines,
                dian_document_id=event.dian_document_id,
            )
            logger.debug(f"Accounting entry generated for debit note {number}")
            return entry
        except Exception:
            logger.exception(f"Failed to generate accounting entry for debit note {event.note_number}")
            return None

    # =========================================================================
    # PAYROLL
    # =========================================================================

    async def on_payroll_approved(self, event: PayrollApprovedEvent) -> Optional[JournalEntry]:
        """
        Approved payroll period.

            DR Payroll expense        total earnings
            DR Contributions          employer contributions
            DR Provisions             social benefit provisions
            CR Payroll payable        net pay
            CR Retentions             withholding tax
            CR Contributions          employee contributions
            CR Contributions          employer contributions payable
            CR Provisions             provisions payable

        Optional roles that are unmapped simply drop their lines.
        """
        try:
            config = await self._active_config(event.tenant_id)
            if config is None:
                return None
            if not self._has_roles(
                config,
                ("payroll_expense_id", "payroll_payable_id"),
                f"payroll {event.period_name}",
            ):
                return None

            name = event.period_name
            employer_contributions = (
                event.employer_health + event.employer_pension + event.employer_arl
                + event.employer_family_fund + event.employer_sena + event.employer_icbf
            )
            provisions = (
                event.provision_bonus + event.provision_severance
                + event.provision_severance_interest + event.provision_vacation
            )
            employee_contributions = event.employee_health + event.employee_pension + event.solidarity_fund
            contributions_id = config.payroll_contributions_id
            provisions_id = config.payroll_provisions_id

            lines: List[Dict[str, Any]] = []
            if event.total_earnings > ZERO:
                lines.append(_line(config.payroll_expense_id, f"Gastos personal {name}", debit=event.total_earnings))
            if employer_contributions > ZERO and contributions_id:
                lines.append(_line(contributions_id, f"Aportes patronales {name}", debit=employer_contributions))
            if provisions > ZERO and provisions_id:
                lines.append(_line(provisions_id, f"Provisiones {name}", debit=provisions))

            if event.total_net > ZERO:
                lines.append(_line(config.payroll_payable_id, f"Nomina por pagar {name}", credit=event.total_net))
            if event.withholding_tax > ZERO and config.payroll_retentions_id:
                lines.append(_line(
                    config.payroll_retentions_id, f"ReteFuente nomina {name}",
                    credit=round_unit(event.withholding_tax),
                ))
            if employee_contributions > ZERO and contributions_id:
                lines.append(_line(contributions_id, f"Aportes empleado {name}", credit=employee_contributions))
            if employer_contributions > ZERO and contributions_id:
                lines.append(_line(contributions_id, f"Aportes patronales por pagar {name}", credit=employer_contributions))
            if provisions > ZERO and provisions_id:
                lines.append(_line(provisions_id, f"Provisiones por pagar {name}", credit=provisions))

            if not lines:
                return None

            entry = await self._post(
                event.tenant_id,
                entry_date=self._entry_date(event),
                description=f"Nomina aprobada - {name}",
                source=JournalEntrySource.PAYROLL,
                lines=lines,
            )
            logger.debug(f"Payroll entry generated for {name}")
            return entry
        except Exception:
            logger.exception(f"Failed to generate payroll entry for {event.period_name}")
            return None

    # =========================================================================
    # DISPATCH
    # =========================================================================

    async def dispatch_event(self, event_type: str, payload: Dict[str, Any]) -> Optional[JournalEntry]:
        """Route a named event to its handler. Unknown or malformed events are logged and dropped."""
        route = EVENT_HANDLERS.get(event_type)
        if route is None:
            logger.warning(f"Unknown accounting event type: {event_type}")
            return None

        schema, handler_name = route
        try:
            event = schema.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Invalid payload for accounting event {event_type}: {e}")
            return None

        return await getattr(self, handler_name)(event)


EVENT_HANDLERS: Dict[str, Tuple[Type[BaseModel], str]] = {
    "invoice.created": (InvoiceCreatedEvent, "on_invoice_created"),
    "invoice.cancelled": (InvoiceCancelledEvent, "on_invoice_cancelled"),
    "payment.created": (PaymentCreatedEvent, "on_payment_created"),
    "purchase.received": (PurchaseReceivedEvent, "on_purchase_received"),
    "stock.adjusted": (StockAdjustmentEvent, "on_stock_adjustment"),
    "credit_note.created": (CreditNoteCreatedEvent, "on_credit_note_created"),
    "debit_note.created": (DebitNoteCreatedEvent, "on_debit_note_created"),
    "payroll.approved": (PayrollApprovedEvent, "on_payroll_approved"),
}


async def run_accounting_event(
    session_factory: async_sessionmaker,
    event_type: str,
    payload: Dict[str, Any],
) -> Optional[uuid.UUID]:
    """
    Post one event in its own session and commit.

    Used after the triggering operation has committed, from FastAPI
    background tasks and from the Celery worker. Returns the created entry
    id, or None when nothing was posted.
    """
    try:
        async with session_factory() as db:
            bridge = get_accounting_bridge_service(db)
            entry = await bridge.dispatch_event(event_type, payload)
            await db.commit()
            return entry.id if entry is not None else None
    except Exception:
        logger.exception(f"Accounting event {event_type} could not be committed")
        return None


def get_accounting_bridge_service(db: AsyncSession) -> AccountingBridgeService:
    """Factory function for AccountingBridgeService."""
    return AccountingBridgeService(db)
