"""
ProLedger - Journal Entry Service Tests

Manual entry validation, automatic entries, lifecycle and numbering.
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from app.models.accounting import JournalEntrySource, JournalEntryStatus
from app.schemas.accounting import AccountUpdate, JournalEntryCreate, JournalEntryLineCreate
from app.services.accounting_period_service import AccountingPeriodService
from app.services.chart_of_accounts_service import ChartOfAccountsService
from app.services.journal_entry_service import JournalEntryService
from app.utils.error_handling import (
    EntryAlreadyVoidedException,
    InvalidAccountsException,
    InvalidLineException,
    InvalidTransitionException,
    JournalEntryNotFoundException,
    PeriodClosedException,
    PeriodNotFoundException,
    UnbalancedEntryException,
)


def _entry(debit_account, credit_account, debit="500000.00", credit=None, period=None, day=date(2026, 1, 10)):
    return JournalEntryCreate(
        entry_date=day,
        description="Aporte de capital",
        period_id=period.id if period else None,
        lines=[
            JournalEntryLineCreate(account_id=debit_account.id, debit=Decimal(debit)),
            JournalEntryLineCreate(account_id=credit_account.id, credit=Decimal(credit or debit)),
        ],
    )


class TestCreateEntry:
    """Test cases for manual entries."""

    @pytest.mark.asyncio
    async def test_create_draft_entry(self, db_session, accounts, open_period):
        tenant_id = open_period.tenant_id
        service = JournalEntryService(db_session)
        user_id = uuid4()

        entry = await service.create_entry(
            tenant_id, _entry(accounts["111005"], accounts["3105"], period=open_period), user_id=user_id,
        )

        assert entry.entry_number == "CE-00001"
        assert entry.status == JournalEntryStatus.DRAFT
        assert entry.source == JournalEntrySource.MANUAL
        assert entry.total_debit == entry.total_credit == Decimal("500000.00")
        assert entry.created_by_id == user_id
        assert entry.posted_at is None
        assert entry.period_name == "Enero 2026"
        assert [line.line_number for line in entry.lines] == [1, 2]
        assert entry.lines[0].account_code == "111005"
        assert entry.lines[1].account_name == "Capital Suscrito y Pagado"

    @pytest.mark.asyncio
    async def test_entry_without_period(self, db_session, accounts):
        tenant_id = accounts["111005"].tenant_id
        service = JournalEntryService(db_session)

        entry = await service.create_entry(tenant_id, _entry(accounts["111005"], accounts["3105"]))

        assert entry.period_id is None
        assert entry.period_name is None

    @pytest.mark.asyncio
    async def test_unbalanced_entry(self, db_session, accounts):
        tenant_id = accounts["111005"].tenant_id
        service = JournalEntryService(db_session)

        with pytest.raises(UnbalancedEntryException) as exc_info:
            await service.create_entry(
                tenant_id, _entry(accounts["111005"], accounts["3105"], debit="100.00", credit="99.98"),
            )

        assert exc_info.value.total_debit == Decimal("100.00")
        assert exc_info.value.total_credit == Decimal("99.98")

    @pytest.mark.asyncio
    async def test_one_cent_difference_is_tolerated(self, db_session, accounts):
        tenant_id = accounts["111005"].tenant_id
        service = JournalEntryService(db_session)

        entry = await service.create_entry(
            tenant_id, _entry(accounts["111005"], accounts["3105"], debit="100.00", credit="99.99"),
        )

        assert entry.total_debit - entry.total_credit == Decimal("0.01")

    @pytest.mark.asyncio
    async def test_two_sided_line_rejected(self, db_session, accounts):
        tenant_id = accounts["111005"].tenant_id
        service = JournalEntryService(db_session)
        data = JournalEntryCreate(
            entry_date=date(2026, 1, 10),
            description="Linea invalida",
            lines=[
                JournalEntryLineCreate(account_id=accounts["111005"].id, debit=Decimal("10"), credit=Decimal("10")),
                JournalEntryLineCreate(account_id=accounts["3105"].id, debit=Decimal("0"), credit=Decimal("0")),
            ],
        )

        with pytest.raises(InvalidLineException):
            await service.create_entry(tenant_id, data)

    @pytest.mark.asyncio
    async def test_zero_line_rejected(self, db_session, accounts):
        tenant_id = accounts["111005"].tenant_id
        service = JournalEntryService(db_session)
        data = JournalEntryCreate(
            entry_date=date(2026, 1, 10),
            description="Linea en cero",
            lines=[
                JournalEntryLineCreate(account_id=accounts["111005"].id, debit=Decimal("10")),
                JournalEntryLineCreate(account_id=accounts["3105"].id, credit=Decimal("10")),
                JournalEntryLineCreate(account_id=accounts["5120"].id),
            ],
        )

        with pytest.raises(InvalidLineException) as exc_info:
            await service.create_entry(tenant_id, data)

        assert exc_info.value.details["line_number"] == 3

    @pytest.mark.asyncio
    async def test_balance_checked_before_period(self, db_session, accounts):
        tenant_id = accounts["111005"].tenant_id
        service = JournalEntryService(db_session)
        data = _entry(accounts["111005"], accounts["3105"], debit="10", credit="20")
        data.period_id = uuid4()

        with pytest.raises(UnbalancedEntryException):
            await service.create_entry(tenant_id, data)

    @pytest.mark.asyncio
    async def test_unknown_period(self, db_session, accounts):
        tenant_id = accounts["111005"].tenant_id
        service = JournalEntryService(db_session)
        data = _entry(accounts["111005"], accounts["3105"])
        data.period_id = uuid4()

        with pytest.raises(PeriodNotFoundException):
            await service.create_entry(tenant_id, data)

    @pytest.mark.asyncio
    async def test_closed_period_rejected(self, db_session, accounts, open_period):
        tenant_id = open_period.tenant_id
        await AccountingPeriodService(db_session).close_period(tenant_id, open_period.id, None)
        service = JournalEntryService(db_session)

        with pytest.raises(PeriodClosedException):
            await service.create_entry(
                tenant_id, _entry(accounts["111005"], accounts["3105"], period=open_period),
            )

    @pytest.mark.asyncio
    async def test_inactive_account_rejected(self, db_session, accounts):
        tenant_id = accounts["111005"].tenant_id
        await ChartOfAccountsService(db_session).update_account(
            tenant_id, accounts["3105"].id, AccountUpdate(is_active=False),
        )
        service = JournalEntryService(db_session)

        with pytest.raises(InvalidAccountsException) as exc_info:
            await service.create_entry(tenant_id, _entry(accounts["111005"], accounts["3105"]))

        assert exc_info.value.details["account_ids"] == [str(accounts["3105"].id)]

    @pytest.mark.asyncio
    async def test_foreign_account_rejected(self, db_session, accounts):
        tenant_id = accounts["111005"].tenant_id
        other_tenant = uuid4()
        chart = ChartOfAccountsService(db_session)
        await chart.setup_chart_of_accounts(other_tenant)
        foreign = await chart.get_account_by_code(other_tenant, "3105")
        service = JournalEntryService(db_session)

        with pytest.raises(InvalidAccountsException):
            await service.create_entry(tenant_id, _entry(accounts["111005"], foreign))


class TestAutoEntry:
    """Test cases for entries created by the posting bridge."""

    @pytest.mark.asyncio
    async def test_auto_entry_is_posted_in_containing_period(self, db_session, accounts, open_period):
        tenant_id = open_period.tenant_id
        service = JournalEntryService(db_session)
        invoice_id = uuid4()

        entry = await service.create_auto_entry(
            tenant_id=tenant_id,
            entry_date=date(2026, 1, 20),
            description="Venta - Factura FV-1",
            source=JournalEntrySource.INVOICE_SALE,
            lines=[
                {"account_id": accounts["130505"].id, "debit": Decimal("119000"), "credit": Decimal("0")},
                {"account_id": accounts["413505"].id, "debit": Decimal("0"), "credit": Decimal("100000")},
                {"account_id": accounts["240805"].id, "debit": Decimal("0"), "credit": Decimal("19000")},
            ],
            invoice_id=invoice_id,
        )

        assert entry.status == JournalEntryStatus.POSTED
        assert entry.posted_at is not None
        assert entry.period_id == open_period.id
        assert entry.invoice_id == invoice_id
        assert entry.created_by_id is None
        assert len(entry.lines) == 3

    @pytest.mark.asyncio
    async def test_auto_entry_outside_periods(self, db_session, accounts, open_period):
        tenant_id = open_period.tenant_id
        service = JournalEntryService(db_session)

        entry = await service.create_auto_entry(
            tenant_id=tenant_id,
            entry_date=date(2026, 6, 1),
            description="Pago recibido",
            source=JournalEntrySource.PAYMENT,
            lines=[
                {"account_id": accounts["110505"].id, "debit": Decimal("5000")},
                {"account_id": accounts["130505"].id, "credit": Decimal("5000")},
            ],
        )

        assert entry.period_id is None

    @pytest.mark.asyncio
    async def test_auto_entry_unbalanced(self, db_session, accounts):
        tenant_id = accounts["110505"].tenant_id
        service = JournalEntryService(db_session)

        with pytest.raises(UnbalancedEntryException) as exc_info:
            await service.create_auto_entry(
                tenant_id=tenant_id,
                entry_date=date(2026, 1, 5),
                description="Descuadre",
                source=JournalEntrySource.PAYMENT,
                lines=[
                    {"account_id": accounts["110505"].id, "debit": Decimal("5000")},
                    {"account_id": accounts["130505"].id, "credit": Decimal("4000")},
                ],
            )

        assert exc_info.value.message.startswith("auto entry out of balance")


class TestEntryLifecycle:
    """Test cases for posting and voiding."""

    @pytest.mark.asyncio
    async def test_post_draft(self, db_session, accounts):
        tenant_id = accounts["111005"].tenant_id
        service = JournalEntryService(db_session)
        entry = await service.create_entry(tenant_id, _entry(accounts["111005"], accounts["3105"]))

        posted = await service.post_entry(tenant_id, entry.id)

        assert posted.status == JournalEntryStatus.POSTED
        assert posted.posted_at is not None

    @pytest.mark.asyncio
    async def test_post_twice(self, db_session, accounts):
        tenant_id = accounts["111005"].tenant_id
        service = JournalEntryService(db_session)
        entry = await service.create_entry(tenant_id, _entry(accounts["111005"], accounts["3105"]))
        await service.post_entry(tenant_id, entry.id)

        with pytest.raises(InvalidTransitionException):
            await service.post_entry(tenant_id, entry.id)

    @pytest.mark.asyncio
    async def test_void_posted_entry(self, db_session, accounts):
        tenant_id = accounts["111005"].tenant_id
        service = JournalEntryService(db_session)
        entry = await service.create_entry(tenant_id, _entry(accounts["111005"], accounts["3105"]))
        await service.post_entry(tenant_id, entry.id)

        voided = await service.void_entry(tenant_id, entry.id, "Registro duplicado")

        assert voided.status == JournalEntryStatus.VOIDED
        assert voided.voided_at is not None
        assert voided.void_reason == "Registro duplicado"

    @pytest.mark.asyncio
    async def test_voided_is_terminal(self, db_session, accounts):
        tenant_id = accounts["111005"].tenant_id
        service = JournalEntryService(db_session)
        entry = await service.create_entry(tenant_id, _entry(accounts["111005"], accounts["3105"]))
        await service.void_entry(tenant_id, entry.id, "Error de digitacion")

        with pytest.raises(EntryAlreadyVoidedException):
            await service.void_entry(tenant_id, entry.id, "Otra vez")

        with pytest.raises(InvalidTransitionException):
            await service.post_entry(tenant_id, entry.id)

    @pytest.mark.asyncio
    async def test_get_entry_of_other_tenant(self, db_session, accounts):
        tenant_id = accounts["111005"].tenant_id
        service = JournalEntryService(db_session)
        entry = await service.create_entry(tenant_id, _entry(accounts["111005"], accounts["3105"]))

        with pytest.raises(JournalEntryNotFoundException):
            await service.get_entry(uuid4(), entry.id)


class TestNumbering:
    """Test cases for sequential entry numbers."""

    @pytest.mark.asyncio
    async def test_numbers_are_sequential(self, db_session, accounts):
        tenant_id = accounts["111005"].tenant_id
        service = JournalEntryService(db_session)

        numbers = []
        for _ in range(3):
            entry = await service.create_entry(tenant_id, _entry(accounts["111005"], accounts["3105"]))
            numbers.append(entry.entry_number)

        assert numbers == ["CE-00001", "CE-00002", "CE-00003"]

    @pytest.mark.asyncio
    async def test_manual_and_auto_share_sequence(self, db_session, accounts):
        tenant_id = accounts["111005"].tenant_id
        service = JournalEntryService(db_session)

        manual = await service.create_entry(tenant_id, _entry(accounts["111005"], accounts["3105"]))
        auto = await service.create_auto_entry(
            tenant_id=tenant_id,
            entry_date=date(2026, 1, 11),
            description="Pago recibido",
            source=JournalEntrySource.PAYMENT,
            lines=[
                {"account_id": accounts["110505"].id, "debit": Decimal("10")},
                {"account_id": accounts["130505"].id, "credit": Decimal("10")},
            ],
        )

        assert manual.entry_number == "CE-00001"
        assert auto.entry_number == "CE-00002"

    @pytest.mark.asyncio
    async def test_sequences_are_per_tenant(self, db_session, accounts):
        tenant_id = accounts["111005"].tenant_id
        other_tenant = uuid4()
        chart = ChartOfAccountsService(db_session)
        await chart.setup_chart_of_accounts(other_tenant)
        bank = await chart.get_account_by_code(other_tenant, "111005")
        capital = await chart.get_account_by_code(other_tenant, "3105")
        service = JournalEntryService(db_session)

        await service.create_entry(tenant_id, _entry(accounts["111005"], accounts["3105"]))
        await service.create_entry(tenant_id, _entry(accounts["111005"], accounts["3105"]))
        theirs = await service.create_entry(other_tenant, _entry(bank, capital))

        assert theirs.entry_number == "CE-00001"


class TestListEntries:
    """Test cases for journal listing."""

    @pytest.mark.asyncio
    async def test_pagination_and_order(self, db_session, accounts):
        tenant_id = accounts["111005"].tenant_id
        service = JournalEntryService(db_session)
        for day in (5, 20, 12):
            await service.create_entry(
                tenant_id, _entry(accounts["111005"], accounts["3105"], day=date(2026, 1, day)),
            )

        first_page = await service.get_entries(tenant_id, page=1, limit=2)
        second_page = await service.get_entries(tenant_id, page=2, limit=2)

        assert first_page["total"] == 3
        assert first_page["total_pages"] == 2
        assert [e.entry_date.day for e in first_page["items"]] == [20, 12]
        assert [e.entry_date.day for e in second_page["items"]] == [5]

    @pytest.mark.asyncio
    async def test_filters(self, db_session, accounts):
        tenant_id = accounts["111005"].tenant_id
        service = JournalEntryService(db_session)
        draft = await service.create_entry(
            tenant_id, _entry(accounts["111005"], accounts["3105"], day=date(2026, 1, 5)),
        )
        await service.create_auto_entry(
            tenant_id=tenant_id,
            entry_date=date(2026, 2, 5),
            description="Pago recibido",
            source=JournalEntrySource.PAYMENT,
            lines=[
                {"account_id": accounts["110505"].id, "debit": Decimal("10")},
                {"account_id": accounts["130505"].id, "credit": Decimal("10")},
            ],
        )

        drafts = await service.get_entries(tenant_id, status=JournalEntryStatus.DRAFT)
        payments = await service.get_entries(tenant_id, source=JournalEntrySource.PAYMENT)
        january = await service.get_entries(
            tenant_id, from_date=date(2026, 1, 1), to_date=date(2026, 1, 31),
        )
        empty = await service.get_entries(uuid4())

        assert [e.id for e in drafts["items"]] == [draft.id]
        assert payments["total"] == 1
        assert january["total"] == 1
        assert empty["total"] == 0
        assert empty["total_pages"] == 0
