"""
ProLedger - Journal Entry Service

The single entry point for writing to the ledger:
- Manual entries: validated, numbered and stored as DRAFT
- Automatic entries (from the posting bridge): stored POSTED, period resolved by date
- Posting (DRAFT -> POSTED) and voiding (any -> VOIDED, terminal)
- Per-tenant sequential numbering backed by a locked counter row
"""

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.models.accounting import (
    Account, AccountingPeriodStatus,
    JournalEntry, JournalEntryLine, JournalEntryCounter,
    JournalEntrySource, JournalEntryStatus,
)
from app.schemas.accounting import JournalEntryCreate
from app.services.accounting_period_service import AccountingPeriodService
from app.utils.error_handling import (
    EntryAlreadyVoidedException,
    InvalidAccountsException,
    InvalidLineException,
    InvalidTransitionException,
    JournalEntryNotFoundException,
    PeriodClosedException,
    UnbalancedEntryException,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class JournalEntryService:
    """Service for journal entry creation and lifecycle."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.periods = AccountingPeriodService(db)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def _entry_query(self):
        return select(JournalEntry).options(
            selectinload(JournalEntry.lines).selectinload(JournalEntryLine.account),
            selectinload(JournalEntry.period),
        )

    async def get_entry(
        self,
        tenant_id: uuid.UUID,
        entry_id: uuid.UUID,
        for_update: bool = False,
    ) -> JournalEntry:
        """Get a journal entry with its lines or raise."""
        query = self._entry_query().where(
            and_(JournalEntry.id == entry_id, JournalEntry.tenant_id == tenant_id)
        )
        if for_update:
            query = query.with_for_update(of=JournalEntry)

        result = await self.db.execute(query.execution_options(populate_existing=True))
        entry = result.scalar_one_or_none()
        if entry is None:
            raise JournalEntryNotFoundException(entry_id)
        return entry

    async def get_entries(
        self,
        tenant_id: uuid.UUID,
        page: int = 1,
        limit: int = 20,
        source: Optional[JournalEntrySource] = None,
        status: Optional[JournalEntryStatus] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        """List journal entries, newest first, with pagination metadata."""
        conditions = [JournalEntry.tenant_id == tenant_id]
        if source:
            conditions.append(JournalEntry.source == source)
        if status:
            conditions.append(JournalEntry.status == status)
        if from_date:
            conditions.append(JournalEntry.entry_date >= from_date)
        if to_date:
            conditions.append(JournalEntry.entry_date <= to_date)

        total = await self.db.scalar(
            select(func.count(JournalEntry.id)).where(and_(*conditions))
        ) or 0

        result = await self.db.execute(
            self._entry_query()
            .where(and_(*conditions))
            .order_by(JournalEntry.entry_date.desc(), JournalEntry.entry_number.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = list(result.scalars().all())

        return {
            "items": items,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": (total + limit - 1) // limit if total else 0,
        }

    # =========================================================================
    # CREATION
    # =========================================================================

    async def create_entry(
        self,
        tenant_id: uuid.UUID,
        data: JournalEntryCreate,
        user_id: Optional[uuid.UUID] = None,
    ) -> JournalEntry:
        """
        Create a manual journal entry in DRAFT.

        Checks run in a fixed order: balance, one-sided lines, period
        (exists and OPEN), then accounts (exist, same tenant, active).
        """
        lines = [line.model_dump() for line in data.lines]

        total_debit, total_credit = self._check_balance(lines)
        self._check_lines(lines)

        if data.period_id:
            period = await self.periods.get_period(tenant_id, data.period_id, for_update=True)
            if period.status != AccountingPeriodStatus.OPEN:
                raise PeriodClosedException(period.name)

        await self._check_accounts(tenant_id, lines)

        entry = await self._persist(
            tenant_id=tenant_id,
            entry_date=data.entry_date,
            description=data.description,
            source=JournalEntrySource.MANUAL,
            status=JournalEntryStatus.DRAFT,
            period_id=data.period_id,
            lines=lines,
            total_debit=total_debit,
            total_credit=total_credit,
            created_by_id=user_id,
        )

        logger.info(f"Manual journal entry created: {entry.entry_number} for tenant {tenant_id}")
        return await self.get_entry(tenant_id, entry.id)

    async def create_auto_entry(
        self,
        tenant_id: uuid.UUID,
        entry_date: date,
        description: str,
        source: JournalEntrySource,
        lines: List[Dict[str, Any]],
        invoice_id: Optional[uuid.UUID] = None,
        payment_id: Optional[uuid.UUID] = None,
        purchase_order_id: Optional[uuid.UUID] = None,
        stock_movement_id: Optional[uuid.UUID] = None,
        dian_document_id: Optional[uuid.UUID] = None,
    ) -> JournalEntry:
        """
        Create a POSTED entry on behalf of the posting bridge.

        The tenant comes from the caller. The period is resolved from the
        date; when no OPEN period contains it the entry is stored without one.
        """
        total_debit, total_credit = self._check_balance(lines, message="auto entry out of balance")
        self._check_lines(lines)

        period = await self.periods.find_open_period_containing(tenant_id, entry_date)

        entry = await self._persist(
            tenant_id=tenant_id,
            entry_date=entry_date,
            description=description,
            source=source,
            status=JournalEntryStatus.POSTED,
            period_id=period.id if period else None,
            lines=lines,
            total_debit=total_debit,
            total_credit=total_credit,
            posted_at=datetime.now(timezone.utc),
            invoice_id=invoice_id,
            payment_id=payment_id,
            purchase_order_id=purchase_order_id,
            stock_movement_id=stock_movement_id,
            dian_document_id=dian_document_id,
        )

        logger.debug(f"Auto journal entry {entry.entry_number} ({source.value}) for tenant {tenant_id}")
        return await self.get_entry(tenant_id, entry.id)

    async def _persist(
        self,
        tenant_id: uuid.UUID,
        lines: List[Dict[str, Any]],
        **fields: Any,
    ) -> JournalEntry:
        """Number and insert the entry together with all of its lines."""
        entry = JournalEntry(
            tenant_id=tenant_id,
            entry_number=await self._next_entry_number(tenant_id),
            **fields,
        )
        entry.lines = [
            JournalEntryLine(
                line_number=index,
                account_id=line["account_id"],
                cost_center_id=line.get("cost_center_id"),
                description=line.get("description"),
                debit=Decimal(line.get("debit") or ZERO),
                credit=Decimal(line.get("credit") or ZERO),
            )
            for index, line in enumerate(lines, start=1)
        ]
        self.db.add(entry)
        await self.db.flush()
        return entry

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def post_entry(self, tenant_id: uuid.UUID, entry_id: uuid.UUID) -> JournalEntry:
        """DRAFT -> POSTED."""
        entry = await self.get_entry(tenant_id, entry_id, for_update=True)

        if entry.status != JournalEntryStatus.DRAFT:
            raise InvalidTransitionException(
                entry.entry_number, entry.status.value, JournalEntryStatus.POSTED.value,
            )

        entry.status = JournalEntryStatus.POSTED
        entry.posted_at = datetime.now(timezone.utc)
        await self.db.flush()

        logger.info(f"Journal entry {entry.entry_number} posted")
        return entry

    async def void_entry(
        self,
        tenant_id: uuid.UUID,
        entry_id: uuid.UUID,
        reason: str,
    ) -> JournalEntry:
        """
        Mark an entry VOIDED from DRAFT or POSTED.

        No reversing entry is generated; consumers summing the ledger must
        exclude VOIDED entries.
        """
        entry = await self.get_entry(tenant_id, entry_id, for_update=True)

        if entry.status == JournalEntryStatus.VOIDED:
            raise EntryAlreadyVoidedException(entry.entry_number)

        entry.status = JournalEntryStatus.VOIDED
        entry.voided_at = datetime.now(timezone.utc)
        entry.void_reason = reason
        await self.db.flush()

        logger.info(f"Journal entry {entry.entry_number} voided: {reason}")
        return entry

    # =========================================================================
    # VALIDATION
    # =========================================================================

    @staticmethod
    def _check_balance(
        lines: List[Dict[str, Any]],
        message: Optional[str] = None,
    ) -> Tuple[Decimal, Decimal]:
        total_debit = sum((Decimal(line.get("debit") or ZERO) for line in lines), ZERO)
        total_credit = sum((Decimal(line.get("credit") or ZERO) for line in lines), ZERO)

        if abs(total_debit - total_credit) > settings.balance_tolerance:
            if message:
                message = f"{message}: debits {total_debit}, credits {total_credit}"
            raise UnbalancedEntryException(total_debit, total_credit, message=message)
        return total_debit, total_credit

    @staticmethod
    def _check_lines(lines: List[Dict[str, Any]]) -> None:
        for number, line in enumerate(lines, start=1):
            debit = Decimal(line.get("debit") or ZERO)
            credit = Decimal(line.get("credit") or ZERO)
            if (debit > ZERO) == (credit > ZERO):
                raise InvalidLineException(number, debit, credit)

    async def _check_accounts(self, tenant_id: uuid.UUID, lines: List[Dict[str, Any]]) -> None:
        """Batch lookup over the distinct account ids of the entry."""
        account_ids = {line["account_id"] for line in lines}
        result = await self.db.execute(
            select(Account.id).where(
                and_(
                    Account.tenant_id == tenant_id,
                    Account.id.in_(account_ids),
                    Account.is_active == True,  # noqa: E712
                )
            )
        )
        found = set(result.scalars().all())
        missing = account_ids - found
        if missing:
            raise InvalidAccountsException(missing)

    # =========================================================================
    # NUMBERING
    # =========================================================================

    async def _next_entry_number(self, tenant_id: uuid.UUID) -> str:
        """
        Allocate the next entry number for the tenant.

        The counter row is held FOR UPDATE until the caller's transaction
        ends, so concurrent writers for one tenant get distinct numbers. On
        first use the counter starts from the highest number already stored.
        """
        counter = await self._lock_counter(tenant_id)

        if counter is None:
            start = await self._highest_existing_number(tenant_id)
            try:
                async with self.db.begin_nested():
                    counter = JournalEntryCounter(tenant_id=tenant_id, last_value=start)
                    self.db.add(counter)
                    await self.db.flush()
            except IntegrityError:
                # Another writer created the counter first
                logger.debug(f"Journal entry counter race for tenant {tenant_id}, retrying")
                counter = await self._lock_counter(tenant_id)
                if counter is None:
                    raise

        counter.last_value += 1
        await self.db.flush()
        return f"{settings.journal_entry_prefix}-{counter.last_value:05d}"

    async def _lock_counter(self, tenant_id: uuid.UUID) -> Optional[JournalEntryCounter]:
        result = await self.db.execute(
            select(JournalEntryCounter)
            .where(JournalEntryCounter.tenant_id == tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _highest_existing_number(self, tenant_id: uuid.UUID) -> int:
        prefix = f"{settings.journal_entry_prefix}-"
        result = await self.db.execute(
            select(JournalEntry.entry_number)
            .where(
                and_(
                    JournalEntry.tenant_id == tenant_id,
                    JournalEntry.entry_number.like(f"{prefix}%"),
                )
            )
            .order_by(
                func.length(JournalEntry.entry_number).desc(),
                JournalEntry.entry_number.desc(),
            )
            .limit(1)
        )
        last_number = result.scalar_one_or_none()
        if not last_number:
            return 0
        try:
            return int(last_number[len(prefix):])
        except ValueError:
            logger.warning(f"Unparseable journal entry number {last_number!r} for tenant {tenant_id}")
            return 0
