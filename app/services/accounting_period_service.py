"""
ProLedger - Accounting Period Service

Accounting periods gate manual journal entry creation. A period moves
OPEN -> CLOSED once, and only when none of its entries are still DRAFT.
"""

import logging
import uuid
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.accounting import (
    AccountingPeriod, AccountingPeriodStatus, JournalEntry, JournalEntryStatus,
)
from app.utils.error_handling import (
    InvalidDateRangeException,
    PeriodAlreadyClosedException,
    PeriodNotFoundException,
    PeriodOverlapException,
    HasDraftEntriesException,
)

logger = logging.getLogger(__name__)


class AccountingPeriodService:
    """Service for accounting period management."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_periods(self, tenant_id: uuid.UUID) -> List[AccountingPeriod]:
        """List periods, newest first, with their journal entry counts."""
        entry_counts = (
            select(
                JournalEntry.period_id.label("period_id"),
                func.count(JournalEntry.id).label("entry_count"),
            )
            .where(JournalEntry.tenant_id == tenant_id)
            .group_by(JournalEntry.period_id)
            .subquery()
        )
        result = await self.db.execute(
            select(AccountingPeriod, func.coalesce(entry_counts.c.entry_count, 0))
            .outerjoin(entry_counts, entry_counts.c.period_id == AccountingPeriod.id)
            .where(AccountingPeriod.tenant_id == tenant_id)
            .order_by(AccountingPeriod.start_date.desc())
        )

        periods = []
        for period, count in result.all():
            period.entry_count = count
            periods.append(period)
        return periods

    async def get_period(
        self,
        tenant_id: uuid.UUID,
        period_id: uuid.UUID,
        for_update: bool = False,
    ) -> AccountingPeriod:
        """Get a period by ID or raise. Optionally lock the row."""
        query = select(AccountingPeriod).where(
            and_(AccountingPeriod.id == period_id, AccountingPeriod.tenant_id == tenant_id)
        )
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)

        result = await self.db.execute(query)
        period = result.scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundException(period_id)

        period.entry_count = await self._count_entries(period.id)
        return period

    async def create_period(
        self,
        tenant_id: uuid.UUID,
        name: str,
        start_date: date,
        end_date: date,
        notes: Optional[str] = None,
    ) -> AccountingPeriod:
        """Create an OPEN period. Ranges are inclusive and must not overlap."""
        if end_date <= start_date:
            raise InvalidDateRangeException(start_date, end_date)

        result = await self.db.execute(
            select(AccountingPeriod)
            .where(
                and_(
                    AccountingPeriod.tenant_id == tenant_id,
                    AccountingPeriod.start_date <= end_date,
                    AccountingPeriod.end_date >= start_date,
                )
            )
            .order_by(AccountingPeriod.start_date)
            .limit(1)
        )
        conflict = result.scalar_one_or_none()
        if conflict is not None:
            raise PeriodOverlapException(conflict.name, conflict.start_date, conflict.end_date)

        period = AccountingPeriod(
            tenant_id=tenant_id,
            name=name,
            start_date=start_date,
            end_date=end_date,
            status=AccountingPeriodStatus.OPEN,
            notes=notes,
        )
        self.db.add(period)
        await self.db.flush()

        logger.info(f"Accounting period '{name}' created for tenant {tenant_id}")
        return period

    async def find_open_period_containing(
        self,
        tenant_id: uuid.UUID,
        day: date,
    ) -> Optional[AccountingPeriod]:
        """Return the OPEN period whose range contains the date, or None."""
        result = await self.db.execute(
            select(AccountingPeriod)
            .where(
                and_(
                    AccountingPeriod.tenant_id == tenant_id,
                    AccountingPeriod.status == AccountingPeriodStatus.OPEN,
                    AccountingPeriod.start_date <= day,
                    AccountingPeriod.end_date >= day,
                )
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def close_period(
        self,
        tenant_id: uuid.UUID,
        period_id: uuid.UUID,
        user_id: Optional[uuid.UUID],
    ) -> AccountingPeriod:
        """
        Close a period.

        The period row is locked while the DRAFT entries are counted, so a
        manual entry being created against the same period either lands
        before the count or sees the period CLOSED.
        """
        period = await self.get_period(tenant_id, period_id, for_update=True)

        if period.status == AccountingPeriodStatus.CLOSED:
            raise PeriodAlreadyClosedException(period.name)

        draft_count = await self.db.scalar(
            select(func.count(JournalEntry.id)).where(
                and_(
                    JournalEntry.tenant_id == tenant_id,
                    JournalEntry.period_id == period.id,
                    JournalEntry.status == JournalEntryStatus.DRAFT,
                )
            )
        )
        if draft_count:
            raise HasDraftEntriesException(period.name, draft_count)

        period.status = AccountingPeriodStatus.CLOSED
        period.closed_at = datetime.now(timezone.utc)
        period.closed_by_id = user_id
        await self.db.flush()

        logger.info(f"Accounting period '{period.name}' closed by {user_id}")
        return period

    async def _count_entries(self, period_id: uuid.UUID) -> int:
        count = await self.db.scalar(
            select(func.count(JournalEntry.id)).where(JournalEntry.period_id == period_id)
        )
        return count or 0
