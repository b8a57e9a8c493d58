"""
ProLedger - Accounting Router

API endpoints for the Chart of Accounts, accounting configuration,
accounting periods and journal entries, plus the inbound hook other modules
use to report business events to the posting bridge.
"""

import logging
import uuid
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Path, Query, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.database import get_async_session, get_session_factory
from app.dependencies import get_current_user_id
from app.models.accounting import AccountType, JournalEntrySource, JournalEntryStatus
from app.schemas.accounting import (
    AccountCreate, AccountUpdate, AccountResponse, AccountTree,
    SetupResult,
    AccountingConfigUpdate, AccountingConfigResponse,
    AccountingPeriodCreate, AccountingPeriodResponse,
    JournalEntryCreate, JournalEntryVoid, JournalEntryResponse,
    JournalEntryListResponse,
)
from app.schemas.accounting_events import EventAccepted
from app.services.accounting_bridge_service import EVENT_HANDLERS, run_accounting_event
from app.services.accounting_period_service import AccountingPeriodService
from app.services.chart_of_accounts_service import ChartOfAccountsService
from app.services.journal_entry_service import JournalEntryService
from app.utils.error_handling import NotFoundException, ValidationException

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/tenants/{tenant_id}/accounting", tags=["Accounting"])


# ============================================================================
# SETUP & CONFIGURATION
# ============================================================================

@router.post("/setup", response_model=SetupResult, status_code=status.HTTP_201_CREATED)
async def setup_accounting(
    tenant_id: uuid.UUID = Path(..., description="Tenant ID"),
    db: AsyncSession = Depends(get_async_session),
):
    """Create the PUC chart of accounts and default role mappings for a tenant."""
    service = ChartOfAccountsService(db)
    result = await service.setup_chart_of_accounts(tenant_id)
    await db.commit()
    return result


@router.get("/config", response_model=AccountingConfigResponse)
async def get_accounting_config(
    tenant_id: uuid.UUID = Path(..., description="Tenant ID"),
    db: AsyncSession = Depends(get_async_session),
):
    service = ChartOfAccountsService(db)
    config = await service.get_config(tenant_id)
    if config is None:
        raise NotFoundException(
            "AccountingConfig",
            message="Accounting is not configured for this tenant",
        )
    return config


@router.patch("/config", response_model=AccountingConfigResponse)
async def update_accounting_config(
    tenant_id: uuid.UUID = Path(..., description="Tenant ID"),
    data: AccountingConfigUpdate = ...,
    db: AsyncSession = Depends(get_async_session),
):
    """Map account roles and toggle automatic posting."""
    service = ChartOfAccountsService(db)
    config = await service.update_config(tenant_id, data)
    await db.commit()
    return config


# ============================================================================
# CHART OF ACCOUNTS
# ============================================================================

@router.get("/accounts", response_model=List[AccountResponse])
async def list_accounts(
    tenant_id: uuid.UUID = Path(..., description="Tenant ID"),
    search: Optional[str] = Query(None, description="Match on code or name"),
    type: Optional[AccountType] = Query(None, description="Filter by account type"),
    active_only: bool = Query(False, description="Only active accounts"),
    db: AsyncSession = Depends(get_async_session),
):
    service = ChartOfAccountsService(db)
    return await service.get_accounts(
        tenant_id,
        search=search,
        account_type=type,
        active_only=active_only,
    )


@router.get("/accounts/tree", response_model=List[AccountTree])
async def get_account_tree(
    tenant_id: uuid.UUID = Path(..., description="Tenant ID"),
    db: AsyncSession = Depends(get_async_session),
):
    """Chart of accounts as a hierarchy of root accounts and their children."""
    service = ChartOfAccountsService(db)
    nodes = await service.get_account_tree(tenant_id)

    def to_tree(node: Dict[str, Any]) -> AccountTree:
        account = AccountResponse.model_validate(node["account"])
        return AccountTree(
            **account.model_dump(),
            children=[to_tree(child) for child in node["children"]],
        )

    return [to_tree(node) for node in nodes]


@router.get("/accounts/{account_id}", response_model=AccountResponse)
async def get_account(
    tenant_id: uuid.UUID = Path(..., description="Tenant ID"),
    account_id: uuid.UUID = Path(..., description="Account ID"),
    db: AsyncSession = Depends(get_async_session),
):
    service = ChartOfAccountsService(db)
    return await service.get_account(tenant_id, account_id)


@router.post("/accounts", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def create_account(
    tenant_id: uuid.UUID = Path(..., description="Tenant ID"),
    data: AccountCreate = ...,
    db: AsyncSession = Depends(get_async_session),
):
    service = ChartOfAccountsService(db)
    account = await service.create_account(tenant_id, data)
    await db.commit()
    return account


@router.patch("/accounts/{account_id}", response_model=AccountResponse)
async def update_account(
    tenant_id: uuid.UUID = Path(..., description="Tenant ID"),
    account_id: uuid.UUID = Path(..., description="Account ID"),
    data: AccountUpdate = ...,
    db: AsyncSession = Depends(get_async_session),
):
    service = ChartOfAccountsService(db)
    account = await service.update_account(tenant_id, account_id, data)
    await db.commit()
    return account


# ============================================================================
# ACCOUNTING PERIODS
# ============================================================================

@router.get("/periods", response_model=List[AccountingPeriodResponse])
async def list_periods(
    tenant_id: uuid.UUID = Path(..., description="Tenant ID"),
    db: AsyncSession = Depends(get_async_session),
):
    service = AccountingPeriodService(db)
    return await service.get_periods(tenant_id)


@router.get("/periods/{period_id}", response_model=AccountingPeriodResponse)
async def get_period(
    tenant_id: uuid.UUID = Path(..., description="Tenant ID"),
    period_id: uuid.UUID = Path(..., description="Period ID"),
    db: AsyncSession = Depends(get_async_session),
):
    service = AccountingPeriodService(db)
    return await service.get_period(tenant_id, period_id)


@router.post("/periods", response_model=AccountingPeriodResponse, status_code=status.HTTP_201_CREATED)
async def create_period(
    tenant_id: uuid.UUID = Path(..., description="Tenant ID"),
    data: AccountingPeriodCreate = ...,
    db: AsyncSession = Depends(get_async_session),
):
    service = AccountingPeriodService(db)
    period = await service.create_period(
        tenant_id,
        name=data.name,
        start_date=data.start_date,
        end_date=data.end_date,
        notes=data.notes,
    )
    await db.commit()
    return period


@router.post("/periods/{period_id}/close", response_model=AccountingPeriodResponse)
async def close_period(
    tenant_id: uuid.UUID = Path(..., description="Tenant ID"),
    period_id: uuid.UUID = Path(..., description="Period ID"),
    db: AsyncSession = Depends(get_async_session),
    user_id: Optional[uuid.UUID] = Depends(get_current_user_id),
):
    """Close a period. Refused while any of its entries is still DRAFT."""
    service = AccountingPeriodService(db)
    period = await service.close_period(tenant_id, period_id, user_id)
    await db.commit()
    return period


# ============================================================================
# JOURNAL ENTRIES
# ============================================================================

@router.get("/journal-entries", response_model=JournalEntryListResponse)
async def list_journal_entries(
    tenant_id: uuid.UUID = Path(..., description="Tenant ID"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Page size"),
    source: Optional[JournalEntrySource] = Query(None, description="Filter by source"),
    status: Optional[JournalEntryStatus] = Query(None, description="Filter by status"),
    from_date: Optional[date] = Query(None, description="Filter from date"),
    to_date: Optional[date] = Query(None, description="Filter to date"),
    db: AsyncSession = Depends(get_async_session),
):
    """Get journal entries with filtering and pagination."""
    service = JournalEntryService(db)
    return await service.get_entries(
        tenant_id,
        page=page,
        limit=limit,
        source=source,
        status=status,
        from_date=from_date,
        to_date=to_date,
    )


@router.get("/journal-entries/{entry_id}", response_model=JournalEntryResponse)
async def get_journal_entry(
    tenant_id: uuid.UUID = Path(..., description="Tenant ID"),
    entry_id: uuid.UUID = Path(..., description="Journal Entry ID"),
    db: AsyncSession = Depends(get_async_session),
):
    service = JournalEntryService(db)
    return await service.get_entry(tenant_id, entry_id)


@router.post("/journal-entries", response_model=JournalEntryResponse, status_code=status.HTTP_201_CREATED)
async def create_journal_entry(
    tenant_id: uuid.UUID = Path(..., description="Tenant ID"),
    data: JournalEntryCreate = ...,
    db: AsyncSession = Depends(get_async_session),
    user_id: Optional[uuid.UUID] = Depends(get_current_user_id),
):
    """Create a manual journal entry in DRAFT."""
    service = JournalEntryService(db)
    entry = await service.create_entry(tenant_id, data, user_id=user_id)
    await db.commit()
    return entry


@router.post("/journal-entries/{entry_id}/post", response_model=JournalEntryResponse)
async def post_journal_entry(
    tenant_id: uuid.UUID = Path(..., description="Tenant ID"),
    entry_id: uuid.UUID = Path(..., description="Journal Entry ID"),
    db: AsyncSession = Depends(get_async_session),
):
    service = JournalEntryService(db)
    entry = await service.post_entry(tenant_id, entry_id)
    await db.commit()
    return entry


@router.post("/journal-entries/{entry_id}/void", response_model=JournalEntryResponse)
async def void_journal_entry(
    tenant_id: uuid.UUID = Path(..., description="Tenant ID"),
    entry_id: uuid.UUID = Path(..., description="Journal Entry ID"),
    data: JournalEntryVoid = ...,
    db: AsyncSession = Depends(get_async_session),
):
    """Void an entry. VOIDED is terminal and no reversing entry is created."""
    service = JournalEntryService(db)
    entry = await service.void_entry(tenant_id, entry_id, data.reason)
    await db.commit()
    return entry


# ============================================================================
# BUSINESS EVENT HOOK (FOR OTHER MODULES)
# ============================================================================

@router.post(
    "/events/{event_type}",
    response_model=EventAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def report_business_event(
    background_tasks: BackgroundTasks,
    tenant_id: uuid.UUID = Path(..., description="Tenant ID"),
    event_type: str = Path(..., description="Event name, e.g. invoice.created"),
    payload: Dict[str, Any] = Body(...),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """
    Accept a business event for automatic posting.

    The caller has already committed its own work. Posting runs after this
    response, either in-process or on the Celery worker, and a failure there
    never reaches the caller.
    """
    route = EVENT_HANDLERS.get(event_type)
    if route is None:
        raise NotFoundException("Event type", event_type, message=f"Unknown event type '{event_type}'")

    schema, _ = route
    try:
        event = schema.model_validate({**payload, "tenant_id": tenant_id})
    except ValidationError as e:
        raise ValidationException(
            message=f"Invalid payload for {event_type}",
            details={"errors": [
                {"field": ".".join(str(loc) for loc in error["loc"]), "message": error["msg"]}
                for error in e.errors()
            ]},
        )

    event_data = event.model_dump(mode="json")

    if settings.auto_post_async:
        from app.tasks.accounting_tasks import dispatch_accounting_event

        dispatch_accounting_event.delay(event_type, event_data)
        dispatch = "celery"
    else:
        background_tasks.add_task(run_accounting_event, session_factory, event_type, event_data)
        dispatch = "background"

    logger.info(f"Accounting event {event_type} accepted for tenant {tenant_id} ({dispatch})")
    return EventAccepted(event_type=event_type, dispatch=dispatch)
