"""
ProLedger - Accounting Tasks

Celery side of the posting bridge. Used when AUTO_POST_ASYNC is on.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from celery import shared_task

from app.celery_app import celery_app  # noqa: F401  (registers the configured app)
from app.database import async_session_maker
from app.services.accounting_bridge_service import run_accounting_event

logger = logging.getLogger(__name__)


def run_async(coro):
    """Helper to run async functions in Celery tasks."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@shared_task(name='app.tasks.accounting_tasks.dispatch_accounting_event')
def dispatch_accounting_event(event_type: str, payload: Dict[str, Any]) -> Optional[str]:
    """Post one business event. Returns the journal entry id, if one was created."""
    logger.info(f"Dispatching accounting event {event_type}")
    entry_id = run_async(run_accounting_event(async_session_maker, event_type, payload))
    return str(entry_id) if entry_id else None
