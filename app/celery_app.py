"""
ProLedger - Celery Configuration

Celery configuration for background posting of business events.
Uses Redis as the message broker and result backend.
"""

from celery import Celery

from app.config import settings


celery_app = Celery(
    'proledger',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['app.tasks.accounting_tasks'],
)

celery_app.conf.update(
    # Serialization
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',

    # Timezone
    timezone='America/Bogota',
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=120,
    task_soft_time_limit=90,
    task_always_eager=settings.celery_task_always_eager,

    # Worker settings
    worker_prefetch_multiplier=1,

    # Result backend settings
    result_expires=86400,  # 24 hours
)

celery_app.conf.task_routes = {
    'app.tasks.accounting_tasks.*': {'queue': 'accounting'},
}
