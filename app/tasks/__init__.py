"""
ProLedger - Background Tasks Package

Celery background tasks.
"""
