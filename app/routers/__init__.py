"""
ProLedger - Routers Package

FastAPI route handlers.

Routers:
- accounting: Chart of accounts, configuration, periods, journal entries
  and the business event hook
"""

from app.routers import accounting

__all__ = ["accounting"]
