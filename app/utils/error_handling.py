"""
Centralized Error Handling for ProLedger

This module provides:
- Custom exception hierarchy for the accounting ledger
- Standardized error responses
- FastAPI exception handlers with request-context logging
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Union
from uuid import UUID
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError, IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

# Configure logging
logger = logging.getLogger("proledger.errors")


class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors (400)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    UNBALANCED_ENTRY = "UNBALANCED_ENTRY"
    INVALID_LINE = "INVALID_LINE"
    INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
    INVALID_ACCOUNTS = "INVALID_ACCOUNTS"

    # Resource Errors (404)
    NOT_FOUND = "NOT_FOUND"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    PERIOD_NOT_FOUND = "PERIOD_NOT_FOUND"
    JOURNAL_ENTRY_NOT_FOUND = "JOURNAL_ENTRY_NOT_FOUND"

    # Conflict Errors (409)
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    ALREADY_CONFIGURED = "ALREADY_CONFIGURED"
    PERIOD_OVERLAP = "PERIOD_OVERLAP"
    PERIOD_ALREADY_CLOSED = "PERIOD_ALREADY_CLOSED"
    ENTRY_ALREADY_VOIDED = "ENTRY_ALREADY_VOIDED"

    # State Errors (409)
    INVALID_STATE = "INVALID_STATE"
    PERIOD_CLOSED = "PERIOD_CLOSED"
    HAS_DRAFT_ENTRIES = "HAS_DRAFT_ENTRIES"
    INVALID_TRANSITION = "INVALID_TRANSITION"

    # Database Errors (500)
    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"

    # Internal Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(Exception):
    """Base exception for all application exceptions"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response"""
        result = {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result


# ============================================================================
# Validation Exceptions
# ============================================================================

class ValidationException(AppException):
    """Base validation exception"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
            field=field,
        )


class UnbalancedEntryException(ValidationException):
    """Debits and credits differ by more than the tolerance"""

    def __init__(self, total_debit: Decimal, total_credit: Decimal, message: Optional[str] = None):
        self.total_debit = total_debit
        self.total_credit = total_credit
        super().__init__(
            message=message or (
                f"Journal entry is not balanced. Debits: {total_debit}, Credits: {total_credit}"
            ),
            field="lines",
            code=ErrorCode.UNBALANCED_ENTRY,
            details={
                "total_debit": str(total_debit),
                "total_credit": str(total_credit),
                "difference": str(abs(total_debit - total_credit)),
            },
        )


class InvalidLineException(ValidationException):
    """A line must carry a positive amount on exactly one side"""

    def __init__(self, line_number: int, debit: Decimal, credit: Decimal):
        super().__init__(
            message=(
                f"Line {line_number}: exactly one of debit or credit must be greater than zero "
                f"(debit={debit}, credit={credit})"
            ),
            field="lines",
            code=ErrorCode.INVALID_LINE,
            details={"line_number": line_number, "debit": str(debit), "credit": str(credit)},
        )


class InvalidDateRangeException(ValidationException):
    """Invalid date range"""

    def __init__(self, start_date: Any, end_date: Any, message: Optional[str] = None):
        super().__init__(
            message=message or f"Invalid date range: {start_date} to {end_date}. End date must be after start date.",
            code=ErrorCode.INVALID_DATE_RANGE,
            details={"start_date": str(start_date), "end_date": str(end_date)},
        )


class InvalidAccountsException(ValidationException):
    """Referenced accounts are missing, inactive or owned by another tenant"""

    def __init__(self, account_ids: Iterable[Union[str, UUID]], message: Optional[str] = None):
        ids = sorted(str(account_id) for account_id in account_ids)
        super().__init__(
            message=message or f"Accounts not found or inactive: {', '.join(ids)}",
            field="account_id",
            code=ErrorCode.INVALID_ACCOUNTS,
            details={"account_ids": ids},
        )


# ============================================================================
# Resource Exceptions
# ============================================================================

class NotFoundException(AppException):
    """Resource not found exception"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, UUID]] = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        if message is None:
            if resource_id:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": str(resource_id) if resource_id else None},
        )


class AccountNotFoundException(NotFoundException):
    """Account not found"""

    def __init__(self, account_id: Union[str, UUID]):
        super().__init__(
            resource_type="Account",
            resource_id=account_id,
            code=ErrorCode.ACCOUNT_NOT_FOUND,
        )


class PeriodNotFoundException(NotFoundException):
    """Accounting period not found"""

    def __init__(self, period_id: Union[str, UUID]):
        super().__init__(
            resource_type="Accounting period",
            resource_id=period_id,
            code=ErrorCode.PERIOD_NOT_FOUND,
        )


class JournalEntryNotFoundException(NotFoundException):
    """Journal entry not found"""

    def __init__(self, entry_id: Union[str, UUID]):
        super().__init__(
            resource_type="Journal entry",
            resource_id=entry_id,
            code=ErrorCode.JOURNAL_ENTRY_NOT_FOUND,
        )


class ConflictException(AppException):
    """Resource conflict exception"""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if resource_type:
            _details["resource_type"] = resource_type
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=_details,
        )


class DuplicateAccountCodeException(ConflictException):
    """An account with this code already exists for the tenant"""

    def __init__(self, code: str):
        super().__init__(
            message=f"Account with code '{code}' already exists",
            resource_type="Account",
            code=ErrorCode.DUPLICATE_ENTRY,
            details={"field": "code", "value": code},
        )


class AlreadyConfiguredException(ConflictException):
    """Chart of accounts already exists for the tenant"""

    def __init__(self, existing_accounts: int):
        super().__init__(
            message="Accounting is already configured for this tenant. Accounts already exist.",
            resource_type="Account",
            code=ErrorCode.ALREADY_CONFIGURED,
            details={"existing_accounts": existing_accounts},
        )


class PeriodOverlapException(ConflictException):
    """Date range overlaps an existing period"""

    def __init__(self, period_name: str, start_date: Any, end_date: Any):
        super().__init__(
            message=f"Period overlaps with existing period '{period_name}' ({start_date} - {end_date})",
            resource_type="AccountingPeriod",
            code=ErrorCode.PERIOD_OVERLAP,
            details={
                "conflicting_period": period_name,
                "start_date": str(start_date),
                "end_date": str(end_date),
            },
        )


class PeriodAlreadyClosedException(ConflictException):
    """Period is already closed"""

    def __init__(self, period_name: str):
        super().__init__(
            message=f"Period '{period_name}' is already closed",
            resource_type="AccountingPeriod",
            code=ErrorCode.PERIOD_ALREADY_CLOSED,
            details={"period": period_name},
        )


class EntryAlreadyVoidedException(ConflictException):
    """Journal entry is already voided"""

    def __init__(self, entry_number: str):
        super().__init__(
            message=f"Journal entry {entry_number} is already voided",
            resource_type="JournalEntry",
            code=ErrorCode.ENTRY_ALREADY_VOIDED,
            details={"entry_number": entry_number},
        )


# ============================================================================
# State Exceptions
# ============================================================================

class StateException(AppException):
    """Operation not allowed in the resource's current state"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INVALID_STATE,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details,
        )


class PeriodClosedException(StateException):
    """Writes against a closed period are rejected"""

    def __init__(self, period_name: str):
        super().__init__(
            message=f"Cannot create entries in closed period '{period_name}'",
            code=ErrorCode.PERIOD_CLOSED,
            details={"period": period_name},
        )


class HasDraftEntriesException(StateException):
    """Period still has DRAFT entries"""

    def __init__(self, period_name: str, draft_count: int):
        self.draft_count = draft_count
        super().__init__(
            message=(
                f"Cannot close period '{period_name}': {draft_count} draft journal "
                f"entr{'y' if draft_count == 1 else 'ies'} pending"
            ),
            code=ErrorCode.HAS_DRAFT_ENTRIES,
            details={"period": period_name, "draft_count": draft_count},
        )


class InvalidTransitionException(StateException):
    """Requested status transition is not allowed"""

    def __init__(self, entry_number: str, current_status: str, target_status: str):
        super().__init__(
            message=(
                f"Journal entry {entry_number} cannot move from {current_status} to {target_status}"
            ),
            code=ErrorCode.INVALID_TRANSITION,
            details={
                "entry_number": entry_number,
                "current_status": current_status,
                "target_status": target_status,
            },
        )


# ============================================================================
# Exception Handlers
# ============================================================================

def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
) -> JSONResponse:
    """Create a standardized error response"""
    content = {
        "detail": {
            "code": code.value,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    }
    if field:
        content["detail"]["field"] = field
    if details:
        content["detail"]["details"] = details

    return JSONResponse(status_code=status_code, content=content)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle AppException"""
    logger.warning(
        f"AppException: {exc.code.value} - {exc.message}",
        extra={
            "code": exc.code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
        },
        exc_info=exc.original_error,
    )

    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        field=exc.field,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTPException"""
    code_map = {
        400: ErrorCode.INVALID_INPUT,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        500: ErrorCode.INTERNAL_ERROR,
    }

    error_code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    logger.warning(
        f"HTTPException: {exc.status_code} - {message}",
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        code=error_code,
        message=message,
        status_code=exc.status_code,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors as 400s"""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    logger.warning(
        f"ValidationError: {len(errors)} validation errors",
        extra={"path": request.url.path, "method": request.method, "errors": errors},
    )

    return create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        status_code=status.HTTP_400_BAD_REQUEST,
        details={"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy errors"""
    error_message = "A database error occurred"
    error_code = ErrorCode.DATABASE_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(exc, IntegrityError):
        error_message = "Data integrity constraint violated"
        error_code = ErrorCode.DATA_INTEGRITY_ERROR
        error_str = str(exc.orig).lower() if exc.orig else ""
        if "unique" in error_str or "duplicate" in error_str:
            error_message = "A record with this value already exists"
            error_code = ErrorCode.DUPLICATE_ENTRY
            status_code = status.HTTP_409_CONFLICT
    elif isinstance(exc, OperationalError):
        error_message = "Database operation failed"
        error_code = ErrorCode.CONNECTION_ERROR

    logger.error(
        f"SQLAlchemyError: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=error_code,
        message=error_message,
        status_code=status_code,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions"""
    logger.critical(
        f"UnhandledException: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
