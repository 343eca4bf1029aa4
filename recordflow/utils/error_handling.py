"""
Centralized Error Handling for RecordFlow

This module provides:
- Custom exception hierarchy for the review workflow
- Standardized error responses
- Error logging
- Database error handling
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union
from uuid import UUID
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError, IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("recordflow.errors")


class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors (422)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    COMMENT_REQUIRED = "COMMENT_REQUIRED"
    NOTHING_TO_REMOVE = "NOTHING_TO_REMOVE"
    RECORD_NOT_READY = "RECORD_NOT_READY"

    # Authorization Errors (403)
    FORBIDDEN = "FORBIDDEN"
    PERMISSION_DENIED = "PERMISSION_DENIED"

    # Resource Errors (404/409)
    NOT_FOUND = "NOT_FOUND"
    ACTOR_NOT_FOUND = "ACTOR_NOT_FOUND"
    RECORD_NOT_FOUND = "RECORD_NOT_FOUND"
    APPROVAL_NOT_FOUND = "APPROVAL_NOT_FOUND"
    REQUEST_NOT_FOUND = "REQUEST_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    WORKFLOW_ALREADY_EXISTS = "WORKFLOW_ALREADY_EXISTS"
    DUPLICATE_REQUEST = "DUPLICATE_REQUEST"
    TRANSITION_CONFLICT = "TRANSITION_CONFLICT"

    # Business Logic Errors (422)
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    CANNOT_DELETE = "CANNOT_DELETE"

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
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            field=field,
        )


class CommentRequiredException(ValidationException):
    """A comment or reason is mandatory for this action"""

    def __init__(self, message: str = "A comment is required for this action", field: str = "comments"):
        super().__init__(
            message=message,
            field=field,
            code=ErrorCode.COMMENT_REQUIRED,
        )


class ValidationFailedException(ValidationException):
    """A record is not ready for the requested operation"""

    def __init__(self, missing_fields: list):
        super().__init__(
            message=f"Record is missing required fields: {', '.join(missing_fields)}",
            code=ErrorCode.RECORD_NOT_READY,
            details={"missing_fields": list(missing_fields)},
        )
        self.missing_fields = list(missing_fields)


# ============================================================================
# Authorization Exceptions
# ============================================================================

class AuthorizationException(AppException):
    """Authorization denied exception"""

    def __init__(
        self,
        message: str = "Permission denied",
        required_permission: Optional[str] = None,
        code: ErrorCode = ErrorCode.FORBIDDEN,
    ):
        details = {}
        if required_permission:
            details["required_permission"] = required_permission
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
        )


class PermissionDeniedException(AuthorizationException):
    """Actor's role does not allow the action"""

    def __init__(self, action: str, role: Optional[str] = None):
        message = f"You do not have permission to {action}"
        if role:
            message = f"Role '{role}' does not have permission to {action}"
        super().__init__(
            message=message,
            required_permission=action,
            code=ErrorCode.PERMISSION_DENIED,
        )
        self.action = action
        self.role = role


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


class ActorNotFoundException(NotFoundException):
    """The acting user is not in the directory"""

    def __init__(self, email: Optional[str] = None, user_id: Optional[Union[str, UUID]] = None):
        if email:
            super().__init__(
                resource_type="User",
                message=f"User with email '{email}' not found",
                code=ErrorCode.ACTOR_NOT_FOUND,
            )
        else:
            super().__init__(
                resource_type="User",
                resource_id=user_id,
                code=ErrorCode.ACTOR_NOT_FOUND,
            )


class RecordNotFoundException(NotFoundException):
    def __init__(self, record_id: Union[str, UUID]):
        super().__init__(
            resource_type="Record",
            resource_id=record_id,
            code=ErrorCode.RECORD_NOT_FOUND,
        )


class ApprovalNotFoundException(NotFoundException):
    def __init__(self, approval_id: Union[str, UUID]):
        super().__init__(
            resource_type="Approval",
            resource_id=approval_id,
            code=ErrorCode.APPROVAL_NOT_FOUND,
        )


class RequestNotFoundException(NotFoundException):
    def __init__(self, request_id: Union[str, UUID]):
        super().__init__(
            resource_type="Adjustment request",
            resource_id=request_id,
            code=ErrorCode.REQUEST_NOT_FOUND,
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


class WorkflowAlreadyExistsException(ConflictException):
    """Approval rows already exist for the record"""

    def __init__(self, record_id: Union[str, UUID]):
        super().__init__(
            message="Approval workflow already exists for this record",
            resource_type="Record",
            code=ErrorCode.WORKFLOW_ALREADY_EXISTS,
            details={"record_id": str(record_id)},
        )


class DuplicateRequestException(ConflictException):
    """An adjustment request already exists for the record"""

    def __init__(self, record_id: Union[str, UUID], existing_status: Optional[str] = None):
        details = {"record_id": str(record_id)}
        if existing_status:
            details["existing_status"] = existing_status
        super().__init__(
            message="An adjustment request already exists for this record",
            resource_type="Adjustment request",
            code=ErrorCode.DUPLICATE_REQUEST,
            details=details,
        )


class TransitionConflictException(ConflictException):
    """The row changed between read and conditional write"""

    def __init__(self, resource_type: str, resource_id: Union[str, UUID], expected_status: str):
        super().__init__(
            message=f"{resource_type} was modified concurrently; expected status '{expected_status}'",
            resource_type=resource_type,
            code=ErrorCode.TRANSITION_CONFLICT,
            details={"resource_id": str(resource_id), "expected_status": expected_status},
        )


# ============================================================================
# Business Logic Exceptions
# ============================================================================

class BusinessRuleException(AppException):
    """Business rule violation exception"""

    def __init__(
        self,
        message: str,
        rule: Optional[str] = None,
        code: ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if rule:
            _details["violated_rule"] = rule
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=_details,
        )


class InvalidTransitionException(BusinessRuleException):
    """Requested status change is not allowed from the current status"""

    def __init__(self, resource_type: str, current_status: str, action: str):
        super().__init__(
            message=f"Cannot {action} {resource_type.lower()} in status '{current_status}'",
            rule="VALID_STATUS_TRANSITION",
            code=ErrorCode.INVALID_TRANSITION,
            details={"current_status": current_status, "action": action},
        )
        self.current_status = current_status


class DeleteNotAllowedException(BusinessRuleException):
    """Decided requests on live records cannot be deleted"""

    def __init__(self, request_id: Union[str, UUID], current_status: str):
        super().__init__(
            message=(
                "Only pending requests, or requests whose record is hidden or deleted, can be deleted"
            ),
            rule="DELETE_PENDING_OR_ORPHANED_ONLY",
            code=ErrorCode.CANNOT_DELETE,
            details={"request_id": str(request_id), "current_status": current_status},
        )


class NothingToRemoveException(BusinessRuleException):
    def __init__(self, current_amount: Any):
        super().__init__(
            message="No allocated hours to remove",
            rule="POSITIVE_ALLOCATION_REQUIRED",
            code=ErrorCode.NOTHING_TO_REMOVE,
            details={"current_amount": str(current_amount)},
        )


# ============================================================================
# Database Exceptions
# ============================================================================

class DatabaseException(AppException):
    """Database error exception"""

    def __init__(
        self,
        message: str = "A database error occurred",
        code: ErrorCode = ErrorCode.DATABASE_ERROR,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            original_error=original_error,
        )


class StoreException(DatabaseException):
    """Wraps a SQLAlchemy failure raised inside the store adapter"""

    def __init__(self, operation: str, original_error: Exception):
        super().__init__(
            message=f"Store operation '{operation}' failed",
            original_error=original_error,
        )
        self.operation = operation


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
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"AppException: {exc.code.value} - {exc.message}",
        extra={
            "code": exc.code.value,
            "path": request.url.path,
            "method": request.method,
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
        403: ErrorCode.FORBIDDEN,
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
    """Handle Pydantic validation errors"""
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
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy errors that escaped the store adapter"""
    error_message = "A database error occurred"
    error_code = ErrorCode.DATABASE_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(exc, IntegrityError):
        error_message = "Data integrity constraint violated"
        error_code = ErrorCode.DATA_INTEGRITY_ERROR
        error_str = str(exc.orig).lower() if exc.orig else ""
        if "unique" in error_str or "duplicate" in error_str:
            error_message = "A record with this value already exists"
            error_code = ErrorCode.RESOURCE_CONFLICT
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

    # Internal error details are never exposed
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
