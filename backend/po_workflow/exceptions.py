"""
Purchase Order Workflow - Exception Hierarchy

Typed exceptions with error codes. Engine operations raise these; the API
layer turns them into JSON error bodies with the matching status code.

Usage:
    from po_workflow.exceptions import NotFoundError, StateConflictError

    raise NotFoundError("Purchase order", po_id)

    raise StateConflictError(
        "Only purchase orders under manager review can be approved",
        operation="manager_approve",
        current_status="draft",
        allowed_statuses=["under_manager_review"],
    )
"""
from typing import Any, Dict, List, Optional


class WorkflowException(Exception):
    """
    Base exception for all workflow errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., "NOT_FOUND", "STATE_CONFLICT")
        status_code: HTTP status code to return
        details: Additional context explaining the failure
    """

    error_code: str = "WORKFLOW_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# ===================
# 400 Bad Request Errors
# ===================


class ValidationError(WorkflowException):
    """Raised when an operation payload is malformed."""

    error_code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        *,
        field: Optional[str] = None,
        value: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details=details)


# ===================
# 403 Forbidden Errors
# ===================


class PermissionDeniedError(WorkflowException):
    """Raised when the caller lacks authority for an action or resource."""

    error_code = "PERMISSION_DENIED"
    status_code = 403

    def __init__(
        self,
        message: str = "Permission denied",
        *,
        action: Optional[str] = None,
        role: Optional[str] = None,
        allowed_roles: Optional[List[str]] = None,
        current_status: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if action:
            details["action"] = action
        if role:
            details["role"] = role
        if allowed_roles:
            details["allowed_roles"] = allowed_roles
        if current_status:
            details["current_status"] = current_status
        super().__init__(message, details=details)


# ===================
# 404 Not Found Errors
# ===================


class NotFoundError(WorkflowException):
    """Raised when a resource is not found."""

    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Any = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["resource"] = resource
        if resource_id is not None:
            details["resource_id"] = str(resource_id)
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(message, details=details)


# ===================
# 409 Conflict Errors
# ===================


class StateConflictError(WorkflowException):
    """Raised when an operation is not allowed from the purchase order's current status."""

    error_code = "STATE_CONFLICT"
    status_code = 409

    def __init__(
        self,
        message: str = "Operation not allowed in current status",
        *,
        operation: Optional[str] = None,
        current_status: Optional[str] = None,
        allowed_statuses: Optional[List[str]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if operation:
            details["operation"] = operation
        if current_status:
            details["current_status"] = current_status
        if allowed_statuses is not None:
            details["allowed_statuses"] = allowed_statuses
        super().__init__(message, details=details)


# ===================
# 500 / 502 Errors
# ===================


class IntegrationError(WorkflowException):
    """Raised when an external collaborator (storage, push gateway) fails."""

    error_code = "INTEGRATION_ERROR"
    status_code = 502

    def __init__(
        self,
        service: str,
        message: str = "External service error",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["service"] = service
        super().__init__(f"{service}: {message}", details=details)


class PushGatewayUnavailable(IntegrationError):
    """Raised when the configured push gateway cannot be used."""

    error_code = "PUSH_GATEWAY_UNAVAILABLE"

    def __init__(
        self,
        message: str = "Push gateway unavailable",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__("Push gateway", message, details=details)


class FileStorageError(IntegrationError):
    """Raised when an attachment cannot be stored."""

    error_code = "FILE_STORAGE_ERROR"

    def __init__(
        self,
        message: str = "File storage operation failed",
        *,
        filename: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if filename:
            details["filename"] = filename
        super().__init__("Object storage", message, details=details)


class DatabaseError(WorkflowException):
    """Raised when a database operation fails."""

    error_code = "DATABASE_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str = "Database operation failed",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)
