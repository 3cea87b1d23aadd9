"""
Domain exceptions raised by the dispatch services.

Each kind carries the HTTP status it maps to; a single handler registered
in main.py turns them into JSON error responses:

    DispatchError
    ├── InvalidInputError        → 400
    ├── ForbiddenError           → 403
    ├── NotFoundError            → 404
    ├── InvalidTransitionError   → 409
    ├── AgentUnavailableError    → 409
    └── ConflictError            → 409
"""

from typing import Any, Dict, Optional


class DispatchError(Exception):
    """Base exception for dispatch errors"""
    status_code = 500
    error_code = "dispatch_error"

    def __init__(self, message: str = "An unexpected error occurred", context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class InvalidInputError(DispatchError):
    """Malformed or missing input, non-positive quantities, bad coordinates"""
    status_code = 400
    error_code = "invalid_input"

    def __init__(self, message: str = "Invalid input", field: Optional[str] = None):
        super().__init__(message, {"field": field} if field else None)
        self.field = field


class NotFoundError(DispatchError):
    """Unknown order, agent, restaurant or menu item"""
    status_code = 404
    error_code = "not_found"

    def __init__(self, resource: str = "resource", resource_id: Optional[Any] = None):
        message = f"{resource.capitalize()} not found"
        if resource_id is not None:
            message = f"{resource.capitalize()} '{resource_id}' not found"
        super().__init__(message, {"resource": resource, "resource_id": str(resource_id) if resource_id else None})
        self.resource = resource


class ForbiddenError(DispatchError):
    """Role or ownership check failed"""
    status_code = 403
    error_code = "forbidden"


class InvalidTransitionError(DispatchError):
    """Illegal state-machine move"""
    status_code = 409
    error_code = "invalid_transition"


class AgentUnavailableError(DispatchError):
    """Agent was no longer available at assignment time"""
    status_code = 409
    error_code = "agent_unavailable"


class ConflictError(DispatchError):
    """Concurrent write detected"""
    status_code = 409
    error_code = "conflict"
