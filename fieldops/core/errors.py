"""
Domain error taxonomy.

Every error is an HTTPException so services can raise it directly, the same
way route handlers do. The exception handler in main.py renders the
`{"error": {"code", "message", "status"}}` envelope from `code`.
"""

from __future__ import annotations

from fastapi import HTTPException


class DomainError(HTTPException):
    status_code_default = 500
    code = "INTERNAL_ERROR"

    def __init__(self, detail: str, *, status_code: int | None = None):
        super().__init__(status_code=status_code or self.status_code_default, detail=detail)


class NotFoundError(DomainError):
    status_code_default = 404
    code = "NOT_FOUND"


class ForbiddenError(DomainError):
    status_code_default = 403
    code = "FORBIDDEN"


class NotAssignedError(ForbiddenError):
    """The actor is not in the task's assignee set."""
    code = "NOT_ASSIGNED"


class InvalidTransitionError(ForbiddenError):
    """The edge is not permitted even for an otherwise eligible actor."""
    code = "INVALID_TRANSITION"


class ValidationError(DomainError):
    status_code_default = 422
    code = "VALIDATION_ERROR"


class ConflictError(DomainError):
    """Another transaction changed the task between read and write."""
    status_code_default = 409
    code = "CONFLICT"


class InternalError(DomainError):
    status_code_default = 500
    code = "INTERNAL_ERROR"
