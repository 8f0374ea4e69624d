"""Typed error kinds raised by the service layer.

Each kind is an ``HTTPException`` so routers can let it propagate unchanged,
while background callers (the expiration sweeper) can catch the specific
subclass they care about.
"""
from typing import Any, Optional

from fastapi import HTTPException, status


class LifecycleError(HTTPException):
    """Base class for every error scoped to one lifecycle operation."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: Any = None, status_code: Optional[int] = None):
        super().__init__(status_code=status_code or self.status_code, detail=detail)


class ValidationError(LifecycleError):
    """Bad input shape or range. No side effect happened."""


class BelowMinimum(ValidationError):
    def __init__(self, min_donation):
        super().__init__(detail={
            "message": f"Minimum donation is {min_donation}",
            "min_donation": str(min_donation),
        })


class NotFound(LifecycleError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidStateTransition(LifecycleError):
    """The record's current status does not allow the requested transition."""


class Expired(InvalidStateTransition):
    def __init__(self, detail: Any = "Request has expired"):
        super().__init__(detail=detail)


class AlreadyResolved(LifecycleError):
    """Lost a conditional transition race: another writer resolved the record first."""

    status_code = status.HTTP_409_CONFLICT


class ProviderFailure(LifecycleError):
    """A payment backend call failed; local state was left untouched."""

    status_code = status.HTTP_502_BAD_GATEWAY
