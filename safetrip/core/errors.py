"""Domain errors raised by services and translated by the API layer."""

from __future__ import annotations

from fastapi import HTTPException, status


class NotFoundError(ValueError):
    """Referenced entity does not exist or is not owned by the caller."""


class InvalidInputError(ValueError):
    """Malformed input rejected before any state mutation."""


class InvalidStateError(ValueError):
    """Transition attempted on an entity that is no longer in the required state."""


def to_http_exception(exc: ValueError) -> HTTPException:
    """Map a domain error onto the HTTP status the routers return."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InvalidStateError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
