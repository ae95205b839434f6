"""Domain exception to HTTPException translation."""

from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import HTTPException, status

from backend.app.collaboration.invites import (
    InviteExhaustedError,
    InviteExpiredError,
    InviteNotFoundError,
    PermissionDeniedError,
    PlanFullError,
)
from backend.app.itinerary.editor import ItineraryLookupError

_STATUS: list[tuple[type[Exception], int, str]] = [
    (ItineraryLookupError, status.HTTP_404_NOT_FOUND, "Not found"),
    (InviteNotFoundError, status.HTTP_404_NOT_FOUND, "Invite not found"),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN, "Access denied"),
    (InviteExpiredError, status.HTTP_410_GONE, "Invite expired"),
    (InviteExhaustedError, status.HTTP_410_GONE, "Invite has no uses left"),
    (PlanFullError, status.HTTP_409_CONFLICT, "Plan has reached its participant limit"),
]


@contextmanager
def http_errors() -> Iterator[None]:
    """Re-raise known domain errors as HTTPException."""
    try:
        yield
    except tuple(exc_type for exc_type, _, _ in _STATUS) as e:
        for exc_type, status_code, detail in _STATUS:
            if isinstance(e, exc_type):
                raise HTTPException(status_code=status_code, detail=detail) from e
        raise
