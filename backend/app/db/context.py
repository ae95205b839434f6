"""Request context for access checks."""

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class RequestContext:
    """Identity of the caller.

    Plan access is decided per plan (owner or collaborator), so the context
    only carries the user.
    """

    user_id: UUID
