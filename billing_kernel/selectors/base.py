"""
Module: billing_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors over the
    billing projections.
Architecture position: Kernel > Selectors.  May import from models/ and
    domain/dtos.py.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors never add, flush, delete or commit.
    - Selectors return frozen DTOs, never ORM instances.
    - The caller owns the session and its transaction scope.
"""

from abc import ABC

from sqlalchemy.orm import Session


def clamp_limit(limit: int | None, default: int, maximum: int) -> int:
    """Clamp a caller-supplied page size to [1, maximum]; None means default."""
    if limit is None:
        return default
    return max(1, min(int(limit), maximum))


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Accept a Session from the caller, perform read-only queries and
        return DTOs.
    """

    def __init__(self, session: Session):
        self.session = session
