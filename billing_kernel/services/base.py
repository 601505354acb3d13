"""
BaseService -- abstract base for the reconciliation writers.

Responsibility:
    Common constructor for every service that mutates the projections.
    Services receive a SQLAlchemy ``Session`` and a ``Clock`` and persist
    with ``session.flush()``, never ``session.commit()``.

Architecture position:
    Kernel > Services.  The reconciliation orchestrator is the only caller
    that owns transaction boundaries.

Failure modes:
    - A subclass that commits on its own breaks the atomicity of the
      invoice + client summary + outbox write.
"""

from abc import ABC
from datetime import datetime

from sqlalchemy.orm import Session

from billing_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Contract:
        Uses the caller's session inside the caller's transaction.  Stamps
        created_at/updated_at from the injected clock.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    def _now(self) -> datetime:
        return self._clock.now()
