"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract.  Every concrete
    service receives the caller's SQLAlchemy ``Session`` and persists with
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services.  The SettlementOrchestrator is the only component
    that commits or rolls back; every service below it flushes inside the
    orchestrator's unit of work, which is what makes a multi-step
    settlement all-or-nothing.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Query-only reads for reporting belong in ``ledger_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
