"""
Module: ledger_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
    Selectors are the query side of the kernel: they read ledger, obligation
    and stock state and return frozen DTOs.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/dtos.  MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors never call session.add(), delete(),
      flush() or commit().
    - DTO return convention: results are frozen dataclasses, never ORM rows.
    - The caller owns the session and its transaction scope.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries, and return DTOs.  They MUST NOT mutate any data.
    """

    DEFAULT_PAGE_SIZE = 50
    MAX_PAGE_SIZE = 500

    def __init__(self, session: Session):
        self.session = session

    @classmethod
    def _page_bounds(cls, page: int, page_size: int | None) -> tuple[int, int]:
        """Validate 1-based paging input and return (limit, offset)."""
        size = page_size or cls.DEFAULT_PAGE_SIZE
        if page < 1:
            raise ValueError(f"page must be >= 1 (got {page})")
        if size < 1 or size > cls.MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {cls.MAX_PAGE_SIZE}")
        return size, (page - 1) * size
