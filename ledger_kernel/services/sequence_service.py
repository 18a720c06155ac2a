"""
SequenceService -- per-day document code allocation via locked counter rows.

Responsibility:
    Hands out human-readable codes such as ``SAL-20260118-0001``.  Each
    (prefix, day) pair has its own counter row, locked with
    ``SELECT ... FOR UPDATE`` and incremented inside the caller's
    transaction, so two concurrent settlements on the same day can never
    receive the same code.

Architecture position:
    Kernel > Services.  Called by the SettlementOrchestrator within the same
    unit of work as the record the code names.

Invariants enforced:
    - Codes are unique per prefix and day; the counter row is the sole
      source of truth (never count-the-rows-plus-one).
    - Transactional: an allocation is only visible after the caller's
      transaction commits.  Rollback returns the value.

Failure modes:
    - IntegrityError: concurrent creation of the same day's counter
      (handled via savepoint rollback and retry).
"""

from datetime import date

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from ledger_kernel.db.base import Base
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is one named sequence with its current value.  Row-level
    locking keeps allocation monotonic under concurrency.
    """

    __tablename__ = "sequence_counters"

    # Sequence name, e.g. "SAL:2026-01-18"
    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for transactional sequence numbers and daily document codes.

    Usage:
        code = SequenceService(session).next_code("SAL", date(2026, 1, 18))
        # "SAL-20260118-0001"
    """

    CODE_WIDTH = 4

    def __init__(self, session: Session):
        self._session = session

    @staticmethod
    def counter_name(prefix: str, day: date) -> str:
        return f"{prefix}:{day.isoformat()}"

    def next_code(self, prefix: str, day: date) -> str:
        """
        Allocate the next code for ``prefix`` on ``day``.

        Postconditions:
            - Returns ``{prefix}-{YYYYMMDD}-{NNNN}`` where NNNN starts at 0001
              for each new day.
        """
        value = self.next_value(self.counter_name(prefix, day))
        return f"{prefix}-{day.strftime('%Y%m%d')}-{value:0{self.CODE_WIDTH}d}"

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        1. Lock the sequence row (or create it if it does not exist)
        2. Increment the counter
        3. Return the new value

        Preconditions:
            - The caller is within an active database transaction.

        Postconditions:
            - Returns an integer > 0 strictly greater than any previously
              returned value for this name.
        """
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if counter is None:
            # First use of this sequence.  Another transaction may create it
            # at the same time; the savepoint keeps the caller's work intact.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._session.execute(
                    select(SequenceCounter)
                    .where(SequenceCounter.name == sequence_name)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one()

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

        return counter.current_value if counter else None
