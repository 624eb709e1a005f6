"""
SequenceService -- gap-safe journal numbering.

Responsibility:
    Allocates the next value of a named counter within a scope, inside the
    caller's transaction.  Journal entries are numbered per scope and
    financial year: ``JV/2024-25/0001``.

Invariants enforced:
    - Numbers come from a locked counter row (SELECT ... FOR UPDATE on
      PostgreSQL; SQLite serializes writers).  max()+1 over journal_entries
      is never used.
    - A rolled-back transaction returns its number; a committed entry
      number is never reused.

Failure modes:
    - A racing first use of a counter is absorbed with a savepoint retry.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sequence import SequenceCounter
from ledger_kernel.services.base import BaseService

logger = get_logger("services.sequence")

JOURNAL_NUMBER_PREFIX = "JV"
JOURNAL_SEQUENCE = "journal_entry"


def format_entry_number(financial_year: str, value: int) -> str:
    return f"{JOURNAL_NUMBER_PREFIX}/{financial_year}/{value:04d}"


class SequenceService(BaseService):
    """
    Transactional, per-scope counters.

    Usage:
        seq = SequenceService(session)
        number = seq.next_entry_number(scope_id, "2024-25")  # JV/2024-25/0001
    """

    def _locked_counter(self, scope_id: UUID, name: str) -> SequenceCounter | None:
        return self.session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.scope_id == scope_id, SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, scope_id: UUID, name: str) -> int:
        """
        Next value of counter ``name`` in scope (first value is 1).

        Postconditions:
            - Returned value is strictly greater than any value committed
              before for the same (scope, name).
        """
        counter = self._locked_counter(scope_id, name)

        if counter is None:
            savepoint = self.session.begin_nested()
            try:
                counter = SequenceCounter(scope_id=scope_id, name=name, current_value=1)
                self.session.add(counter)
                self.session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug("sequence_counter_race_retry", extra={"sequence_name": name})
                savepoint.rollback()
                counter = self._locked_counter(scope_id, name)
                if counter is None:
                    raise

        counter.current_value += 1
        self.session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, scope_id: UUID, name: str) -> int | None:
        counter = self.session.execute(
            select(SequenceCounter).where(
                SequenceCounter.scope_id == scope_id, SequenceCounter.name == name
            )
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def next_entry_number(self, scope_id: UUID, financial_year: str) -> str:
        value = self.next_value(scope_id, f"{JOURNAL_SEQUENCE}:{financial_year}")
        return format_entry_number(financial_year, value)
