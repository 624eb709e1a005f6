"""
ReversalService -- additive correction of posted journal entries.

Responsibility:
    Validates a reversal request, writes the sign-inverted mirror entry via
    JournalStore.append_reversal, and commits it together with the
    original's posted -> reversed transition.

Architecture position:
    Kernel > Services.  Owns its transaction, like PostingOrchestrator.

Invariants enforced:
    - Nothing is deleted and no line is edited; the original keeps its lines
      and gains status=reversed and reversed_by_id.
    - Every reversal carries a non-blank reason.
    - At most one reversal per entry: the original row is locked, and the
      reversal's idempotency key (REVERSAL:journal_entry:<id>) is unique, so
      a racing second reversal fails with EntryAlreadyReversedError.  Other
      write conflicts (entry-number counter) are retried.
    - Reversals are never applied recursively; reversing a reversal is a
      separate, explicit call.

Failure modes:
    - MissingReversalReasonError, EntryNotFoundError,
      EntryAlreadyReversedError, StorageUnavailableError.
"""

import time
from dataclasses import dataclass
from datetime import date
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import JournalEntryRecord
from ledger_kernel.exceptions import (
    EntryAlreadyReversedError,
    MissingReversalReasonError,
    StorageUnavailableError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.services.base import storage_guard
from ledger_kernel.services.journal_store import JournalStore

logger = get_logger("services.reversal")


@dataclass(frozen=True)
class ReversalResult:
    """Both sides of a completed reversal."""

    original: JournalEntryRecord
    reversal: JournalEntryRecord


class ReversalService:
    """
    Reverses posted entries.

    Contract:
        Stateless apart from its session factory and clock; each call runs
        in its own session and transaction.
    """

    MAX_ATTEMPTS = 3

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    def reverse(
        self,
        entry_id: UUID,
        reason: str,
        actor_id: UUID,
        *,
        entry_date: date | None = None,
    ) -> JournalEntryRecord:
        """
        Reverse a posted entry.

        Args:
            entry_id: The entry to reverse.
            reason: Why; stored as the reversal's narration.  Required.
            actor_id: Who is reversing.
            entry_date: Accounting date of the reversal; defaults to today.

        Returns:
            The new reversal entry (status posted, correction_of_id=entry_id).
        """
        return self.reverse_with_original(
            entry_id, reason, actor_id, entry_date=entry_date
        ).reversal

    def reverse_with_original(
        self,
        entry_id: UUID,
        reason: str,
        actor_id: UUID,
        *,
        entry_date: date | None = None,
    ) -> ReversalResult:
        """Like ``reverse`` but also returns the original as it now stands."""
        if reason is None or not reason.strip():
            raise MissingReversalReasonError(str(entry_id))
        entry_date = entry_date or self._clock.today()

        with LogContext.bind(correlation_id=uuid4(), actor_id=actor_id, entry_id=entry_id):
            logger.info(
                "reversal_started",
                extra={"reason": reason, "entry_date": entry_date.isoformat()},
            )
            t0 = time.monotonic()
            result = self._reverse_with_retry(entry_id, reason.strip(), actor_id, entry_date)

            logger.info(
                "reversal_completed",
                extra={
                    "original_entry_number": result.original.entry_number,
                    "reversal_entry_id": str(result.reversal.entry_id),
                    "reversal_entry_number": result.reversal.entry_number,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return result

    def _reverse_with_retry(
        self, entry_id: UUID, reason: str, actor_id: UUID, entry_date: date
    ) -> ReversalResult:
        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            try:
                with storage_guard("reverse"):
                    return self._execute(entry_id, reason, actor_id, entry_date)
            except IntegrityError as exc:
                logger.warning(
                    "reversal_concurrent_conflict",
                    extra={"attempt": attempt, "error": str(exc.orig)},
                )
                with storage_guard("reverse"):
                    reversed_by = self._reversed_by(entry_id)
                if reversed_by is not None:
                    raise EntryAlreadyReversedError(str(entry_id), reversed_by) from exc
                if attempt == self.MAX_ATTEMPTS:
                    raise StorageUnavailableError(
                        "reverse", f"write conflict persisted after {attempt} attempts"
                    ) from exc
        raise AssertionError("unreachable")

    def _reversed_by(self, entry_id: UUID) -> str | None:
        """Id of the entry that reversed ``entry_id``, or None if still posted."""
        session = self._session_factory()
        try:
            original = JournalStore(session).get(entry_id)
            if original is None or original.reversed_by_id is None:
                return None
            return str(original.reversed_by_id)
        finally:
            session.close()

    def _execute(
        self, entry_id: UUID, reason: str, actor_id: UUID, entry_date: date
    ) -> ReversalResult:
        session = self._session_factory()
        try:
            store = JournalStore(session)
            reversal = store.append_reversal(entry_id, reason, actor_id, entry_date)
            original = store.get(entry_id)
            result = ReversalResult(
                original=JournalEntryRecord.from_model(original),
                reversal=JournalEntryRecord.from_model(reversal),
            )
            session.commit()
            return result
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()
