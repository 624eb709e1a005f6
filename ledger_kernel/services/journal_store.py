"""
JournalStore -- durable storage for journal entries and their lines.

Responsibility:
    Idempotency-key lookup, atomic append of a header with all of its lines,
    entries-by-source queries, and the reversal append.  Performs no
    business computation: it is handed resolved, balanced lines.

Architecture position:
    Kernel > Services.  Flushes inside the caller's session; the
    orchestrator / reversal service own commit and rollback.

Invariants enforced:
    - Atomic append: the header and every line are flushed in the caller's
      single transaction.  A failure between them leaves nothing behind
      once the caller rolls back.
    - Idempotency: find_by_idempotency_key only sees posted entries, and
      the partial unique index rejects a second posted entry with the same
      key, so "check, then insert" cannot race into a duplicate.
    - Balance: append refuses lines whose debits and credits differ, and
      stores the totals on the header.
    - Reversal never edits or deletes the original's lines; only the
      original's status and reversed_by_id change.

Failure modes:
    - IntegrityError when a concurrent writer committed the same key or
      entry number first (caller rolls back and re-reads).
    - EntryNotFoundError / EntryAlreadyReversedError from append_reversal.
    - UnbalancedEntryError / EmptyEntryError from append.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select

from ledger_kernel.domain.amounts import quantize_amount
from ledger_kernel.domain.financial_year import financial_year, period_month
from ledger_kernel.exceptions import (
    EmptyEntryError,
    EntryAlreadyReversedError,
    EntryNotFoundError,
    UnbalancedEntryError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.journal import (
    JournalEntry,
    JournalEntryLine,
    JournalEntryStatus,
    LineSide,
)
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.utils.idempotency import reversal_idempotency_key

logger = get_logger("services.journal_store")

# Length of the description columns on entries and lines.
DESCRIPTION_MAX = 500


def _fit_description(text: str | None, **fields) -> str | None:
    """Cut ``text`` to the column length, logging when anything is lost."""
    if text is None or len(text) <= DESCRIPTION_MAX:
        return text
    logger.warning(
        "description_truncated",
        extra={"length": len(text), "kept": DESCRIPTION_MAX, **fields},
    )
    return text[:DESCRIPTION_MAX]


@dataclass(frozen=True)
class EntryHeader:
    """Everything about a new entry except its lines and number."""

    scope_id: UUID
    entry_date: date
    description: str
    source_type: str
    source_id: UUID
    idempotency_key: str
    rule_code: str
    rule_version: int
    actor_id: UUID
    narration: str | None = None
    correction_of_id: UUID | None = None


@dataclass(frozen=True)
class ResolvedLine:
    """A line whose account has already been resolved to an id."""

    account_id: UUID
    account_code: str
    side: LineSide
    amount: Decimal
    description: str | None = None
    subledger_type: str | None = None
    subledger_id: str | None = None


class JournalStore(BaseService):
    """
    Append-only journal storage.

    Contract:
        Reads and appends within the caller's session.  Never commits.
    """

    def __init__(self, session, sequences: SequenceService | None = None):
        super().__init__(session)
        self._sequences = sequences or SequenceService(session)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_idempotency_key(self, key: str) -> JournalEntry | None:
        """The posted entry holding ``key``, if any."""
        return self.session.execute(
            select(JournalEntry).where(
                JournalEntry.idempotency_key == key,
                JournalEntry.status == JournalEntryStatus.POSTED,
            )
        ).scalar_one_or_none()

    def get(self, entry_id: UUID, lock: bool = False) -> JournalEntry | None:
        stmt = select(JournalEntry).where(JournalEntry.id == entry_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def find_by_source(self, source_type: str, source_id: UUID) -> list[JournalEntry]:
        """All entries (posted and reversed) produced by one business entity."""
        return list(
            self.session.execute(
                select(JournalEntry)
                .where(
                    JournalEntry.source_type == source_type,
                    JournalEntry.source_id == source_id,
                )
                .order_by(JournalEntry.created_at, JournalEntry.entry_number)
            ).scalars()
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(self, header: EntryHeader, lines: list[ResolvedLine]) -> JournalEntry:
        """
        Write a new posted entry with all of its lines.

        Preconditions:
            - Every line amount is positive and two-decimal.
            - The caller rolls back on any exception.

        Postconditions:
            - Entry and lines are flushed; total_debit == total_credit.

        Raises:
            EmptyEntryError: No lines.
            UnbalancedEntryError: Debits differ from credits.
            IntegrityError: Key or number already taken by a concurrent writer.
        """
        if not lines:
            raise EmptyEntryError(header.rule_code)

        total_debit = sum(
            (quantize_amount(l.amount) for l in lines if l.side is LineSide.DEBIT),
            Decimal("0.00"),
        )
        total_credit = sum(
            (quantize_amount(l.amount) for l in lines if l.side is LineSide.CREDIT),
            Decimal("0.00"),
        )
        if total_debit != total_credit:
            raise UnbalancedEntryError(str(total_debit), str(total_credit))

        fy = financial_year(header.entry_date)
        description = _fit_description(header.description, idempotency_key=header.idempotency_key)
        narration = header.narration
        if not narration and description != header.description:
            # Keep the full rendered text somewhere.
            narration = header.description
        entry = JournalEntry(
            id=uuid4(),
            scope_id=header.scope_id,
            entry_number=self._sequences.next_entry_number(header.scope_id, fy),
            entry_date=header.entry_date,
            financial_year=fy,
            period_month=period_month(header.entry_date),
            description=description,
            narration=narration,
            status=JournalEntryStatus.POSTED,
            source_type=header.source_type,
            source_id=header.source_id,
            idempotency_key=header.idempotency_key,
            rule_code=header.rule_code,
            rule_version=header.rule_version,
            total_debit=total_debit,
            total_credit=total_credit,
            correction_of_id=header.correction_of_id,
            actor_id=header.actor_id,
            created_by_id=header.actor_id,
        )
        self.session.add(entry)
        self.session.flush()

        self._write_lines(entry, lines)

        logger.info(
            "journal_entry_appended",
            extra={
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "idempotency_key": entry.idempotency_key,
                "line_count": len(lines),
                "total_debit": str(total_debit),
                "total_credit": str(total_credit),
            },
        )
        return entry

    def _write_lines(self, entry: JournalEntry, lines: list[ResolvedLine]) -> None:
        for number, line in enumerate(lines, start=1):
            amount = quantize_amount(line.amount)
            journal_line = JournalEntryLine(
                entry=entry,
                account_id=line.account_id,
                debit=amount if line.side is LineSide.DEBIT else Decimal("0.00"),
                credit=amount if line.side is LineSide.CREDIT else Decimal("0.00"),
                description=_fit_description(
                    line.description, entry_id=str(entry.id), line_number=number
                ),
                line_number=number,
                subledger_type=line.subledger_type,
                subledger_id=line.subledger_id,
                created_by_id=entry.actor_id,
            )
            self.session.add(journal_line)
            logger.debug(
                "line_written",
                extra={
                    "entry_id": str(entry.id),
                    "line_number": number,
                    "account_code": line.account_code,
                    "side": line.side.value,
                    "amount": str(amount),
                },
            )
        self.session.flush()

    def append_reversal(
        self,
        original_id: UUID,
        reason: str,
        actor_id: UUID,
        entry_date: date,
    ) -> JournalEntry:
        """
        Write the mirror of ``original_id`` and mark the original reversed.

        The reversal keeps the original's source_type/source_id (so it shows
        up in entries-by-source), swaps every line's side, and points back
        via correction_of_id.

        Raises:
            EntryNotFoundError: No such entry.
            EntryAlreadyReversedError: The entry was reversed before.
        """
        original = self.get(original_id, lock=True)
        if original is None:
            raise EntryNotFoundError(str(original_id))
        if original.status != JournalEntryStatus.POSTED:
            raise EntryAlreadyReversedError(
                str(original_id),
                str(original.reversed_by_id) if original.reversed_by_id else None,
            )

        mirrored = [
            ResolvedLine(
                account_id=line.account_id,
                account_code=line.account.code,
                side=line.side.flipped(),
                amount=line.amount,
                description=f"Reversal: {line.description}" if line.description else "Reversal",
                subledger_type=line.subledger_type,
                subledger_id=line.subledger_id,
            )
            for line in sorted(original.lines, key=lambda ln: ln.line_number)
        ]

        reversal = self.append(
            EntryHeader(
                scope_id=original.scope_id,
                entry_date=entry_date,
                description=f"Reversal of {original.entry_number}: {reason}",
                source_type=original.source_type,
                source_id=original.source_id,
                idempotency_key=reversal_idempotency_key(original.id),
                rule_code=original.rule_code,
                rule_version=original.rule_version,
                actor_id=actor_id,
                narration=reason,
                correction_of_id=original.id,
            ),
            mirrored,
        )

        original.status = JournalEntryStatus.REVERSED
        original.reversed_by_id = reversal.id
        original.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "journal_entry_reversed",
            extra={
                "entry_id": str(original.id),
                "entry_number": original.entry_number,
                "reversal_entry_id": str(reversal.id),
                "reversal_entry_number": reversal.entry_number,
            },
        )
        return reversal
