"""
DTOs -- immutable records that cross the service boundary.

Responsibility:
    Services convert ORM rows into these frozen dataclasses before their
    session closes, so callers (adapters, the outbox consumer, tests) never
    hold live ORM objects or trigger lazy loads on a detached instance.

Architecture position:
    Kernel > Domain -- no I/O.  ``from_model`` converters are invoked only
    from the service layer.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from ledger_kernel.models.journal import JournalEntryStatus, LineSide

if TYPE_CHECKING:
    from ledger_kernel.models.journal import JournalEntry, JournalEntryLine


@dataclass(frozen=True)
class JournalLineRecord:
    """One committed journal line, with its account code resolved."""

    line_number: int
    account_id: UUID
    account_code: str
    debit: Decimal
    credit: Decimal
    description: str | None = None
    subledger_type: str | None = None
    subledger_id: str | None = None

    @property
    def side(self) -> LineSide:
        return LineSide.DEBIT if self.debit > 0 else LineSide.CREDIT

    @property
    def amount(self) -> Decimal:
        return self.debit if self.debit > 0 else self.credit

    @classmethod
    def from_model(cls, line: "JournalEntryLine") -> "JournalLineRecord":
        return cls(
            line_number=line.line_number,
            account_id=line.account_id,
            account_code=line.account.code,
            debit=line.debit,
            credit=line.credit,
            description=line.description,
            subledger_type=line.subledger_type,
            subledger_id=line.subledger_id,
        )


@dataclass(frozen=True)
class JournalEntryRecord:
    """
    A committed journal entry.

    Guarantees:
        - total_debit == total_credit == sum of the line amounts per side.
        - lines are ordered by line_number.
    """

    entry_id: UUID
    entry_number: str
    scope_id: UUID
    entry_date: date
    financial_year: str
    period_month: int
    status: JournalEntryStatus
    source_type: str
    source_id: UUID
    idempotency_key: str
    rule_code: str
    rule_version: int
    description: str
    total_debit: Decimal
    total_credit: Decimal
    actor_id: UUID
    created_at: datetime
    lines: tuple[JournalLineRecord, ...]
    narration: str | None = None
    correction_of_id: UUID | None = None
    reversed_by_id: UUID | None = None

    @property
    def is_reversal(self) -> bool:
        return self.correction_of_id is not None

    @property
    def is_balanced(self) -> bool:
        debits = sum((line.debit for line in self.lines), Decimal("0"))
        credits = sum((line.credit for line in self.lines), Decimal("0"))
        return debits == credits == self.total_debit == self.total_credit

    def lines_for(self, account_code: str) -> tuple[JournalLineRecord, ...]:
        return tuple(line for line in self.lines if line.account_code == account_code)

    @classmethod
    def from_model(cls, entry: "JournalEntry") -> "JournalEntryRecord":
        return cls(
            entry_id=entry.id,
            entry_number=entry.entry_number,
            scope_id=entry.scope_id,
            entry_date=entry.entry_date,
            financial_year=entry.financial_year,
            period_month=entry.period_month,
            status=JournalEntryStatus(entry.status),
            source_type=entry.source_type,
            source_id=entry.source_id,
            idempotency_key=entry.idempotency_key,
            rule_code=entry.rule_code,
            rule_version=entry.rule_version,
            description=entry.description,
            narration=entry.narration,
            total_debit=entry.total_debit,
            total_credit=entry.total_credit,
            actor_id=entry.actor_id,
            created_at=entry.created_at,
            correction_of_id=entry.correction_of_id,
            reversed_by_id=entry.reversed_by_id,
            lines=tuple(
                JournalLineRecord.from_model(line)
                for line in sorted(entry.lines, key=lambda ln: ln.line_number)
            ),
        )
