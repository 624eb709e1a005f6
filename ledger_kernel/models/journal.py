"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journal entries and their lines, the
    single source of financial truth in the ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Idempotency: a partial unique index on idempotency_key over entries
      whose status is 'posted'.  The database, not application code, decides
      which of two racing writers wins.  A reversed entry leaves the index,
      so a corrected posting may reuse its key.
    - Balance: CHECK (total_debit = total_credit) on the header.  The
      orchestrator validates before writing; the constraint backs it up.
    - Line shape: amounts are non-negative and exactly one side is non-zero
      (CHECK constraints).
    - Immutability: db/immutability.py blocks every ORM update or delete
      except the posted -> reversed transition.

Failure modes:
    - IntegrityError on a duplicate live idempotency_key or entry_number.
    - ImmutabilityViolationError on UPDATE/DELETE of a line or entry.

Audit relevance:
    Entries record who posted them, from which source and with which rule
    version.  Reversals link both ways (correction_of_id / reversed_by_id).
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account


class JournalEntryStatus(str, Enum):
    """Lifecycle status of a journal entry.

    Contract: The only transition is POSTED -> REVERSED.
    """

    POSTED = "posted"
    REVERSED = "reversed"


class LineSide(str, Enum):
    """Which side of the entry a line sits on."""

    DEBIT = "debit"
    CREDIT = "credit"

    def flipped(self) -> "LineSide":
        return LineSide.CREDIT if self is LineSide.DEBIT else LineSide.DEBIT


_POSTED_ONLY = text("status = 'posted'")


class JournalEntry(TrackedBase):
    """
    Journal entry header, the atomic unit of double-entry accounting.

    Contract:
        Written once, together with all of its lines, by JournalStore.append.
        Afterwards only status and reversed_by_id may change, and only when
        the entry is reversed.

    Guarantees:
        - total_debit == total_credit.
        - idempotency_key is unique among posted entries.
        - entry_number is unique per scope (JV/{financial_year}/{nnnn}).
    """

    __tablename__ = "journal_entries"
    __table_args__ = (
        Index(
            "uq_journal_idempotency_posted",
            "idempotency_key",
            unique=True,
            postgresql_where=_POSTED_ONLY,
            sqlite_where=_POSTED_ONLY,
        ),
        UniqueConstraint("scope_id", "entry_number", name="uq_journal_scope_number"),
        Index("idx_journal_source", "source_type", "source_id"),
        Index("idx_journal_scope_date", "scope_id", "entry_date"),
        CheckConstraint("total_debit = total_credit", name="ck_journal_balanced"),
    )

    scope_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    entry_number: Mapped[str] = mapped_column(String(50), nullable=False)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    # April-based financial year label, e.g. "2024-25"
    financial_year: Mapped[str] = mapped_column(String(7), nullable=False)

    # 1 = April ... 12 = March
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    narration: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[JournalEntryStatus] = mapped_column(
        String(10),
        default=JournalEntryStatus.POSTED,
        nullable=False,
    )

    # What produced this entry, e.g. ("payroll_run", <run id>)
    source_type: Mapped[str] = mapped_column(String(50), nullable=False)
    source_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # stage:source_type:source_id
    idempotency_key: Mapped[str] = mapped_column(String(300), nullable=False)

    # Rule referenced by code + version, not by foreign key
    rule_code: Mapped[str] = mapped_column(String(100), nullable=False)
    rule_version: Mapped[int] = mapped_column(Integer, nullable=False)

    total_debit: Mapped[Decimal] = mapped_column(nullable=False)
    total_credit: Mapped[Decimal] = mapped_column(nullable=False)

    # Set on a reversal entry: the entry it corrects
    correction_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    # Set on a reversed entry: the reversal that superseded it
    reversed_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    lines: Mapped[list["JournalEntryLine"]] = relationship(
        back_populates="entry",
        order_by="JournalEntryLine.line_number",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.entry_number} status={self.status}>"

    @property
    def is_posted(self) -> bool:
        return self.status == JournalEntryStatus.POSTED

    @property
    def is_reversed(self) -> bool:
        return self.status == JournalEntryStatus.REVERSED

    @property
    def is_balanced(self) -> bool:
        """Read-side check that the lines, not just the header totals, balance."""
        debits = sum((line.debit for line in self.lines), Decimal("0"))
        credits = sum((line.credit for line in self.lines), Decimal("0"))
        return debits == credits


class JournalEntryLine(TrackedBase):
    """
    One leg of a journal entry.

    Contract:
        Belongs to exactly one entry and one account.  Exactly one of
        debit/credit is non-zero, and neither is negative.  Never updated or
        deleted once written.
    """

    __tablename__ = "journal_entry_lines"
    __table_args__ = (
        UniqueConstraint("journal_entry_id", "line_number", name="uq_line_number"),
        Index("idx_line_account", "account_id"),
        CheckConstraint("debit >= 0 AND credit >= 0", name="ck_line_non_negative"),
        CheckConstraint("(debit = 0) <> (credit = 0)", name="ck_line_one_side"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    debit: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    credit: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    # Drill-down link into a sub-ledger, e.g. ("bank", <bank account id>)
    subledger_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    subledger_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    entry: Mapped[JournalEntry] = relationship(back_populates="lines")
    account: Mapped["Account"] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<JournalEntryLine {self.line_number} Dr {self.debit} Cr {self.credit}>"

    @property
    def side(self) -> LineSide:
        return LineSide.DEBIT if self.debit > 0 else LineSide.CREDIT

    @property
    def amount(self) -> Decimal:
        return self.debit if self.debit > 0 else self.credit
