"""
Module: ledger_kernel.selectors.journal_selector
Responsibility: Read-only journal queries: entries by source, sub-ledger
    drill-down and the trial balance.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - No stored balances: every figure is summed from journal lines at
      query time.
    - Reversed entries stay in the ledger.  Their reversal entries carry
      the mirrored lines, so the pair nets to zero and balances are
      correct without filtering on status.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.domain.dtos import JournalEntryRecord, JournalLineRecord
from ledger_kernel.models.account import Account, NormalBalance
from ledger_kernel.models.journal import JournalEntry, JournalEntryLine
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class TrialBalanceRow:
    """Debit and credit totals of one account."""

    account_id: UUID
    account_code: str
    account_name: str
    normal_balance: NormalBalance
    debit_total: Decimal
    credit_total: Decimal

    @property
    def balance(self) -> Decimal:
        """Net balance (debits - credits)."""
        return self.debit_total - self.credit_total

    @property
    def natural_balance(self) -> Decimal:
        """Balance signed by the account's normal side."""
        if self.normal_balance == NormalBalance.DEBIT:
            return self.balance
        return -self.balance


@dataclass(frozen=True)
class TrialBalance:
    rows: tuple[TrialBalanceRow, ...]

    @property
    def total_debits(self) -> Decimal:
        return sum((r.debit_total for r in self.rows), Decimal("0.00"))

    @property
    def total_credits(self) -> Decimal:
        return sum((r.credit_total for r in self.rows), Decimal("0.00"))

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    def row(self, account_code: str) -> TrialBalanceRow | None:
        return next((r for r in self.rows if r.account_code == account_code), None)


class JournalSelector(BaseSelector):
    """Queries over journal entries and lines."""

    def entry(self, entry_id: UUID) -> JournalEntryRecord | None:
        entry = self.session.get(JournalEntry, entry_id)
        return JournalEntryRecord.from_model(entry) if entry else None

    def entries_by_source(self, source_type: str, source_id: UUID) -> list[JournalEntryRecord]:
        entries = self.session.execute(
            select(JournalEntry)
            .where(
                JournalEntry.source_type == source_type,
                JournalEntry.source_id == source_id,
            )
            .order_by(JournalEntry.created_at, JournalEntry.entry_number)
        ).scalars()
        return [JournalEntryRecord.from_model(e) for e in entries]

    def entries_for_period(
        self, scope_id: UUID, financial_year: str, period_month: int | None = None
    ) -> list[JournalEntryRecord]:
        stmt = select(JournalEntry).where(
            JournalEntry.scope_id == scope_id,
            JournalEntry.financial_year == financial_year,
        )
        if period_month is not None:
            stmt = stmt.where(JournalEntry.period_month == period_month)
        entries = self.session.execute(stmt.order_by(JournalEntry.entry_number)).scalars()
        return [JournalEntryRecord.from_model(e) for e in entries]

    def subledger_lines(
        self, scope_id: UUID, subledger_type: str, subledger_id: str
    ) -> list[JournalLineRecord]:
        """Lines tagged with a sub-ledger reference, e.g. one bank account."""
        lines = self.session.execute(
            select(JournalEntryLine)
            .join(JournalEntry, JournalEntryLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalEntry.scope_id == scope_id,
                JournalEntryLine.subledger_type == subledger_type,
                JournalEntryLine.subledger_id == str(subledger_id),
            )
            .order_by(JournalEntry.entry_date, JournalEntry.entry_number, JournalEntryLine.line_number)
        ).scalars()
        return [JournalLineRecord.from_model(line) for line in lines]

    def account_balances(self, scope_id: UUID, as_of: date | None = None) -> TrialBalance:
        debit_sum = func.coalesce(func.sum(JournalEntryLine.debit), Decimal("0"))
        credit_sum = func.coalesce(func.sum(JournalEntryLine.credit), Decimal("0"))
        stmt = (
            select(
                Account.id,
                Account.code,
                Account.name,
                Account.normal_balance,
                debit_sum,
                credit_sum,
            )
            .join(JournalEntryLine, JournalEntryLine.account_id == Account.id)
            .join(JournalEntry, JournalEntryLine.journal_entry_id == JournalEntry.id)
            .where(JournalEntry.scope_id == scope_id)
            .group_by(Account.id, Account.code, Account.name, Account.normal_balance)
            .order_by(Account.code)
        )
        if as_of is not None:
            stmt = stmt.where(JournalEntry.entry_date <= as_of)

        rows = tuple(
            TrialBalanceRow(
                account_id=account_id,
                account_code=code,
                account_name=name,
                normal_balance=NormalBalance(normal),
                debit_total=Decimal(debits).quantize(Decimal("0.01")),
                credit_total=Decimal(credits).quantize(Decimal("0.01")),
            )
            for account_id, code, name, normal, debits, credits in self.session.execute(stmt)
        )
        return TrialBalance(rows=rows)

    def account_balance(
        self, scope_id: UUID, account_code: str, as_of: date | None = None
    ) -> Decimal:
        """Net (debit - credit) balance of one account; zero if unused."""
        row = self.account_balances(scope_id, as_of).row(account_code)
        return row.balance if row else Decimal("0.00")
