"""ORM models for the ledger kernel."""

from ledger_kernel.models.account import (
    DEFAULT_NORMAL_BALANCE,
    Account,
    AccountType,
    NormalBalance,
)
from ledger_kernel.models.journal import (
    JournalEntry,
    JournalEntryLine,
    JournalEntryStatus,
    LineSide,
)
from ledger_kernel.models.posting_rule import PostingRuleRecord
from ledger_kernel.models.sequence import SequenceCounter

__all__ = [
    "DEFAULT_NORMAL_BALANCE",
    "Account",
    "AccountType",
    "JournalEntry",
    "JournalEntryLine",
    "JournalEntryStatus",
    "LineSide",
    "NormalBalance",
    "PostingRuleRecord",
    "SequenceCounter",
]
