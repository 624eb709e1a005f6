"""Read-side selectors."""

from ledger_kernel.selectors.journal_selector import (
    JournalSelector,
    TrialBalance,
    TrialBalanceRow,
)

__all__ = ["JournalSelector", "TrialBalance", "TrialBalanceRow"]
