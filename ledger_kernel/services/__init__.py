"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.account_directory import (
    AccountDirectory,
    ChartCache,
    ResolvedAccount,
)
from ledger_kernel.services.journal_store import EntryHeader, JournalStore, ResolvedLine
from ledger_kernel.services.posting_orchestrator import (
    PostingOrchestrator,
    PostingResult,
    PostingStatus,
)
from ledger_kernel.services.reversal_service import ReversalResult, ReversalService
from ledger_kernel.services.sequence_service import SequenceService

__all__ = [
    "AccountDirectory",
    "ChartCache",
    "EntryHeader",
    "JournalStore",
    "PostingOrchestrator",
    "PostingResult",
    "PostingStatus",
    "ResolvedAccount",
    "ResolvedLine",
    "ReversalResult",
    "ReversalService",
    "SequenceService",
]
