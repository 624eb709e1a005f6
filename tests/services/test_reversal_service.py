"""
Tests for ReversalService.

Verifies:
- A reversal mirrors every line with the opposite side
- The original keeps its lines, becomes REVERSED and points at the reversal
- A second reversal raises EntryAlreadyReversedError
- A blank reason and an unknown entry are rejected
- After a reversal the same business event may be posted again
- A write conflict that is not a competing reversal is retried
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from ledger_kernel.exceptions import (
    EntryAlreadyReversedError,
    EntryNotFoundError,
    MissingReversalReasonError,
    StorageUnavailableError,
)
from ledger_kernel.models.journal import JournalEntryStatus, LineSide
from ledger_kernel.services.journal_store import JournalStore
from ledger_kernel.services.posting_orchestrator import PostingStatus


@pytest.fixture
def posted(orchestrator, seeded_scope, actor_id, payroll_amounts):
    return orchestrator.post(
        "PAYROLL_ACCRUAL", "payroll_run", uuid4(), payroll_amounts, seeded_scope, actor_id
    )


def test_reversal_mirrors_lines(reversal_service, posted, actor_id):
    reversal = reversal_service.reverse(posted.entry_id, "Posted to wrong period", actor_id)

    assert reversal.correction_of_id == posted.entry_id
    assert reversal.is_reversal
    assert reversal.status == JournalEntryStatus.POSTED
    assert reversal.source_type == posted.entry.source_type
    assert reversal.source_id == posted.entry.source_id
    assert reversal.entry_number == "JV/2024-25/0002"
    assert reversal.narration == "Posted to wrong period"
    assert reversal.description == "Reversal of JV/2024-25/0001: Posted to wrong period"
    assert reversal.total_debit == reversal.total_credit == posted.total_debit

    assert len(reversal.lines) == len(posted.lines)
    for original, mirrored in zip(posted.lines, reversal.lines):
        assert mirrored.account_code == original.account_code
        assert mirrored.amount == original.amount
        assert mirrored.side is original.side.flipped()


def test_original_marked_reversed(reversal_service, orchestrator, posted, actor_id):
    result = reversal_service.reverse_with_original(posted.entry_id, "Duplicate run", actor_id)

    assert result.original.status == JournalEntryStatus.REVERSED
    assert result.original.reversed_by_id == result.reversal.entry_id
    assert result.original.lines == posted.lines

    stored = orchestrator.get_entry(posted.entry_id)
    assert stored.status == JournalEntryStatus.REVERSED
    assert stored.total_debit == posted.total_debit


def test_second_reversal_rejected(reversal_service, posted, actor_id):
    first = reversal_service.reverse(posted.entry_id, "Wrong amounts", actor_id)

    with pytest.raises(EntryAlreadyReversedError) as exc_info:
        reversal_service.reverse(posted.entry_id, "Again", actor_id)

    assert exc_info.value.reversal_entry_id == str(first.entry_id)


@pytest.mark.parametrize("reason", ["", "   ", None])
def test_reason_required(reversal_service, posted, actor_id, reason):
    with pytest.raises(MissingReversalReasonError):
        reversal_service.reverse(posted.entry_id, reason, actor_id)


def test_unknown_entry(reversal_service, engine, actor_id):
    with pytest.raises(EntryNotFoundError):
        reversal_service.reverse(uuid4(), "No such entry", actor_id)


def test_reversal_date(reversal_service, posted, actor_id):
    reversal = reversal_service.reverse(
        posted.entry_id, "Period correction", actor_id, entry_date=date(2024, 7, 1)
    )

    assert reversal.entry_date == date(2024, 7, 1)
    assert reversal.period_month == 4


def test_repost_after_reversal(
    reversal_service, orchestrator, seeded_scope, actor_id, payroll_amounts
):
    run_id = uuid4()
    first = orchestrator.post(
        "PAYROLL_ACCRUAL", "payroll_run", run_id, payroll_amounts, seeded_scope, actor_id
    )
    reversal_service.reverse(first.entry_id, "Recompute payroll", actor_id)

    corrected = {**payroll_amounts, "gross_salary": Decimal("101000.00"), "net_salary": Decimal("84800.00")}
    second = orchestrator.post(
        "PAYROLL_ACCRUAL", "payroll_run", run_id, corrected, seeded_scope, actor_id
    )

    assert second.status == PostingStatus.POSTED
    assert second.entry_id != first.entry_id
    assert second.idempotency_key == first.idempotency_key
    assert second.total_debit == Decimal("107000.00")

    entries = orchestrator.get_entries_by_source("payroll_run", run_id)
    assert [e.status for e in entries].count(JournalEntryStatus.POSTED) == 2
    assert [e.status for e in entries].count(JournalEntryStatus.REVERSED) == 1


def test_reversal_logged(reversal_service, posted, actor_id, captured_logs):
    reversal_service.reverse(posted.entry_id, "Wrong cost centre", actor_id)

    records = captured_logs()
    completed = [r for r in records if r["message"] == "reversal_completed"]
    assert len(completed) == 1
    assert completed[0]["entry_id"] == str(posted.entry_id)
    assert completed[0]["original_entry_number"] == "JV/2024-25/0001"
    assert any(r["message"] == "journal_entry_reversed" for r in records)


def test_reversal_sides(reversal_service, posted, actor_id):
    reversal = reversal_service.reverse(posted.entry_id, "Check sides", actor_id)

    salary = reversal.lines_for("5210")[0]
    payable = reversal.lines_for("2110")[0]
    assert salary.side is LineSide.CREDIT
    assert payable.side is LineSide.DEBIT
    assert salary.description.startswith("Reversal")


def _number_conflict():
    return IntegrityError(
        "INSERT INTO journal_entries ...",
        {},
        Exception("UNIQUE constraint failed: journal_entries.scope_id, journal_entries.entry_number"),
    )


def test_number_conflict_is_retried(reversal_service, posted, actor_id, monkeypatch, captured_logs):
    append_reversal = JournalStore.append_reversal
    calls = []

    def _conflict_once(self, *args, **kwargs):
        calls.append(1)
        if len(calls) == 1:
            raise _number_conflict()
        return append_reversal(self, *args, **kwargs)

    monkeypatch.setattr(JournalStore, "append_reversal", _conflict_once)

    result = reversal_service.reverse_with_original(posted.entry_id, "Wrong cost centre", actor_id)

    assert len(calls) == 2
    assert result.original.status == JournalEntryStatus.REVERSED
    assert result.reversal.entry_number == "JV/2024-25/0002"
    conflicts = [r for r in captured_logs() if r["message"] == "reversal_concurrent_conflict"]
    assert [r["attempt"] for r in conflicts] == [1]


def test_persistent_conflict_is_not_reported_as_reversed(
    reversal_service, orchestrator, posted, actor_id, monkeypatch
):
    def _always_conflict(self, *args, **kwargs):
        raise _number_conflict()

    monkeypatch.setattr(JournalStore, "append_reversal", _always_conflict)

    with pytest.raises(StorageUnavailableError) as exc_info:
        reversal_service.reverse(posted.entry_id, "Wrong cost centre", actor_id)

    assert exc_info.value.retryable
    assert orchestrator.get_entry(posted.entry_id).status == JournalEntryStatus.POSTED
