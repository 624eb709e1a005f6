"""
Concurrent posting of the same business event.

Threads released together by a Barrier race to post one key.  Exactly one
entry is committed; every other caller receives that entry as
ALREADY_POSTED.  On SQLite writers are serialized by BEGIN IMMEDIATE; on
PostgreSQL (LEDGER_TEST_DATABASE_URL) the partial unique index decides.
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import EntryAlreadyReversedError
from ledger_kernel.services.posting_orchestrator import PostingStatus

pytestmark = pytest.mark.slow

THREADS = 3


def _race(fn, count=THREADS):
    barrier = Barrier(count, timeout=30)

    def _run(i):
        barrier.wait()
        try:
            return fn(i)
        except Exception as exc:
            return exc

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(_run, range(count)))


def test_same_key_posts_once(orchestrator, seeded_scope, actor_id, payroll_amounts):
    run_id = uuid4()

    results = _race(
        lambda i: orchestrator.post(
            "PAYROLL_ACCRUAL", "payroll_run", run_id, payroll_amounts, seeded_scope, actor_id
        )
    )

    assert not [r for r in results if isinstance(r, Exception)], results
    statuses = [r.status for r in results]
    assert statuses.count(PostingStatus.POSTED) == 1
    assert statuses.count(PostingStatus.ALREADY_POSTED) == THREADS - 1
    assert len({r.entry_id for r in results}) == 1
    assert len(orchestrator.get_entries_by_source("payroll_run", run_id)) == 1


def test_distinct_keys_get_distinct_numbers(orchestrator, seeded_scope, actor_id, payroll_amounts):
    run_ids = [uuid4() for _ in range(THREADS)]

    results = _race(
        lambda i: orchestrator.post(
            "PAYROLL_ACCRUAL", "payroll_run", run_ids[i], payroll_amounts, seeded_scope, actor_id
        )
    )

    assert all(r.status == PostingStatus.POSTED for r in results)
    assert sorted(r.entry_number for r in results) == [
        f"JV/2024-25/{n:04d}" for n in range(1, THREADS + 1)
    ]


def test_concurrent_reversal_has_one_winner(
    orchestrator, reversal_service, seeded_scope, actor_id, payroll_amounts
):
    posted = orchestrator.post(
        "PAYROLL_ACCRUAL", "payroll_run", uuid4(), payroll_amounts, seeded_scope, actor_id
    )

    results = _race(
        lambda i: reversal_service.reverse(posted.entry_id, f"Correction {i}", actor_id)
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert all(isinstance(r, EntryAlreadyReversedError) for r in losers), losers
    assert len(orchestrator.get_entries_by_source("payroll_run", posted.entry.source_id)) == 2
