"""
Posting produces exactly one balanced entry.

Verifies:
- Every committed entry has total debits equal to total credits
- Header totals match the lines
- Entry numbers follow JV/{financial year}/{nnnn}
- An unbalanced template is rejected and nothing is written
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import UnbalancedEntryError
from ledger_kernel.models.journal import JournalEntryStatus
from ledger_kernel.services.posting_orchestrator import PostingStatus


def test_payroll_accrual_balances(orchestrator, seeded_scope, actor_id, payroll_amounts):
    run_id = uuid4()

    result = orchestrator.post(
        "PAYROLL_ACCRUAL",
        "payroll_run",
        run_id,
        payroll_amounts,
        seeded_scope,
        actor_id,
        context={"period_label": "June 2024", "employee_count": 12},
    )

    assert result.status == PostingStatus.POSTED
    assert result.total_debit == result.total_credit == Decimal("106000.00")
    assert result.entry.is_balanced
    assert result.entry.status == JournalEntryStatus.POSTED
    assert result.entry_number == "JV/2024-25/0001"
    assert result.entry.financial_year == "2024-25"
    assert result.entry.period_month == 3
    assert result.entry.description == "Payroll accrual for June 2024"
    assert result.entry.narration == "Being salary for June 2024 accrued for 12 employees."


def test_lines_follow_template_order(orchestrator, seeded_scope, actor_id, payroll_amounts):
    result = orchestrator.post(
        "PAYROLL_ACCRUAL", "payroll_run", uuid4(), payroll_amounts, seeded_scope, actor_id
    )

    assert [line.account_code for line in result.lines] == [
        "5210", "5220", "2110", "2212", "2221", "2222", "2240",
    ]
    assert [line.line_number for line in result.lines] == list(range(1, 8))
    assert result.entry.lines_for("2110")[0].credit == Decimal("83800.00")


def test_entry_numbers_increase(orchestrator, seeded_scope, actor_id, payroll_amounts):
    numbers = [
        orchestrator.post(
            "PAYROLL_ACCRUAL", "payroll_run", uuid4(), payroll_amounts, seeded_scope, actor_id
        ).entry_number
        for _ in range(3)
    ]

    assert numbers == ["JV/2024-25/0001", "JV/2024-25/0002", "JV/2024-25/0003"]


def test_unbalanced_amounts_rejected(orchestrator, seeded_scope, actor_id, payroll_amounts):
    source_id = uuid4()
    amounts = {**payroll_amounts, "net_salary": Decimal("83000.00")}

    with pytest.raises(UnbalancedEntryError) as exc_info:
        orchestrator.post(
            "PAYROLL_ACCRUAL", "payroll_run", source_id, amounts, seeded_scope, actor_id
        )

    assert exc_info.value.total_debit == "106000.00"
    assert exc_info.value.total_credit == "105200.00"
    assert orchestrator.get_entries_by_source("payroll_run", source_id) == []


def test_rejected_posting_logged(
    orchestrator, seeded_scope, actor_id, payroll_amounts, captured_logs
):
    amounts = {**payroll_amounts, "tds": Decimal("1.00")}

    with pytest.raises(UnbalancedEntryError):
        orchestrator.post("PAYROLL_ACCRUAL", "payroll_run", uuid4(), amounts, seeded_scope, actor_id)

    rejected = [r for r in captured_logs() if r["message"] == "posting_rejected"]
    assert len(rejected) == 1
    assert rejected[0]["error_code"] == "UNBALANCED_ENTRY"
    assert rejected[0]["scope_id"] == str(seeded_scope)


def test_long_description_kept_in_narration(
    orchestrator, seeded_scope, register_rule, actor_id, captured_logs
):
    register_rule(
        seeded_scope,
        {
            "rule_code": "BONUS_ACCRUAL",
            "source_type": "payroll_run",
            "description_template": "Bonus accrual: {note}",
            "lines": [
                {"account_code": "5210", "side": "debit", "amount": "bonus"},
                {"account_code": "2110", "side": "credit", "amount": "bonus"},
            ],
        },
    )
    note = "Festival bonus per board resolution " + "x" * 600

    result = orchestrator.post(
        "BONUS_ACCRUAL",
        "payroll_run",
        uuid4(),
        {"bonus": Decimal("2500.00")},
        seeded_scope,
        actor_id,
        context={"note": note},
    )

    full = f"Bonus accrual: {note}"
    assert result.entry.description == full[:500]
    assert result.entry.narration == full
    truncated = [r for r in captured_logs() if r["message"] == "description_truncated"]
    assert len(truncated) == 1
    assert truncated[0]["length"] == len(full)
