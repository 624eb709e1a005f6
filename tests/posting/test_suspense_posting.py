"""The suspense policy is applied only when the caller passes one."""

from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_config.settings import LedgerSettings
from ledger_kernel.exceptions import UnbalancedEntryError
from ledger_kernel.posting_rules.suspense import SuspenseBalancingPolicy


def test_imbalance_without_policy_rejected(orchestrator, seeded_scope, actor_id, payroll_amounts):
    amounts = {**payroll_amounts, "net_salary": Decimal("83799.50")}

    with pytest.raises(UnbalancedEntryError):
        orchestrator.post("PAYROLL_ACCRUAL", "payroll_run", uuid4(), amounts, seeded_scope, actor_id)


def test_policy_posts_difference_to_suspense(
    orchestrator, seeded_scope, actor_id, payroll_amounts
):
    amounts = {**payroll_amounts, "net_salary": Decimal("83799.50")}

    result = orchestrator.post(
        "PAYROLL_ACCRUAL",
        "payroll_run",
        uuid4(),
        amounts,
        seeded_scope,
        actor_id,
        balancing_policy=SuspenseBalancingPolicy("2999"),
    )

    suspense = result.entry.lines_for("2999")
    assert len(suspense) == 1
    assert suspense[0].credit == Decimal("0.50")
    assert result.total_debit == result.total_credit == Decimal("106000.00")


def test_policy_from_settings():
    assert LedgerSettings().balancing_policy() is None
    policy = LedgerSettings(suspense_account_code="2999").balancing_policy()
    assert policy == SuspenseBalancingPolicy("2999")
