"""
Tests for the statutory remittance adapter.

Every payment type posts under the STATUTORY_REMITTANCE stage with the
rule of its type, clearing the payable that payroll built up.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.db.engine import session_scope
from ledger_services.adapters.base import SourceNotReadyError
from ledger_services.adapters.statutory import (
    StatutoryPayment,
    StatutoryPostingAdapter,
    build_narration,
    payable_account_code,
    payment_type_name,
    remittance_rule_code,
)


@pytest.fixture
def adapter(orchestrator):
    return StatutoryPostingAdapter(orchestrator)


def _payment(scope_id, payment_type="PF", status="paid", **kwargs) -> StatutoryPayment:
    return StatutoryPayment(
        payment_id=uuid4(),
        scope_id=scope_id,
        payment_type=payment_type,
        period_month=6,
        period_year=2024,
        status=status,
        principal_amount=kwargs.pop("principal_amount", Decimal("12000.00")),
        **kwargs,
    )


@pytest.mark.parametrize(
    "payment_type, account, rule",
    [
        ("TDS_192", "2212", "STATUTORY_TDS_REMITTANCE"),
        ("TDS_194C", "2213", "STATUTORY_TDS_REMITTANCE"),
        ("TDS_194J", "2213", "STATUTORY_TDS_REMITTANCE"),
        ("PF", "2220", "STATUTORY_PF_REMITTANCE"),
        ("ESI", "2230", "STATUTORY_ESI_REMITTANCE"),
        ("PT_KA", "2240", "STATUTORY_PT_REMITTANCE"),
        ("LWF_MH", "2245", "STATUTORY_LWF_REMITTANCE"),
        ("NPS", "2200", "STATUTORY_REMITTANCE"),
    ],
)
def test_type_mapping(payment_type, account, rule):
    assert payable_account_code(payment_type) == account
    assert remittance_rule_code(payment_type) == rule


def test_type_names():
    assert payment_type_name("PF") == "Provident Fund"
    assert payment_type_name("PT_KA") == "Professional Tax (KA)"
    assert payment_type_name("LWF_MH") == "Labour Welfare Fund (MH)"
    assert payment_type_name("NPS") == "NPS"


def test_narration_lists_known_references():
    payment = _payment(uuid4(), reference_number="ECR-123", trrn="TR-9")
    assert build_narration(payment) == (
        "Being Provident Fund remitted for the period 6/2024. Challan: ECR-123. TRRN: TR-9."
    )


def test_pf_remittance_with_interest(adapter, seeded_scope, actor_id):
    payment = _payment(
        seeded_scope,
        interest_amount=Decimal("150.00"),
        reference_number="ECR-123",
        payment_date=date(2024, 7, 15),
    )

    result = adapter.post_remittance(payment, actor_id)

    assert result.entry.rule_code == "STATUTORY_PF_REMITTANCE"
    assert result.idempotency_key == f"STATUTORY_REMITTANCE:statutory_payment:{payment.payment_id}"
    assert result.entry.entry_date == date(2024, 7, 15)
    assert [(l.account_code, l.debit, l.credit) for l in result.lines] == [
        ("2220", Decimal("12000.00"), Decimal("0.00")),
        ("5620", Decimal("150.00"), Decimal("0.00")),
        ("1112", Decimal("0.00"), Decimal("12150.00")),
    ]
    assert result.entry.description == "Provident Fund remittance"
    assert result.entry.narration.startswith("Being Provident Fund remitted")
    assert result.lines[2].description == "PF payment - Ref: ECR-123"


def test_tds_clears_section_payable(adapter, seeded_scope, actor_id):
    result = adapter.post_remittance(_payment(seeded_scope, "TDS_194J"), actor_id)

    assert result.lines[0].account_code == "2213"
    assert result.entry.rule_code == "STATUTORY_TDS_REMITTANCE"


def test_other_type_uses_generic_rule(adapter, seeded_scope, actor_id):
    result = adapter.post_remittance(
        _payment(seeded_scope, "NPS", penalty_amount=Decimal("50.00")), actor_id
    )

    assert result.entry.rule_code == "STATUTORY_REMITTANCE"
    assert result.lines[0].account_code == "2200"
    assert result.total_debit == Decimal("12050.00")


def test_bank_subledger(adapter, seeded_scope, actor_id):
    bank_account_id = uuid4()
    result = adapter.post_remittance(
        _payment(seeded_scope, "TDS_192"), actor_id, bank_account_id=bank_account_id
    )

    bank = result.entry.lines_for("1112")[0]
    assert bank.subledger_type == "bank"
    assert bank.subledger_id == str(bank_account_id)


def test_unpaid_payment_rejected(adapter, seeded_scope, actor_id):
    with pytest.raises(SourceNotReadyError):
        adapter.post_remittance(_payment(seeded_scope, status="pending"), actor_id)


def test_enqueue_remittance(adapter, seeded_scope, actor_id, session_factory):
    payment = _payment(seeded_scope, "ESI")

    with session_scope(session_factory) as sess:
        request = adapter.enqueue_remittance(sess, payment, actor_id)
        assert request.stage == "STATUTORY_REMITTANCE"
        assert request.rule_code == "STATUTORY_ESI_REMITTANCE"
        assert request.context["payable_account_code"] == "2230"
