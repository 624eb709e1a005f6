"""
Rejected postings leave nothing behind.

Verifies:
- MissingAccountError names the code and writes no entry
- A failure between header and lines rolls the whole entry back
- Zero amounts omit lines; all-zero amounts raise EmptyEntryError
- Unknown rules raise PostingRuleNotFoundError
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import (
    EmptyEntryError,
    InvalidAmountError,
    MissingAccountError,
    PostingRuleNotFoundError,
)
from ledger_kernel.services.journal_store import JournalStore


@pytest.fixture
def bad_rule_scope(seeded_scope, register_rule):
    register_rule(
        seeded_scope,
        {
            "rule_code": "BROKEN_ACCRUAL",
            "source_type": "payroll_run",
            "lines": [
                {"account_code": "5210", "side": "debit", "amount": "gross_salary"},
                {"account_code": "9999", "side": "credit", "amount": "gross_salary"},
            ],
        },
    )
    return seeded_scope


class TestMissingAccount:
    def test_unknown_code_rejected(self, orchestrator, bad_rule_scope, actor_id):
        source_id = uuid4()

        with pytest.raises(MissingAccountError) as exc_info:
            orchestrator.post(
                "BROKEN_ACCRUAL",
                "payroll_run",
                source_id,
                {"gross_salary": Decimal("100.00")},
                bad_rule_scope,
                actor_id,
            )

        assert exc_info.value.account_code == "9999"
        assert exc_info.value.code == "MISSING_ACCOUNT"
        assert not exc_info.value.retryable
        assert orchestrator.get_entries_by_source("payroll_run", source_id) == []

    def test_key_left_unclaimed(self, orchestrator, bad_rule_scope, actor_id, create_account):
        source_id = uuid4()
        amounts = {"gross_salary": Decimal("100.00")}
        with pytest.raises(MissingAccountError):
            orchestrator.post("BROKEN_ACCRUAL", "payroll_run", source_id, amounts, bad_rule_scope, actor_id)

        create_account(bad_rule_scope, "9999", "Late addition", "liability")
        result = orchestrator.post(
            "BROKEN_ACCRUAL", "payroll_run", source_id, amounts, bad_rule_scope, actor_id
        )

        assert result.is_new
        assert result.entry_number == "JV/2024-25/0001"

    def test_scope_without_chart(self, orchestrator, seeded_scope, register_rule, actor_id, payroll_amounts):
        other_scope = uuid4()
        register_rule(
            other_scope,
            {
                "rule_code": "PAYROLL_ACCRUAL",
                "source_type": "payroll_run",
                "lines": [
                    {"account_code": "5210", "side": "debit", "amount": "gross_salary"},
                    {"account_code": "2110", "side": "credit", "amount": "gross_salary"},
                ],
            },
        )

        with pytest.raises(MissingAccountError) as exc_info:
            orchestrator.post(
                "PAYROLL_ACCRUAL", "payroll_run", uuid4(), payroll_amounts, other_scope, actor_id
            )
        assert exc_info.value.scope_id == str(other_scope)


class TestAtomicity:
    def test_failure_after_lines_rolls_back(
        self, orchestrator, seeded_scope, actor_id, payroll_amounts, monkeypatch
    ):
        write_lines = JournalStore._write_lines

        def _write_then_fail(self, entry, lines):
            write_lines(self, entry, lines)
            raise RuntimeError("connection dropped mid-write")

        monkeypatch.setattr(JournalStore, "_write_lines", _write_then_fail)
        source_id = uuid4()

        with pytest.raises(RuntimeError):
            orchestrator.post(
                "PAYROLL_ACCRUAL", "payroll_run", source_id, payroll_amounts, seeded_scope, actor_id
            )

        monkeypatch.undo()
        assert orchestrator.get_entries_by_source("payroll_run", source_id) == []

        # The entry number allocated by the failed attempt was rolled back too.
        result = orchestrator.post(
            "PAYROLL_ACCRUAL", "payroll_run", source_id, payroll_amounts, seeded_scope, actor_id
        )
        assert result.entry_number == "JV/2024-25/0001"
        assert len(result.lines) == 7

    def test_failure_between_header_and_lines_rolls_back(
        self, orchestrator, seeded_scope, actor_id, payroll_amounts, monkeypatch
    ):
        flushed_headers = []

        def _fail_before_lines(self, entry, lines):
            # The header row is already flushed at this point.
            flushed_headers.append(self.get(entry.id) is entry)
            raise RuntimeError("connection dropped before lines")

        monkeypatch.setattr(JournalStore, "_write_lines", _fail_before_lines)
        source_id = uuid4()

        with pytest.raises(RuntimeError):
            orchestrator.post(
                "PAYROLL_ACCRUAL", "payroll_run", source_id, payroll_amounts, seeded_scope, actor_id
            )

        monkeypatch.undo()
        assert flushed_headers == [True]
        assert orchestrator.get_entries_by_source("payroll_run", source_id) == []

        result = orchestrator.post(
            "PAYROLL_ACCRUAL", "payroll_run", source_id, payroll_amounts, seeded_scope, actor_id
        )
        assert result.entry_number == "JV/2024-25/0001"
        assert result.entry.is_balanced


class TestSparsePosting:
    def test_zero_component_has_no_line(self, orchestrator, seeded_scope, actor_id, payroll_amounts):
        amounts = {
            **payroll_amounts,
            "professional_tax": Decimal("0"),
            "net_salary": Decimal("84000.00"),
        }

        result = orchestrator.post(
            "PAYROLL_ACCRUAL", "payroll_run", uuid4(), amounts, seeded_scope, actor_id
        )

        codes = [line.account_code for line in result.lines]
        assert "2240" not in codes
        assert all(line.amount > 0 for line in result.lines)

    def test_all_zero_is_empty(self, orchestrator, seeded_scope, actor_id):
        with pytest.raises(EmptyEntryError):
            orchestrator.post(
                "PAYROLL_DISBURSEMENT",
                "payroll_run",
                uuid4(),
                {"net_salary": Decimal("0.00")},
                seeded_scope,
                actor_id,
            )

    def test_negative_amount_rejected(self, orchestrator, seeded_scope, actor_id):
        with pytest.raises(InvalidAmountError) as exc_info:
            orchestrator.post(
                "PAYROLL_DISBURSEMENT",
                "payroll_run",
                uuid4(),
                {"net_salary": Decimal("-5.00")},
                seeded_scope,
                actor_id,
            )
        assert exc_info.value.field == "net_salary"

    @pytest.mark.parametrize(
        "bad", [Decimal("NaN"), Decimal("Infinity"), "-Infinity", Decimal("1E+30")]
    )
    def test_non_finite_or_oversized_amount_rejected(
        self, orchestrator, seeded_scope, actor_id, payroll_amounts, bad
    ):
        source_id = uuid4()
        with pytest.raises(InvalidAmountError) as exc_info:
            orchestrator.post(
                "PAYROLL_ACCRUAL",
                "payroll_run",
                source_id,
                {**payroll_amounts, "tds": bad},
                seeded_scope,
                actor_id,
            )
        assert exc_info.value.field == "tds"
        assert orchestrator.get_entries_by_source("payroll_run", source_id) == []


class TestRuleLookup:
    def test_unknown_rule(self, orchestrator, seeded_scope, actor_id):
        with pytest.raises(PostingRuleNotFoundError):
            orchestrator.post(
                "NO_SUCH_STAGE", "payroll_run", uuid4(), {"x": 1}, seeded_scope, actor_id
            )

    def test_date_before_rule_effective(self, orchestrator, seeded_scope, actor_id, payroll_amounts):
        with pytest.raises(PostingRuleNotFoundError) as exc_info:
            orchestrator.post(
                "PAYROLL_ACCRUAL",
                "payroll_run",
                uuid4(),
                payroll_amounts,
                seeded_scope,
                actor_id,
                entry_date=date(2019, 6, 30),
            )
        assert exc_info.value.as_of == "2019-06-30"

    def test_rule_code_override(self, orchestrator, seeded_scope, actor_id):
        payment_id = uuid4()

        result = orchestrator.post(
            "STATUTORY_REMITTANCE",
            "statutory_payment",
            payment_id,
            {"principal": Decimal("6000.00"), "total_amount": Decimal("6000.00")},
            seeded_scope,
            actor_id,
            rule_code="STATUTORY_PF_REMITTANCE",
            context={"payment_type": "PF", "payment_type_name": "Provident Fund", "reference": "ECR-1"},
        )

        assert result.entry.rule_code == "STATUTORY_PF_REMITTANCE"
        assert result.idempotency_key == f"STATUTORY_REMITTANCE:statutory_payment:{payment_id}"
        assert [(l.account_code, l.debit, l.credit) for l in result.lines] == [
            ("2220", Decimal("6000.00"), Decimal("0.00")),
            ("1112", Decimal("0.00"), Decimal("6000.00")),
        ]
