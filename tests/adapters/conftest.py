"""Business records shared by the adapter tests."""

from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_services.adapters.payroll import PayrollRun, PayrollTransaction


@pytest.fixture
def make_transaction():
    """One employee: gross 50,000 = net 41,900 + TDS 5,000 + PF 3,000 + PT 100."""

    def _make(**overrides) -> PayrollTransaction:
        values = {
            "gross_earnings": Decimal("50000.00"),
            "net_payable": Decimal("41900.00"),
            "tds_deducted": Decimal("5000.00"),
            "pf_employee": Decimal("3000.00"),
            "pf_employer": Decimal("3000.00"),
            "professional_tax": Decimal("100.00"),
        }
        values.update(overrides)
        return PayrollTransaction(**values)

    return _make


@pytest.fixture
def make_run(seeded_scope, make_transaction):
    """A June 2024 run; two employees unless transactions are given."""

    def _make(status="approved", transactions=None) -> PayrollRun:
        return PayrollRun(
            run_id=uuid4(),
            scope_id=seeded_scope,
            period_month=6,
            period_year=2024,
            status=status,
            transactions=tuple(transactions or (make_transaction(), make_transaction())),
        )

    return _make
