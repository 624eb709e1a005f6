"""Source-entity adapters: turn business records into posting calls."""

from ledger_services.adapters.base import (
    CONTRACTOR_ACCRUAL,
    CONTRACTOR_DISBURSEMENT,
    PAYROLL_ACCRUAL,
    PAYROLL_DISBURSEMENT,
    STATUTORY_REMITTANCE,
    SourceNotReadyError,
    StageOrderError,
)
from ledger_services.adapters.contractor import ContractorPayment, ContractorPostingAdapter
from ledger_services.adapters.payroll import (
    PayrollPostingAdapter,
    PayrollRun,
    PayrollRunTotals,
    PayrollTransaction,
)
from ledger_services.adapters.statutory import StatutoryPayment, StatutoryPostingAdapter

__all__ = [
    "CONTRACTOR_ACCRUAL",
    "CONTRACTOR_DISBURSEMENT",
    "PAYROLL_ACCRUAL",
    "PAYROLL_DISBURSEMENT",
    "STATUTORY_REMITTANCE",
    "ContractorPayment",
    "ContractorPostingAdapter",
    "PayrollPostingAdapter",
    "PayrollRun",
    "PayrollRunTotals",
    "PayrollTransaction",
    "SourceNotReadyError",
    "StageOrderError",
    "StatutoryPayment",
    "StatutoryPostingAdapter",
]
