"""
Payroll run adapter.

Posts the two ledger stages of a payroll run:

    PAYROLL_ACCRUAL       when the run is approved
        Dr Salaries and wages (5210)        gross_salary
        Dr Employer PF expense (5220)       employer_pf
        Dr Employer ESI expense (5230)      employer_esi
        Dr Gratuity expense (5250)          gratuity
            Cr Salary payable (2110)        net_salary
            Cr TDS payable - salary (2212)  tds
            Cr Employee PF payable (2221)   employee_pf
            Cr Employer PF payable (2222)   employer_pf
            Cr Employee ESI payable (2231)  employee_esi
            Cr Employer ESI payable (2232)  employer_esi
            Cr Professional tax (2240)      professional_tax
            Cr Gratuity payable (2250)      gratuity
            Cr Employee loans (1220)        loan_recovery, advance_recovery

    PAYROLL_DISBURSEMENT  when the run is paid; requires the accrual
        Dr Salary payable (2110)            net_salary
            Cr Bank (linked, default 1112)  net_salary

Zero components (no ESI-eligible staff, no PT state) simply produce no line.
"""

import calendar
from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.domain.amounts import ZERO, quantize_amount
from ledger_kernel.services.posting_orchestrator import PostingResult
from ledger_services.adapters.base import (
    PAYROLL_ACCRUAL,
    PAYROLL_DISBURSEMENT,
    SourceAdapter,
)
from ledger_services.models import PostingRequest

ACCRUAL_STATUSES = ("approved", "paid")
DISBURSEMENT_STATUSES = ("paid",)


@dataclass(frozen=True)
class PayrollTransaction:
    """One employee's figures in a payroll run."""

    gross_earnings: Decimal = ZERO
    net_payable: Decimal = ZERO
    tds_deducted: Decimal = ZERO
    pf_employee: Decimal = ZERO
    pf_employer: Decimal = ZERO
    pf_admin_charges: Decimal = ZERO
    esi_employee: Decimal = ZERO
    esi_employer: Decimal = ZERO
    professional_tax: Decimal = ZERO
    gratuity_provision: Decimal = ZERO
    bonus_paid: Decimal = ZERO
    reimbursements: Decimal = ZERO
    loan_recovery: Decimal = ZERO
    advance_recovery: Decimal = ZERO


@dataclass(frozen=True)
class PayrollRunTotals:
    """Run-level totals of every payroll component."""

    gross_salary: Decimal = ZERO
    net_salary: Decimal = ZERO
    tds: Decimal = ZERO
    employee_pf: Decimal = ZERO
    employer_pf: Decimal = ZERO
    employee_esi: Decimal = ZERO
    employer_esi: Decimal = ZERO
    professional_tax: Decimal = ZERO
    gratuity: Decimal = ZERO
    bonus: Decimal = ZERO
    reimbursements: Decimal = ZERO
    loan_recovery: Decimal = ZERO
    advance_recovery: Decimal = ZERO
    employee_count: int = 0

    @classmethod
    def from_transactions(cls, transactions: Iterable[PayrollTransaction]) -> "PayrollRunTotals":
        sums = {f.name: ZERO for f in fields(cls) if f.name != "employee_count"}
        count = 0
        for t in transactions:
            count += 1
            sums["gross_salary"] += t.gross_earnings
            sums["net_salary"] += t.net_payable
            sums["tds"] += t.tds_deducted
            sums["employee_pf"] += t.pf_employee
            # Admin charges are an employer cost remitted with employer PF.
            sums["employer_pf"] += t.pf_employer + t.pf_admin_charges
            sums["employee_esi"] += t.esi_employee
            sums["employer_esi"] += t.esi_employer
            sums["professional_tax"] += t.professional_tax
            sums["gratuity"] += t.gratuity_provision
            sums["bonus"] += t.bonus_paid
            sums["reimbursements"] += t.reimbursements
            sums["loan_recovery"] += t.loan_recovery
            sums["advance_recovery"] += t.advance_recovery
        return cls(
            **{name: quantize_amount(value) for name, value in sums.items()},
            employee_count=count,
        )


@dataclass(frozen=True)
class PayrollRun:
    run_id: UUID
    scope_id: UUID
    period_month: int
    period_year: int
    status: str
    transactions: tuple[PayrollTransaction, ...] = ()

    @property
    def period_label(self) -> str:
        return f"{calendar.month_name[self.period_month]} {self.period_year}"

    @property
    def totals(self) -> PayrollRunTotals:
        return PayrollRunTotals.from_transactions(self.transactions)


def accrual_amounts(totals: PayrollRunTotals) -> dict[str, Decimal]:
    return {
        "gross_salary": totals.gross_salary,
        "employer_pf": totals.employer_pf,
        "employer_esi": totals.employer_esi,
        "gratuity": totals.gratuity,
        "net_salary": totals.net_salary,
        "tds": totals.tds,
        "employee_pf": totals.employee_pf,
        "employee_esi": totals.employee_esi,
        "professional_tax": totals.professional_tax,
        "loan_recovery": totals.loan_recovery,
        "advance_recovery": totals.advance_recovery,
    }


def disbursement_amounts(totals: PayrollRunTotals) -> dict[str, Decimal]:
    return {"net_salary": totals.net_salary}


class PayrollPostingAdapter(SourceAdapter):
    """
    Posts or enqueues the accrual and disbursement of a payroll run.

    Usage:
        adapter = PayrollPostingAdapter(orchestrator)
        accrual = adapter.post_accrual(run, actor_id)
        ...
        adapter.post_disbursement(run, actor_id, bank_account_code="1113")
    """

    source_type = "payroll_run"

    def post_accrual(
        self, run: PayrollRun, actor_id: UUID, entry_date: date | None = None
    ) -> PostingResult:
        self._check_status(run.run_id, run.status, ACCRUAL_STATUSES)
        return self._post(
            PAYROLL_ACCRUAL,
            run.run_id,
            accrual_amounts(run.totals),
            run.scope_id,
            actor_id,
            entry_date=entry_date,
            context=self._context(run),
        )

    def post_disbursement(
        self,
        run: PayrollRun,
        actor_id: UUID,
        *,
        bank_account_code: str | None = None,
        bank_account_id: UUID | None = None,
        entry_date: date | None = None,
    ) -> PostingResult:
        self._check_status(run.run_id, run.status, DISBURSEMENT_STATUSES)
        self._require_posted(PAYROLL_DISBURSEMENT, PAYROLL_ACCRUAL, run.run_id)
        return self._post(
            PAYROLL_DISBURSEMENT,
            run.run_id,
            disbursement_amounts(run.totals),
            run.scope_id,
            actor_id,
            entry_date=entry_date,
            context=self._context(run, bank_account_code, bank_account_id),
        )

    def enqueue_accrual(
        self,
        session: Session,
        run: PayrollRun,
        actor_id: UUID,
        entry_date: date | None = None,
    ) -> PostingRequest:
        self._check_status(run.run_id, run.status, ACCRUAL_STATUSES)
        return self._enqueue(
            session,
            PAYROLL_ACCRUAL,
            run.run_id,
            accrual_amounts(run.totals),
            run.scope_id,
            actor_id,
            entry_date=entry_date,
            context=self._context(run),
        )

    def enqueue_disbursement(
        self,
        session: Session,
        run: PayrollRun,
        actor_id: UUID,
        *,
        bank_account_code: str | None = None,
        bank_account_id: UUID | None = None,
        entry_date: date | None = None,
    ) -> PostingRequest:
        self._check_status(run.run_id, run.status, DISBURSEMENT_STATUSES)
        self._require_posted(PAYROLL_DISBURSEMENT, PAYROLL_ACCRUAL, run.run_id, session)
        return self._enqueue(
            session,
            PAYROLL_DISBURSEMENT,
            run.run_id,
            disbursement_amounts(run.totals),
            run.scope_id,
            actor_id,
            entry_date=entry_date,
            context=self._context(run, bank_account_code, bank_account_id),
        )

    @staticmethod
    def _context(
        run: PayrollRun,
        bank_account_code: str | None = None,
        bank_account_id: UUID | None = None,
    ) -> dict:
        context = {
            "period_label": run.period_label,
            "employee_count": run.totals.employee_count,
        }
        if bank_account_code:
            context["bank_account_code"] = bank_account_code
        if bank_account_id:
            context["bank_account_id"] = str(bank_account_id)
        return context
