"""
Statutory remittance adapter.

A statutory payment (TDS challan, PF ECR, ESI challan, professional tax,
labour welfare fund) clears the payable that the payroll accrual built up:

    Dr <payable for the payment type>         principal
    Dr Interest on delayed payments (5620)    interest
    Dr Interest on delayed payments (5620)    penalty
        Cr Bank (linked, default 1112)        total_amount

Every payment type posts under the STATUTORY_REMITTANCE stage, so one
payment yields one entry, but each type has its own rule
(STATUTORY_TDS_REMITTANCE, STATUTORY_PF_REMITTANCE, ...).
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.domain.amounts import ZERO
from ledger_kernel.services.posting_orchestrator import PostingResult
from ledger_services.adapters.base import STATUTORY_REMITTANCE, SourceAdapter
from ledger_services.models import PostingRequest

PAYABLE_ACCOUNTS = {
    "TDS_192": "2212",
    "TDS_194C": "2213",
    "TDS_194J": "2213",
    "PF": "2220",
    "ESI": "2230",
    "LWF": "2245",
    "LWF_KA": "2245",
    "LWF_MH": "2245",
}
OTHER_STATUTORY_PAYABLE = "2200"
PT_PAYABLE = "2240"

PAYMENT_TYPE_NAMES = {
    "TDS_192": "TDS on salary (Section 192)",
    "TDS_194C": "TDS on contractors (Section 194C)",
    "TDS_194J": "TDS on professional fees (Section 194J)",
    "PF": "Provident Fund",
    "ESI": "Employees' State Insurance",
    "LWF": "Labour Welfare Fund",
}


def payable_account_code(payment_type: str) -> str:
    """Chart code of the liability a payment type clears."""
    if payment_type in PAYABLE_ACCOUNTS:
        return PAYABLE_ACCOUNTS[payment_type]
    if payment_type.startswith("PT_"):
        return PT_PAYABLE
    return OTHER_STATUTORY_PAYABLE


def remittance_rule_code(payment_type: str) -> str:
    """Posting rule used for a payment type."""
    if payment_type.startswith("TDS_"):
        return "STATUTORY_TDS_REMITTANCE"
    if payment_type == "PF":
        return "STATUTORY_PF_REMITTANCE"
    if payment_type == "ESI":
        return "STATUTORY_ESI_REMITTANCE"
    if payment_type.startswith("PT_"):
        return "STATUTORY_PT_REMITTANCE"
    if payment_type.startswith("LWF"):
        return "STATUTORY_LWF_REMITTANCE"
    return STATUTORY_REMITTANCE


def payment_type_name(payment_type: str) -> str:
    if payment_type.startswith("PT_"):
        return f"Professional Tax ({payment_type[3:]})"
    if payment_type.startswith("LWF_"):
        return f"Labour Welfare Fund ({payment_type[4:]})"
    return PAYMENT_TYPE_NAMES.get(payment_type, payment_type)


@dataclass(frozen=True)
class StatutoryPayment:
    payment_id: UUID
    scope_id: UUID
    payment_type: str
    period_month: int
    period_year: int
    status: str
    principal_amount: Decimal = ZERO
    interest_amount: Decimal = ZERO
    penalty_amount: Decimal = ZERO
    payment_date: date | None = None
    reference_number: str | None = None
    bank_reference: str | None = None
    trrn: str | None = None
    bsr_code: str | None = None
    receipt_number: str | None = None

    @property
    def total_amount(self) -> Decimal:
        return self.principal_amount + self.interest_amount + self.penalty_amount


def remittance_amounts(payment: StatutoryPayment) -> dict[str, Decimal]:
    return {
        "principal": payment.principal_amount,
        "interest": payment.interest_amount,
        "penalty": payment.penalty_amount,
        "total_amount": payment.total_amount,
    }


def build_narration(payment: StatutoryPayment) -> str:
    """Remittance narration with whichever challan references are known."""
    parts = [
        f"Being {payment_type_name(payment.payment_type)} remitted for the period "
        f"{payment.period_month}/{payment.period_year}."
    ]
    for label, value in (
        ("Challan", payment.reference_number),
        ("Bank Ref", payment.bank_reference),
        ("TRRN", payment.trrn),
        ("BSR", payment.bsr_code),
        ("CIN", payment.receipt_number),
    ):
        if value:
            parts.append(f"{label}: {value}.")
    return " ".join(parts)


class StatutoryPostingAdapter(SourceAdapter):
    """Posts the remittance of a paid statutory payment."""

    source_type = "statutory_payment"

    def post_remittance(
        self,
        payment: StatutoryPayment,
        actor_id: UUID,
        *,
        bank_account_code: str | None = None,
        bank_account_id: UUID | None = None,
    ) -> PostingResult:
        self._check_status(payment.payment_id, payment.status, ("paid",))
        return self._post(
            STATUTORY_REMITTANCE,
            payment.payment_id,
            remittance_amounts(payment),
            payment.scope_id,
            actor_id,
            entry_date=payment.payment_date,
            context=self._context(payment, bank_account_code, bank_account_id),
            rule_code=remittance_rule_code(payment.payment_type),
        )

    def enqueue_remittance(
        self,
        session: Session,
        payment: StatutoryPayment,
        actor_id: UUID,
        *,
        bank_account_code: str | None = None,
        bank_account_id: UUID | None = None,
    ) -> PostingRequest:
        self._check_status(payment.payment_id, payment.status, ("paid",))
        return self._enqueue(
            session,
            STATUTORY_REMITTANCE,
            payment.payment_id,
            remittance_amounts(payment),
            payment.scope_id,
            actor_id,
            entry_date=payment.payment_date,
            context=self._context(payment, bank_account_code, bank_account_id),
            rule_code=remittance_rule_code(payment.payment_type),
        )

    @staticmethod
    def _context(
        payment: StatutoryPayment,
        bank_account_code: str | None,
        bank_account_id: UUID | None,
    ) -> dict:
        context = {
            "payment_type": payment.payment_type,
            "payment_type_name": payment_type_name(payment.payment_type),
            "payable_account_code": payable_account_code(payment.payment_type),
            "reference": payment.reference_number or payment.bank_reference or "N/A",
            "narration": build_narration(payment),
        }
        if bank_account_code:
            context["bank_account_code"] = bank_account_code
        if bank_account_id:
            context["bank_account_id"] = str(bank_account_id)
        return context
