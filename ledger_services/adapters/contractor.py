"""
Contractor payment adapter.

    CONTRACTOR_ACCRUAL       when the payment is approved
        Dr Professional fees (5550)               professional_fees
        Dr Input GST (1210)                       gst_input
            Cr TDS payable (2214 for 194C, else 2213)  tds
            Cr Contractor payable (linked, 2101)  net_payable

    CONTRACTOR_DISBURSEMENT  when the payment is paid; requires the accrual
        Dr Contractor payable (linked, 2101)      net_payable
            Cr Bank (linked, default 1112)        net_payable

Both payable lines carry the contractor as sub-ledger reference.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.domain.amounts import ZERO
from ledger_kernel.services.posting_orchestrator import PostingOrchestrator, PostingResult
from ledger_services.adapters.base import (
    CONTRACTOR_ACCRUAL,
    CONTRACTOR_DISBURSEMENT,
    SourceAdapter,
)
from ledger_services.models import PostingRequest
from ledger_services.outbox import PostingOutbox

TDS_PAYABLE_194C = "2214"
TDS_PAYABLE_194J = "2213"


def tds_account_code(section: str | None) -> str:
    """194C goes to the contractor TDS payable; everything else to 194J."""
    if section and section.upper().removeprefix("TDS_") == "194C":
        return TDS_PAYABLE_194C
    return TDS_PAYABLE_194J


@dataclass(frozen=True)
class ContractorPayment:
    payment_id: UUID
    scope_id: UUID
    contractor_id: UUID
    status: str
    gross_amount: Decimal
    tds_amount: Decimal = ZERO
    tds_section: str | None = "194J"
    gst_applicable: bool = False
    gst_amount: Decimal = ZERO
    contractor_name: str = ""
    invoice_number: str | None = None
    payment_date: date | None = None

    @property
    def net_payable(self) -> Decimal:
        gst = self.gst_amount if self.gst_applicable else ZERO
        return self.gross_amount + gst - self.tds_amount


def accrual_amounts(payment: ContractorPayment) -> dict[str, Decimal]:
    return {
        "professional_fees": payment.gross_amount,
        "gst_input": payment.gst_amount if payment.gst_applicable else ZERO,
        "tds": payment.tds_amount,
        "net_payable": payment.net_payable,
    }


def disbursement_amounts(payment: ContractorPayment) -> dict[str, Decimal]:
    return {"net_payable": payment.net_payable}


class ContractorPostingAdapter(SourceAdapter):
    """
    Posts contractor accruals and disbursements.

    ``payable_account_code`` overrides the contractor payable for scopes
    whose chart books contractors against trade payables (2100).
    """

    source_type = "contractor_payment"

    def __init__(
        self,
        orchestrator: PostingOrchestrator,
        outbox: PostingOutbox | None = None,
        payable_account_code: str | None = None,
    ):
        super().__init__(orchestrator, outbox)
        self._payable_account_code = payable_account_code

    def post_accrual(self, payment: ContractorPayment, actor_id: UUID) -> PostingResult:
        self._check_status(payment.payment_id, payment.status, ("approved", "paid"))
        return self._post(
            CONTRACTOR_ACCRUAL,
            payment.payment_id,
            accrual_amounts(payment),
            payment.scope_id,
            actor_id,
            entry_date=payment.payment_date,
            context=self._context(payment),
        )

    def post_disbursement(
        self,
        payment: ContractorPayment,
        actor_id: UUID,
        *,
        bank_account_code: str | None = None,
    ) -> PostingResult:
        self._check_status(payment.payment_id, payment.status, ("paid",))
        self._require_posted(CONTRACTOR_DISBURSEMENT, CONTRACTOR_ACCRUAL, payment.payment_id)
        return self._post(
            CONTRACTOR_DISBURSEMENT,
            payment.payment_id,
            disbursement_amounts(payment),
            payment.scope_id,
            actor_id,
            entry_date=payment.payment_date,
            context=self._context(payment, bank_account_code),
        )

    def enqueue_accrual(
        self, session: Session, payment: ContractorPayment, actor_id: UUID
    ) -> PostingRequest:
        self._check_status(payment.payment_id, payment.status, ("approved", "paid"))
        return self._enqueue(
            session,
            CONTRACTOR_ACCRUAL,
            payment.payment_id,
            accrual_amounts(payment),
            payment.scope_id,
            actor_id,
            entry_date=payment.payment_date,
            context=self._context(payment),
        )

    def enqueue_disbursement(
        self,
        session: Session,
        payment: ContractorPayment,
        actor_id: UUID,
        *,
        bank_account_code: str | None = None,
    ) -> PostingRequest:
        self._check_status(payment.payment_id, payment.status, ("paid",))
        self._require_posted(
            CONTRACTOR_DISBURSEMENT, CONTRACTOR_ACCRUAL, payment.payment_id, session
        )
        return self._enqueue(
            session,
            CONTRACTOR_DISBURSEMENT,
            payment.payment_id,
            disbursement_amounts(payment),
            payment.scope_id,
            actor_id,
            entry_date=payment.payment_date,
            context=self._context(payment, bank_account_code),
        )

    def _context(self, payment: ContractorPayment, bank_account_code: str | None = None) -> dict:
        context = {
            "contractor_id": str(payment.contractor_id),
            "contractor_name": payment.contractor_name,
            "invoice_number": payment.invoice_number or "N/A",
            "tds_section": payment.tds_section or "194J",
            "tds_account_code": tds_account_code(payment.tds_section),
        }
        if self._payable_account_code:
            context["payable_account_code"] = self._payable_account_code
        if bank_account_code:
            context["bank_account_code"] = bank_account_code
        return context
