"""
Explicit suspense balancing.

The posting orchestrator never plugs a difference on its own: an unbalanced
entry is rejected.  A caller that has decided an imbalance is acceptable
(for example while a rule is being corrected) passes a
SuspenseBalancingPolicy to ``post``; only then is one balancing line added
against the named suspense account, and the addition is logged.
"""

from dataclasses import dataclass
from decimal import Decimal

from ledger_kernel.exceptions import UnbalancedEntryError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.journal import LineSide
from ledger_kernel.posting_rules.evaluator import line_totals
from ledger_kernel.posting_rules.templates import CandidateLine

logger = get_logger("posting_rules.suspense")


@dataclass(frozen=True)
class SuspenseBalancingPolicy:
    """
    Adds one line for the debit/credit difference to ``account_code``.

    Args:
        account_code: Suspense account in the chart (must resolve like any
            other account).
        max_difference: Differences above this are still rejected with
            UnbalancedEntryError.  None means no limit.
    """

    account_code: str
    max_difference: Decimal | None = None
    description: str = "Suspense: unbalanced posting difference"

    def balance(self, lines: list[CandidateLine]) -> list[CandidateLine]:
        total_debit, total_credit = line_totals(lines)
        difference = total_debit - total_credit
        if difference == 0:
            return list(lines)

        if self.max_difference is not None and abs(difference) > self.max_difference:
            raise UnbalancedEntryError(str(total_debit), str(total_credit))

        side = LineSide.CREDIT if difference > 0 else LineSide.DEBIT
        logger.warning(
            "suspense_line_added",
            extra={
                "suspense_account": self.account_code,
                "side": side.value,
                "difference": str(abs(difference)),
                "total_debit": str(total_debit),
                "total_credit": str(total_credit),
            },
        )
        return [
            *lines,
            CandidateLine(
                account_code=self.account_code,
                side=side,
                amount=abs(difference),
                description=self.description,
            ),
        ]
