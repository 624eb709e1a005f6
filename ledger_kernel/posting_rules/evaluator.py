"""
Posting template evaluator.

Responsibility:
    Pure function from (rule, amounts, context) to candidate journal lines
    against symbolic account codes.  No account resolution against the
    database, no balance enforcement, no I/O.

Invariants enforced:
    - Sparse posting: a line whose amount field is absent or zero is
      omitted, never written as a zero line.
    - Amounts are quantized to two decimals (half-even) before use.
    - Negative amounts are rejected; the side of a line comes from the
      template, never from the sign of an amount.

Failure modes:
    - InvalidAmountError for a negative or non-numeric referenced amount.
    - MissingAccountError when a LinkedAccount has no context value and no
      fallback code.
"""

from decimal import Decimal
from typing import Any, Iterable, Mapping

from ledger_kernel.domain.amounts import allocate, quantize_amount
from ledger_kernel.exceptions import InvalidAmountError, MissingAccountError
from ledger_kernel.models.journal import LineSide
from ledger_kernel.posting_rules.templates import (
    AccountRef,
    CandidateLine,
    FixedAccount,
    LineTemplate,
    PostingRuleDefinition,
    SplitLineTemplate,
)


def render_text(template: str | None, values: Mapping[str, Any]) -> str | None:
    """
    Fill ``{placeholders}`` from values.

    A template that references a value the caller did not supply is
    returned unformatted rather than failing the posting.
    """
    if template is None:
        return None
    try:
        return template.format_map(values)
    except (KeyError, IndexError, ValueError):
        return template


def line_totals(lines: Iterable[CandidateLine]) -> tuple[Decimal, Decimal]:
    """(total_debit, total_credit) of candidate lines."""
    debit = Decimal("0.00")
    credit = Decimal("0.00")
    for line in lines:
        if line.side is LineSide.DEBIT:
            debit += line.amount
        else:
            credit += line.amount
    return debit, credit


class TemplateEvaluator:
    """
    Evaluates posting rules.

    Stateless; one instance can be shared across threads.
    """

    def evaluate(
        self,
        rule: PostingRuleDefinition,
        amounts: Mapping[str, Any],
        context: Mapping[str, Any] | None = None,
    ) -> list[CandidateLine]:
        """
        Produce candidate lines for ``rule``.

        Args:
            rule: The posting rule to evaluate.
            amounts: Named amounts (Decimal, int or numeric str).
            context: Non-monetary values: linked account codes, sub-ledger
                ids and narration placeholders.

        Returns:
            Candidate lines in template order.  May be empty.
        """
        context = context or {}
        text_values = {**context, **amounts}
        lines: list[CandidateLine] = []

        for template in rule.lines:
            amount = self._amount(amounts, template.amount_field)
            if amount is None:
                continue

            if isinstance(template, LineTemplate):
                subledger_id = None
                if template.subledger_id_field is not None:
                    raw = context.get(template.subledger_id_field)
                    subledger_id = str(raw) if raw is not None else None
                lines.append(
                    CandidateLine(
                        account_code=self._account_code(template.account, context),
                        side=template.side,
                        amount=amount,
                        description=render_text(template.description, text_values),
                        subledger_type=template.subledger_type if subledger_id else None,
                        subledger_id=subledger_id,
                        source_field=template.amount_field,
                    )
                )
            elif isinstance(template, SplitLineTemplate):
                lines.extend(self._split(template, amount, context, text_values))

        return lines

    def _split(
        self,
        template: SplitLineTemplate,
        amount: Decimal,
        context: Mapping[str, Any],
        text_values: Mapping[str, Any],
    ) -> list[CandidateLine]:
        parts = allocate(amount, [share.weight for share in template.shares])
        out = []
        for share, part in zip(template.shares, parts):
            if part == 0:
                continue
            out.append(
                CandidateLine(
                    account_code=self._account_code(share.account, context),
                    side=template.side,
                    amount=part,
                    description=render_text(
                        share.description or template.description, text_values
                    ),
                    source_field=template.amount_field,
                )
            )
        return out

    @staticmethod
    def _amount(amounts: Mapping[str, Any], field: str) -> Decimal | None:
        raw = amounts.get(field)
        if raw is None:
            return None
        try:
            value = quantize_amount(raw)
        except ValueError:
            raise InvalidAmountError(field, repr(raw)) from None
        if value < 0:
            raise InvalidAmountError(field, str(value))
        if value == 0:
            return None
        return value

    @staticmethod
    def _account_code(ref: AccountRef, context: Mapping[str, Any]) -> str:
        if isinstance(ref, FixedAccount):
            return ref.code
        linked = context.get(ref.field)
        if linked:
            return str(linked)
        if ref.fallback_code is not None:
            return ref.fallback_code
        raise MissingAccountError(f"{ref.field}=<unset>")
