"""
Typed posting-rule templates.

Responsibility:
    Defines the tagged variants a posting rule is made of, and converts them
    to and from the JSON document stored in ``posting_rules.template`` and in
    YAML packs.  Templates are data: there is no expression language, so
    evaluation is total and side-effect free.

Variants:
    Account reference
        FixedAccount(code)                  -- always this chart code
        LinkedAccount(field, fallback_code) -- code taken from the posting
                                               context (e.g. the bank account
                                               a payment was made from)
    Line
        LineTemplate       -- one amount field -> one line
        SplitLineTemplate  -- one amount field -> several lines, split by
                              weight with largest-remainder allocation

Document shape (YAML shown)::

    rule_code: PAYROLL_ACCRUAL
    name: Payroll accrual
    source_type: payroll_run
    description_template: "Salary accrual for {period_label}"
    lines:
      - account_code: "5210"
        side: debit
        amount: gross_salary
        description: Salary expense
      - account_field: bank_account_code
        account_fallback: "1112"
        side: credit
        amount: net_salary
        subledger_type: bank
        subledger_id_field: bank_account_id
      - kind: split
        side: debit
        amount: gst_input
        shares:
          - {account_code: "1211", weight: 1}
          - {account_code: "1212", weight: 1}

Failure modes:
    - InvalidPostingRuleError for unknown kinds or sides, missing keys, or
      empty/zero-weight splits.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Union

from ledger_kernel.domain.amounts import to_decimal
from ledger_kernel.exceptions import InvalidPostingRuleError
from ledger_kernel.models.journal import LineSide


# ---------------------------------------------------------------------------
# Account references
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FixedAccount:
    """Line always posts to this symbolic account code."""

    code: str

    def to_dict(self) -> dict[str, Any]:
        return {"account_code": self.code}


@dataclass(frozen=True)
class LinkedAccount:
    """Account code is read from the posting context under ``field``."""

    field: str
    fallback_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"account_field": self.field}
        if self.fallback_code is not None:
            data["account_fallback"] = self.fallback_code
        return data


AccountRef = Union[FixedAccount, LinkedAccount]


def _parse_account_ref(rule_code: str, data: dict[str, Any]) -> AccountRef:
    if "account_code" in data:
        return FixedAccount(code=str(data["account_code"]))
    if "account_field" in data:
        fallback = data.get("account_fallback")
        return LinkedAccount(
            field=data["account_field"],
            fallback_code=str(fallback) if fallback is not None else None,
        )
    raise InvalidPostingRuleError(
        rule_code, f"line has neither account_code nor account_field: {data!r}"
    )


def _parse_side(rule_code: str, value: Any) -> LineSide:
    try:
        return LineSide(str(value).lower())
    except ValueError:
        raise InvalidPostingRuleError(rule_code, f"unknown side {value!r}") from None


# ---------------------------------------------------------------------------
# Line templates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineTemplate:
    """One amount field feeding one side of one account."""

    account: AccountRef
    side: LineSide
    amount_field: str
    description: str | None = None
    subledger_type: str | None = None
    subledger_id_field: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {**self.account.to_dict(), "side": self.side.value, "amount": self.amount_field}
        if self.description is not None:
            data["description"] = self.description
        if self.subledger_type is not None:
            data["subledger_type"] = self.subledger_type
        if self.subledger_id_field is not None:
            data["subledger_id_field"] = self.subledger_id_field
        return data


@dataclass(frozen=True)
class SplitShare:
    account: AccountRef
    weight: Decimal
    description: str | None = None


@dataclass(frozen=True)
class SplitLineTemplate:
    """One amount field split by weight across several accounts."""

    side: LineSide
    amount_field: str
    shares: tuple[SplitShare, ...]
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        shares = []
        for share in self.shares:
            item = {**share.account.to_dict(), "weight": str(share.weight)}
            if share.description is not None:
                item["description"] = share.description
            shares.append(item)
        data = {
            "kind": "split",
            "side": self.side.value,
            "amount": self.amount_field,
            "shares": shares,
        }
        if self.description is not None:
            data["description"] = self.description
        return data


AnyLineTemplate = Union[LineTemplate, SplitLineTemplate]


def _parse_line(rule_code: str, data: dict[str, Any]) -> AnyLineTemplate:
    if "amount" not in data or "side" not in data:
        raise InvalidPostingRuleError(rule_code, f"line needs 'side' and 'amount': {data!r}")

    kind = data.get("kind", "line")
    side = _parse_side(rule_code, data["side"])

    if kind == "line":
        return LineTemplate(
            account=_parse_account_ref(rule_code, data),
            side=side,
            amount_field=data["amount"],
            description=data.get("description"),
            subledger_type=data.get("subledger_type"),
            subledger_id_field=data.get("subledger_id_field"),
        )

    if kind == "split":
        raw_shares = data.get("shares") or []
        try:
            shares = tuple(
                SplitShare(
                    account=_parse_account_ref(rule_code, s),
                    weight=to_decimal(s.get("weight", 1)),
                    description=s.get("description"),
                )
                for s in raw_shares
            )
        except ValueError as exc:
            raise InvalidPostingRuleError(rule_code, str(exc)) from exc
        if not shares or any(s.weight < 0 for s in shares) or not any(s.weight > 0 for s in shares):
            raise InvalidPostingRuleError(
                rule_code, "split line needs at least one share with a positive weight"
            )
        return SplitLineTemplate(
            side=side,
            amount_field=data["amount"],
            shares=shares,
            description=data.get("description"),
        )

    raise InvalidPostingRuleError(rule_code, f"unknown line kind {kind!r}")


# ---------------------------------------------------------------------------
# Rule definition
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PostingRuleDefinition:
    """
    A complete, versioned posting rule.

    Contract:
        ``template_document()`` and ``from_dict()`` round-trip everything the
        engine needs; scope, version and effective dates live in their own
        columns on PostingRuleRecord.
    """

    rule_code: str
    source_type: str
    lines: tuple[AnyLineTemplate, ...]
    name: str = ""
    version: int = 1
    description_template: str | None = None
    narration_template: str | None = None
    effective_from: date = date(2000, 1, 1)
    effective_to: date | None = None
    priority: int = 100

    @classmethod
    def from_dict(cls, data: dict[str, Any], **overrides: Any) -> "PostingRuleDefinition":
        rule_code = data.get("rule_code") or overrides.get("rule_code")
        if not rule_code:
            raise InvalidPostingRuleError("<unnamed>", "rule_code is required")
        raw_lines = data.get("lines")
        if not raw_lines:
            raise InvalidPostingRuleError(rule_code, "rule has no lines")

        values: dict[str, Any] = {
            "rule_code": rule_code,
            "source_type": data.get("source_type", ""),
            "lines": tuple(_parse_line(rule_code, line) for line in raw_lines),
            "name": data.get("name") or rule_code,
            "version": int(data.get("version", 1)),
            "description_template": data.get("description_template"),
            "narration_template": data.get("narration_template"),
            "priority": int(data.get("priority", 100)),
        }
        if data.get("effective_from"):
            values["effective_from"] = _as_date(data["effective_from"])
        if data.get("effective_to"):
            values["effective_to"] = _as_date(data["effective_to"])
        values.update(overrides)
        return cls(**values)

    def template_document(self) -> dict[str, Any]:
        """The JSON document persisted in posting_rules.template."""
        doc: dict[str, Any] = {"lines": [line.to_dict() for line in self.lines]}
        if self.description_template is not None:
            doc["description_template"] = self.description_template
        if self.narration_template is not None:
            doc["narration_template"] = self.narration_template
        return doc

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_code": self.rule_code,
            "name": self.name,
            "source_type": self.source_type,
            "version": self.version,
            "priority": self.priority,
            "effective_from": self.effective_from.isoformat(),
            "effective_to": self.effective_to.isoformat() if self.effective_to else None,
            **self.template_document(),
        }

    @property
    def amount_fields(self) -> frozenset[str]:
        return frozenset(line.amount_field for line in self.lines)


def _as_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


# ---------------------------------------------------------------------------
# Evaluator output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CandidateLine:
    """A computed line against a symbolic account code, not yet resolved."""

    account_code: str
    side: LineSide
    amount: Decimal
    description: str | None = None
    subledger_type: str | None = None
    subledger_id: str | None = None
    source_field: str | None = field(default=None, compare=False)

    @property
    def debit(self) -> Decimal:
        return self.amount if self.side is LineSide.DEBIT else Decimal("0.00")

    @property
    def credit(self) -> Decimal:
        return self.amount if self.side is LineSide.CREDIT else Decimal("0.00")
