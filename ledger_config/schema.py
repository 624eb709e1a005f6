"""
Posting pack schema.

A posting pack is the unit of ledger configuration: a chart of accounts
plus the posting rules that reference it.  Packs are parsed from YAML into
these frozen dataclasses and then seeded into a scope.
"""

from dataclasses import dataclass, field

from ledger_kernel.models.account import AccountType, NormalBalance
from ledger_kernel.posting_rules.templates import PostingRuleDefinition


@dataclass(frozen=True)
class AccountDef:
    code: str
    name: str
    account_type: AccountType
    normal_balance: NormalBalance | None = None
    parent_code: str | None = None


@dataclass(frozen=True)
class PostingPack:
    """
    A named, versioned chart of accounts and rule set.

    Guarantees:
        - accounts are ordered so that every parent precedes its children.
        - every FixedAccount code used by a rule is in ``accounts``
          (checked by the loader).
    """

    name: str
    version: str
    accounts: tuple[AccountDef, ...]
    rules: tuple[PostingRuleDefinition, ...]
    suspense_account_code: str | None = None
    checksum: str = field(default="", compare=False)

    def account(self, code: str) -> AccountDef | None:
        return next((a for a in self.accounts if a.code == code), None)

    def rule(self, rule_code: str) -> PostingRuleDefinition | None:
        return next((r for r in self.rules if r.rule_code == rule_code), None)

    @property
    def account_codes(self) -> frozenset[str]:
        return frozenset(a.code for a in self.accounts)
