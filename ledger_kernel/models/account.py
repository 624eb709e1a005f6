"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the chart of accounts, the target of
    every journal line.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (scope_id, code) is unique: a symbolic code names exactly one account
      within a scope (business unit / company).
    - Accounts are never deleted once referenced by a line (FK from
      journal_entry_lines); they are deactivated instead.

Failure modes:
    - IntegrityError on a duplicate (scope_id, code).
    - MissingAccountError (raised by AccountDirectory) when a posting names a
      code that does not exist or is inactive.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class AccountType(str, Enum):
    """Classification of an account in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    INCOME = "income"
    EXPENSE = "expense"


class NormalBalance(str, Enum):
    """Normal balance side for an account."""

    DEBIT = "debit"
    CREDIT = "credit"


DEFAULT_NORMAL_BALANCE = {
    AccountType.ASSET: NormalBalance.DEBIT,
    AccountType.EXPENSE: NormalBalance.DEBIT,
    AccountType.LIABILITY: NormalBalance.CREDIT,
    AccountType.EQUITY: NormalBalance.CREDIT,
    AccountType.INCOME: NormalBalance.CREDIT,
}


class Account(TrackedBase):
    """
    Chart of accounts entry within one scope.

    Contract:
        Account.code is unique per scope.  The posting engine only ever reads
        accounts; the chart is maintained through AccountDirectory and the
        configuration seeder.

    Guarantees:
        - account_type is one of ASSET, LIABILITY, EQUITY, INCOME, EXPENSE.
        - normal_balance is DEBIT or CREDIT.
        - parent_id, when set, points at another account (roll-up reporting).
    """

    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("scope_id", "code", name="uq_account_scope_code"),
        Index("idx_account_scope_active", "scope_id", "is_active"),
    )

    scope_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # Symbolic code, e.g. "2110"
    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    normal_balance: Mapped[NormalBalance] = mapped_column(String(10), nullable=False)

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.DEBIT
