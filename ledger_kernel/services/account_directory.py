"""
AccountDirectory -- symbolic account code resolution per scope.

Responsibility:
    Resolves chart-of-accounts codes ("2110") to accounts within one scope,
    and maintains the chart (create / deactivate).

Architecture position:
    Kernel > Services.  Leaf dependency of the posting orchestrator.

Invariants enforced:
    - Posting fails fast on an unknown or inactive code: resolve() raises
      MissingAccountError naming the code; it never returns None.
    - Cache entries are partitioned by scope and hold immutable snapshots,
      never ORM objects, so no state leaks between sessions or tenants.
    - Chart edits made through the directory invalidate that scope's cache.

Non-goals:
    - No mutation during posting; the orchestrator only calls resolve().
"""

import threading
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.exceptions import AccountAlreadyExistsError, MissingAccountError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import (
    DEFAULT_NORMAL_BALANCE,
    Account,
    AccountType,
    NormalBalance,
)
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account_directory")


@dataclass(frozen=True)
class ResolvedAccount:
    """Immutable snapshot of an active account."""

    id: UUID
    scope_id: UUID
    code: str
    name: str
    account_type: AccountType
    normal_balance: NormalBalance

    @classmethod
    def from_model(cls, account: Account) -> "ResolvedAccount":
        return cls(
            id=account.id,
            scope_id=account.scope_id,
            code=account.code,
            name=account.name,
            account_type=AccountType(account.account_type),
            normal_balance=NormalBalance(account.normal_balance),
        )


class ChartCache:
    """
    Read-through cache of active accounts, partitioned by scope.

    Thread-safe.  Inject one instance into the services that should share
    it; there is deliberately no module-level instance.
    """

    def __init__(self):
        self._by_scope: dict[UUID, dict[str, ResolvedAccount]] = {}
        self._lock = threading.Lock()

    def get(self, scope_id: UUID, code: str) -> ResolvedAccount | None:
        with self._lock:
            return self._by_scope.get(scope_id, {}).get(code)

    def put(self, account: ResolvedAccount) -> None:
        with self._lock:
            self._by_scope.setdefault(account.scope_id, {})[account.code] = account

    def invalidate(self, scope_id: UUID) -> None:
        with self._lock:
            self._by_scope.pop(scope_id, None)
        logger.debug("chart_cache_invalidated", extra={"scope_id": str(scope_id)})

    def clear(self) -> None:
        with self._lock:
            self._by_scope.clear()

    def size(self, scope_id: UUID) -> int:
        with self._lock:
            return len(self._by_scope.get(scope_id, {}))


class AccountDirectory(BaseService):
    """
    Chart-of-accounts lookups and maintenance for any scope.

    Contract:
        resolve(scope, code) -> ResolvedAccount, or MissingAccountError.
    """

    def __init__(self, session, cache: ChartCache | None = None):
        super().__init__(session)
        self._cache = cache

    def _load(self, scope_id: UUID, code: str) -> Account | None:
        return self.session.execute(
            select(Account).where(Account.scope_id == scope_id, Account.code == code)
        ).scalar_one_or_none()

    def find(self, scope_id: UUID, code: str) -> ResolvedAccount | None:
        """Active account for code in scope, or None."""
        if self._cache is not None:
            cached = self._cache.get(scope_id, code)
            if cached is not None:
                return cached

        account = self._load(scope_id, code)
        if account is None or not account.is_active:
            return None

        resolved = ResolvedAccount.from_model(account)
        if self._cache is not None:
            self._cache.put(resolved)
        return resolved

    def resolve(self, scope_id: UUID, code: str) -> ResolvedAccount:
        """
        Resolve a symbolic code.

        Raises:
            MissingAccountError: The code is not in scope's chart or is
                inactive.
        """
        resolved = self.find(scope_id, code)
        if resolved is None:
            logger.warning(
                "account_resolution_failed",
                extra={"scope_id": str(scope_id), "account_code": code},
            )
            raise MissingAccountError(code, str(scope_id))
        return resolved

    def resolve_many(self, scope_id: UUID, codes) -> dict[str, ResolvedAccount]:
        """Resolve every code; the first missing one (in order) raises."""
        return {code: self.resolve(scope_id, code) for code in dict.fromkeys(codes)}

    def list_accounts(self, scope_id: UUID, include_inactive: bool = False) -> list[Account]:
        stmt = select(Account).where(Account.scope_id == scope_id)
        if not include_inactive:
            stmt = stmt.where(Account.is_active.is_(True))
        return list(self.session.execute(stmt.order_by(Account.code)).scalars())

    def create_account(
        self,
        scope_id: UUID,
        code: str,
        name: str,
        account_type: AccountType,
        actor_id: UUID,
        normal_balance: NormalBalance | None = None,
        parent_code: str | None = None,
    ) -> Account:
        """
        Add an account to scope's chart.

        Raises:
            AccountAlreadyExistsError: (scope, code) already exists.
            MissingAccountError: parent_code does not exist in scope.
        """
        if self._load(scope_id, code) is not None:
            raise AccountAlreadyExistsError(code, str(scope_id))

        parent_id = None
        if parent_code is not None:
            parent = self._load(scope_id, parent_code)
            if parent is None:
                raise MissingAccountError(parent_code, str(scope_id))
            parent_id = parent.id

        account_type = AccountType(account_type)
        account = Account(
            scope_id=scope_id,
            code=code,
            name=name,
            account_type=account_type,
            normal_balance=NormalBalance(
                normal_balance or DEFAULT_NORMAL_BALANCE[account_type]
            ),
            parent_id=parent_id,
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(account)
        self.session.flush()

        if self._cache is not None:
            self._cache.invalidate(scope_id)
        logger.info(
            "account_created",
            extra={
                "scope_id": str(scope_id),
                "account_code": code,
                "account_type": account_type.value,
            },
        )
        return account

    def deactivate(self, scope_id: UUID, code: str, actor_id: UUID) -> Account:
        account = self._load(scope_id, code)
        if account is None:
            raise MissingAccountError(code, str(scope_id))
        account.is_active = False
        account.updated_by_id = actor_id
        self.session.flush()

        if self._cache is not None:
            self._cache.invalidate(scope_id)
        logger.info(
            "account_deactivated",
            extra={"scope_id": str(scope_id), "account_code": code},
        )
        return account
