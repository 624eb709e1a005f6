"""
Scope seeding.

``seed_scope`` installs a posting pack into one scope: the chart of
accounts first (parents before children), then every rule version.  It is
idempotent, so it runs safely on every deploy: existing accounts are left
untouched and identical rule versions are skipped.  The caller owns the
transaction.
"""

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_config.schema import PostingPack
from ledger_kernel.logging_config import get_logger
from ledger_kernel.posting_rules.registry import PostingRuleRegistry
from ledger_kernel.services.account_directory import AccountDirectory

logger = get_logger("config.seeding")


@dataclass
class SeedReport:
    accounts_created: list[str] = field(default_factory=list)
    accounts_existing: list[str] = field(default_factory=list)
    rules_registered: list[tuple[str, int]] = field(default_factory=list)
    rules_existing: list[tuple[str, int]] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.accounts_created or self.rules_registered)


def seed_scope(
    session: Session,
    scope_id: UUID,
    pack: PostingPack,
    actor_id: UUID,
) -> SeedReport:
    """
    Create the pack's missing accounts and rule versions in ``scope_id``.

    Raises:
        InvalidPostingRuleError: a rule version already exists in the scope
            with a different template.
    """
    report = SeedReport()
    directory = AccountDirectory(session)
    existing = {a.code for a in directory.list_accounts(scope_id, include_inactive=True)}

    for account in pack.accounts:
        if account.code in existing:
            report.accounts_existing.append(account.code)
            continue
        directory.create_account(
            scope_id,
            account.code,
            account.name,
            account.account_type,
            actor_id,
            normal_balance=account.normal_balance,
            parent_code=account.parent_code,
        )
        existing.add(account.code)
        report.accounts_created.append(account.code)

    registry = PostingRuleRegistry(session)
    for rule in pack.rules:
        if registry.find_version(scope_id, rule.rule_code, rule.version) is not None:
            # register() still checks the stored template matches.
            registry.register(scope_id, rule, actor_id)
            report.rules_existing.append((rule.rule_code, rule.version))
            continue
        registry.register(scope_id, rule, actor_id)
        report.rules_registered.append((rule.rule_code, rule.version))

    logger.info(
        "scope_seeded",
        extra={
            "scope_id": str(scope_id),
            "pack": pack.name,
            "pack_version": pack.version,
            "accounts_created": len(report.accounts_created),
            "rules_registered": len(report.rules_registered),
        },
    )
    return report
