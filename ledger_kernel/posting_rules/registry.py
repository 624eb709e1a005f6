"""
Posting rule registry.

Manages registration, lookup and deactivation of posting-rule versions per
scope.  Versions are selected by effective-date range so that an entry can
always be traced to the exact template that produced it.

Selection order for ``get_active(scope, rule_code, as_of)``:
    1. is_active and effective_from <= as_of <= effective_to (open-ended
       when effective_to is NULL)
    2. highest priority
    3. highest version
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.exceptions import InvalidPostingRuleError, PostingRuleNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.posting_rule import PostingRuleRecord
from ledger_kernel.posting_rules.templates import PostingRuleDefinition

logger = get_logger("posting_rules.registry")


def definition_from_record(record: PostingRuleRecord) -> PostingRuleDefinition:
    """Rebuild the typed definition from a stored rule version."""
    return PostingRuleDefinition.from_dict(
        record.template,
        rule_code=record.rule_code,
        source_type=record.source_type,
        name=record.name,
        version=record.version,
        effective_from=record.effective_from,
        effective_to=record.effective_to,
        priority=record.priority,
    )


class PostingRuleRegistry:
    """
    Database-backed registry of posting rules.

    Contract:
        Works inside the caller's session and only flushes; the caller owns
        the transaction.  Rules are never deleted, only deactivated.
    """

    def __init__(self, session: Session):
        self._session = session

    def register(
        self,
        scope_id: UUID,
        definition: PostingRuleDefinition,
        actor_id: UUID,
    ) -> PostingRuleRecord:
        """
        Store a rule version.

        Re-registering an identical version is a no-op that returns the
        existing row; registering a different template under an existing
        version number raises InvalidPostingRuleError.
        """
        existing = self.find_version(scope_id, definition.rule_code, definition.version)
        document = definition.template_document()
        if existing is not None:
            if existing.template != document or existing.source_type != definition.source_type:
                raise InvalidPostingRuleError(
                    definition.rule_code,
                    f"version {definition.version} already exists with a different template",
                )
            return existing

        record = PostingRuleRecord(
            scope_id=scope_id,
            rule_code=definition.rule_code,
            version=definition.version,
            name=definition.name or definition.rule_code,
            source_type=definition.source_type,
            template=document,
            effective_from=definition.effective_from,
            effective_to=definition.effective_to,
            priority=definition.priority,
            is_active=True,
            created_by_id=actor_id,
        )
        self._session.add(record)
        self._session.flush()

        logger.info(
            "posting_rule_registered",
            extra={
                "scope_id": str(scope_id),
                "rule_code": definition.rule_code,
                "version": definition.version,
                "effective_from": definition.effective_from.isoformat(),
            },
        )
        return record

    def find_version(
        self, scope_id: UUID, rule_code: str, version: int
    ) -> PostingRuleRecord | None:
        return self._session.execute(
            select(PostingRuleRecord).where(
                PostingRuleRecord.scope_id == scope_id,
                PostingRuleRecord.rule_code == rule_code,
                PostingRuleRecord.version == version,
            )
        ).scalar_one_or_none()

    def versions(self, scope_id: UUID, rule_code: str) -> list[PostingRuleRecord]:
        return list(
            self._session.execute(
                select(PostingRuleRecord)
                .where(
                    PostingRuleRecord.scope_id == scope_id,
                    PostingRuleRecord.rule_code == rule_code,
                )
                .order_by(PostingRuleRecord.version)
            ).scalars()
        )

    def get_active(
        self, scope_id: UUID, rule_code: str, as_of: date
    ) -> PostingRuleDefinition:
        """
        The rule version in force on ``as_of``.

        Raises:
            PostingRuleNotFoundError: No active version covers the date.
        """
        candidates = [
            r
            for r in self._session.execute(
                select(PostingRuleRecord).where(
                    PostingRuleRecord.scope_id == scope_id,
                    PostingRuleRecord.rule_code == rule_code,
                    PostingRuleRecord.is_active.is_(True),
                )
            ).scalars()
            if r.covers(as_of)
        ]
        if not candidates:
            raise PostingRuleNotFoundError(rule_code, str(scope_id), as_of.isoformat())

        chosen = max(candidates, key=lambda r: (r.priority, r.version))
        return definition_from_record(chosen)

    def deactivate(
        self, scope_id: UUID, rule_code: str, version: int, actor_id: UUID
    ) -> PostingRuleRecord:
        record = self.find_version(scope_id, rule_code, version)
        if record is None:
            raise PostingRuleNotFoundError(rule_code, str(scope_id))
        record.is_active = False
        record.updated_by_id = actor_id
        self._session.flush()
        logger.info(
            "posting_rule_deactivated",
            extra={"scope_id": str(scope_id), "rule_code": rule_code, "version": version},
        )
        return record
