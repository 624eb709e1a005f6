"""
Module: ledger_kernel.models.posting_rule
Responsibility: Persisted posting-rule versions.  The template itself is a
    structured JSON document parsed by ledger_kernel.posting_rules.templates;
    it is data, never executable code.
Architecture position: Kernel > Models.

Invariants enforced:
    - (scope_id, rule_code, version) is unique.
    - Rules are deactivated, never deleted, so every historical entry's
      (rule_code, rule_version) can still be looked up.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import JSON, Boolean, Date, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class PostingRuleRecord(TrackedBase):
    """One version of a posting rule within a scope."""

    __tablename__ = "posting_rules"
    __table_args__ = (
        UniqueConstraint("scope_id", "rule_code", "version", name="uq_posting_rule_version"),
        Index("idx_posting_rule_lookup", "scope_id", "rule_code", "is_active"),
    )

    scope_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    rule_code: Mapped[str] = mapped_column(String(100), nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    source_type: Mapped[str] = mapped_column(String(50), nullable=False)

    template: Mapped[dict] = mapped_column(JSON, nullable=False)

    effective_from: Mapped[date] = mapped_column(Date, nullable=False)

    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)

    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=100)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<PostingRuleRecord {self.rule_code} v{self.version}>"

    def covers(self, as_of: date) -> bool:
        """True if as_of falls in [effective_from, effective_to]."""
        if as_of < self.effective_from:
            return False
        return self.effective_to is None or as_of <= self.effective_to
