"""
Module: ledger_services.models
Responsibility: ORM persistence for the posting outbox.
Architecture position: Services > Models.  May import from
    ledger_kernel.db only.

Invariants enforced:
    - One request per idempotency key (uq_posting_request_key), mirroring
      the one-live-entry-per-key rule of the journal; a reversed posting
      reopens its request instead of adding a second row.
    - Amounts are stored as decimal strings, never floats.

State machine:
    PENDING -> POSTED            (entry committed or already present)
    PENDING -> FAILED            (configuration or data defect)
    PENDING -> PENDING           (storage unavailable; attempts + 1)
    FAILED  -> PENDING           (operator retry after a fix)
    POSTED  -> PENDING           (its entry was reversed and the stage is
                                  enqueued again with corrected amounts)
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class PostingRequestStatus(str, Enum):
    PENDING = "pending"
    POSTED = "posted"
    FAILED = "failed"


class PostingRequest(TrackedBase):
    """
    A posting queued in the same transaction as the business change that
    caused it.

    The consumer turns each request into exactly one journal entry through
    the PostingOrchestrator; the request's idempotency key is the one the
    orchestrator derives, so reprocessing is harmless.
    """

    __tablename__ = "posting_requests"
    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_posting_request_key"),
        Index("idx_posting_request_status", "status", "created_at"),
    )

    idempotency_key: Mapped[str] = mapped_column(String(200), nullable=False)

    stage: Mapped[str] = mapped_column(String(50), nullable=False)
    source_type: Mapped[str] = mapped_column(String(50), nullable=False)
    source_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    scope_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # {"gross_salary": "100000.00", ...}
    amounts: Mapped[dict] = mapped_column(JSON, nullable=False)
    context: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    entry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    rule_code: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[PostingRequestStatus] = mapped_column(
        String(10),
        default=PostingRequestStatus.PENDING.value,
        nullable=False,
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<PostingRequest {self.idempotency_key} [{self.status_str}]>"

    @property
    def status_enum(self) -> PostingRequestStatus:
        if isinstance(self.status, PostingRequestStatus):
            return self.status
        return PostingRequestStatus(self.status)

    @property
    def status_str(self) -> str:
        return self.status_enum.value

    @property
    def decimal_amounts(self) -> dict[str, Decimal]:
        return {name: Decimal(value) for name, value in (self.amounts or {}).items()}

