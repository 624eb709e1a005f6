"""
Module: ledger_kernel.models.sequence
Responsibility: Counter rows backing journal entry numbering.  One row per
    (scope, sequence name); the journal numbering sequence name is the
    financial year, so numbering restarts at 1 every April.
"""

from uuid import UUID

from sqlalchemy import BigInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class SequenceCounter(Base):
    """Locked counter row; never derived from max()+1."""

    __tablename__ = "sequence_counters"
    __table_args__ = (
        UniqueConstraint("scope_id", "name", name="uq_sequence_scope_name"),
    )

    scope_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
