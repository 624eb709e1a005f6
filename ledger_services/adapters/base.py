"""
Shared plumbing for source adapters.

An adapter knows one kind of business record (payroll run, statutory
payment, contractor payment): which stages it posts, in what order, and
how its figures map onto the amount names of the posting rules.  It
either posts immediately through the PostingOrchestrator or enqueues a
request in the caller's transaction through the PostingOutbox.
"""

from datetime import date
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.exceptions import PostingError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.journal import JournalEntryStatus
from ledger_kernel.services.journal_store import JournalStore
from ledger_kernel.services.posting_orchestrator import PostingOrchestrator, PostingResult
from ledger_kernel.utils.idempotency import derive_idempotency_key
from ledger_services.models import PostingRequest
from ledger_services.outbox import PostingOutbox

logger = get_logger("services.adapters")

PAYROLL_ACCRUAL = "PAYROLL_ACCRUAL"
PAYROLL_DISBURSEMENT = "PAYROLL_DISBURSEMENT"
STATUTORY_REMITTANCE = "STATUTORY_REMITTANCE"
CONTRACTOR_ACCRUAL = "CONTRACTOR_ACCRUAL"
CONTRACTOR_DISBURSEMENT = "CONTRACTOR_DISBURSEMENT"


class SourceNotReadyError(PostingError):
    """The business record is not in a state that may be posted."""

    code: str = "SOURCE_NOT_READY"

    def __init__(self, source_type: str, source_id: UUID, status: str, expected: tuple[str, ...]):
        self.source_type = source_type
        self.source_id = source_id
        self.status = status
        self.expected = expected
        super().__init__(
            f"{source_type} {source_id} has status {status!r}; "
            f"expected one of {', '.join(expected)}"
        )


class StageOrderError(PostingError):
    """A stage was requested before the stage it depends on was posted."""

    code: str = "STAGE_OUT_OF_ORDER"

    def __init__(self, stage: str, required_stage: str, source_id: UUID):
        self.stage = stage
        self.required_stage = required_stage
        self.source_id = source_id
        super().__init__(
            f"{stage} for {source_id} requires a posted {required_stage} entry"
        )


class SourceAdapter:
    """Base for adapters; subclasses set ``source_type``."""

    source_type: str = ""

    def __init__(
        self,
        orchestrator: PostingOrchestrator,
        outbox: PostingOutbox | None = None,
    ):
        self._orchestrator = orchestrator
        self._outbox = outbox or PostingOutbox()

    def _check_status(self, source_id: UUID, status: str, allowed: tuple[str, ...]) -> None:
        if status not in allowed:
            raise SourceNotReadyError(self.source_type, source_id, status, allowed)

    def _require_posted(
        self,
        stage: str,
        required_stage: str,
        source_id: UUID,
        session: Session | None = None,
    ) -> None:
        """
        Raise StageOrderError unless ``required_stage`` has a posted entry.

        With a session the check runs inside the caller's transaction;
        otherwise it reads through the orchestrator.
        """
        key = derive_idempotency_key(required_stage, self.source_type, source_id)
        if session is not None:
            posted = JournalStore(session).find_by_idempotency_key(key) is not None
        else:
            entries = self._orchestrator.get_entries_by_source(self.source_type, source_id)
            posted = any(
                e.idempotency_key == key and e.status == JournalEntryStatus.POSTED
                for e in entries
            )
        if not posted:
            logger.warning(
                "stage_prerequisite_missing",
                extra={"stage": stage, "required_stage": required_stage, "source_id": str(source_id)},
            )
            raise StageOrderError(stage, required_stage, source_id)

    def _post(
        self,
        stage: str,
        source_id: UUID,
        amounts: Mapping[str, Any],
        scope_id: UUID,
        actor_id: UUID,
        *,
        entry_date: date | None,
        context: Mapping[str, Any],
        rule_code: str | None = None,
    ) -> PostingResult:
        return self._orchestrator.post(
            stage,
            self.source_type,
            source_id,
            amounts,
            scope_id,
            actor_id,
            entry_date=entry_date,
            context=context,
            rule_code=rule_code,
        )

    def _enqueue(
        self,
        session: Session,
        stage: str,
        source_id: UUID,
        amounts: Mapping[str, Any],
        scope_id: UUID,
        actor_id: UUID,
        *,
        entry_date: date | None,
        context: Mapping[str, Any],
        rule_code: str | None = None,
    ) -> PostingRequest:
        return self._outbox.enqueue(
            session,
            stage,
            self.source_type,
            source_id,
            amounts,
            scope_id,
            actor_id,
            context=context,
            entry_date=entry_date,
            rule_code=rule_code,
        )
