"""
Posting outbox -- post ledger entries after the business change commits.

Responsibility:
    ``PostingOutbox.enqueue`` records a posting request inside the business
    transaction (payroll approved, payment marked paid).  The
    ``PostingOutboxConsumer`` later drains pending requests through the
    PostingOrchestrator and writes the resulting entry id back onto the
    business record.

Architecture position:
    Services -- orchestration over the kernel.  The kernel never imports
    this module.

Invariants enforced:
    - At most one live request per idempotency key; enqueueing the same
      stage for the same source twice returns the first request.  Once the
      request's entry has been reversed, enqueueing again reopens it with
      the new amounts, matching the journal's repost-after-reversal rule.
    - A request is marked POSTED only after its journal entry committed,
      and before any back-reference runs.
    - Reprocessing is harmless: the orchestrator answers ALREADY_POSTED.
    - One request never stops a pass: every outcome is recorded on the
      request itself and the consumer moves on.

Failure modes:
    - Non-retryable kernel errors (missing account, unbalanced template,
      missing rule, bad amount) move the request to FAILED with the error
      code; an operator fixes configuration and calls ``retry``.
    - Any other exception moves the request to FAILED with
      UNEXPECTED_ERROR and is logged with its traceback.
    - StorageUnavailableError leaves the request PENDING with attempts + 1.
    - A failing back-reference leaves the request POSTED with
      last_error_code BACK_REFERENCE_FAILED.

Usage:
    with session_scope() as session:
        run.status = "approved"
        PostingOutbox().enqueue(session, "PAYROLL_ACCRUAL", "payroll_run",
                                run.id, amounts, company_id, user_id)

    consumer = PostingOutboxConsumer(get_session_factory(), orchestrator)
    report = consumer.process_pending(limit=50)
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.domain.amounts import quantize_amount, to_decimal
from ledger_kernel.exceptions import InvalidAmountError, LedgerKernelError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.journal import JournalEntry
from ledger_kernel.services.posting_orchestrator import (
    PostingOrchestrator,
    PostingResult,
    PostingStatus,
)
from ledger_kernel.utils.idempotency import derive_idempotency_key
from ledger_services.models import PostingRequest, PostingRequestStatus

logger = get_logger("services.outbox")

UNEXPECTED_ERROR = "UNEXPECTED_ERROR"
BACK_REFERENCE_FAILED = "BACK_REFERENCE_FAILED"

# (session, request, result) -> None; runs in its own transaction after the
# request has been marked POSTED.
BackReference = Callable[[Session, PostingRequest, PostingResult], None]


class RetryNotAllowedError(LedgerKernelError):
    """Only FAILED requests can be retried."""

    code: str = "RETRY_NOT_ALLOWED"

    def __init__(self, request_id: UUID, reason: str):
        self.request_id = request_id
        self.reason = reason
        super().__init__(f"Retry not allowed for posting request {request_id}: {reason}")


def encode_amounts(amounts: Mapping[str, Any]) -> dict[str, str]:
    """Amounts as decimal strings for the JSON column; ``None`` is dropped."""
    encoded = {}
    for name, value in amounts.items():
        if value is None:
            continue
        try:
            d = to_decimal(value)
            quantize_amount(d)
        except ValueError:
            raise InvalidAmountError(name, repr(value)) from None
        encoded[name] = str(d)
    return encoded


def decode_amounts(stored: Mapping[str, Any]) -> dict[str, Decimal]:
    """Inverse of ``encode_amounts``; rejects rows written by other means."""
    decoded = {}
    for name, value in stored.items():
        try:
            decoded[name] = to_decimal(value)
        except ValueError:
            raise InvalidAmountError(name, repr(value)) from None
    return decoded


def _encode_context(context: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if not context:
        return None
    return {k: v if isinstance(v, (int, bool)) or v is None else str(v) for k, v in context.items()}


class PostingOutbox:
    """Writes posting requests inside the caller's transaction."""

    def enqueue(
        self,
        session: Session,
        stage: str,
        source_type: str,
        source_id: UUID,
        amounts: Mapping[str, Any],
        scope_id: UUID,
        actor_id: UUID,
        *,
        context: Mapping[str, Any] | None = None,
        entry_date: date | None = None,
        rule_code: str | None = None,
    ) -> PostingRequest:
        """
        Queue one stage of one business event for posting.

        Flushes but never commits: the request becomes visible exactly when
        the business change does.
        """
        key = derive_idempotency_key(stage, source_type, source_id)
        encoded = encode_amounts(amounts)

        existing = self.find(session, key)
        if existing is not None:
            if self._entry_reversed(session, existing):
                return self._reopen(
                    session, existing, encoded, context, entry_date, rule_code, actor_id
                )
            logger.info(
                "outbox_request_exists",
                extra={"idempotency_key": key, "request_id": str(existing.id)},
            )
            return existing

        request = PostingRequest(
            idempotency_key=key,
            stage=stage,
            source_type=source_type,
            source_id=source_id,
            scope_id=scope_id,
            actor_id=actor_id,
            amounts=encoded,
            context=_encode_context(context),
            entry_date=entry_date,
            rule_code=rule_code,
            status=PostingRequestStatus.PENDING.value,
            attempts=0,
            created_by_id=actor_id,
        )
        savepoint = session.begin_nested()
        try:
            session.add(request)
            session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            existing = self.find(session, key)
            if existing is None:
                raise
            return existing

        logger.info(
            "outbox_request_enqueued",
            extra={
                "idempotency_key": key,
                "request_id": str(request.id),
                "stage": stage,
            },
        )
        return request

    @staticmethod
    def _entry_reversed(session: Session, request: PostingRequest) -> bool:
        if request.status_enum != PostingRequestStatus.POSTED or request.journal_entry_id is None:
            return False
        entry = session.get(JournalEntry, request.journal_entry_id)
        return entry is not None and entry.is_reversed

    @staticmethod
    def _reopen(
        session: Session,
        request: PostingRequest,
        encoded: dict[str, str],
        context: Mapping[str, Any] | None,
        entry_date: date | None,
        rule_code: str | None,
        actor_id: UUID,
    ) -> PostingRequest:
        reversed_entry_id = request.journal_entry_id
        request.amounts = encoded
        request.context = _encode_context(context)
        request.entry_date = entry_date
        request.rule_code = rule_code
        request.actor_id = actor_id
        request.status = PostingRequestStatus.PENDING.value
        request.journal_entry_id = None
        request.last_error_code = None
        request.last_error = None
        request.updated_by_id = actor_id
        session.flush()
        logger.info(
            "outbox_request_reopened",
            extra={
                "idempotency_key": request.idempotency_key,
                "request_id": str(request.id),
                "reversed_entry_id": str(reversed_entry_id),
            },
        )
        return request

    @staticmethod
    def find(session: Session, idempotency_key: str) -> PostingRequest | None:
        return session.execute(
            select(PostingRequest).where(PostingRequest.idempotency_key == idempotency_key)
        ).scalar_one_or_none()

    @staticmethod
    def pending(session: Session, limit: int = 100) -> list[PostingRequest]:
        return list(
            session.execute(
                select(PostingRequest)
                .where(PostingRequest.status == PostingRequestStatus.PENDING.value)
                .order_by(PostingRequest.created_at, PostingRequest.id)
                .limit(limit)
            ).scalars()
        )


@dataclass
class ConsumerReport:
    """What one ``process_pending`` pass did."""

    posted: list[UUID] = field(default_factory=list)
    already_posted: list[UUID] = field(default_factory=list)
    failed: list[UUID] = field(default_factory=list)
    deferred: list[UUID] = field(default_factory=list)
    # Subset of posted/already_posted whose back-reference raised.
    back_reference_failed: list[UUID] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.posted) + len(self.already_posted) + len(self.failed) + len(self.deferred)


@dataclass(frozen=True)
class _RequestSnapshot:
    request_id: UUID
    stage: str
    source_type: str
    source_id: UUID
    scope_id: UUID
    actor_id: UUID
    amounts: dict
    context: dict
    entry_date: date | None
    rule_code: str | None


class PostingOutboxConsumer:
    """
    Drains pending posting requests.

    Contract:
        Each request is handled in short transactions: read the request,
        post through the orchestrator (its own transaction), record the
        outcome, then run the back-reference.  No session is held open
        while the orchestrator writes.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        orchestrator: PostingOrchestrator,
        back_references: Mapping[str, BackReference] | None = None,
    ):
        self._session_factory = session_factory
        self._orchestrator = orchestrator
        self._back_references = dict(back_references or {})

    def register_back_reference(self, source_type: str, callback: BackReference) -> None:
        self._back_references[source_type] = callback

    def process_pending(self, limit: int = 100) -> ConsumerReport:
        report = ConsumerReport()
        for snapshot in self._load_pending(limit):
            self._process(snapshot, report)
        logger.info(
            "outbox_pass_completed",
            extra={
                "posted": len(report.posted),
                "already_posted": len(report.already_posted),
                "failed": len(report.failed),
                "deferred": len(report.deferred),
                "back_reference_failed": len(report.back_reference_failed),
            },
        )
        return report

    def retry(self, request_id: UUID) -> PostingRequest:
        """Move a FAILED request back to PENDING after an operator fix."""
        session = self._session_factory()
        try:
            request = session.get(PostingRequest, request_id)
            if request is None:
                raise RetryNotAllowedError(request_id, "no such request")
            if request.status_enum != PostingRequestStatus.FAILED:
                raise RetryNotAllowedError(
                    request_id, f"status is {request.status_str}, not 'failed'"
                )
            request.status = PostingRequestStatus.PENDING.value
            session.commit()
            logger.info(
                "outbox_request_requeued",
                extra={"request_id": str(request_id), "attempts": request.attempts},
            )
            return request
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_pending(self, limit: int) -> list[_RequestSnapshot]:
        session = self._session_factory()
        try:
            snapshots = [
                _RequestSnapshot(
                    request_id=r.id,
                    stage=r.stage,
                    source_type=r.source_type,
                    source_id=r.source_id,
                    scope_id=r.scope_id,
                    actor_id=r.actor_id,
                    amounts=dict(r.amounts or {}),
                    context=dict(r.context or {}),
                    entry_date=r.entry_date,
                    rule_code=r.rule_code,
                )
                for r in PostingOutbox.pending(session, limit)
            ]
            session.commit()
            return snapshots
        finally:
            session.close()

    def _process(self, snapshot: _RequestSnapshot, report: ConsumerReport) -> None:
        with LogContext.bind(
            scope_id=snapshot.scope_id,
            source_type=snapshot.source_type,
            source_id=snapshot.source_id,
        ):
            try:
                result = self._orchestrator.post(
                    snapshot.stage,
                    snapshot.source_type,
                    snapshot.source_id,
                    decode_amounts(snapshot.amounts),
                    snapshot.scope_id,
                    snapshot.actor_id,
                    entry_date=snapshot.entry_date,
                    context=snapshot.context,
                    rule_code=snapshot.rule_code,
                )
            except LedgerKernelError as exc:
                if exc.retryable:
                    self._record_deferral(snapshot, exc)
                    report.deferred.append(snapshot.request_id)
                else:
                    self._record_failure(snapshot, exc.code, str(exc))
                    report.failed.append(snapshot.request_id)
                return
            except Exception as exc:
                logger.error(
                    "outbox_request_crashed",
                    extra={"request_id": str(snapshot.request_id)},
                    exc_info=True,
                )
                self._record_failure(snapshot, UNEXPECTED_ERROR, f"{type(exc).__name__}: {exc}")
                report.failed.append(snapshot.request_id)
                return

            self._record_success(snapshot, result)
            if result.status == PostingStatus.ALREADY_POSTED:
                report.already_posted.append(snapshot.request_id)
            else:
                report.posted.append(snapshot.request_id)

            callback = self._back_references.get(snapshot.source_type)
            if callback is not None and not self._run_back_reference(snapshot, result, callback):
                report.back_reference_failed.append(snapshot.request_id)

    def _record_success(self, snapshot: _RequestSnapshot, result: PostingResult) -> None:
        session = self._session_factory()
        try:
            request = session.get(PostingRequest, snapshot.request_id)
            request.status = PostingRequestStatus.POSTED.value
            request.attempts += 1
            request.journal_entry_id = result.entry_id
            request.last_error_code = None
            request.last_error = None
            request.updated_by_id = snapshot.actor_id
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

        logger.info(
            "outbox_request_posted",
            extra={
                "request_id": str(snapshot.request_id),
                "entry_id": str(result.entry_id),
                "entry_number": result.entry_number,
                "status": result.status.value,
            },
        )

    def _run_back_reference(
        self, snapshot: _RequestSnapshot, result: PostingResult, callback: BackReference
    ) -> bool:
        """Run ``callback``; on error roll it back and note it on the request."""
        session = self._session_factory()
        try:
            request = session.get(PostingRequest, snapshot.request_id)
            callback(session, request, result)
            session.commit()
            return True
        except Exception as exc:
            session.rollback()
            logger.error(
                "outbox_back_reference_failed",
                extra={
                    "request_id": str(snapshot.request_id),
                    "entry_id": str(result.entry_id),
                },
                exc_info=True,
            )
            request = session.get(PostingRequest, snapshot.request_id)
            request.last_error_code = BACK_REFERENCE_FAILED
            request.last_error = f"{type(exc).__name__}: {exc}"
            request.updated_by_id = snapshot.actor_id
            session.commit()
            return False
        finally:
            session.close()

    def _record_failure(self, snapshot: _RequestSnapshot, code: str, message: str) -> None:
        self._update_error(snapshot, code, message, PostingRequestStatus.FAILED)
        logger.warning(
            "outbox_request_failed",
            extra={
                "request_id": str(snapshot.request_id),
                "error_code": code,
                "error": message,
            },
        )

    def _record_deferral(self, snapshot: _RequestSnapshot, exc: LedgerKernelError) -> None:
        self._update_error(snapshot, exc.code, str(exc), PostingRequestStatus.PENDING)
        logger.warning(
            "outbox_request_deferred",
            extra={
                "request_id": str(snapshot.request_id),
                "error_code": exc.code,
            },
        )

    def _update_error(
        self,
        snapshot: _RequestSnapshot,
        code: str,
        message: str,
        status: PostingRequestStatus,
    ) -> None:
        session = self._session_factory()
        try:
            request = session.get(PostingRequest, snapshot.request_id)
            request.status = status.value
            request.attempts += 1
            request.last_error_code = code
            request.last_error = message
            request.updated_by_id = snapshot.actor_id
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()
