"""
PostingOrchestrator -- turns "post stage X for business event Y" into exactly
one balanced journal entry.

Responsibility:
    The single write entry point used by source-entity adapters and the
    posting outbox.  Owns the transaction for each posting attempt.

Architecture position:
    Kernel > Services.  Composes AccountDirectory, PostingRuleRegistry,
    TemplateEvaluator and JournalStore; opens one session per call from the
    injected session factory.

States per attempt:
    Idempotent-Hit  -> key already posted: return the stored entry unchanged
    Computing       -> rule lookup, template evaluation, account resolution
    Balanced-Ready  -> debits == credits
    Committed       -> header + lines committed in one transaction
    Rejected        -> MissingAccount / UnbalancedEntry / rule errors raised,
                       nothing written, key left unclaimed

Invariants enforced:
    - Idempotency: the key is derived from (stage, source_type, source_id)
      only; a repeat call returns the first entry even if amounts differ.
    - Concurrency: a duplicate-key IntegrityError from a racing writer is
      resolved by re-reading the key, so exactly one entry is committed and
      every caller receives it.
    - Balance: never coerced.  A SuspenseBalancingPolicy applies only when
      the caller passes one.
    - Atomicity: any exception rolls the whole attempt back.

Failure modes:
    - MissingAccountError, UnbalancedEntryError, InvalidAmountError,
      EmptyEntryError, PostingRuleNotFoundError: fatal, not retried.
    - StorageUnavailableError: connectivity lost; safe to retry unchanged.

Non-goals:
    - Does NOT write back-references onto business records (adapter's job).
    - Does NOT sequence stages (accrual before disbursement is enforced by
      the adapter).
"""

import time
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Mapping
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import JournalEntryRecord, JournalLineRecord
from ledger_kernel.exceptions import (
    EmptyEntryError,
    LedgerKernelError,
    StorageUnavailableError,
    UnbalancedEntryError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.posting_rules.evaluator import (
    TemplateEvaluator,
    line_totals,
    render_text,
)
from ledger_kernel.posting_rules.registry import PostingRuleRegistry
from ledger_kernel.posting_rules.suspense import SuspenseBalancingPolicy
from ledger_kernel.services.account_directory import AccountDirectory, ChartCache
from ledger_kernel.services.base import storage_guard
from ledger_kernel.services.journal_store import EntryHeader, JournalStore, ResolvedLine
from ledger_kernel.utils.idempotency import derive_idempotency_key

logger = get_logger("services.posting_orchestrator")


class PostingStatus(str, Enum):
    """Outcome of a successful ``post`` call."""

    POSTED = "posted"
    ALREADY_POSTED = "already_posted"


@dataclass(frozen=True)
class PostingResult:
    """
    Result of ``PostingOrchestrator.post``.

    Failures are raised, so every result carries a committed entry.
    """

    status: PostingStatus
    entry: JournalEntryRecord

    @property
    def is_new(self) -> bool:
        return self.status == PostingStatus.POSTED

    @property
    def entry_id(self) -> UUID:
        return self.entry.entry_id

    @property
    def entry_number(self) -> str:
        return self.entry.entry_number

    @property
    def total_debit(self):
        return self.entry.total_debit

    @property
    def total_credit(self):
        return self.entry.total_credit

    @property
    def lines(self) -> tuple[JournalLineRecord, ...]:
        return self.entry.lines

    @property
    def idempotency_key(self) -> str:
        return self.entry.idempotency_key


class PostingOrchestrator:
    """
    Stateless posting entry point.

    Contract:
        Holds only immutable collaborators (session factory, clock,
        evaluator, optional shared ChartCache); every call works in its own
        session, so one instance may be shared by many threads.

    Usage:
        orchestrator = PostingOrchestrator(get_session_factory())
        result = orchestrator.post(
            "PAYROLL_ACCRUAL", "payroll_run", run.id,
            {"gross_salary": Decimal("100000.00"), ...},
            scope_id=company_id, actor_id=user_id,
        )
        run.accrual_journal_id = result.entry_id
    """

    # Retries for non-idempotency conflicts (entry-number counter races).
    MAX_ATTEMPTS = 3

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        chart_cache: ChartCache | None = None,
        evaluator: TemplateEvaluator | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._chart_cache = chart_cache
        self._evaluator = evaluator or TemplateEvaluator()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def post(
        self,
        stage: str,
        source_type: str,
        source_id: UUID,
        amounts: Mapping[str, Any],
        scope_id: UUID,
        actor_id: UUID,
        *,
        entry_date: date | None = None,
        context: Mapping[str, Any] | None = None,
        rule_code: str | None = None,
        balancing_policy: SuspenseBalancingPolicy | None = None,
    ) -> PostingResult:
        """
        Post one stage of one business event, exactly once.

        Args:
            stage: Posting stage; also the default rule code.
            source_type: Business entity type, e.g. "payroll_run".
            source_id: Business entity id.
            amounts: Named amounts for the rule's line templates.  Only used
                by the call that creates the entry.
            scope_id: Ledger scope (company / business unit).
            actor_id: Who triggered the posting.
            entry_date: Accounting date; defaults to the clock's today.
            context: Linked account codes, sub-ledger ids, narration values.
            rule_code: Rule to use instead of the stage's own code.
            balancing_policy: Explicit suspense policy; never implied.

        Returns:
            PostingResult with status POSTED (this call wrote the entry) or
            ALREADY_POSTED (an earlier call did).

        Raises:
            MissingAccountError, UnbalancedEntryError, InvalidAmountError,
            EmptyEntryError, PostingRuleNotFoundError, InvalidPostingRuleError,
            StorageUnavailableError.
        """
        key = derive_idempotency_key(stage, source_type, source_id)
        entry_date = entry_date or self._clock.today()

        with LogContext.bind(
            correlation_id=uuid4(),
            scope_id=scope_id,
            actor_id=actor_id,
            source_type=source_type,
            source_id=source_id,
        ):
            logger.info(
                "posting_started",
                extra={
                    "stage": stage,
                    "idempotency_key": key,
                    "entry_date": entry_date.isoformat(),
                },
            )
            t0 = time.monotonic()
            try:
                result = self._post_with_retry(
                    key=key,
                    stage=stage,
                    source_type=source_type,
                    source_id=source_id,
                    amounts=amounts,
                    scope_id=scope_id,
                    actor_id=actor_id,
                    entry_date=entry_date,
                    context=context or {},
                    rule_code=rule_code or stage,
                    balancing_policy=balancing_policy,
                )
            except StorageUnavailableError:
                logger.error(
                    "posting_storage_unavailable",
                    extra={"stage": stage, "idempotency_key": key},
                    exc_info=True,
                )
                raise
            except LedgerKernelError as exc:
                logger.warning(
                    "posting_rejected",
                    extra={
                        "stage": stage,
                        "idempotency_key": key,
                        "error_code": exc.code,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                    exc_info=True,
                )
                raise
            except Exception:
                logger.error(
                    "posting_failed",
                    extra={"stage": stage, "idempotency_key": key},
                    exc_info=True,
                )
                raise

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            if result.status == PostingStatus.ALREADY_POSTED:
                logger.info(
                    "posting_already_posted",
                    extra={
                        "stage": stage,
                        "idempotency_key": key,
                        "entry_id": str(result.entry_id),
                        "entry_number": result.entry_number,
                        "duration_ms": duration_ms,
                    },
                )
            else:
                logger.info(
                    "posting_completed",
                    extra={
                        "stage": stage,
                        "entry_id": str(result.entry_id),
                        "entry_number": result.entry_number,
                        "total_debit": str(result.total_debit),
                        "line_count": len(result.lines),
                        "duration_ms": duration_ms,
                    },
                )
            return result

    def get_entries_by_source(
        self, source_type: str, source_id: UUID
    ) -> list[JournalEntryRecord]:
        """Every entry (posted and reversed) recorded for a business entity."""
        with storage_guard("get_entries_by_source"):
            session = self._session_factory()
            try:
                entries = JournalStore(session).find_by_source(source_type, source_id)
                return [JournalEntryRecord.from_model(e) for e in entries]
            finally:
                session.close()

    def get_entry(self, entry_id: UUID) -> JournalEntryRecord | None:
        with storage_guard("get_entry"):
            session = self._session_factory()
            try:
                entry = JournalStore(session).get(entry_id)
                return JournalEntryRecord.from_model(entry) if entry else None
            finally:
                session.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _post_with_retry(self, key: str, **kwargs: Any) -> PostingResult:
        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            try:
                with storage_guard("post"):
                    return self._attempt(key=key, **kwargs)
            except IntegrityError as exc:
                logger.warning(
                    "posting_concurrent_conflict",
                    extra={"idempotency_key": key, "attempt": attempt, "error": str(exc.orig)},
                )
                with storage_guard("post"):
                    existing = self._find_posted(key)
                if existing is not None:
                    return PostingResult(PostingStatus.ALREADY_POSTED, existing)
                if attempt == self.MAX_ATTEMPTS:
                    raise StorageUnavailableError(
                        "post", f"write conflict persisted after {attempt} attempts"
                    ) from exc
        raise AssertionError("unreachable")

    def _find_posted(self, key: str) -> JournalEntryRecord | None:
        session = self._session_factory()
        try:
            entry = JournalStore(session).find_by_idempotency_key(key)
            return JournalEntryRecord.from_model(entry) if entry else None
        finally:
            session.close()

    def _attempt(
        self,
        key: str,
        stage: str,
        source_type: str,
        source_id: UUID,
        amounts: Mapping[str, Any],
        scope_id: UUID,
        actor_id: UUID,
        entry_date: date,
        context: Mapping[str, Any],
        rule_code: str,
        balancing_policy: SuspenseBalancingPolicy | None,
    ) -> PostingResult:
        session = self._session_factory()
        try:
            store = JournalStore(session)

            # Idempotent-Hit
            existing = store.find_by_idempotency_key(key)
            if existing is not None:
                record = JournalEntryRecord.from_model(existing)
                session.commit()
                return PostingResult(PostingStatus.ALREADY_POSTED, record)

            # Computing
            rule = PostingRuleRegistry(session).get_active(scope_id, rule_code, entry_date)
            candidates = self._evaluator.evaluate(rule, amounts, context)
            if balancing_policy is not None:
                candidates = balancing_policy.balance(candidates)
            if not candidates:
                raise EmptyEntryError(rule.rule_code)

            directory = AccountDirectory(session, cache=self._chart_cache)
            accounts = directory.resolve_many(scope_id, [c.account_code for c in candidates])

            # Balanced-Ready
            total_debit, total_credit = line_totals(candidates)
            if total_debit != total_credit:
                raise UnbalancedEntryError(str(total_debit), str(total_credit))

            text_values = {
                **context,
                **amounts,
                "stage": stage,
                "source_type": source_type,
                "source_id": source_id,
                "entry_date": entry_date,
            }
            header = EntryHeader(
                scope_id=scope_id,
                entry_date=entry_date,
                description=render_text(rule.description_template, text_values) or rule.name,
                narration=render_text(rule.narration_template, text_values),
                source_type=source_type,
                source_id=source_id,
                idempotency_key=key,
                rule_code=rule.rule_code,
                rule_version=rule.version,
                actor_id=actor_id,
            )
            lines = [
                ResolvedLine(
                    account_id=accounts[c.account_code].id,
                    account_code=c.account_code,
                    side=c.side,
                    amount=c.amount,
                    description=c.description,
                    subledger_type=c.subledger_type,
                    subledger_id=c.subledger_id,
                )
                for c in candidates
            ]

            # Committed
            entry = store.append(header, lines)
            record = JournalEntryRecord.from_model(entry)
            session.commit()
            return PostingResult(PostingStatus.POSTED, record)
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()
