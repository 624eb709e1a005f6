"""
Typed exception hierarchy for the ledger kernel.

Every error carries a machine-readable ``code`` class attribute and keeps
its context as attributes, so callers (adapters, the posting outbox, API
layers) branch on type and read structured fields instead of parsing
messages.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- AccountError
    |   +-- MissingAccountError
    |   +-- AccountAlreadyExistsError
    |
    +-- PostingError
    |   +-- UnbalancedEntryError
    |   +-- InvalidAmountError
    |   +-- EmptyEntryError
    |
    +-- RuleError
    |   +-- PostingRuleNotFoundError
    |   +-- InvalidPostingRuleError
    |
    +-- ReversalError
    |   +-- EntryNotFoundError
    |   +-- EntryAlreadyReversedError
    |   +-- MissingReversalReasonError
    |
    +-- StorageError
    |   +-- StorageUnavailableError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                     | When Raised
-------------|--------------------------|--------------------------------------
Account      | MISSING_ACCOUNT          | Code not in the chart for this scope
             | ACCOUNT_ALREADY_EXISTS   | (scope, code) already defined
-------------|--------------------------|--------------------------------------
Posting      | UNBALANCED_ENTRY         | Debits != Credits
             | INVALID_AMOUNT           | Negative or non-numeric amount
             | EMPTY_ENTRY              | Every amount was zero or absent
-------------|--------------------------|--------------------------------------
Rule         | POSTING_RULE_NOT_FOUND   | No active rule for scope/code/date
             | INVALID_POSTING_RULE     | Template document is malformed
-------------|--------------------------|--------------------------------------
Reversal     | ENTRY_NOT_FOUND          | Entry id doesn't exist
             | ENTRY_ALREADY_REVERSED   | Entry was already reversed
             | MISSING_REVERSAL_REASON  | Reason is blank
-------------|--------------------------|--------------------------------------
Storage      | STORAGE_UNAVAILABLE      | Database unreachable (retryable)
-------------|--------------------------|--------------------------------------
Immutability | IMMUTABILITY_VIOLATION   | Modifying a posted entry or line

A duplicate posting is NOT an error: the orchestrator returns
``PostingStatus.ALREADY_POSTED`` with the original entry.

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        result = orchestrator.post(stage, "payroll_run", run_id, amounts,
                                   scope_id, actor_id)
    except MissingAccountError as e:
        # Configuration defect: fix the chart, then repost.
        queue_for_operator(code=e.code, account_code=e.account_code)
    except StorageUnavailableError:
        # Transient: retry with the same arguments.
        schedule_retry()
"""


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"

    # Whether the caller may retry the same request unchanged.
    retryable: bool = False


# Account-related exceptions


class AccountError(LedgerKernelError):
    """Base exception for chart-of-accounts errors."""

    code: str = "ACCOUNT_ERROR"


class MissingAccountError(AccountError):
    """Referenced account code does not exist (or is inactive) in scope."""

    code: str = "MISSING_ACCOUNT"

    def __init__(self, account_code: str, scope_id: str | None = None):
        self.account_code = account_code
        self.scope_id = scope_id
        where = f" in scope {scope_id}" if scope_id else ""
        super().__init__(f"Account {account_code} not found{where}")


class AccountAlreadyExistsError(AccountError):
    """An account with this code is already defined for the scope."""

    code: str = "ACCOUNT_ALREADY_EXISTS"

    def __init__(self, account_code: str, scope_id: str):
        self.account_code = account_code
        self.scope_id = scope_id
        super().__init__(f"Account {account_code} already exists in scope {scope_id}")


# Posting-related exceptions


class PostingError(LedgerKernelError):
    """Base exception for posting-related errors."""

    code: str = "POSTING_ERROR"


class UnbalancedEntryError(PostingError):
    """Journal entry debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, total_debit: str, total_credit: str):
        self.total_debit = total_debit
        self.total_credit = total_credit
        super().__init__(
            f"Unbalanced entry: debits={total_debit}, credits={total_credit}"
        )


class InvalidAmountError(PostingError):
    """An amount supplied to a posting rule is negative or not a number."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"Invalid amount for {field}: {value}")


class EmptyEntryError(PostingError):
    """Rule evaluation produced no lines at all."""

    code: str = "EMPTY_ENTRY"

    def __init__(self, rule_code: str):
        self.rule_code = rule_code
        super().__init__(f"Rule {rule_code} produced no lines for the given amounts")


# Rule-related exceptions


class RuleError(LedgerKernelError):
    """Base exception for posting-rule errors."""

    code: str = "RULE_ERROR"


class PostingRuleNotFoundError(RuleError):
    """No active posting rule for the scope, code and date."""

    code: str = "POSTING_RULE_NOT_FOUND"

    def __init__(self, rule_code: str, scope_id: str | None = None, as_of: str | None = None):
        self.rule_code = rule_code
        self.scope_id = scope_id
        self.as_of = as_of
        super().__init__(
            f"No active posting rule {rule_code} for scope {scope_id} on {as_of}"
        )


class InvalidPostingRuleError(RuleError):
    """Posting rule template document is malformed."""

    code: str = "INVALID_POSTING_RULE"

    def __init__(self, rule_code: str, reason: str):
        self.rule_code = rule_code
        self.reason = reason
        super().__init__(f"Invalid posting rule {rule_code}: {reason}")


# Reversal-related exceptions


class ReversalError(LedgerKernelError):
    """Base exception for reversal errors."""

    code: str = "REVERSAL_ERROR"


class EntryNotFoundError(ReversalError):
    """Journal entry does not exist."""

    code: str = "ENTRY_NOT_FOUND"

    def __init__(self, journal_entry_id: str):
        self.journal_entry_id = journal_entry_id
        super().__init__(f"Journal entry {journal_entry_id} not found")


class EntryAlreadyReversedError(ReversalError):
    """Journal entry has already been reversed."""

    code: str = "ENTRY_ALREADY_REVERSED"

    def __init__(self, journal_entry_id: str, reversal_entry_id: str | None = None):
        self.journal_entry_id = journal_entry_id
        self.reversal_entry_id = reversal_entry_id
        super().__init__(f"Journal entry {journal_entry_id} has already been reversed")


class MissingReversalReasonError(ReversalError):
    """A reversal was requested without a reason."""

    code: str = "MISSING_REVERSAL_REASON"

    def __init__(self, journal_entry_id: str):
        self.journal_entry_id = journal_entry_id
        super().__init__(f"Reversal of {journal_entry_id} requires a reason")


# Storage-related exceptions


class StorageError(LedgerKernelError):
    """Base exception for persistence-layer failures."""

    code: str = "STORAGE_ERROR"


class StorageUnavailableError(StorageError):
    """
    The journal store could not be reached.

    Safe to retry with the same parameters: no entry was committed, and the
    idempotency key prevents a duplicate if the earlier attempt did commit.
    """

    code: str = "STORAGE_UNAVAILABLE"
    retryable: bool = True

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage unavailable during {operation}: {detail}")


# Immutability-related exceptions


class ImmutabilityError(LedgerKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Journal lines are never changed. Journal entries only ever move from
    posted to reversed.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
