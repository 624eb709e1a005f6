"""
ORM-level immutability enforcement for journal data.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | Rule
------------------|---------------------------------------------------------
JournalEntry      | Never deleted.  The only permitted update is the
                  | posted -> reversed transition, which may also set
                  | reversed_by_id (plus updated_at/updated_by_id).
JournalEntryLine  | Never updated, never deleted.
Account           | Never deleted once a journal line references it.

SQLAlchemy fires before_update/before_delete before SQL reaches the
database; a failed check raises ImmutabilityViolationError and the flush
(and with it the transaction) is aborted.

These listeners guard ORM code paths only.  Bulk ``update()``/``delete()``
statements bypass mapper events.

Usage:
    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

    # tests that need raw fixtures
    unregister_immutability_listeners()
"""

from sqlalchemy import event, func, inspect, select
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import (
    JournalEntry,
    JournalEntryLine,
    JournalEntryStatus,
)

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})
_REVERSAL_FIELDS = frozenset({"status", "reversed_by_id"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, **fields):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **fields,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _is_reversal_transition(target: JournalEntry) -> bool:
    history = get_history(target, "status")
    if not history.deleted or not history.added:
        return False
    old, new = history.deleted[0], history.added[0]
    return (
        old == JournalEntryStatus.POSTED
        and new == JournalEntryStatus.REVERSED
    )


def _changed_columns(mapper, target) -> set[str]:
    # Relationship collections (entry.lines) mark an object dirty without
    # changing any row data.
    state = inspect(target)
    return {
        prop.key
        for prop in mapper.column_attrs
        if prop.key not in _AUDIT_FIELDS and state.attrs[prop.key].history.has_changes()
    }


def _check_journal_entry_update(mapper, connection, target):
    changed = _changed_columns(mapper, target)
    if not changed:
        return

    if changed <= _REVERSAL_FIELDS and _is_reversal_transition(target):
        reversed_by = get_history(target, "reversed_by_id")
        # reversed_by_id may be set once, never overwritten.
        if not reversed_by.deleted or reversed_by.deleted[0] is None:
            return

    _blocked(
        "JournalEntry",
        target.id,
        "UPDATE",
        f"Cannot modify {sorted(changed)} on a journal entry; "
        "only posted -> reversed is permitted",
        fields=sorted(changed),
    )


def _check_journal_entry_delete(mapper, connection, target):
    _blocked(
        "JournalEntry",
        target.id,
        "DELETE",
        "Journal entries cannot be deleted; post a reversal instead",
    )


def _check_journal_line_update(mapper, connection, target):
    if not _changed_columns(mapper, target):
        return
    _blocked(
        "JournalEntryLine",
        target.id,
        "UPDATE",
        "Journal lines cannot be modified",
    )


def _check_journal_line_delete(mapper, connection, target):
    _blocked(
        "JournalEntryLine",
        target.id,
        "DELETE",
        "Journal lines cannot be deleted",
    )


def _check_account_delete(mapper, connection, target):
    referenced = connection.execute(
        select(func.count())
        .select_from(JournalEntryLine.__table__)
        .where(JournalEntryLine.__table__.c.account_id == str(target.id))
    ).scalar_one()
    if referenced:
        _blocked(
            "Account",
            target.id,
            "DELETE",
            "Account is referenced by journal lines; deactivate it instead",
            line_count=referenced,
        )


_LISTENERS = (
    (JournalEntry, "before_update", _check_journal_entry_update),
    (JournalEntry, "before_delete", _check_journal_entry_delete),
    (JournalEntryLine, "before_update", _check_journal_line_update),
    (JournalEntryLine, "before_delete", _check_journal_line_delete),
    (Account, "before_delete", _check_account_delete),
)


def register_immutability_listeners() -> None:
    """Register all immutability listeners.  Safe to call more than once."""
    for target, event_name, fn in _LISTENERS:
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners() -> None:
    """Remove the immutability listeners (tests only)."""
    for target, event_name, fn in _LISTENERS:
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
