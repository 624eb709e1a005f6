"""
Idempotency key derivation.

A posting's idempotency key is a pure function of the business event, so the
same (stage, source_type, source_id) produces the same key in every process,
on every retry, forever.  Changing this format orphans every stored key.

Format: ``{stage}:{source_type}:{source_id}``

    >>> derive_idempotency_key("PAYROLL_ACCRUAL", "payroll_run",
    ...                        UUID("550e8400-e29b-41d4-a716-446655440000"))
    'PAYROLL_ACCRUAL:payroll_run:550e8400-e29b-41d4-a716-446655440000'
"""

from uuid import UUID

REVERSAL_STAGE = "REVERSAL"
REVERSAL_SOURCE_TYPE = "journal_entry"


def _normalize_source_id(source_id: UUID | str) -> str:
    if isinstance(source_id, UUID):
        return str(source_id)
    text = str(source_id).strip()
    try:
        # Canonical lowercase hyphenated form for UUID strings.
        return str(UUID(text))
    except ValueError:
        return text


def derive_idempotency_key(stage: str, source_type: str, source_id: UUID | str) -> str:
    """
    Derive the idempotency key for one posting stage of one business event.

    Args:
        stage: Posting stage, e.g. "PAYROLL_ACCRUAL".
        source_type: Business entity type, e.g. "payroll_run".
        source_id: Business entity identifier.

    Raises:
        ValueError: If stage or source_type is blank or contains ':'.
    """
    for name, value in (("stage", stage), ("source_type", source_type)):
        if not value or not value.strip():
            raise ValueError(f"{name} must not be blank")
        if ":" in value:
            raise ValueError(f"{name} must not contain ':' ({value!r})")
    normalized = _normalize_source_id(source_id)
    if not normalized:
        raise ValueError("source_id must not be blank")
    return f"{stage}:{source_type}:{normalized}"


def reversal_idempotency_key(original_entry_id: UUID) -> str:
    """Key guarding against two reversals of the same entry."""
    return derive_idempotency_key(REVERSAL_STAGE, REVERSAL_SOURCE_TYPE, original_entry_id)


def parse_idempotency_key(key: str) -> tuple[str, str, str]:
    """
    Split a key into (stage, source_type, source_id).

    Raises:
        ValueError: If the key format is invalid.
    """
    parts = key.split(":", 2)
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"Invalid idempotency key format: {key}")
    return parts[0], parts[1], parts[2]
