"""Utility modules for the ledger kernel."""

from ledger_kernel.utils.idempotency import (
    derive_idempotency_key,
    parse_idempotency_key,
    reversal_idempotency_key,
)

__all__ = [
    "derive_idempotency_key",
    "parse_idempotency_key",
    "reversal_idempotency_key",
]
