"""
Ledger Kernel - double-entry posting engine.

Turns business events into balanced, append-only journal entries:
- Idempotent posting keyed by (stage, source_type, source_id)
- Atomic header + line writes
- Declarative, versioned posting rules
- Additive reversals (originals are never deleted or edited)
"""

__version__ = "0.1.0"
