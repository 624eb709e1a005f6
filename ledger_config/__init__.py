"""Ledger configuration: posting packs, scope seeding and settings."""

from ledger_config.loader import load_default_pack, load_pack
from ledger_config.schema import AccountDef, PostingPack
from ledger_config.seeding import SeedReport, seed_scope
from ledger_config.settings import LedgerSettings, bootstrap

__all__ = [
    "AccountDef",
    "LedgerSettings",
    "PostingPack",
    "SeedReport",
    "bootstrap",
    "load_default_pack",
    "load_pack",
    "seed_scope",
]
