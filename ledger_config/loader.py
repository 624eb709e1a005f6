"""
Posting pack loader.

Responsibility
--------------
Reads a YAML posting pack (``yaml.safe_load``) and parses it into the
frozen ``ledger_config.schema`` dataclasses.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown account type, a parent listed after its child, a duplicate
  code, or a rule naming a code outside the chart  -> ``ValueError``.
* Malformed rule templates  -> ``InvalidPostingRuleError``.
"""

import hashlib
import json
from datetime import date
from importlib import resources
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import AccountDef, PostingPack
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import AccountType, NormalBalance
from ledger_kernel.posting_rules.templates import (
    FixedAccount,
    LineTemplate,
    PostingRuleDefinition,
)

logger = get_logger("config.loader")

DEFAULT_PACK = "india_payroll.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_account(data: dict[str, Any]) -> AccountDef:
    try:
        account_type = AccountType(str(data["type"]).lower())
    except ValueError:
        raise ValueError(f"Account {data.get('code')}: unknown type {data['type']!r}") from None
    normal = data.get("normal_balance")
    parent = data.get("parent")
    return AccountDef(
        code=str(data["code"]),
        name=data["name"],
        account_type=account_type,
        normal_balance=NormalBalance(str(normal).lower()) if normal else None,
        parent_code=str(parent) if parent is not None else None,
    )


def parse_rule(data: dict[str, Any]) -> PostingRuleDefinition:
    overrides = {}
    if data.get("effective_from"):
        overrides["effective_from"] = parse_date(data["effective_from"])
    if data.get("effective_to"):
        overrides["effective_to"] = parse_date(data["effective_to"])
    return PostingRuleDefinition.from_dict(data, **overrides)


def _fixed_codes(rule: PostingRuleDefinition) -> set[str]:
    codes = set()
    for line in rule.lines:
        refs = [line.account] if isinstance(line, LineTemplate) else [s.account for s in line.shares]
        codes.update(ref.code for ref in refs if isinstance(ref, FixedAccount))
    return codes


def _validate(pack: PostingPack) -> None:
    seen: set[str] = set()
    for account in pack.accounts:
        if account.code in seen:
            raise ValueError(f"Pack {pack.name}: duplicate account code {account.code}")
        if account.parent_code is not None and account.parent_code not in seen:
            raise ValueError(
                f"Pack {pack.name}: account {account.code} lists parent "
                f"{account.parent_code} before it is defined"
            )
        seen.add(account.code)

    for rule in pack.rules:
        unknown = _fixed_codes(rule) - seen
        if unknown:
            raise ValueError(
                f"Pack {pack.name}: rule {rule.rule_code} v{rule.version} references "
                f"accounts outside the chart: {', '.join(sorted(unknown))}"
            )

    if pack.suspense_account_code and pack.suspense_account_code not in seen:
        raise ValueError(
            f"Pack {pack.name}: suspense account {pack.suspense_account_code} is not in the chart"
        )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of a pack document."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_pack(data: dict[str, Any]) -> PostingPack:
    suspense = data.get("suspense_account")
    pack = PostingPack(
        name=data["name"],
        version=str(data.get("version", "1")),
        accounts=tuple(parse_account(a) for a in data.get("accounts", [])),
        rules=tuple(parse_rule(r) for r in data.get("rules", [])),
        suspense_account_code=str(suspense) if suspense is not None else None,
        checksum=compute_checksum(data),
    )
    _validate(pack)
    return pack


def load_pack(path: Path | str) -> PostingPack:
    path = Path(path)
    pack = parse_pack(load_yaml_file(path))
    logger.info(
        "posting_pack_loaded",
        extra={
            "pack": pack.name,
            "version": pack.version,
            "path": str(path),
            "accounts": len(pack.accounts),
            "rules": len(pack.rules),
            "checksum": pack.checksum,
        },
    )
    return pack


def default_pack_path() -> Path:
    return Path(str(resources.files("ledger_config") / "packs" / DEFAULT_PACK))


def load_default_pack() -> PostingPack:
    """The bundled India payroll and statutory pack."""
    return load_pack(default_pack_path())
