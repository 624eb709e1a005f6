"""
Tests for posting rule versioning.

Verifies:
- get_active picks the version covering the date, then priority, then version
- Identical re-registration is a no-op; a changed template needs a new version
- Deactivated versions are never selected
- Missing rules raise PostingRuleNotFoundError
"""

from datetime import date

import pytest

from ledger_kernel.exceptions import InvalidPostingRuleError, PostingRuleNotFoundError
from ledger_kernel.posting_rules.registry import PostingRuleRegistry
from ledger_kernel.posting_rules.templates import FixedAccount, PostingRuleDefinition


def _definition(version=1, debit="5210", **kwargs) -> PostingRuleDefinition:
    return PostingRuleDefinition.from_dict(
        {
            "rule_code": "PAYROLL_ACCRUAL",
            "source_type": "payroll_run",
            "version": version,
            "lines": [
                {"account_code": debit, "side": "debit", "amount": "gross_salary"},
                {"account_code": "2110", "side": "credit", "amount": "gross_salary"},
            ],
            **kwargs,
        }
    )


@pytest.fixture
def registry(session):
    return PostingRuleRegistry(session)


def test_register_and_get(registry, scope_id, actor_id):
    registry.register(scope_id, _definition(), actor_id)

    rule = registry.get_active(scope_id, "PAYROLL_ACCRUAL", date(2024, 6, 15))

    assert rule.version == 1
    assert rule.lines[0].account == FixedAccount("5210")


def test_version_selected_by_effective_date(registry, scope_id, actor_id):
    registry.register(
        scope_id, _definition(1, "5210", effective_from="2020-04-01", effective_to="2024-03-31"), actor_id
    )
    registry.register(scope_id, _definition(2, "5211", effective_from="2024-04-01"), actor_id)

    old = registry.get_active(scope_id, "PAYROLL_ACCRUAL", date(2024, 3, 31))
    new = registry.get_active(scope_id, "PAYROLL_ACCRUAL", date(2024, 4, 1))

    assert (old.version, old.lines[0].account.code) == (1, "5210")
    assert (new.version, new.lines[0].account.code) == (2, "5211")


def test_priority_beats_version(registry, scope_id, actor_id):
    registry.register(scope_id, _definition(1, "5210", priority=200), actor_id)
    registry.register(scope_id, _definition(2, "5211"), actor_id)

    assert registry.get_active(scope_id, "PAYROLL_ACCRUAL", date(2024, 6, 15)).version == 1


def test_highest_version_wins_on_equal_priority(registry, scope_id, actor_id):
    registry.register(scope_id, _definition(1), actor_id)
    registry.register(scope_id, _definition(2, "5211"), actor_id)

    assert registry.get_active(scope_id, "PAYROLL_ACCRUAL", date(2024, 6, 15)).version == 2


def test_identical_reregistration_is_noop(registry, scope_id, actor_id):
    first = registry.register(scope_id, _definition(), actor_id)
    second = registry.register(scope_id, _definition(), actor_id)

    assert first.id == second.id
    assert len(registry.versions(scope_id, "PAYROLL_ACCRUAL")) == 1


def test_changed_template_same_version_rejected(registry, scope_id, actor_id):
    registry.register(scope_id, _definition(1, "5210"), actor_id)

    with pytest.raises(InvalidPostingRuleError):
        registry.register(scope_id, _definition(1, "5211"), actor_id)


def test_deactivated_version_skipped(registry, scope_id, actor_id):
    registry.register(scope_id, _definition(1), actor_id)
    registry.register(scope_id, _definition(2, "5211"), actor_id)

    registry.deactivate(scope_id, "PAYROLL_ACCRUAL", 2, actor_id)

    assert registry.get_active(scope_id, "PAYROLL_ACCRUAL", date(2024, 6, 15)).version == 1


def test_rules_are_per_scope(registry, scope_id, actor_id):
    from uuid import uuid4

    registry.register(scope_id, _definition(), actor_id)

    with pytest.raises(PostingRuleNotFoundError):
        registry.get_active(uuid4(), "PAYROLL_ACCRUAL", date(2024, 6, 15))


def test_no_version_covers_date(registry, scope_id, actor_id):
    registry.register(scope_id, _definition(effective_from="2025-04-01"), actor_id)

    with pytest.raises(PostingRuleNotFoundError) as exc_info:
        registry.get_active(scope_id, "PAYROLL_ACCRUAL", date(2024, 6, 15))
    assert exc_info.value.rule_code == "PAYROLL_ACCRUAL"
    assert exc_info.value.as_of == "2024-06-15"


def test_deactivate_unknown_version(registry, scope_id, actor_id):
    with pytest.raises(PostingRuleNotFoundError):
        registry.deactivate(scope_id, "NOPE", 1, actor_id)
