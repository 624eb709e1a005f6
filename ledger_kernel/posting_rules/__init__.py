"""
Posting rules: declarative templates, the pure evaluator, the versioned
rule registry and the explicit suspense-balancing policy.
"""

from ledger_kernel.posting_rules.evaluator import TemplateEvaluator, line_totals
from ledger_kernel.posting_rules.suspense import SuspenseBalancingPolicy
from ledger_kernel.posting_rules.templates import (
    CandidateLine,
    FixedAccount,
    LineTemplate,
    LinkedAccount,
    PostingRuleDefinition,
    SplitLineTemplate,
    SplitShare,
)

__all__ = [
    "CandidateLine",
    "FixedAccount",
    "LineTemplate",
    "LinkedAccount",
    "PostingRuleDefinition",
    "SplitLineTemplate",
    "SplitShare",
    "SuspenseBalancingPolicy",
    "TemplateEvaluator",
    "line_totals",
]
