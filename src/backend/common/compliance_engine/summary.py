from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from .models import ComplianceRule, ComplianceSummary, GroupTotals


def compliance_score(passing: int, active: int) -> int:
    if active == 0:
        return 100
    pct = Decimal(100 * passing) / Decimal(active)
    return int(pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compliance_summary(rules: Iterable[ComplianceRule]) -> ComplianceSummary:
    """Score over active rules; a rule is passing when pass_count > fail_count."""
    summary = ComplianceSummary()
    for rule in rules:
        summary.total_rules += 1
        if not rule.is_active:
            continue
        summary.active_rules += 1
        passing = rule.is_passing
        if passing:
            summary.passing_rules += 1

        for groups, key in ((summary.by_framework, rule.framework), (summary.by_category, rule.category)):
            totals = groups.setdefault(key, GroupTotals())
            totals.total += 1
            if passing:
                totals.passing += 1

    summary.failing_rules = summary.active_rules - summary.passing_rules
    summary.compliance_score = compliance_score(summary.passing_rules, summary.active_rules)
    return summary
