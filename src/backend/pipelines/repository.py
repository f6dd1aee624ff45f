from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, Iterable, List

from common.compliance_engine.context import is_rule_due
from common.compliance_engine.errors import PersistenceError
from common.compliance_engine.models import ComplianceRule
from common.compliance_engine.sources import RuleFilters


class InMemoryRuleRepository:
    """Rule store held in process memory (fixtures, previews, tests).

    Statistics updates take a lock so concurrent batches never lose an increment.
    """

    def __init__(self, rules: Iterable[ComplianceRule] = ()):
        self._lock = threading.Lock()
        self._rules: Dict[str, ComplianceRule] = {}
        for rule in rules:
            if rule.id in self._rules:
                raise ValueError(f"Duplicate rule id: {rule.id}")
            self._rules[rule.id] = rule

    def get(self, rule_id: str) -> ComplianceRule:
        with self._lock:
            return self._rules[rule_id].model_copy(deep=True)

    def find_rules(self, organization_id: str) -> List[ComplianceRule]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._rules.values() if r.organization_id == organization_id]

    def find_active_rules(self, organization_id: str, filters: RuleFilters) -> List[ComplianceRule]:
        return [r for r in self.find_rules(organization_id) if r.is_active and filters.matches(r)]

    def find_due_rules(self, organization_id: str, now: datetime) -> List[ComplianceRule]:
        return [r for r in self.find_rules(organization_id) if is_rule_due(r, now)]

    def increment_statistics(self, rule_id: str, passed: bool, checked_at: datetime) -> None:
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                raise PersistenceError(rule_id, f"Unknown rule id: {rule_id}")
            updates: Dict[str, object] = {"last_checked_at": checked_at}
            if passed:
                updates["pass_count"] = rule.pass_count + 1
            else:
                updates["fail_count"] = rule.fail_count + 1
            self._rules[rule_id] = rule.model_copy(update=updates)
