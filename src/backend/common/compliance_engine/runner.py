from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional, Sequence

from .context import RuleEvaluationContext, utcnow
from .evaluator import RuleEvaluator
from .models import (
    SEVERITY_RANK,
    BatchEvaluationResult,
    CheckFrequency,
    ComplianceCategory,
    ComplianceFramework,
    ComplianceRule,
    ComplianceSummary,
    RuleEvaluationResult,
)
from .sources import RuleFilters, RuleRepository
from .summary import compliance_summary

logger = logging.getLogger(__name__)


def triage_order(rules: Iterable[ComplianceRule]) -> List[ComplianceRule]:
    return sorted(rules, key=lambda r: (SEVERITY_RANK[r.severity], r.name))


class RulesRunner:
    """Evaluates batches of rules for one organization.

    One rule failing, or even raising, never aborts the batch. With
    `max_workers > 1` rules run on a thread pool; results keep selection order.
    """

    def __init__(
        self,
        evaluator: RuleEvaluator,
        repository: RuleRepository,
        *,
        max_workers: int = 1,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._evaluator = evaluator
        self._repository = repository
        self._max_workers = max_workers

    def evaluate_all(
        self,
        organization_id: str,
        *,
        framework: Optional[ComplianceFramework] = None,
        category: Optional[ComplianceCategory] = None,
        frequency: Optional[CheckFrequency] = None,
        rule_ids: Optional[Iterable[str]] = None,
        dry_run: bool = False,
    ) -> BatchEvaluationResult:
        started = time.perf_counter()
        ctx = RuleEvaluationContext(organization_id=organization_id, evaluation_time=utcnow(), dry_run=dry_run)
        filters = RuleFilters(
            framework=framework,
            category=category,
            frequency=frequency,
            rule_ids=frozenset(rule_ids) if rule_ids is not None else None,
        )
        rules = triage_order(self._repository.find_active_rules(organization_id, filters))
        return self._run(rules, ctx, started)

    def evaluate_due(self, organization_id: str, *, dry_run: bool = False) -> BatchEvaluationResult:
        started = time.perf_counter()
        ctx = RuleEvaluationContext(organization_id=organization_id, evaluation_time=utcnow(), dry_run=dry_run)
        rules = triage_order(self._repository.find_due_rules(organization_id, ctx.evaluation_time))
        return self._run(rules, ctx, started)

    def get_compliance_summary(self, organization_id: str) -> ComplianceSummary:
        return compliance_summary(self._repository.find_rules(organization_id))

    def _evaluate_one(self, rule: ComplianceRule, ctx: RuleEvaluationContext) -> Optional[RuleEvaluationResult]:
        try:
            return self._evaluator.evaluate(rule, ctx)
        except Exception:
            logger.exception("Skipping rule %s: evaluation raised", rule.id)
            return None

    def _run(
        self,
        rules: Sequence[ComplianceRule],
        ctx: RuleEvaluationContext,
        started: float,
    ) -> BatchEvaluationResult:
        if self._max_workers > 1 and len(rules) > 1:
            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                outcomes = list(pool.map(lambda rule: self._evaluate_one(rule, ctx), rules))
        else:
            outcomes = [self._evaluate_one(rule, ctx) for rule in rules]

        batch = BatchEvaluationResult(
            organization_id=ctx.organization_id,
            evaluated_at=ctx.evaluation_time,
            total_rules=len(rules),
        )
        for res in outcomes:
            if res is None:
                batch.skipped_rules += 1
                continue
            batch.results.append(res)
            if res.passed:
                batch.passed_rules += 1
            else:
                batch.failed_rules += 1

        batch.execution_time_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Evaluated %d rules for organization %s: %d passed, %d failed, %d skipped",
            batch.total_rules,
            ctx.organization_id,
            batch.passed_rules,
            batch.failed_rules,
            batch.skipped_rules,
        )
        return batch
