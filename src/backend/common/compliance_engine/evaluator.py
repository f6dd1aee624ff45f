from __future__ import annotations

import logging
import time
from typing import Dict, Iterable, List, Optional

from .config import RuleKind
from .context import RuleEvaluationContext, active_exceptions, utcnow
from .errors import EvaluationError
from .evaluators import (
    CustomEvaluator,
    PatternEvaluator,
    QueryEvaluator,
    ThresholdEvaluator,
    TypeEvaluator,
    WorkflowEvaluator,
)
from .models import (
    ComplianceRule,
    EvaluationFinding,
    RuleEvaluationResult,
    RuleResultDetails,
)
from .query_catalog import QueryExecutor
from .registry import CustomEvaluatorRegistry
from .sources import MetricsSource, PatternSource, RuleRepository, WorkflowSource

logger = logging.getLogger(__name__)


class RuleEvaluator:
    """Evaluates one rule end to end.

    Exceptions on a rule are reported in the result but never change `passed`.
    Statistics are written only for completed, non dry-run evaluations.
    """

    def __init__(
        self,
        evaluators: Iterable[TypeEvaluator],
        *,
        repository: Optional[RuleRepository] = None,
    ):
        table: Dict[RuleKind, TypeEvaluator] = {}
        for ev in evaluators:
            if ev.kind in table:
                raise ValueError(f"Duplicate evaluator for rule kind: {ev.kind.value}")
            table[ev.kind] = ev
        missing = [kind.value for kind in RuleKind if kind not in table]
        if missing:
            raise ValueError(f"No evaluator for rule kinds: {', '.join(missing)}")
        self._evaluators = table
        self._repository = repository

    @classmethod
    def build(
        cls,
        *,
        query_executor: QueryExecutor,
        metrics: MetricsSource,
        patterns: PatternSource,
        workflows: WorkflowSource,
        registry: CustomEvaluatorRegistry,
        repository: Optional[RuleRepository] = None,
    ) -> "RuleEvaluator":
        return cls(
            [
                QueryEvaluator(query_executor),
                ThresholdEvaluator(metrics),
                PatternEvaluator(patterns),
                WorkflowEvaluator(workflows),
                CustomEvaluator(registry),
            ],
            repository=repository,
        )

    def evaluate(self, rule: ComplianceRule, ctx: RuleEvaluationContext) -> RuleEvaluationResult:
        started = time.perf_counter()

        if not rule.is_active:
            return self._result(rule, started, passed=False, message="Rule is inactive")

        exceptions: List[str] = []
        try:
            exceptions = [exc.reason for exc in active_exceptions(rule.rule_logic.exceptions, ctx.evaluation_time)]
            config = rule.rule_logic.config
            outcome = self._evaluators[RuleKind(config.type)].evaluate(config, ctx)
        except Exception as exc:
            err = EvaluationError(rule.id, exc)
            logger.exception("%s", err)
            return self._result(
                rule,
                started,
                passed=False,
                message=f"Error: {exc}",
                findings=[
                    EvaluationFinding(type="fail", entity="Rule Engine", description=f"Evaluation error: {exc}")
                ],
                exceptions=exceptions,
                error=str(err),
            )

        recorded = False
        if outcome.error is None and not ctx.dry_run:
            recorded = self._record_statistics(rule, outcome.passed, ctx)

        return self._result(
            rule,
            started,
            passed=outcome.passed,
            message=outcome.message,
            findings=outcome.findings,
            exceptions=exceptions,
            error=outcome.error,
            statistics_recorded=recorded,
        )

    def _record_statistics(self, rule: ComplianceRule, passed: bool, ctx: RuleEvaluationContext) -> bool:
        if self._repository is None:
            return False
        try:
            self._repository.increment_statistics(rule.id, passed, ctx.evaluation_time)
        except Exception as exc:
            # The finding is still true even if it could not be recorded.
            logger.warning("Could not record statistics for rule %s: %s", rule.id, exc)
            return False
        return True

    @staticmethod
    def _result(
        rule: ComplianceRule,
        started: float,
        *,
        passed: bool,
        message: str,
        findings: Optional[List[EvaluationFinding]] = None,
        exceptions: Optional[List[str]] = None,
        error: Optional[str] = None,
        statistics_recorded: bool = False,
    ) -> RuleEvaluationResult:
        return RuleEvaluationResult(
            rule_id=rule.id,
            rule_name=rule.name,
            passed=passed,
            framework=rule.framework,
            category=rule.category,
            severity=rule.severity,
            evaluated_at=utcnow(),
            details=RuleResultDetails(
                message=message,
                findings=list(findings or []),
                exceptions=list(exceptions or []),
            ),
            execution_time_ms=(time.perf_counter() - started) * 1000,
            error=error,
            statistics_recorded=statistics_recorded,
        )
