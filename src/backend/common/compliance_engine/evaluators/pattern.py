from __future__ import annotations

from ..config import PatternRuleConfig, RuleKind
from ..context import RuleEvaluationContext
from ..models import EvaluationFinding, EvaluationOutcome
from ..sources import PatternSource
from .base import TypeEvaluator


class PatternEvaluator(TypeEvaluator[PatternRuleConfig]):
    """Covers both "required pattern present" and "prohibited pattern absent"."""

    kind = RuleKind.PATTERN
    config_model = PatternRuleConfig

    def __init__(self, patterns: PatternSource):
        super().__init__()
        self._patterns = patterns

    def evaluate(self, config: PatternRuleConfig, ctx: RuleEvaluationContext) -> EvaluationOutcome:
        found = self._patterns.search_for_pattern(config.pattern, config.scope, ctx.organization_id)
        passed = found == config.should_exist

        if config.should_exist:
            description = (
                f"Required pattern found in {config.scope}"
                if passed
                else f"Required pattern not found in {config.scope}"
            )
            remediation = None if passed else f"Implement the required pattern: {config.pattern}"
        else:
            description = (
                f"Prohibited pattern not found in {config.scope}"
                if passed
                else f"Prohibited pattern detected in {config.scope}"
            )
            remediation = None if passed else f"Remove instances of prohibited pattern: {config.pattern}"

        return EvaluationOutcome(
            passed=passed,
            findings=[
                EvaluationFinding(
                    type="pass" if passed else "fail",
                    entity=config.scope,
                    description=description,
                    remediation=remediation,
                )
            ],
            message="Pattern compliance check passed" if passed else "Pattern compliance check failed",
        )
