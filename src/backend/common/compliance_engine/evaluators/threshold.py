from __future__ import annotations

import operator
from typing import Callable, Dict, Tuple, Union

from ..config import RuleKind, ThresholdOperator, ThresholdRuleConfig
from ..context import RuleEvaluationContext
from ..models import EvaluationFinding, EvaluationOutcome
from ..sources import MetricsSource
from .base import TypeEvaluator

_COMPARATORS: Dict[ThresholdOperator, Callable[[float, float], bool]] = {
    ThresholdOperator.GT: operator.gt,
    ThresholdOperator.GTE: operator.ge,
    ThresholdOperator.LT: operator.lt,
    ThresholdOperator.LTE: operator.le,
    ThresholdOperator.EQ: operator.eq,
}


def compare(value: float, op: ThresholdOperator, target: Union[float, Tuple[float, float]]) -> bool:
    if op == ThresholdOperator.BETWEEN:
        low, high = target  # type: ignore[misc]
        return low <= value <= high
    return _COMPARATORS[op](value, target)


class ThresholdEvaluator(TypeEvaluator[ThresholdRuleConfig]):
    kind = RuleKind.THRESHOLD
    config_model = ThresholdRuleConfig

    def __init__(self, metrics: MetricsSource):
        super().__init__()
        self._metrics = metrics

    def evaluate(self, config: ThresholdRuleConfig, ctx: RuleEvaluationContext) -> EvaluationOutcome:
        metric_value = self._metrics.get_metric_value(config.metric, ctx.organization_id)
        passed = compare(metric_value, config.operator, config.value)

        if passed:
            finding = EvaluationFinding(
                type="pass",
                entity=config.metric,
                description=f"Metric {config.metric} ({metric_value:g}) meets threshold requirement",
            )
        else:
            finding = EvaluationFinding(
                type="fail",
                entity=config.metric,
                description=(
                    f"Metric {config.metric} ({metric_value:g}) does not meet threshold ({config.describe()})"
                ),
                remediation=f"Adjust {config.metric} to meet compliance threshold",
            )
        return EvaluationOutcome(
            passed=passed,
            findings=[finding],
            message=(
                f"Threshold check passed for {config.metric}"
                if passed
                else f"Threshold check failed for {config.metric}"
            ),
        )
