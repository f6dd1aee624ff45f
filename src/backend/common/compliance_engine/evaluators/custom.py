from __future__ import annotations

import logging

from ..config import CustomRuleConfig, RuleKind
from ..context import RuleEvaluationContext
from ..errors import UnregisteredEvaluatorError
from ..models import EvaluationOutcome
from ..registry import CustomEvaluatorRegistry
from .base import TypeEvaluator, failed

logger = logging.getLogger(__name__)


class CustomEvaluator(TypeEvaluator[CustomRuleConfig]):
    kind = RuleKind.CUSTOM
    config_model = CustomRuleConfig

    def __init__(self, registry: CustomEvaluatorRegistry):
        super().__init__()
        self._registry = registry

    def evaluate(self, config: CustomRuleConfig, ctx: RuleEvaluationContext) -> EvaluationOutcome:
        name = config.evaluator_name
        try:
            fn = self._registry.require(name)
        except UnregisteredEvaluatorError as exc:
            return failed(
                "Custom Evaluator",
                f"Custom evaluator '{name}' is not registered",
                str(exc),
            )

        try:
            # Checkers may return an EvaluationOutcome or a plain {passed, findings} mapping.
            result = EvaluationOutcome.model_validate(fn(config, ctx))
        except Exception as exc:
            logger.exception("Custom evaluator %s failed", name)
            return failed(
                "Custom Evaluator",
                f"Custom evaluator error: {exc}",
                f"Custom evaluation error: {exc}",
                error=str(exc),
            )

        default_message = f'Custom rule "{name}" passed' if result.passed else f'Custom rule "{name}" failed'
        return EvaluationOutcome(
            passed=result.passed,
            findings=list(result.findings),
            message=result.message or default_message,
            error=result.error,
        )
