from __future__ import annotations

from typing import Callable, Dict, List, Optional

from .config import CustomRuleConfig
from .context import RuleEvaluationContext
from .errors import UnregisteredEvaluatorError
from .models import EvaluationOutcome

CustomEvaluatorFn = Callable[[CustomRuleConfig, RuleEvaluationContext], EvaluationOutcome]


class CustomEvaluatorRegistry:
    """Name-keyed table of custom evaluators.

    Checker modules populate it once at start-up; it is read-only afterwards,
    so concurrent lookups need no locking.
    """

    def __init__(self):
        self._evaluators: Dict[str, CustomEvaluatorFn] = {}

    def register(self, name: str, fn: CustomEvaluatorFn) -> None:
        if not name:
            raise ValueError("Custom evaluator name must be non-empty")
        if name in self._evaluators:
            raise ValueError(f"Duplicate custom evaluator registered: {name}")
        self._evaluators[name] = fn

    def evaluator(self, name: str) -> Callable[[CustomEvaluatorFn], CustomEvaluatorFn]:
        def _decorator(fn: CustomEvaluatorFn) -> CustomEvaluatorFn:
            self.register(name, fn)
            return fn

        return _decorator

    def lookup(self, name: str) -> Optional[CustomEvaluatorFn]:
        return self._evaluators.get(name)

    def require(self, name: str) -> CustomEvaluatorFn:
        fn = self._evaluators.get(name)
        if fn is None:
            raise UnregisteredEvaluatorError(name)
        return fn

    def list_registered(self) -> List[str]:
        return list(self._evaluators.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._evaluators
