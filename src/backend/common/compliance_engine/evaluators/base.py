from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, Type, TypeVar

from pydantic import BaseModel

from ..config import RuleKind
from ..context import RuleEvaluationContext
from ..models import EvaluationFinding, EvaluationOutcome

C = TypeVar("C", bound=BaseModel)


class TypeEvaluator(ABC, Generic[C]):
    kind: RuleKind
    config_model: Type[C]

    def __init__(self):
        if not getattr(self, "kind", None):
            raise ValueError("Evaluator must define kind")

    @abstractmethod
    def evaluate(self, config: C, ctx: RuleEvaluationContext) -> EvaluationOutcome:  # pragma: no cover
        raise NotImplementedError


def failed(
    entity: str,
    description: str,
    message: str,
    *,
    remediation: str | None = None,
    error: str | None = None,
) -> EvaluationOutcome:
    return EvaluationOutcome(
        passed=False,
        findings=[
            EvaluationFinding(type="fail", entity=entity, description=description, remediation=remediation)
        ],
        message=message,
        error=error,
    )
