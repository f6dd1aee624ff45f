from .base import TypeEvaluator
from .custom import CustomEvaluator
from .pattern import PatternEvaluator
from .query import QueryEvaluator
from .threshold import ThresholdEvaluator
from .workflow import WorkflowEvaluator

__all__ = [
    "TypeEvaluator",
    "QueryEvaluator",
    "ThresholdEvaluator",
    "PatternEvaluator",
    "WorkflowEvaluator",
    "CustomEvaluator",
]
