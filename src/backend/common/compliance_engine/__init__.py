"""Compliance rule evaluation engine.

This package intentionally contains only domain logic:
- Rules, exceptions and findings are plain pydantic models.
- Reads go through injected collaborators (see `sources`) and the fixed
  query catalog; nothing here opens connections on its own.
"""

from .config import (
    CustomRuleConfig,
    PatternRuleConfig,
    QueryRuleConfig,
    RuleException,
    RuleKind,
    RuleLogic,
    ThresholdRuleConfig,
    WorkflowRuleConfig,
)
from .context import RuleEvaluationContext, is_rule_due
from .errors import (
    ComplianceEngineError,
    EvaluationError,
    PersistenceError,
    UnknownQueryError,
    UnregisteredEvaluatorError,
)
from .evaluator import RuleEvaluator
from .models import (
    BatchEvaluationResult,
    ComplianceRule,
    ComplianceSummary,
    EvaluationFinding,
    EvaluationOutcome,
    RuleEvaluationResult,
    WorkflowExecution,
)
from .query_catalog import SqlQueryExecutor, execute_safe_query, list_queries
from .registry import CustomEvaluatorRegistry
from .runner import RulesRunner
from .sources import RuleFilters
from .summary import compliance_summary
