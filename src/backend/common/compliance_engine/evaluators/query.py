from __future__ import annotations

import logging

from ..config import ExpectedResult, QueryRuleConfig, RuleKind
from ..context import RuleEvaluationContext
from ..errors import UnknownQueryError
from ..models import EvaluationFinding, EvaluationOutcome
from ..query_catalog import QueryExecutor, QueryRow, is_whitelisted
from .base import TypeEvaluator, failed

logger = logging.getLogger(__name__)


def matches_expected(row: QueryRow, expected: ExpectedResult) -> bool:
    count = row.count or 0
    if expected == ExpectedResult.ZERO:
        return count == 0
    if expected == ExpectedResult.NON_ZERO:
        return count > 0
    if expected == ExpectedResult.BOOLEAN_TRUE:
        return row.result is True
    return row.result is False


def _not_whitelisted(query_id: str) -> EvaluationOutcome:
    return failed(
        "Query Validation",
        f'Query ID "{query_id}" is not in the whitelist. Only pre-approved compliance queries are allowed.',
        f'Security: Query "{query_id}" not whitelisted. Contact admin to add approved queries.',
    )


class QueryEvaluator(TypeEvaluator[QueryRuleConfig]):
    kind = RuleKind.QUERY
    config_model = QueryRuleConfig

    def __init__(self, executor: QueryExecutor):
        super().__init__()
        self._executor = executor

    def evaluate(self, config: QueryRuleConfig, ctx: RuleEvaluationContext) -> EvaluationOutcome:
        query_id = config.query_id
        if not is_whitelisted(query_id):
            return _not_whitelisted(query_id)

        try:
            rows = self._executor(query_id, ctx.organization_id, ctx.evaluation_time)
        except UnknownQueryError:
            return _not_whitelisted(query_id)
        except Exception as exc:
            logger.warning("Catalog query %s failed for organization %s: %s", query_id, ctx.organization_id, exc)
            return failed(
                "Query Execution",
                f"Query execution failed: {exc}",
                f"Query execution error: {exc}",
                error=str(exc),
            )

        row = rows[0] if rows else QueryRow()
        passed = matches_expected(row, config.expected_result)
        expected = config.expected_result.value
        return EvaluationOutcome(
            passed=passed,
            findings=[
                EvaluationFinding(
                    type="pass" if passed else "fail",
                    entity="Query Result",
                    description=(
                        f'Query "{query_id}" returned expected result ({expected})'
                        if passed
                        else f'Query "{query_id}" did not return expected result. Expected: {expected}'
                    ),
                )
            ],
            message="Query compliance check passed" if passed else "Query compliance check failed",
        )
