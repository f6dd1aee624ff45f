from datetime import datetime, timezone

import pytest

from common.compliance_engine.context import RuleEvaluationContext
from common.compliance_engine.evaluator import RuleEvaluator
from common.compliance_engine.models import ComplianceRule
from common.compliance_engine.registry import CustomEvaluatorRegistry
from pipelines.repository import InMemoryRuleRepository
from stubs import ORG, StubMetrics, StubPatterns, StubQueryExecutor, StubWorkflows


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_rule():
    counter = {"n": 0}

    def _make(*, config=None, exceptions=None, **fields) -> ComplianceRule:
        counter["n"] += 1
        data = {
            "id": f"rule-{counter['n']}",
            "organization_id": ORG,
            "name": f"Rule {counter['n']}",
            "framework": "ISO27001",
            "category": "access_control",
            "severity": "high",
            "check_frequency": "daily",
            "rule_logic": {
                "config": config
                or {"type": "query", "query_id": "count_users_without_mfa", "expected_result": "zero"},
                "exceptions": exceptions or [],
            },
        }
        data.update(fields)
        return ComplianceRule.model_validate(data)

    return _make


@pytest.fixture
def make_ctx(now):
    def _make(*, dry_run: bool = False, entity_scope=None, evaluation_time=None) -> RuleEvaluationContext:
        return RuleEvaluationContext(
            organization_id=ORG,
            evaluation_time=evaluation_time or now,
            dry_run=dry_run,
            entity_scope=frozenset(entity_scope) if entity_scope is not None else None,
        )

    return _make


@pytest.fixture
def registry() -> CustomEvaluatorRegistry:
    return CustomEvaluatorRegistry()


@pytest.fixture
def make_evaluator(registry):
    def _make(
        *,
        repository=None,
        query_executor=None,
        metrics=None,
        patterns=None,
        workflows=None,
    ) -> RuleEvaluator:
        return RuleEvaluator.build(
            query_executor=query_executor or StubQueryExecutor(),
            metrics=metrics or StubMetrics(),
            patterns=patterns or StubPatterns(),
            workflows=workflows or StubWorkflows(),
            registry=registry,
            repository=repository,
        )

    return _make


@pytest.fixture
def make_repository():
    def _make(*rules) -> InMemoryRuleRepository:
        return InMemoryRuleRepository(rules)

    return _make
