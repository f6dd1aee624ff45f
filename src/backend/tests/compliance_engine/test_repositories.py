from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from common.compliance_engine.config import ThresholdRuleConfig
from common.compliance_engine.errors import PersistenceError
from common.compliance_engine.models import CheckFrequency, ComplianceFramework
from common.compliance_engine.sources import RuleFilters
from pipelines.repository import InMemoryRuleRepository
from pipelines.sql_repository import SqlRuleRepository
from stubs import ORG


@pytest.fixture
def sql_repo():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    repo = SqlRuleRepository(engine)
    repo.create_schema()
    return repo


@pytest.fixture(params=["memory", "sql"])
def repo_factory(request, sql_repo):
    def _make(*rules):
        if request.param == "memory":
            return InMemoryRuleRepository(rules)
        for rule in rules:
            sql_repo.add(rule)
        return sql_repo

    return _make


def _by_id(rules):
    return {r.id: r for r in rules}


def test_due_rules_follow_check_frequency(repo_factory, make_rule, now):
    daily_stale = make_rule(last_checked_at=now - timedelta(hours=25))
    daily_fresh = make_rule(last_checked_at=now - timedelta(hours=10))
    never = make_rule(check_frequency="monthly")
    weekly_stale = make_rule(check_frequency="weekly", last_checked_at=now - timedelta(days=8))
    weekly_fresh = make_rule(check_frequency="weekly", last_checked_at=now - timedelta(days=6))
    inactive = make_rule(is_active=False)
    repo = repo_factory(daily_stale, daily_fresh, never, weekly_stale, weekly_fresh, inactive)

    due = {r.id for r in repo.find_due_rules(ORG, now)}
    assert due == {daily_stale.id, never.id, weekly_stale.id}


def test_find_rules_is_scoped_to_organization(repo_factory, make_rule):
    mine, theirs = make_rule(), make_rule(organization_id="org-2")
    repo = repo_factory(mine, theirs)
    assert [r.id for r in repo.find_rules(ORG)] == [mine.id]
    assert [r.id for r in repo.find_rules("org-2")] == [theirs.id]


def test_find_active_rules_applies_filters(repo_factory, make_rule):
    gdpr = make_rule(framework="GDPR", check_frequency="weekly")
    sox = make_rule(framework="SOX")
    inactive = make_rule(framework="GDPR", is_active=False)
    repo = repo_factory(gdpr, sox, inactive)

    assert {r.id for r in repo.find_active_rules(ORG, RuleFilters())} == {gdpr.id, sox.id}
    gdpr_only = repo.find_active_rules(ORG, RuleFilters(framework=ComplianceFramework.GDPR))
    assert [r.id for r in gdpr_only] == [gdpr.id]
    weekly = repo.find_active_rules(ORG, RuleFilters(frequency=CheckFrequency.WEEKLY))
    assert [r.id for r in weekly] == [gdpr.id]
    assert repo.find_active_rules(ORG, RuleFilters(rule_ids=frozenset({sox.id, inactive.id})))[0].id == sox.id


def test_increment_statistics(repo_factory, make_rule, now):
    rule = make_rule(pass_count=2, fail_count=1)
    repo = repo_factory(rule)
    repo.increment_statistics(rule.id, True, now)
    repo.increment_statistics(rule.id, False, now + timedelta(hours=1))
    stored = _by_id(repo.find_rules(ORG))[rule.id]
    assert (stored.pass_count, stored.fail_count) == (3, 2)
    assert stored.last_checked_at == now + timedelta(hours=1)


def test_increment_statistics_unknown_rule(repo_factory, now):
    repo = repo_factory()
    with pytest.raises(PersistenceError):
        repo.increment_statistics("missing", True, now)


def test_rule_logic_survives_storage(repo_factory, make_rule):
    rule = make_rule(
        config={"type": "threshold", "metric": "uptime_pct", "operator": "between", "value": [99, 100]},
        exceptions=[{"type": "condition", "reason": "Maintenance"}],
    )
    stored = _by_id(repo_factory(rule).find_rules(ORG))[rule.id]
    assert isinstance(stored.rule_logic.config, ThresholdRuleConfig)
    assert stored.rule_logic.config.value == (99, 100)
    assert stored.rule_logic.exceptions[0].reason == "Maintenance"


def test_concurrent_increments_are_not_lost(make_rule, now):
    rule = make_rule()
    repo = InMemoryRuleRepository([rule])
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda i: repo.increment_statistics(rule.id, i % 2 == 0, now), range(200)))
    stored = repo.get(rule.id)
    assert (stored.pass_count, stored.fail_count) == (100, 100)


def test_in_memory_rejects_duplicate_ids(make_rule):
    rule = make_rule()
    with pytest.raises(ValueError):
        InMemoryRuleRepository([rule, rule])


def test_in_memory_returns_copies(make_rule):
    rule = make_rule()
    repo = InMemoryRuleRepository([rule])
    fetched = repo.find_rules(ORG)[0]
    fetched.pass_count = 99
    assert repo.get(rule.id).pass_count == 0
