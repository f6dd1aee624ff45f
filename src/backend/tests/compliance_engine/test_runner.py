from datetime import timedelta

import pytest

from common.compliance_engine.context import utcnow
from common.compliance_engine.models import ComplianceCategory, ComplianceFramework
from common.compliance_engine.query_catalog import QueryRow
from common.compliance_engine.runner import RulesRunner, triage_order
from common.compliance_engine.summary import compliance_score
from stubs import ORG, StubQueryExecutor


def _runner(make_evaluator, repo, *, rows=None, max_workers=1):
    evaluator = make_evaluator(repository=repo, query_executor=StubQueryExecutor(rows=rows))
    return RulesRunner(evaluator, repo, max_workers=max_workers)


def test_batch_counts_and_persists_statistics(make_rule, make_evaluator, make_repository):
    rules = [make_rule(), make_rule(), make_rule(is_active=False)]
    repo = make_repository(*rules)
    batch = _runner(make_evaluator, repo, rows=[QueryRow(count=0)]).evaluate_all(ORG)
    assert batch.organization_id == ORG
    assert (batch.total_rules, batch.passed_rules, batch.failed_rules, batch.skipped_rules) == (2, 2, 0, 0)
    assert {r.rule_id for r in batch.results} == {rules[0].id, rules[1].id}
    assert repo.get(rules[0].id).pass_count == 1
    assert repo.get(rules[2].id).pass_count == 0


def test_results_share_one_evaluation_time(make_rule, make_evaluator, make_repository):
    rules = [make_rule(), make_rule()]
    repo = make_repository(*rules)
    batch = _runner(make_evaluator, repo).evaluate_all(ORG)
    checked = {repo.get(r.id).last_checked_at for r in rules}
    assert checked == {batch.evaluated_at}


def test_one_raising_rule_does_not_abort_batch(make_rule, make_evaluator, make_repository):
    rules = [make_rule(name="a"), make_rule(name="b"), make_rule(name="c")]
    repo = make_repository(*rules)
    real = make_evaluator(repository=repo)

    class Flaky:
        def evaluate(self, rule, ctx):
            if rule.name == "b":
                raise RuntimeError("boom")
            return real.evaluate(rule, ctx)

    batch = RulesRunner(Flaky(), repo).evaluate_all(ORG)
    assert batch.total_rules == 3
    assert batch.skipped_rules == 1
    assert batch.total_rules == len(batch.results) + batch.skipped_rules
    assert [r.rule_name for r in batch.results] == ["a", "c"]


def test_evaluator_errors_count_as_failures(make_rule, make_evaluator, make_repository):
    repo = make_repository(make_rule(), make_rule())
    evaluator = make_evaluator(repository=repo, query_executor=StubQueryExecutor(error=OSError("db down")))
    batch = RulesRunner(evaluator, repo).evaluate_all(ORG)
    assert (batch.passed_rules, batch.failed_rules, batch.skipped_rules) == (0, 2, 0)
    assert all(r.error == "db down" for r in batch.results)


def test_results_follow_triage_order(make_rule, make_evaluator, make_repository):
    rules = [
        make_rule(name="Retention", severity="low"),
        make_rule(name="MFA", severity="critical"),
        make_rule(name="Backups", severity="medium"),
        make_rule(name="Access review", severity="critical"),
    ]
    repo = make_repository(*rules)
    batch = _runner(make_evaluator, repo).evaluate_all(ORG)
    assert [r.rule_name for r in batch.results] == ["Access review", "MFA", "Backups", "Retention"]
    assert [r.name for r in triage_order(rules)] == ["Access review", "MFA", "Backups", "Retention"]


def test_filters_narrow_selection(make_rule, make_evaluator, make_repository):
    gdpr = make_rule(framework="GDPR", category="data_retention")
    sox = make_rule(framework="SOX", category="segregation_of_duties", check_frequency="weekly")
    iso = make_rule()
    other_org = make_rule(organization_id="org-2")
    repo = make_repository(gdpr, sox, iso, other_org)
    runner = _runner(make_evaluator, repo)

    assert [r.rule_id for r in runner.evaluate_all(ORG, framework=ComplianceFramework.GDPR).results] == [gdpr.id]
    by_category = runner.evaluate_all(ORG, category=ComplianceCategory.SEGREGATION_OF_DUTIES, dry_run=True)
    assert [r.rule_id for r in by_category.results] == [sox.id]
    assert runner.evaluate_all(ORG, rule_ids=[iso.id, other_org.id]).total_rules == 1
    assert runner.evaluate_all(ORG, rule_ids=[]).total_rules == 0


def test_dry_run_batch_leaves_repository_untouched(make_rule, make_evaluator, make_repository):
    rule = make_rule()
    repo = make_repository(rule)
    runner = _runner(make_evaluator, repo, rows=[QueryRow(count=9)])
    for _ in range(3):
        batch = runner.evaluate_all(ORG, dry_run=True)
        assert batch.failed_rules == 1
    stored = repo.get(rule.id)
    assert (stored.pass_count, stored.fail_count, stored.last_checked_at) == (0, 0, None)


def test_evaluate_due_selects_by_frequency(make_rule, make_evaluator, make_repository):
    now = utcnow()
    never = make_rule(name="never checked")
    stale = make_rule(name="stale daily", last_checked_at=now - timedelta(hours=25))
    fresh = make_rule(name="fresh daily", last_checked_at=now - timedelta(hours=10))
    hourly = make_rule(name="hourly", check_frequency="hourly", last_checked_at=now - timedelta(hours=2))
    inactive = make_rule(name="inactive", is_active=False)
    repo = make_repository(never, stale, fresh, hourly, inactive)

    batch = _runner(make_evaluator, repo).evaluate_due(ORG)
    assert sorted(r.rule_name for r in batch.results) == ["hourly", "never checked", "stale daily"]
    # Once checked, nothing is due again straight away.
    assert _runner(make_evaluator, repo).evaluate_due(ORG).total_rules == 0


def test_thread_pool_preserves_counts_and_order(make_rule, make_evaluator, make_repository):
    rules = [make_rule(name=f"rule {i:02d}") for i in range(12)]
    repo = make_repository(*rules)
    batch = _runner(make_evaluator, repo, max_workers=4).evaluate_all(ORG)
    assert batch.passed_rules == 12
    assert [r.rule_name for r in batch.results] == sorted(r.name for r in rules)
    assert all(repo.get(r.id).pass_count == 1 for r in rules)


def test_max_workers_must_be_positive(make_evaluator, make_repository):
    with pytest.raises(ValueError):
        RulesRunner(make_evaluator(), make_repository(), max_workers=0)


def test_compliance_summary_scores_active_rules(make_rule, make_evaluator, make_repository):
    rules = [make_rule(framework="GDPR", pass_count=5, fail_count=1) for _ in range(7)]
    rules += [make_rule(framework="SOX", category="audit_trail", pass_count=1, fail_count=1) for _ in range(3)]
    rules.append(make_rule(is_active=False, pass_count=10))
    summary = _runner(make_evaluator, make_repository(*rules)).get_compliance_summary(ORG)

    assert summary.total_rules == 11
    assert summary.active_rules == 10
    assert (summary.passing_rules, summary.failing_rules) == (7, 3)
    assert summary.compliance_score == 70
    assert summary.by_framework[ComplianceFramework.GDPR].passing == 7
    assert summary.by_framework[ComplianceFramework.SOX].total == 3
    assert summary.by_category[ComplianceCategory.AUDIT_TRAIL].passing == 0
    assert ComplianceFramework.ISO27001 not in summary.by_framework


def test_summary_without_active_rules_scores_100(make_evaluator, make_repository):
    summary = _runner(make_evaluator, make_repository()).get_compliance_summary(ORG)
    assert summary.compliance_score == 100
    assert summary.by_framework == {}


@pytest.mark.parametrize("passing,active,score", [(1, 3, 33), (2, 3, 67), (1, 8, 13), (0, 4, 0), (4, 4, 100)])
def test_compliance_score_rounds_half_up(passing, active, score):
    assert compliance_score(passing, active) == score


def test_evaluate_due_accepts_timestamps_without_offset(make_rule, make_evaluator, make_repository):
    stale = make_rule(name="stale", last_checked_at="2024-01-01T00:00:00")
    fresh = make_rule(name="fresh", last_checked_at=utcnow().replace(tzinfo=None).isoformat())
    repo = make_repository(stale, fresh)
    batch = _runner(make_evaluator, repo).evaluate_due(ORG)
    assert [r.rule_name for r in batch.results] == ["stale"]
    assert batch.skipped_rules == 0
