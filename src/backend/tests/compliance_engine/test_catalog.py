import json

from common.compliance_engine.catalog import build_catalog, main
from common.compliance_engine.query_catalog import QUERY_CATALOG


def test_catalog_lists_kinds_queries_and_evaluators(registry):
    registry.register("dual_control", lambda config, ctx: None)
    catalog = build_catalog(registry)
    assert catalog.rule_kinds == ["query", "threshold", "pattern", "workflow", "custom"]
    assert [q["id"] for q in catalog.queries] == sorted(QUERY_CATALOG)
    assert catalog.custom_evaluators == ["dual_control"]


def test_catalog_never_exposes_sql():
    for entry in build_catalog().queries:
        assert set(entry) == {"id", "description"}


def test_catalog_cli_json(capsys):
    main(["--format", "json"])
    out = json.loads(capsys.readouterr().out)
    assert "count_users_without_mfa" in {q["id"] for q in out["queries"]}
    assert out["custom_evaluators"] == []
