from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from common.compliance_engine.errors import UnknownQueryError
from common.compliance_engine.models import ComplianceRule, WorkflowExecution
from common.compliance_engine.query_catalog import QueryExecutor, QueryRow, SqlQueryExecutor, is_whitelisted
from common.compliance_engine.sources import MetricsSource, PatternSource, RuleRepository, WorkflowSource

from .config import EngineConfig
from .repository import InMemoryRuleRepository


@dataclass(frozen=True)
class EngineSources:
    repository: RuleRepository
    query_executor: QueryExecutor
    metrics: MetricsSource
    patterns: PatternSource
    workflows: WorkflowSource


def _load_json(path: Path) -> Any:
    with path.open() as handle:
        return json.load(handle)


def _load_optional_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    return _load_json(path)


class FixtureFiles:
    """Per-organization JSON fixtures under `<root>/<organization_id>/`.

    Files: rules.json, queries.json, metrics.json, patterns.json, workflows.json.
    """

    def __init__(self, root: Path):
        self._root = root

    def path(self, organization_id: str, name: str) -> Path:
        return self._root / organization_id / name

    def load(self, organization_id: str, name: str, default: Any) -> Any:
        return _load_optional_json(self.path(organization_id, name), default)

    def organizations(self) -> List[str]:
        if not self._root.exists():
            return []
        return sorted(child.name for child in self._root.iterdir() if child.is_dir())


def load_fixture_rules(files: FixtureFiles) -> List[ComplianceRule]:
    rules: List[ComplianceRule] = []
    for org in files.organizations():
        for raw in files.load(org, "rules.json", []):
            raw.setdefault("organization_id", org)
            rules.append(ComplianceRule.model_validate(raw))
    return rules


class FixtureQueryExecutor:
    """Serves catalog query rows from queries.json ({query_id: [{"count": n}]})."""

    def __init__(self, files: FixtureFiles):
        self._files = files

    def __call__(self, query_id: str, organization_id: str, now: datetime) -> List[QueryRow]:
        if not is_whitelisted(query_id):
            raise UnknownQueryError(query_id)
        rows = self._files.load(organization_id, "queries.json", {}).get(query_id)
        if rows is None:
            raise LookupError(f"No fixture rows for query '{query_id}'")
        return [QueryRow.model_validate(row) for row in rows]


class FixtureMetricsSource:
    def __init__(self, files: FixtureFiles):
        self._files = files

    def get_metric_value(self, metric_name: str, organization_id: str) -> float:
        metrics: Dict[str, float] = self._files.load(organization_id, "metrics.json", {})
        if metric_name not in metrics:
            raise LookupError(f"Unknown metric '{metric_name}' for organization {organization_id}")
        return float(metrics[metric_name])


class FixturePatternSource:
    """Regex search over the documents listed per scope in patterns.json."""

    def __init__(self, files: FixtureFiles):
        self._files = files

    def search_for_pattern(self, pattern: str, scope: str, organization_id: str) -> bool:
        documents: Dict[str, List[str]] = self._files.load(organization_id, "patterns.json", {})
        regex = re.compile(pattern, re.IGNORECASE)
        return any(regex.search(doc) for doc in documents.get(scope, []))


class FixtureWorkflowSource:
    def __init__(self, files: FixtureFiles):
        self._files = files

    def get_recent_workflow_executions(self, organization_id: str) -> List[WorkflowExecution]:
        raw = self._files.load(organization_id, "workflows.json", [])
        return [WorkflowExecution.model_validate(item) for item in raw]


def get_sources(config: EngineConfig, *, fixtures_dir: Optional[Path] = None) -> EngineSources:
    """Resolve collaborators by name (fixtures|sql).

    `sql` keeps rules and catalog queries in the database; metrics, pattern and
    workflow reads still come from fixture files.
    """
    files = FixtureFiles(fixtures_dir or config.fixtures_dir)
    metrics = FixtureMetricsSource(files)
    patterns = FixturePatternSource(files)
    workflows = FixtureWorkflowSource(files)

    source = (config.data_source or "").strip().lower()
    if source in ("fixtures", ""):
        return EngineSources(
            repository=InMemoryRuleRepository(load_fixture_rules(files)),
            query_executor=FixtureQueryExecutor(files),
            metrics=metrics,
            patterns=patterns,
            workflows=workflows,
        )
    if source == "sql":
        from sqlalchemy import create_engine

        from .sql_repository import SqlRuleRepository

        engine = create_engine(config.database_url, pool_pre_ping=True)
        return EngineSources(
            repository=SqlRuleRepository(engine),
            query_executor=SqlQueryExecutor(engine),
            metrics=metrics,
            patterns=patterns,
            workflows=workflows,
        )
    raise ValueError(f"Unknown data source '{config.data_source}' (expected 'fixtures' or 'sql').")
