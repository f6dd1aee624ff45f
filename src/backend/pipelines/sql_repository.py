from __future__ import annotations

from datetime import datetime
from typing import Any, List, Mapping

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    and_,
    insert,
    or_,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from common.compliance_engine.context import FREQUENCY_INTERVALS
from common.compliance_engine.errors import PersistenceError
from common.compliance_engine.models import ComplianceRule
from common.compliance_engine.sources import RuleFilters

metadata = MetaData()

compliance_rules = Table(
    "compliance_rules",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("organization_id", String(64), nullable=False, index=True),
    Column("name", String(200), nullable=False),
    Column("description", Text, nullable=False, default=""),
    Column("framework", String(32), nullable=False),
    Column("category", String(64), nullable=False),
    Column("severity", String(16), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("check_frequency", String(16), nullable=False),
    Column("last_checked_at", DateTime(timezone=True), nullable=True),
    Column("pass_count", Integer, nullable=False, default=0),
    Column("fail_count", Integer, nullable=False, default=0),
    Column("rule_logic", JSON, nullable=False),
)


def _row_to_rule(row: Mapping[str, Any]) -> ComplianceRule:
    # SQLite drops the offset on last_checked_at; the model reads it back as UTC.
    return ComplianceRule.model_validate(dict(row))


class SqlRuleRepository:
    """Rule store backed by the `compliance_rules` table."""

    def __init__(self, engine: Engine):
        self._engine = engine

    def create_schema(self) -> None:
        metadata.create_all(self._engine)

    def add(self, rule: ComplianceRule) -> None:
        values = rule.model_dump(mode="python")
        values["rule_logic"] = rule.rule_logic.model_dump(mode="json")
        for key in ("framework", "category", "severity", "check_frequency"):
            values[key] = values[key].value
        with self._engine.begin() as conn:
            conn.execute(insert(compliance_rules).values(**values))

    def _fetch(self, *criteria) -> List[ComplianceRule]:
        stmt = select(compliance_rules).where(*criteria)
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_row_to_rule(row) for row in rows]

    def find_rules(self, organization_id: str) -> List[ComplianceRule]:
        return self._fetch(compliance_rules.c.organization_id == organization_id)

    def find_active_rules(self, organization_id: str, filters: RuleFilters) -> List[ComplianceRule]:
        c = compliance_rules.c
        criteria = [c.organization_id == organization_id, c.is_active.is_(True)]
        if filters.framework is not None:
            criteria.append(c.framework == filters.framework.value)
        if filters.category is not None:
            criteria.append(c.category == filters.category.value)
        if filters.frequency is not None:
            criteria.append(c.check_frequency == filters.frequency.value)
        if filters.rule_ids is not None:
            criteria.append(c.id.in_(sorted(filters.rule_ids)))
        return self._fetch(*criteria)

    def find_due_rules(self, organization_id: str, now: datetime) -> List[ComplianceRule]:
        c = compliance_rules.c
        elapsed = [
            and_(c.check_frequency == freq.value, c.last_checked_at < now - interval)
            for freq, interval in FREQUENCY_INTERVALS.items()
        ]
        return self._fetch(
            c.organization_id == organization_id,
            c.is_active.is_(True),
            or_(c.last_checked_at.is_(None), *elapsed),
        )

    def increment_statistics(self, rule_id: str, passed: bool, checked_at: datetime) -> None:
        c = compliance_rules.c
        counter = c.pass_count if passed else c.fail_count
        stmt = (
            update(compliance_rules)
            .where(c.id == rule_id)
            .values({counter: counter + 1, c.last_checked_at: checked_at})
        )
        try:
            with self._engine.begin() as conn:
                result = conn.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceError(rule_id, f"Statistics update failed for rule {rule_id}: {exc}") from exc
        if result.rowcount == 0:
            raise PersistenceError(rule_id, f"Unknown rule id: {rule_id}")
