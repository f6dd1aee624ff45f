"""Whitelisted compliance queries.

This module is the only place a rule can cause a read against organizational
data. Rules name a catalog entry by id; query text is never accepted from rule
configuration. Every template binds `:organization_id` (and any time cutoff)
as a SQL parameter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Callable, Dict, List, Literal, Mapping, Optional, Protocol

from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from .context import utcnow
from .errors import UnknownQueryError

logger = logging.getLogger(__name__)


RowKind = Literal["count", "result"]


class QueryRow(BaseModel):
    count: Optional[int] = None
    result: Optional[bool] = None


class QueryCatalogEntry(BaseModel):
    id: str
    description: str


def _no_params(now: datetime) -> Dict[str, object]:
    return {}


def _cutoff(name: str, delta: timedelta) -> Callable[[datetime], Dict[str, object]]:
    def _params(now: datetime) -> Dict[str, object]:
        return {name: now - delta}

    return _params


@dataclass(frozen=True)
class CatalogQuery:
    sql: str
    description: str
    row_kind: RowKind
    # Extra bound parameters derived from the evaluation time.
    time_params: Callable[[datetime], Dict[str, object]] = field(default=_no_params)


_QUERIES: Dict[str, CatalogQuery] = {
    "count_users_without_mfa": CatalogQuery(
        sql='SELECT COUNT(*) AS count FROM "User" '
        'WHERE "organizationId" = :organization_id AND "mfaEnabled" = false',
        description="Count users without MFA enabled",
        row_kind="count",
    ),
    "count_stale_api_keys": CatalogQuery(
        sql='SELECT COUNT(*) AS count FROM "ApiKey" '
        'WHERE "organizationId" = :organization_id AND "lastUsedAt" < :stale_before',
        description="Count API keys not used in 90 days",
        row_kind="count",
        time_params=_cutoff("stale_before", timedelta(days=90)),
    ),
    "count_failed_logins": CatalogQuery(
        sql='SELECT COUNT(*) AS count FROM "AuditLog" '
        'WHERE "organizationId" = :organization_id AND "action" = \'login_failed\' '
        'AND "createdAt" > :since',
        description="Count failed login attempts in last 24 hours",
        row_kind="count",
        time_params=_cutoff("since", timedelta(hours=24)),
    ),
    "count_unencrypted_credentials": CatalogQuery(
        sql='SELECT COUNT(*) AS count FROM "ConnectorCredential" cc '
        'JOIN "ConnectorInstance" ci ON cc."instanceId" = ci.id '
        'WHERE ci."organizationId" = :organization_id AND cc."keyId" = \'legacy_unencrypted\'',
        description="Count credentials without proper encryption",
        row_kind="count",
    ),
    "count_expired_certificates": CatalogQuery(
        sql='SELECT COUNT(*) AS count FROM "Certificate" '
        'WHERE "organizationId" = :organization_id AND "expiresAt" < :now',
        description="Count expired certificates",
        row_kind="count",
        time_params=_cutoff("now", timedelta(0)),
    ),
    "count_orphaned_permissions": CatalogQuery(
        sql='SELECT COUNT(*) AS count FROM "Permission" p '
        'LEFT JOIN "User" u ON p."userId" = u.id '
        'WHERE p."organizationId" = :organization_id AND u.id IS NULL',
        description="Count permissions without valid users",
        row_kind="count",
    ),
    "check_backup_exists": CatalogQuery(
        sql='SELECT EXISTS(SELECT 1 FROM "Backup" '
        'WHERE "organizationId" = :organization_id AND "createdAt" > :since) AS result',
        description="Check if backup exists within 24 hours",
        row_kind="result",
        time_params=_cutoff("since", timedelta(hours=24)),
    ),
    "check_audit_enabled": CatalogQuery(
        sql='SELECT "auditLoggingEnabled" AS result FROM "OrganizationSettings" '
        'WHERE "organizationId" = :organization_id',
        description="Check if audit logging is enabled",
        row_kind="result",
    ),
    "count_data_retention_violations": CatalogQuery(
        sql='SELECT COUNT(*) AS count FROM "Event" '
        'WHERE "organizationId" = :organization_id AND "createdAt" < :retain_after',
        description="Count events exceeding retention period",
        row_kind="count",
        # 7 years, leap days ignored.
        time_params=_cutoff("retain_after", timedelta(days=7 * 365)),
    ),
    "count_gdpr_consent_missing": CatalogQuery(
        sql='SELECT COUNT(*) AS count FROM "Person" '
        'WHERE "organizationId" = :organization_id '
        'AND "gdprConsentGiven" = false AND "isActive" = true',
        description="Count active persons without GDPR consent",
        row_kind="count",
    ),
}

QUERY_CATALOG: Mapping[str, CatalogQuery] = MappingProxyType(_QUERIES)


def list_queries() -> List[QueryCatalogEntry]:
    """Catalog ids and descriptions for an administration surface (no query text)."""
    return [QueryCatalogEntry(id=query_id, description=q.description) for query_id, q in QUERY_CATALOG.items()]


def is_whitelisted(query_id: str) -> bool:
    return query_id in QUERY_CATALOG


def _to_row(kind: RowKind, value: object) -> QueryRow:
    if kind == "count":
        return QueryRow(count=int(value or 0))
    # SQLite reports booleans as 0/1.
    return QueryRow(result=None if value is None else bool(value))


def execute_safe_query(
    query_id: str,
    organization_id: str,
    *,
    connection: Connection,
    now: Optional[datetime] = None,
) -> List[QueryRow]:
    query = QUERY_CATALOG.get(query_id)
    if query is None:
        raise UnknownQueryError(query_id)

    params: Dict[str, object] = {"organization_id": organization_id}
    params.update(query.time_params(now or utcnow()))
    logger.debug("Executing catalog query %s for organization %s", query_id, organization_id)
    rows = connection.execute(text(query.sql), params).mappings().all()
    return [_to_row(query.row_kind, row[query.row_kind]) for row in rows]


class QueryExecutor(Protocol):
    def __call__(self, query_id: str, organization_id: str, now: datetime) -> List[QueryRow]:
        ...


class SqlQueryExecutor:
    """Runs catalog queries on a fresh connection from `engine` per call."""

    def __init__(self, engine: Engine):
        self._engine = engine

    def __call__(self, query_id: str, organization_id: str, now: datetime) -> List[QueryRow]:
        if not is_whitelisted(query_id):
            raise UnknownQueryError(query_id)
        with self._engine.connect() as conn:
            return execute_safe_query(query_id, organization_id, connection=conn, now=now)
