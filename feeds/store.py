"""
feeds/store.py -- SQLAlchemy-backed repository over the vulnerability feed tables.

Uses SQLAlchemy Core (not ORM) so the dataclasses in feeds/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change, not a rewrite.

Pattern: Repository + Data Mapper. FeedStore is the repository (one method
per aggregate a widget needs). The _row_to_* functions are the mappers.
Metric handlers never touch SQL directly.

Security: all queries use bound parameters. No f-strings in SQL. Column
references for sorting and searching come from the Table objects below,
never from request strings.

Timestamps: DateTime(timezone=True) columns. Every value is normalized to
UTC before binding; SQLite hands back naive datetimes, which the mappers
re-tag as UTC.

Usage:
    store = FeedStore()                                # DATABASE_URL from settings
    store = FeedStore("sqlite:///:memory:")
    store.add_kev(KevRecord(...))
    store.count_kev(added_until=now)
    store.close()
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.sql.elements import ColumnElement

from core.bucketing import bucket_timestamps
from core.config import get_settings
from core.db import make_engine, store_connection
from core.models import BucketPoint, TimeRange
from core.timerange import as_utc
from feeds.models import KevRecord, MitreTactic, MitreTechnique, NvdCve

logger = logging.getLogger("cyberdash.feeds")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

cisa_kev = Table(
    "cisa_kev",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("cve_id", String(30), nullable=False, unique=True),
    Column("vendor_project", String(255), nullable=False, index=True),
    Column("product", String(255), nullable=False),
    Column("vulnerability_name", Text, nullable=False),
    Column("date_added", DateTime(timezone=True), nullable=False, index=True),
    Column("short_description", Text, nullable=False, server_default=""),
    Column("required_action", Text, nullable=False, server_default=""),
    Column("due_date", DateTime(timezone=True)),
    Column("known_ransomware_campaign_use", Boolean, nullable=False, server_default=text("0")),
    Column("notes", Text),
)

nvd_cve = Table(
    "nvd_cve",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("cve_id", String(30), nullable=False, unique=True),
    Column("source_identifier", String(255)),
    Column("published", DateTime(timezone=True), nullable=False, index=True),
    Column("last_modified", DateTime(timezone=True), nullable=False),
    Column("vuln_status", String(50), nullable=False),
    Column("cvss_v3_base_score", Float, index=True),
    Column("cvss_v3_base_severity", String(20), index=True),
    Column("cvss_v3_vector", String(100)),
    Column("description", Text),
)

mitre_techniques = Table(
    "mitre_attack_techniques",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("technique_id", String(20), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("tactics", Text),  # JSON array serialized as text
    Column("platforms", Text),  # JSON array serialized as text
    Column("version", String(20)),
    Column("created", DateTime(timezone=True)),
    Column("last_modified", DateTime(timezone=True), index=True),
    Column("is_revoked", Boolean, nullable=False, server_default=text("0")),
    Column("is_deprecated", Boolean, nullable=False, server_default=text("0")),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

mitre_tactics = Table(
    "mitre_attack_tactics",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("tactic_id", String(20), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("short_name", String(100), nullable=False),
    Column("description", Text),
)

# Active = neither revoked nor deprecated. Every technique aggregate uses it.
_ACTIVE_TECHNIQUE = mitre_techniques.c.is_revoked.is_(False) & mitre_techniques.c.is_deprecated.is_(False)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    return as_utc(value) if value is not None else None


def _within(column, time_range: Optional[TimeRange]) -> list[ColumnElement]:
    """Inclusive [start, end] predicate on a timestamp column (empty when no range)."""
    if time_range is None:
        return []
    return [column >= _utc(time_range.start), column <= _utc(time_range.end)]


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class FeedStore:
    def __init__(self, db_url: Optional[str] = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes (called by ingestion workers and test fixtures)
    # ------------------------------------------------------------------

    def add_kev(self, record: KevRecord) -> int:
        """Insert a KEV entry and return its database ID.

        Raises StoreError if the cve_id already exists.
        """
        with store_connection(self.engine, "add_kev", begin=True) as conn:
            result = conn.execute(
                cisa_kev.insert().values(
                    cve_id=record.cve_id.upper(),
                    vendor_project=record.vendor_project,
                    product=record.product,
                    vulnerability_name=record.vulnerability_name,
                    date_added=_utc(record.date_added),
                    short_description=record.short_description,
                    required_action=record.required_action,
                    due_date=_utc(record.due_date),
                    known_ransomware_campaign_use=record.known_ransomware_campaign_use,
                    notes=record.notes,
                )
            )
            return result.inserted_primary_key[0]

    def add_nvd(self, cve: NvdCve) -> int:
        with store_connection(self.engine, "add_nvd", begin=True) as conn:
            result = conn.execute(
                nvd_cve.insert().values(
                    cve_id=cve.cve_id.upper(),
                    source_identifier=cve.source_identifier,
                    published=_utc(cve.published),
                    last_modified=_utc(cve.last_modified),
                    vuln_status=cve.vuln_status,
                    cvss_v3_base_score=cve.cvss_v3_base_score,
                    cvss_v3_base_severity=cve.cvss_v3_base_severity,
                    cvss_v3_vector=cve.cvss_v3_vector,
                    description=cve.description,
                )
            )
            return result.inserted_primary_key[0]

    def add_technique(self, technique: MitreTechnique) -> int:
        created_at = technique.created_at or technique.created or datetime.now().astimezone()
        with store_connection(self.engine, "add_technique", begin=True) as conn:
            result = conn.execute(
                mitre_techniques.insert().values(
                    technique_id=technique.technique_id,
                    name=technique.name,
                    description=technique.description,
                    tactics=json.dumps(technique.tactics),
                    platforms=json.dumps(technique.platforms),
                    version=technique.version,
                    created=_utc(technique.created),
                    last_modified=_utc(technique.last_modified),
                    is_revoked=technique.is_revoked,
                    is_deprecated=technique.is_deprecated,
                    created_at=_utc(created_at),
                )
            )
            return result.inserted_primary_key[0]

    def add_tactic(self, tactic: MitreTactic) -> int:
        with store_connection(self.engine, "add_tactic", begin=True) as conn:
            result = conn.execute(
                mitre_tactics.insert().values(
                    tactic_id=tactic.tactic_id,
                    name=tactic.name,
                    short_name=tactic.short_name,
                    description=tactic.description,
                )
            )
            return result.inserted_primary_key[0]

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Round-trip a trivial query. Raises StoreError when the store is down."""
        with store_connection(self.engine, "ping") as conn:
            conn.execute(text("SELECT 1"))
        return True

    # ------------------------------------------------------------------
    # CISA KEV
    # ------------------------------------------------------------------

    def count_kev(
        self,
        added_from: Optional[datetime] = None,
        added_until: Optional[datetime] = None,
        added_before: Optional[datetime] = None,
        vendor: Optional[str] = None,
    ) -> int:
        """Count KEV entries. added_until is inclusive, added_before exclusive."""
        conditions: list[ColumnElement] = []
        if added_from is not None:
            conditions.append(cisa_kev.c.date_added >= _utc(added_from))
        if added_until is not None:
            conditions.append(cisa_kev.c.date_added <= _utc(added_until))
        if added_before is not None:
            conditions.append(cisa_kev.c.date_added < _utc(added_before))
        if vendor is not None:
            conditions.append(cisa_kev.c.vendor_project == vendor)
        return self.count_kev_where(conditions)

    def count_kev_where(self, conditions: list[ColumnElement]) -> int:
        stmt = select(func.count()).select_from(cisa_kev).where(*conditions)
        with store_connection(self.engine, "count_kev") as conn:
            return int(conn.execute(stmt).scalar_one())

    def kev_page(
        self,
        conditions: list[ColumnElement],
        order_by: list[ColumnElement],
        limit: int,
        offset: int,
    ) -> list[KevRecord]:
        """Return one page of KEV entries matching every condition."""
        stmt = cisa_kev.select().where(*conditions).order_by(*order_by).limit(limit).offset(offset)
        with store_connection(self.engine, "kev_page") as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_kev(r) for r in rows]

    def latest_kev(self) -> Optional[KevRecord]:
        stmt = cisa_kev.select().order_by(cisa_kev.c.date_added.desc(), cisa_kev.c.cve_id).limit(1)
        with store_connection(self.engine, "latest_kev") as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_kev(row) if row is not None else None

    def kev_vendor_counts(self, time_range: Optional[TimeRange] = None, limit: int = 15) -> list[dict[str, Any]]:
        """Vendors ranked by KEV count (ties broken by vendor name).

        Returns [{"vendor", "count", "latest", "earliest"}, ...].
        """
        count_col = func.count().label("vulnerability_count")
        stmt = (
            select(
                cisa_kev.c.vendor_project,
                count_col,
                func.max(cisa_kev.c.date_added).label("latest"),
                func.min(cisa_kev.c.date_added).label("earliest"),
            )
            .where(*_within(cisa_kev.c.date_added, time_range))
            .group_by(cisa_kev.c.vendor_project)
            .order_by(count_col.desc(), cisa_kev.c.vendor_project.asc())
            .limit(limit)
        )
        with store_connection(self.engine, "kev_vendor_counts") as conn:
            rows = conn.execute(stmt).fetchall()
        return [
            {
                "vendor": row.vendor_project,
                "count": int(row.vulnerability_count),
                "latest": _utc(row.latest),
                "earliest": _utc(row.earliest),
            }
            for row in rows
        ]

    def kev_product_counts(self, limit: int = 15) -> list[dict[str, Any]]:
        """(product, vendor) pairs ranked by KEV count. Returns [{"product", "vendor", "count", "latest"}]."""
        count_col = func.count().label("vulnerability_count")
        stmt = (
            select(
                cisa_kev.c.product,
                cisa_kev.c.vendor_project,
                count_col,
                func.max(cisa_kev.c.date_added).label("latest"),
            )
            .group_by(cisa_kev.c.product, cisa_kev.c.vendor_project)
            .order_by(count_col.desc(), cisa_kev.c.product.asc())
            .limit(limit)
        )
        with store_connection(self.engine, "kev_product_counts") as conn:
            rows = conn.execute(stmt).fetchall()
        return [
            {
                "product": row.product,
                "vendor": row.vendor_project,
                "count": int(row.vulnerability_count),
                "latest": _utc(row.latest),
            }
            for row in rows
        ]

    def kev_due_date_summary(self, now: datetime, due_soon_days: int = 7) -> dict[str, int]:
        """Split KEV entries that carry a due date into overdue / approaching buckets.

        approaching -- due within [now, now + due_soon_days]
        overdue     -- due before now
        """
        due = cisa_kev.c.due_date
        now_utc = _utc(now)
        soon = now_utc + timedelta(days=due_soon_days)
        with store_connection(self.engine, "kev_due_date_summary") as conn:
            total = conn.execute(select(func.count()).select_from(cisa_kev).where(due.isnot(None))).scalar_one()
            approaching = conn.execute(
                select(func.count()).select_from(cisa_kev).where(due.isnot(None), due >= now_utc, due <= soon)
            ).scalar_one()
            overdue = conn.execute(
                select(func.count()).select_from(cisa_kev).where(due.isnot(None), due < now_utc)
            ).scalar_one()
        return {"total_with_due_date": int(total), "approaching": int(approaching), "overdue": int(overdue)}

    def kev_bucket_counts(self, time_range: TimeRange, interval: str) -> list[BucketPoint]:
        """Per-bucket counts of KEV additions inside time_range.

        Buckets are computed in Python (see core/bucketing.py) so the query
        stays dialect-neutral: no DATE_TRUNC, no strftime.
        """
        stmt = select(cisa_kev.c.date_added).where(*_within(cisa_kev.c.date_added, time_range))
        with store_connection(self.engine, "kev_bucket_counts") as conn:
            stamps = [_utc(row.date_added) for row in conn.execute(stmt)]
        return bucket_timestamps(stamps, interval)

    # ------------------------------------------------------------------
    # NVD
    # ------------------------------------------------------------------

    def count_nvd(
        self,
        min_score: Optional[float] = None,
        published_until: Optional[datetime] = None,
        published_before: Optional[datetime] = None,
    ) -> int:
        conditions: list[ColumnElement] = []
        if min_score is not None:
            conditions.append(nvd_cve.c.cvss_v3_base_score >= min_score)
        if published_until is not None:
            conditions.append(nvd_cve.c.published <= _utc(published_until))
        if published_before is not None:
            conditions.append(nvd_cve.c.published < _utc(published_before))
        stmt = select(func.count()).select_from(nvd_cve).where(*conditions)
        with store_connection(self.engine, "count_nvd") as conn:
            return int(conn.execute(stmt).scalar_one())

    def recent_nvd(self, min_score: Optional[float] = None, limit: int = 10) -> list[NvdCve]:
        """Most recently published CVEs, optionally at or above a CVSS v3 score."""
        stmt = nvd_cve.select()
        if min_score is not None:
            stmt = stmt.where(nvd_cve.c.cvss_v3_base_score >= min_score)
        stmt = stmt.order_by(nvd_cve.c.published.desc(), nvd_cve.c.cve_id).limit(limit)
        with store_connection(self.engine, "recent_nvd") as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_nvd(r) for r in rows]

    def nvd_severity_breakdown(self, time_range: TimeRange) -> list[dict[str, Any]]:
        """CVSS v3 severity counts and score statistics for CVEs published in range."""
        score = nvd_cve.c.cvss_v3_base_score
        severity = nvd_cve.c.cvss_v3_base_severity
        stmt = (
            select(
                severity.label("severity"),
                func.count().label("count"),
                func.avg(score).label("avg_score"),
                func.max(score).label("max_score"),
                func.min(score).label("min_score"),
            )
            .where(severity.isnot(None), *_within(nvd_cve.c.published, time_range))
            .group_by(severity)
        )
        with store_connection(self.engine, "nvd_severity_breakdown") as conn:
            rows = conn.execute(stmt).fetchall()
        return [
            {
                "severity": row.severity,
                "count": int(row.count),
                "avg_score": round(float(row.avg_score), 1) if row.avg_score is not None else 0.0,
                "max_score": float(row.max_score) if row.max_score is not None else 0.0,
                "min_score": float(row.min_score) if row.min_score is not None else 0.0,
            }
            for row in rows
        ]

    def nvd_published_scores(self, time_range: TimeRange) -> list[tuple[datetime, Optional[float]]]:
        """(published, cvss_v3_base_score) pairs for CVEs published in range."""
        stmt = select(nvd_cve.c.published, nvd_cve.c.cvss_v3_base_score).where(
            *_within(nvd_cve.c.published, time_range)
        )
        with store_connection(self.engine, "nvd_published_scores") as conn:
            rows = conn.execute(stmt).fetchall()
        return [(_utc(row.published), row.cvss_v3_base_score) for row in rows]

    def nvd_status_counts(self) -> list[dict[str, Any]]:
        stmt = select(nvd_cve.c.vuln_status, func.count().label("count")).group_by(nvd_cve.c.vuln_status)
        with store_connection(self.engine, "nvd_status_counts") as conn:
            rows = conn.execute(stmt).fetchall()
        return [{"status": row.vuln_status, "count": int(row.count)} for row in rows]

    # ------------------------------------------------------------------
    # MITRE ATT&CK
    # ------------------------------------------------------------------

    def count_techniques(
        self,
        created_until: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
    ) -> int:
        """Count active techniques by the time they entered the local store."""
        conditions: list[ColumnElement] = [_ACTIVE_TECHNIQUE]
        if created_until is not None:
            conditions.append(mitre_techniques.c.created_at <= _utc(created_until))
        if created_before is not None:
            conditions.append(mitre_techniques.c.created_at < _utc(created_before))
        stmt = select(func.count()).select_from(mitre_techniques).where(*conditions)
        with store_connection(self.engine, "count_techniques") as conn:
            return int(conn.execute(stmt).scalar_one())

    def latest_technique(self) -> Optional[MitreTechnique]:
        stmt = (
            mitre_techniques.select()
            .where(_ACTIVE_TECHNIQUE)
            .order_by(mitre_techniques.c.created_at.desc(), mitre_techniques.c.technique_id)
            .limit(1)
        )
        with store_connection(self.engine, "latest_technique") as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_technique(row) if row is not None else None

    def active_techniques(self) -> list[MitreTechnique]:
        """All active techniques, ordered by technique_id.

        Tactic and platform membership is stored as JSON text, so coverage
        counts are computed by the caller in Python rather than with
        dialect-specific JSON operators.
        """
        stmt = mitre_techniques.select().where(_ACTIVE_TECHNIQUE).order_by(mitre_techniques.c.technique_id)
        with store_connection(self.engine, "active_techniques") as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_technique(r) for r in rows]

    def recent_techniques(self, limit: int = 10) -> list[MitreTechnique]:
        stmt = (
            mitre_techniques.select()
            .where(_ACTIVE_TECHNIQUE, mitre_techniques.c.last_modified.isnot(None))
            .order_by(mitre_techniques.c.last_modified.desc(), mitre_techniques.c.technique_id)
            .limit(limit)
        )
        with store_connection(self.engine, "recent_techniques") as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_technique(r) for r in rows]

    def list_tactics(self) -> list[MitreTactic]:
        with store_connection(self.engine, "list_tactics") as conn:
            rows = conn.execute(mitre_tactics.select().order_by(mitre_tactics.c.name)).fetchall()
        return [
            MitreTactic(
                id=r.id,
                tactic_id=r.tactic_id,
                name=r.name,
                short_name=r.short_name,
                description=r.description,
            )
            for r in rows
        ]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_kev(row) -> KevRecord:
    return KevRecord(
        id=row.id,
        cve_id=row.cve_id,
        vendor_project=row.vendor_project,
        product=row.product,
        vulnerability_name=row.vulnerability_name,
        date_added=_utc(row.date_added),
        short_description=row.short_description or "",
        required_action=row.required_action or "",
        due_date=_utc(row.due_date),
        known_ransomware_campaign_use=bool(row.known_ransomware_campaign_use),
        notes=row.notes,
    )


def _row_to_nvd(row) -> NvdCve:
    return NvdCve(
        id=row.id,
        cve_id=row.cve_id,
        source_identifier=row.source_identifier,
        published=_utc(row.published),
        last_modified=_utc(row.last_modified),
        vuln_status=row.vuln_status,
        cvss_v3_base_score=row.cvss_v3_base_score,
        cvss_v3_base_severity=row.cvss_v3_base_severity,
        cvss_v3_vector=row.cvss_v3_vector,
        description=row.description,
    )


def _row_to_technique(row) -> MitreTechnique:
    tactics: list[str] = json.loads(row.tactics) if row.tactics else []
    platforms: list[str] = json.loads(row.platforms) if row.platforms else []
    return MitreTechnique(
        id=row.id,
        technique_id=row.technique_id,
        name=row.name,
        description=row.description,
        tactics=tactics,
        platforms=platforms,
        version=row.version,
        created=_utc(row.created),
        last_modified=_utc(row.last_modified),
        is_revoked=bool(row.is_revoked),
        is_deprecated=bool(row.is_deprecated),
        created_at=_utc(row.created_at),
    )
