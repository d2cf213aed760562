"""
dashboards/store.py -- SQLAlchemy-backed persistence for dashboard configurations.

Layout, widgets, and settings are stored as JSON text columns next to the
scalar metadata, so a dashboard is always read and written as one row.

Default-flag protocol: a write that sets is_default clears the flag on every
other dashboard and writes the row inside ONE transaction. Two sequential
default-setting writes therefore always leave exactly one default.

Migrations (widget type rewrites, metric id repairs) are explicit,
idempotent operations invoked from the admin CLI (main.py). They rewrite
only the dashboards whose widgets actually change and report that count,
so a second run returns 0.

No caching: every call re-reads the store.

Usage:
    store = DashboardStore()                        # DATABASE_URL from settings
    store = DashboardStore("sqlite:///:memory:")
    dashboard = store.create(Dashboard(name="SOC", is_default=True))
    store.migrate_vendor_widgets()
"""

import json
import logging
from collections.abc import Callable, Mapping
from typing import Any, Optional

from sqlalchemy import Boolean, Column, DateTime, Integer, MetaData, String, Table, Text, func, select, text
from sqlalchemy.engine import Connection

from core.config import get_settings
from core.db import make_engine, store_connection
from core.errors import NotFoundError, ValidationError
from core.timerange import Clock, as_utc, utc_now
from dashboards.models import WIDGET_TYPES, Dashboard, GridCell, WidgetConfig, validate_dashboard
from dashboards.templates import default_dashboard

logger = logging.getLogger("cyberdash.dashboards")

metadata = MetaData()

dashboards = Table(
    "dashboards",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("description", Text),
    Column("is_default", Boolean, nullable=False, server_default=text("0")),
    Column("layout", Text, nullable=False),  # JSON array of grid cells
    Column("widgets", Text, nullable=False),  # JSON array of widget configs
    Column("settings", Text),  # JSON object
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

# Fields update() accepts. Anything else is a programming error.
_UPDATABLE = ("name", "description", "is_default", "layout", "widgets", "settings")

# Stock widget ids that predate the vendor_card widget type.
VENDOR_WIDGET_IDS = frozenset({"cisa-vendor-breakdown", "cisa-top-vendor"})

# Metric ids written by early dashboards (underscores) -> route ids (hyphens).
METRIC_ID_FIXES: dict[str, str] = {
    # CISA KEV
    "total_count": "total-count",
    "top_vendor": "top-vendor",
    "due_date_compliance": "due-date-compliance",
    "vendor_breakdown": "vendor-breakdown",
    "new_vulns_rate": "new-vulns-rate",
    "product_distribution": "product-distribution",
    # NVD CVE
    "critical_count": "critical-count",
    "publication_trends": "publication-trends",
    "severity_distribution": "severity-distribution",
    "recent_high_severity": "recent-high-severity",
    "vuln_status_summary": "vuln-status-summary",
    # MITRE ATT&CK
    "technique_count": "technique-count",
    "tactics_coverage": "tactics-coverage",
    "platform_coverage": "platform-coverage",
    "recent_updates": "recent-updates",
    "top_techniques": "top-techniques",
}

WidgetPredicate = Callable[[WidgetConfig], bool]


def is_legacy_vendor_widget(widget: WidgetConfig) -> bool:
    """metric_card widgets that show a vendor and should render as vendor_card."""
    return widget.type == "metric_card" and (widget.metric_id == "top_vendor" or widget.id in VENDOR_WIDGET_IDS)


class DashboardStore:
    def __init__(
        self,
        db_url: Optional[str] = None,
        clock: Clock = utc_now,
        max_widgets: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self.engine = make_engine(db_url or settings.database_url)
        self._clock = clock
        self.max_widgets = max_widgets if max_widgets is not None else settings.max_widgets_per_dashboard
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(self, dashboard: Dashboard) -> Dashboard:
        """Validate and insert a dashboard. Returns the stored copy.

        Raises ValidationError before touching the store if any rule fails.
        """
        validate_dashboard(dashboard, self.max_widgets)
        now = as_utc(self._clock())
        with store_connection(self.engine, "create_dashboard", begin=True) as conn:
            if dashboard.is_default:
                _clear_defaults(conn)
            result = conn.execute(
                dashboards.insert().values(
                    name=dashboard.name.strip(),
                    description=dashboard.description,
                    is_default=dashboard.is_default,
                    created_at=now,
                    updated_at=now,
                    **_json_columns(dashboard),
                )
            )
            new_id = result.inserted_primary_key[0]
            row = conn.execute(dashboards.select().where(dashboards.c.id == new_id)).fetchone()
        logger.info("Created dashboard %d (%s)%s", new_id, dashboard.name, " as default" if dashboard.is_default else "")
        return _row_to_dashboard(row)

    def get(self, dashboard_id: int) -> Dashboard:
        """Fetch one dashboard. Raises NotFoundError if it does not exist."""
        with store_connection(self.engine, "get_dashboard") as conn:
            row = conn.execute(dashboards.select().where(dashboards.c.id == dashboard_id)).fetchone()
        if row is None:
            raise NotFoundError("Dashboard", dashboard_id)
        return _row_to_dashboard(row)

    def list(self) -> list[Dashboard]:
        """All dashboards: the default first, then most recently updated."""
        stmt = dashboards.select().order_by(
            dashboards.c.is_default.desc(),
            dashboards.c.updated_at.desc(),
            dashboards.c.id.desc(),
        )
        with store_connection(self.engine, "list_dashboards") as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_dashboard(r) for r in rows]

    def update(self, dashboard_id: int, **fields: Any) -> Dashboard:
        """Update any subset of name, description, is_default, layout, widgets, settings.

        layout and widgets accept lists of GridCell / WidgetConfig. The merged
        dashboard is validated with the same rules as create(). Setting
        is_default=True clears every other default in the same transaction.

        Raises NotFoundError if dashboard_id does not exist.
        """
        unknown = set(fields) - set(_UPDATABLE)
        if unknown:
            raise TypeError(f"Unknown dashboard fields: {', '.join(sorted(unknown))}")

        with store_connection(self.engine, "update_dashboard", begin=True) as conn:
            row = conn.execute(dashboards.select().where(dashboards.c.id == dashboard_id)).fetchone()
            if row is None:
                raise NotFoundError("Dashboard", dashboard_id)
            current = _row_to_dashboard(row)
            for name, value in fields.items():
                setattr(current, name, value)
            validate_dashboard(current, self.max_widgets)

            if current.is_default:
                _clear_defaults(conn, except_id=dashboard_id)
            conn.execute(
                dashboards.update()
                .where(dashboards.c.id == dashboard_id)
                .values(
                    name=current.name.strip(),
                    description=current.description,
                    is_default=current.is_default,
                    updated_at=as_utc(self._clock()),
                    **_json_columns(current),
                )
            )
            row = conn.execute(dashboards.select().where(dashboards.c.id == dashboard_id)).fetchone()
        return _row_to_dashboard(row)

    def delete(self, dashboard_id: int) -> None:
        """Delete a dashboard. Raises NotFoundError if it does not exist.

        Deleting the default leaves no default; the next list() simply
        orders by recency.
        """
        with store_connection(self.engine, "delete_dashboard", begin=True) as conn:
            deleted = conn.execute(dashboards.delete().where(dashboards.c.id == dashboard_id)).rowcount
        if deleted == 0:
            raise NotFoundError("Dashboard", dashboard_id)
        logger.info("Deleted dashboard %d", dashboard_id)

    def initialize_default(self) -> tuple[Dashboard, bool]:
        """Insert the stock dashboard when the store holds none.

        Returns (dashboard, created). When dashboards already exist, returns
        the first one in list() order and created=False.
        """
        with store_connection(self.engine, "count_dashboards") as conn:
            existing = conn.execute(select(func.count()).select_from(dashboards)).scalar_one()
        if existing:
            return self.list()[0], False
        return self.create(default_dashboard()), True

    # ------------------------------------------------------------------
    # Migrations
    # ------------------------------------------------------------------

    def migrate_widget_types(self, predicate: WidgetPredicate, new_type: str) -> int:
        """Retype every widget matching predicate. Returns the number of dashboards changed.

        A widget already of new_type is left alone, so a second run finds
        nothing to change and returns 0.
        """
        if new_type not in WIDGET_TYPES:
            raise ValidationError(
                "Invalid widget type.",
                field="new_type",
                detail=f"{new_type!r} is not one of: {', '.join(WIDGET_TYPES)}.",
            )

        def retype(widget: WidgetConfig) -> bool:
            if widget.type != new_type and predicate(widget):
                widget.type = new_type
                return True
            return False

        changed = self._rewrite_widgets("migrate_widget_types", retype)
        logger.info("Widget type migration to %s changed %d dashboard(s)", new_type, changed)
        return changed

    def migrate_vendor_widgets(self) -> int:
        return self.migrate_widget_types(is_legacy_vendor_widget, "vendor_card")

    def normalize_metric_ids(self, mapping: Mapping[str, str] = METRIC_ID_FIXES) -> int:
        """Rewrite widget metric ids found in mapping. Returns the number of dashboards changed."""

        def rename(widget: WidgetConfig) -> bool:
            replacement = mapping.get(widget.metric_id) if widget.metric_id else None
            if replacement and replacement != widget.metric_id:
                widget.metric_id = replacement
                return True
            return False

        changed = self._rewrite_widgets("normalize_metric_ids", rename)
        logger.info("Metric id normalization changed %d dashboard(s)", changed)
        return changed

    def _rewrite_widgets(self, operation: str, mutate: Callable[[WidgetConfig], bool]) -> int:
        """Apply mutate to every widget of every dashboard inside one transaction.

        mutate edits the widget in place and returns True when it changed it.
        Only dashboards with at least one changed widget are written.
        """
        changed = 0
        now = as_utc(self._clock())
        with store_connection(self.engine, operation, begin=True) as conn:
            rows = conn.execute(select(dashboards.c.id, dashboards.c.widgets)).fetchall()
            for row in rows:
                widgets = [WidgetConfig.from_dict(w) for w in json.loads(row.widgets or "[]")]
                # Evaluate every widget; any() would stop at the first change.
                results = [mutate(widget) for widget in widgets]
                if not any(results):
                    continue
                conn.execute(
                    dashboards.update()
                    .where(dashboards.c.id == row.id)
                    .values(widgets=_dump([w.__dict__ for w in widgets]), updated_at=now)
                )
                changed += 1
        return changed

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _clear_defaults(conn: Connection, except_id: Optional[int] = None) -> None:
    stmt = dashboards.update().where(dashboards.c.is_default.is_(True))
    if except_id is not None:
        stmt = stmt.where(dashboards.c.id != except_id)
    conn.execute(stmt.values(is_default=False))


def _dump(value: Any) -> str:
    return json.dumps(value)


def _json_columns(dashboard: Dashboard) -> dict[str, str]:
    return {
        "layout": _dump([cell.__dict__ for cell in dashboard.layout]),
        "widgets": _dump([widget.__dict__ for widget in dashboard.widgets]),
        "settings": _dump(dashboard.settings or {}),
    }


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_dashboard(row) -> Dashboard:
    layout = json.loads(row.layout) if row.layout else []
    widgets = json.loads(row.widgets) if row.widgets else []
    settings = json.loads(row.settings) if row.settings else {}
    return Dashboard(
        id=row.id,
        name=row.name,
        description=row.description,
        is_default=bool(row.is_default),
        layout=[GridCell.from_dict(cell) for cell in layout],
        widgets=[WidgetConfig.from_dict(widget) for widget in widgets],
        settings=settings,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )
