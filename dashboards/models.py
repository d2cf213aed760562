"""
dashboards/models.py -- Dashboard configuration dataclasses and validation.

A dashboard is a named set of widgets plus a grid layout. Layout, widgets,
and settings are persisted as JSON text next to the scalar columns (see
dashboards/store.py), so these dataclasses also own the dict conversion used
for that JSON.

Validation lives here rather than in the API models so the admin CLI and the
store enforce the same rules as the HTTP layer.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Optional

from core.errors import ValidationError

WIDGET_TYPES = ("metric_card", "chart", "table", "list", "vendor_card")
DATA_SOURCES = ("cisa", "nvd", "mitre")
CHART_TYPES = ("line", "bar", "pie")

# Named refresh cadences (seconds) used by the stock widgets.
REFRESH_INTERVALS: dict[str, int] = {
    "fast": 30,
    "normal": 60,
    "slow": 300,
    "hourly": 3600,
}

MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500


@dataclass
class GridCell:
    """Position of one widget on the 12-column grid. i matches a widget id."""

    i: str
    x: int
    y: int
    w: int
    h: int
    min_w: Optional[int] = None
    min_h: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GridCell":
        return cls(
            i=data["i"],
            x=data["x"],
            y=data["y"],
            w=data["w"],
            h=data["h"],
            min_w=data.get("min_w"),
            min_h=data.get("min_h"),
        )


@dataclass
class WidgetConfig:
    id: str
    type: str  # one of WIDGET_TYPES
    title: str
    data_source: str  # one of DATA_SOURCES
    description: Optional[str] = None
    metric_id: Optional[str] = None
    refresh_interval: Optional[int] = None  # seconds
    chart_type: Optional[str] = None  # one of CHART_TYPES
    settings: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WidgetConfig":
        return cls(
            id=data["id"],
            type=data["type"],
            title=data["title"],
            data_source=data["data_source"],
            description=data.get("description"),
            metric_id=data.get("metric_id"),
            refresh_interval=data.get("refresh_interval"),
            chart_type=data.get("chart_type"),
            settings=dict(data.get("settings") or {}),
        )


@dataclass
class Dashboard:
    """A stored dashboard.

    At most one dashboard has is_default=True. The store enforces this by
    clearing every other default in the same transaction as the write.

    id, created_at, and updated_at are None before the dashboard is stored.
    """

    name: str
    description: Optional[str] = None
    is_default: bool = False
    layout: list[GridCell] = field(default_factory=list)
    widgets: list[WidgetConfig] = field(default_factory=list)
    settings: dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_dashboard(dashboard: Dashboard, max_widgets: int = 50) -> None:
    """Raise ValidationError for the first rule the dashboard breaks.

    Rules: name 1-100 characters, description at most 500, at most
    max_widgets widgets, unique widget ids, and enum members for widget
    type, data source, and chart type. A widget without a grid cell is
    allowed (it is rendered after the laid-out widgets).
    """
    name = (dashboard.name or "").strip()
    if not name:
        raise ValidationError("Dashboard name is required.", field="name")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Dashboard name must be at most {MAX_NAME_LENGTH} characters.", field="name")
    if dashboard.description is not None and len(dashboard.description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters.",
            field="description",
        )
    if len(dashboard.widgets) > max_widgets:
        raise ValidationError(f"A dashboard may hold at most {max_widgets} widgets.", field="widgets")

    seen: set[str] = set()
    for widget in dashboard.widgets:
        if widget.id in seen:
            raise ValidationError("Widget ids must be unique.", field="widgets", detail=f"Duplicate id {widget.id!r}.")
        seen.add(widget.id)
        validate_widget(widget)


def validate_widget(widget: WidgetConfig) -> None:
    if not widget.id:
        raise ValidationError("Widget id is required.", field="widgets.id")
    if widget.type not in WIDGET_TYPES:
        raise ValidationError(
            "Invalid widget type.",
            field="widgets.type",
            detail=f"{widget.type!r} is not one of: {', '.join(WIDGET_TYPES)}.",
        )
    if widget.data_source not in DATA_SOURCES:
        raise ValidationError(
            "Invalid widget data source.",
            field="widgets.data_source",
            detail=f"{widget.data_source!r} is not one of: {', '.join(DATA_SOURCES)}.",
        )
    if widget.chart_type is not None and widget.chart_type not in CHART_TYPES:
        raise ValidationError(
            "Invalid chart type.",
            field="widgets.chart_type",
            detail=f"{widget.chart_type!r} is not one of: {', '.join(CHART_TYPES)}.",
        )
    if widget.refresh_interval is not None and widget.refresh_interval <= 0:
        raise ValidationError("Refresh interval must be positive.", field="widgets.refresh_interval")
