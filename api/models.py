"""
API request and response models for the CyberDash REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in core/models.py,
feeds/models.py, and dashboards/models.py, which own the internal domain
representation. Route handlers map between the two through the from_* factory
methods below.

Every response shares one envelope:
  success -> {"success": true,  "data": ..., "metadata": {timestamp, source, version}}
  failure -> {"success": false, "error": {code, message, detail, field}}

Separation of concerns: domain dataclasses = domain truth; api/ models = API contract.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from core.models import MetricPayload
from dashboards.models import (
    MAX_DESCRIPTION_LENGTH,
    MAX_NAME_LENGTH,
    Dashboard,
    GridCell,
    WidgetConfig,
)
from feeds.models import KevRecord
from feeds.query import Pagination

API_VERSION = "1.0.0"

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


class ResponseMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    source: str
    version: str = API_VERSION


class Envelope(BaseModel, Generic[T]):
    """Success envelope wrapping every 2xx payload."""

    success: bool = True
    data: T
    metadata: ResponseMetadata


def wrap(data: Any, source: str, timestamp: datetime) -> Envelope:
    return Envelope(data=data, metadata=ResponseMetadata(timestamp=timestamp, source=source))


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    field: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    error: ErrorDetail


class HealthData(BaseModel):
    """Payload for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str = API_VERSION
    components: dict[str, str]


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


class MetricValueModel(BaseModel):
    label: str
    value: float
    change: float = 0
    change_percent: float = 0
    previous: Optional[float] = None


class DistributionRowModel(BaseModel):
    label: str
    value: int
    percentage: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)


class SeriesPointModel(BaseModel):
    timestamp: datetime
    value: int
    metadata: dict[str, Any] = Field(default_factory=dict)


class ListItemModel(BaseModel):
    title: str
    id: Optional[str] = None
    subtitle: Optional[str] = None
    value: Optional[Any] = None
    badge: Optional[dict[str, str]] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class MetricData(BaseModel):
    """One widget's worth of data. type is one of counter, gauge, distribution, timeseries, list."""

    id: str
    type: str
    title: str
    description: str
    source: str
    last_updated: datetime
    value: MetricValueModel
    distribution: list[DistributionRowModel] = Field(default_factory=list)
    timeseries: list[SeriesPointModel] = Field(default_factory=list)
    items: list[ListItemModel] = Field(default_factory=list)
    interval: Optional[str] = None
    total: Optional[int] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: MetricPayload) -> "MetricData":
        """Build the transport model from a core MetricPayload.

        Factory Method pattern -- the mapping lives here, colocated with the
        output model, rather than scattered across route handlers.
        """
        return cls(
            id=payload.id,
            type=payload.kind,
            title=payload.title,
            description=payload.description,
            source=payload.source,
            last_updated=payload.last_updated,
            value=MetricValueModel(**vars(payload.value)),
            distribution=[DistributionRowModel(**vars(row)) for row in payload.distribution],
            timeseries=[SeriesPointModel(**vars(point)) for point in payload.timeseries],
            items=[ListItemModel(**vars(item)) for item in payload.items],
            interval=payload.interval,
            total=payload.total,
            metadata=payload.metadata,
        )


# ---------------------------------------------------------------------------
# Vulnerability listing
# ---------------------------------------------------------------------------


class VulnerabilityRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    cve_id: str
    vendor_project: str
    product: str
    vulnerability_name: str
    date_added: datetime
    short_description: str
    required_action: str
    due_date: Optional[datetime] = None
    known_ransomware_campaign_use: bool = False
    notes: Optional[str] = None

    @classmethod
    def from_record(cls, record: KevRecord) -> "VulnerabilityRow":
        return cls(
            cve_id=record.cve_id,
            vendor_project=record.vendor_project,
            product=record.product,
            vulnerability_name=record.vulnerability_name,
            date_added=record.date_added,
            short_description=record.short_description,
            required_action=record.required_action,
            due_date=record.due_date,
            known_ransomware_campaign_use=record.known_ransomware_campaign_use,
            notes=record.notes,
        )


class PaginationModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    page: int
    limit: int
    offset: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def from_pagination(cls, pagination: Pagination) -> "PaginationModel":
        return cls(**vars(pagination))


class VulnerabilityList(BaseModel):
    vulnerabilities: list[VulnerabilityRow]
    pagination: PaginationModel
    filters: dict[str, Any]


# ---------------------------------------------------------------------------
# Dashboards -- enums
# ---------------------------------------------------------------------------


class WidgetTypeEnum(str, Enum):
    metric_card = "metric_card"
    chart = "chart"
    table = "table"
    list = "list"
    vendor_card = "vendor_card"


class DataSourceEnum(str, Enum):
    cisa = "cisa"
    nvd = "nvd"
    mitre = "mitre"


class ChartTypeEnum(str, Enum):
    line = "line"
    bar = "bar"
    pie = "pie"


# ---------------------------------------------------------------------------
# Dashboards -- request/response models
# ---------------------------------------------------------------------------


class GridCellModel(BaseModel):
    i: str
    x: int = Field(ge=0)
    y: int = Field(ge=0)
    w: int = Field(ge=1)
    h: int = Field(ge=1)
    min_w: Optional[int] = None
    min_h: Optional[int] = None

    def to_domain(self) -> GridCell:
        return GridCell(**self.model_dump())


class WidgetConfigModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(min_length=1)
    type: WidgetTypeEnum
    title: str
    data_source: DataSourceEnum
    description: Optional[str] = None
    metric_id: Optional[str] = None
    refresh_interval: Optional[int] = Field(default=None, gt=0)
    chart_type: Optional[ChartTypeEnum] = None
    settings: dict[str, Any] = Field(default_factory=dict)

    def to_domain(self) -> WidgetConfig:
        return WidgetConfig(
            id=self.id,
            type=self.type.value,
            title=self.title,
            data_source=self.data_source.value,
            description=self.description,
            metric_id=self.metric_id,
            refresh_interval=self.refresh_interval,
            chart_type=self.chart_type.value if self.chart_type else None,
            settings=self.settings,
        )


class DashboardCreate(BaseModel):
    """Request body for POST /api/v1/dashboards.

    Length limits mirror dashboards.models.validate_dashboard; the store
    re-validates (unique widget ids, widget cap) before writing.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=MAX_NAME_LENGTH)
    description: Optional[str] = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)
    is_default: bool = False
    layout: list[GridCellModel] = Field(default_factory=list)
    widgets: list[WidgetConfigModel] = Field(default_factory=list)
    settings: dict[str, Any] = Field(default_factory=dict)

    def to_domain(self) -> Dashboard:
        return Dashboard(
            name=self.name,
            description=self.description,
            is_default=self.is_default,
            layout=[cell.to_domain() for cell in self.layout],
            widgets=[widget.to_domain() for widget in self.widgets],
            settings=self.settings,
        )


class DashboardUpdate(BaseModel):
    """Request body for PUT /api/v1/dashboards/{id}. Only supplied fields change."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=MAX_NAME_LENGTH)
    description: Optional[str] = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)
    is_default: Optional[bool] = None
    layout: Optional[list[GridCellModel]] = None
    widgets: Optional[list[WidgetConfigModel]] = None
    settings: Optional[dict[str, Any]] = None

    def to_fields(self) -> dict[str, Any]:
        """Return the supplied fields converted to domain values."""
        fields: dict[str, Any] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            # An explicit null only clears the optional fields.
            if value is None and name in ("name", "is_default"):
                continue
            if name == "layout":
                value = [cell.to_domain() for cell in value or []]
            elif name == "widgets":
                value = [widget.to_domain() for widget in value or []]
            elif name == "settings":
                value = value or {}
            fields[name] = value
        return fields


class DashboardModel(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    is_default: bool
    layout: list[GridCellModel]
    widgets: list[WidgetConfigModel]
    settings: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_dashboard(cls, dashboard: Dashboard) -> "DashboardModel":
        return cls(
            id=dashboard.id,
            name=dashboard.name,
            description=dashboard.description,
            is_default=dashboard.is_default,
            layout=[GridCellModel(**vars(cell)) for cell in dashboard.layout],
            widgets=[WidgetConfigModel(**vars(widget)) for widget in dashboard.widgets],
            settings=dashboard.settings,
            created_at=dashboard.created_at,
            updated_at=dashboard.updated_at,
        )


class DashboardInitResult(BaseModel):
    created: bool
    message: str
    dashboard: DashboardModel


class DashboardDeleted(BaseModel):
    id: int
    deleted: bool = True
