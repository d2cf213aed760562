"""
api/routes/v1/dashboards.py -- Dashboard configuration CRUD.

Routes (in registration order to avoid FastAPI path capture conflicts):
  GET    /dashboards                 -- list (default first, then most recently updated)
  POST   /dashboards                 -- create
  POST   /dashboards/initialize      -- insert the stock dashboard when none exist
  GET    /dashboards/{dashboard_id}  -- detail
  PUT    /dashboards/{dashboard_id}  -- partial update
  DELETE /dashboards/{dashboard_id}  -- delete

Setting is_default on create or update clears every other default in the
same transaction (see dashboards/store.py). Validation failures raised by
the store surface as 400s; body shape errors are 422s.

Widget migrations are not exposed here: they run from the admin CLI
(python main.py migrate-widgets).
"""

from fastapi import APIRouter, Request

from api.limiter import dashboards_limit, limiter
from api.models import (
    DashboardCreate,
    DashboardDeleted,
    DashboardInitResult,
    DashboardModel,
    DashboardUpdate,
    Envelope,
    wrap,
)
from dashboards.store import DashboardStore

router = APIRouter()

_SOURCE = "dashboards"


@limiter.limit(dashboards_limit)
@router.get("/dashboards", response_model=Envelope[list[DashboardModel]])
def list_dashboards(request: Request) -> Envelope:
    store: DashboardStore = request.app.state.dashboards
    data = [DashboardModel.from_dashboard(d) for d in store.list()]
    return wrap(data, source=_SOURCE, timestamp=request.app.state.clock())


@limiter.limit(dashboards_limit)
@router.post("/dashboards", response_model=Envelope[DashboardModel], status_code=201)
def create_dashboard(request: Request, body: DashboardCreate) -> Envelope:
    store: DashboardStore = request.app.state.dashboards
    created = store.create(body.to_domain())
    return wrap(DashboardModel.from_dashboard(created), source=_SOURCE, timestamp=request.app.state.clock())


@limiter.limit(dashboards_limit)
@router.post("/dashboards/initialize", response_model=Envelope[DashboardInitResult])
def initialize_dashboard(request: Request) -> Envelope:
    """Create the stock "CyberSecurity Overview" dashboard if the store is empty.

    Idempotent: when dashboards exist, returns the first one unchanged with
    created=false.
    """
    store: DashboardStore = request.app.state.dashboards
    dashboard, created = store.initialize_default()
    data = DashboardInitResult(
        created=created,
        message="Default dashboard created" if created else "Dashboards already exist",
        dashboard=DashboardModel.from_dashboard(dashboard),
    )
    return wrap(data, source=_SOURCE, timestamp=request.app.state.clock())


@limiter.limit(dashboards_limit)
@router.get("/dashboards/{dashboard_id}", response_model=Envelope[DashboardModel])
def get_dashboard(request: Request, dashboard_id: int) -> Envelope:
    store: DashboardStore = request.app.state.dashboards
    return wrap(
        DashboardModel.from_dashboard(store.get(dashboard_id)),
        source=_SOURCE,
        timestamp=request.app.state.clock(),
    )


@limiter.limit(dashboards_limit)
@router.put("/dashboards/{dashboard_id}", response_model=Envelope[DashboardModel])
def update_dashboard(request: Request, dashboard_id: int, body: DashboardUpdate) -> Envelope:
    store: DashboardStore = request.app.state.dashboards
    updated = store.update(dashboard_id, **body.to_fields())
    return wrap(DashboardModel.from_dashboard(updated), source=_SOURCE, timestamp=request.app.state.clock())


@limiter.limit(dashboards_limit)
@router.delete("/dashboards/{dashboard_id}", response_model=Envelope[DashboardDeleted])
def delete_dashboard(request: Request, dashboard_id: int) -> Envelope:
    store: DashboardStore = request.app.state.dashboards
    store.delete(dashboard_id)
    return wrap(DashboardDeleted(id=dashboard_id), source=_SOURCE, timestamp=request.app.state.clock())
