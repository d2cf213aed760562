"""
api/routes/v1/metrics.py -- Metric widget data for the CyberDash REST API.

Routes:
  GET /metrics                          -- available metric ids per source
  GET /metrics/{source}/{metric_id}     -- one metric envelope

Query params (all optional):
  from, to -- ISO 8601 bounds; both given -> used verbatim
  preset   -- 24h | 7d | 30d | 90d; ignored when both bounds are given,
              but an unknown name is a 400 for every metric

Each handler picks its own default window when the request carries no
bounds (see metrics/). Unknown sources or metric ids are 404s; malformed
dates or presets are 400s.

Rate limits are applied via slowapi. The @limiter.limit() decorator sits
ABOVE @router.get so that slowapi can attach the limit to the function
object; SlowAPIMiddleware enforces it by endpoint name.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Query, Request

from api.limiter import limiter, metrics_limit
from api.models import Envelope, MetricData, wrap
from core.config import get_settings
from core.timerange import parse_preset, parse_timestamp
from metrics.context import MetricContext
from metrics.registry import available_metrics, get_handler

router = APIRouter()


@limiter.limit(metrics_limit)
@router.get("/metrics", response_model=Envelope[dict[str, list[str]]])
def list_metrics(request: Request) -> Envelope:
    """Return {"cisa": [...], "nvd": [...], "mitre": [...]}."""
    return wrap(available_metrics(), source="registry", timestamp=request.app.state.clock())


@limiter.limit(metrics_limit)
@router.get("/metrics/{source}/{metric_id}", response_model=Envelope[MetricData])
def get_metric(
    request: Request,
    source: str,
    metric_id: str,
    from_: Annotated[Optional[str], Query(alias="from", max_length=64)] = None,
    to: Annotated[Optional[str], Query(max_length=64)] = None,
    preset: Annotated[Optional[str], Query(max_length=8)] = None,
) -> Envelope:
    """Compute one metric and return it in the shared envelope.

    The handler is resolved before the dates are parsed so an unknown
    metric is reported as 404 even when the dates are also malformed.
    """
    handler = get_handler(source, metric_id)
    clock = request.app.state.clock
    ctx = MetricContext(
        store=request.app.state.feeds,
        explicit_from=parse_timestamp(from_, "from"),
        explicit_to=parse_timestamp(to, "to"),
        preset=parse_preset(preset),
        clock=clock,
        settings=get_settings(),
    )
    payload = handler(ctx)
    return wrap(MetricData.from_payload(payload), source=payload.source, timestamp=clock())
