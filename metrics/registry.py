"""
metrics/registry.py -- (source, metric_id) -> handler lookup.

Route paths use the short source names the dashboard widgets carry in
data_source ("cisa", "nvd", "mitre"). Payloads report the feed name
("cisa_kev", "nvd_cve", "mitre_attack").
"""

from collections.abc import Callable

from core.errors import NotFoundError
from core.models import MetricPayload
from metrics import cisa, mitre, nvd
from metrics.context import MetricContext

MetricHandler = Callable[[MetricContext], MetricPayload]

REGISTRY: dict[str, dict[str, MetricHandler]] = {
    "cisa": cisa.HANDLERS,
    "nvd": nvd.HANDLERS,
    "mitre": mitre.HANDLERS,
}


def get_handler(source: str, metric_id: str) -> MetricHandler:
    """Raises NotFoundError for an unknown source or metric id."""
    handlers = REGISTRY.get(source)
    if handlers is None:
        raise NotFoundError("Metric source", source)
    handler = handlers.get(metric_id)
    if handler is None:
        raise NotFoundError("Metric", f"{source}/{metric_id}")
    return handler


def compute(source: str, metric_id: str, ctx: MetricContext) -> MetricPayload:
    return get_handler(source, metric_id)(ctx)


def available_metrics() -> dict[str, list[str]]:
    return {source: sorted(handlers) for source, handlers in REGISTRY.items()}
