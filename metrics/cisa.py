"""
metrics/cisa.py -- Metric handlers over the CISA KEV catalog.

Every handler takes a MetricContext and returns a MetricPayload. Handlers
compute numbers through FeedStore aggregates and leave change, percentage,
and ordering rules to MetricEnvelopeBuilder.

An empty catalog is a normal state (ingestion has not run yet): handlers
return zeroed payloads with suggested_action="ingestion_required" in the
metadata instead of raising.
"""

from core.bucketing import DEFAULT_LADDER, AdaptiveBucketer
from core.envelope import round_half_up
from core.models import NO_DATA_LABEL, DistributionRow, MetricDefinition, MetricPayload, SeriesPoint
from core.timerange import previous_period
from metrics.context import MetricContext, isoformat, range_metadata

SOURCE = "cisa_kev"

_INGESTION_MESSAGE = "No vulnerability data found in database. Run CISA KEV ingestion to populate data."

TOTAL_COUNT = MetricDefinition(
    "total-count", "Total CISA KEV Vulnerabilities", "Known Exploited Vulnerabilities in CISA catalog", SOURCE
)
TOP_VENDOR = MetricDefinition("top-vendor", "Top Vendor", "Most vulnerable vendor", SOURCE)
VENDOR_BREAKDOWN = MetricDefinition(
    "vendor-breakdown", "CISA KEV Vendor Breakdown", "Top vendors by vulnerability count", SOURCE
)
PRODUCT_DISTRIBUTION = MetricDefinition(
    "product-distribution",
    "Product Vulnerability Distribution",
    "Products with the most known exploited vulnerabilities",
    SOURCE,
)
DUE_DATE_COMPLIANCE = MetricDefinition(
    "due-date-compliance", "Due Date Compliance", "Percentage of vulnerabilities not approaching due date", SOURCE
)
NEW_VULNS_RATE = MetricDefinition(
    "new-vulns-rate", "New Vulnerabilities Rate", "Rate of new vulnerabilities added to KEV catalog", SOURCE
)


def total_count(ctx: MetricContext) -> MetricPayload:
    """Catalog size at the end of the window vs catalog size before it started."""
    window = ctx.time_range("month")
    current = ctx.store.count_kev(added_until=window.end)
    previous = ctx.store.count_kev(added_before=window.start)
    latest = ctx.store.latest_kev()
    return ctx.builder(TOTAL_COUNT).counter(
        current,
        previous,
        label="Total Vulnerabilities",
        metadata={
            "date_range": range_metadata(window),
            "latest_vulnerability": (
                {"cve_id": latest.cve_id, "vendor": latest.vendor_project, "date_added": isoformat(latest.date_added)}
                if latest is not None
                else None
            ),
        },
    )


def top_vendor(ctx: MetricContext) -> MetricPayload:
    """Vendor with the most KEV additions in the window.

    Falls back to the overall top vendor when the window is empty, and to a
    zeroed payload when the catalog itself is empty.
    """
    builder = ctx.builder(TOP_VENDOR)
    window = ctx.time_range("month")
    ranked = ctx.store.kev_vendor_counts(window, limit=1)

    if not ranked:
        overall = ctx.store.kev_vendor_counts(limit=1)
        if not overall:
            return builder.counter(
                0,
                label=NO_DATA_LABEL,
                metadata={"message": _INGESTION_MESSAGE, "suggested_action": "ingestion_required"},
            )
        top = overall[0]
        return builder.counter(
            top["count"],
            label=top["vendor"],
            metadata={
                "vendor_name": top["vendor"],
                "vulnerability_count": top["count"],
                "message": "No data in selected range. Showing overall top vendor.",
                "data_range": {"earliest": isoformat(top["earliest"]), "latest": isoformat(top["latest"])},
                "suggested_action": "adjust_date_range",
            },
        )

    top = ranked[0]
    prior = previous_period(window)
    previous = ctx.store.count_kev(added_from=prior.start, added_before=prior.end, vendor=top["vendor"])
    return builder.counter(
        top["count"],
        previous,
        label=top["vendor"],
        metadata={
            "vendor_name": top["vendor"],
            "vulnerability_count": top["count"],
            "date_range": range_metadata(window),
            "previous_period": {**range_metadata(prior), "count": previous},
        },
    )


def vendor_breakdown(ctx: MetricContext) -> MetricPayload:
    vendors = ctx.store.kev_vendor_counts(limit=ctx.settings.distribution_limit)
    rows = [
        DistributionRow(
            label=v["vendor"],
            value=v["count"],
            metadata={
                "latest_vulnerability": isoformat(v["latest"]),
                "earliest_vulnerability": isoformat(v["earliest"]),
            },
        )
        for v in vendors
    ]
    total = sum(row.value for row in rows)
    metadata: dict = {"total_vendors": len(rows), "total_vulnerabilities": total}
    if rows:
        metadata["top_vendor_share"] = round_half_up(rows[0].value / total * 100)
        metadata["coverage"] = f"Showing top {len(rows)} vendors"
    else:
        metadata.update(message=_INGESTION_MESSAGE, suggested_action="ingestion_required")
    return ctx.builder(VENDOR_BREAKDOWN).distribution(rows, as_items=True, metadata=metadata)


def product_distribution(ctx: MetricContext) -> MetricPayload:
    """Top (product, vendor) pairs; percentages are shares of the whole catalog."""
    products = ctx.store.kev_product_counts(limit=ctx.settings.distribution_limit)
    catalog_size = ctx.store.count_kev()
    rows = [
        DistributionRow(
            label=f"{p['product']} ({p['vendor']})",
            value=p["count"],
            metadata={"product": p["product"], "vendor": p["vendor"], "latest_vulnerability": isoformat(p["latest"])},
        )
        for p in products
    ]
    return ctx.builder(PRODUCT_DISTRIBUTION).distribution(
        rows,
        total=catalog_size,
        metadata={"total_products": len(rows), "total_vulnerabilities": catalog_size},
    )


def due_date_compliance(ctx: MetricContext) -> MetricPayload:
    """Share of due-dated entries that are neither overdue nor due soon.

    Reads 100% when no entry carries a due date: nothing is at risk.
    """
    days = ctx.settings.due_soon_days
    summary = ctx.store.kev_due_date_summary(ctx.now(), due_soon_days=days)
    total = summary["total_with_due_date"]
    approaching = summary["approaching"]
    overdue = summary["overdue"]
    at_risk = approaching + overdue
    compliant = total - at_risk
    rate = round(compliant / total * 100, 2) if total > 0 else 100
    return ctx.builder(DUE_DATE_COMPLIANCE).gauge(
        rate,
        label="Compliance Rate",
        breakdown=[
            DistributionRow(label="Compliant", value=compliant),
            DistributionRow(label=f"Due within {days} days", value=approaching),
            DistributionRow(label="Overdue", value=overdue),
        ],
        metadata={
            "total_with_due_dates": total,
            "at_risk": at_risk,
            "approaching_due": approaching,
            "overdue": overdue,
        },
    )


def new_vulns_rate(ctx: MetricContext) -> MetricPayload:
    """KEV additions per bucket, widening the window until there is data.

    The rung actually used is reported in metadata (time_range,
    interval_size) and in the description.
    """
    resolution = AdaptiveBucketer(ctx.store.kev_bucket_counts, clock=ctx.clock).bucket(
        DEFAULT_LADDER, end=ctx.explicit_to
    )
    points = [SeriesPoint(timestamp=p.timestamp, value=p.count) for p in resolution.points]
    if points:
        description = f"{NEW_VULNS_RATE.description} ({resolution.window_label})"
    else:
        description = "No recent vulnerability data available"
    return ctx.builder(NEW_VULNS_RATE).timeseries(
        points,
        interval=resolution.interval,
        label="Latest Interval",
        description=description,
        metadata={
            "time_range": resolution.window_label,
            "interval_size": resolution.interval_label,
            "data_points": len(points),
        },
    )


HANDLERS = {
    TOTAL_COUNT.id: total_count,
    TOP_VENDOR.id: top_vendor,
    VENDOR_BREAKDOWN.id: vendor_breakdown,
    PRODUCT_DISTRIBUTION.id: product_distribution,
    DUE_DATE_COMPLIANCE.id: due_date_compliance,
    NEW_VULNS_RATE.id: new_vulns_rate,
}
