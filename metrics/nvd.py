"""
metrics/nvd.py -- Metric handlers over NVD CVE records.

Severity bands follow CVSS v3: critical >= 9.0, high >= 7.0, medium >= 4.0,
low below that. Records without a v3 score are counted in totals but fall
into no band.
"""

from collections import defaultdict
from typing import Optional

from core.bucketing import truncate
from core.models import DistributionRow, ListItem, MetricDefinition, MetricPayload, SeriesPoint
from metrics.context import MetricContext, isoformat, range_metadata

SOURCE = "nvd_cve"

CRITICAL_SCORE = 9.0
HIGH_SCORE = 7.0
MEDIUM_SCORE = 4.0

SEVERITY_ORDER = ("CRITICAL", "HIGH", "MEDIUM", "LOW")

_BADGE_VARIANTS = {"CRITICAL": "destructive", "HIGH": "warning", "MEDIUM": "secondary", "LOW": "outline"}

CRITICAL_COUNT = MetricDefinition("critical-count", "Critical CVEs", "CVSS Score >= 9.0", SOURCE)
SEVERITY_DISTRIBUTION = MetricDefinition(
    "severity-distribution", "CVE Severity Distribution", "Breakdown of CVE severities", SOURCE
)
PUBLICATION_TRENDS = MetricDefinition(
    "publication-trends", "CVE Publication Trends", "CVEs published over time", SOURCE
)
RECENT_HIGH_SEVERITY = MetricDefinition(
    "recent-high-severity", "Recent High-Severity CVEs", "Recently published high and critical CVEs", SOURCE
)
VULN_STATUS_SUMMARY = MetricDefinition(
    "vuln-status-summary", "Vulnerability Status Summary", "CVE counts by NVD analysis status", SOURCE
)


def severity_band(score: Optional[float]) -> Optional[str]:
    if score is None:
        return None
    if score >= CRITICAL_SCORE:
        return "critical"
    if score >= HIGH_SCORE:
        return "high"
    if score >= MEDIUM_SCORE:
        return "medium"
    return "low"


def critical_count(ctx: MetricContext) -> MetricPayload:
    window = ctx.time_range("month")
    current = ctx.store.count_nvd(min_score=CRITICAL_SCORE, published_until=window.end)
    previous = ctx.store.count_nvd(min_score=CRITICAL_SCORE, published_before=window.start)
    latest = ctx.store.recent_nvd(min_score=CRITICAL_SCORE, limit=1)
    return ctx.builder(CRITICAL_COUNT).counter(
        current,
        previous,
        label="Critical CVEs",
        metadata={
            "date_range": range_metadata(window),
            "latest_critical_cve": (
                {
                    "cve_id": latest[0].cve_id,
                    "base_score": latest[0].cvss_v3_base_score,
                    "published": isoformat(latest[0].published),
                }
                if latest
                else None
            ),
        },
    )


def severity_distribution(ctx: MetricContext) -> MetricPayload:
    """Severity counts in the window, ordered CRITICAL..LOW rather than by count.

    Exempt from the value-descending distribution order (keep_order=True).
    """
    window = ctx.time_range("month")
    breakdown = ctx.store.nvd_severity_breakdown(window)
    rank = {name: position for position, name in enumerate(SEVERITY_ORDER)}
    breakdown.sort(key=lambda row: (rank.get(row["severity"], len(rank)), row["severity"]))
    rows = [
        DistributionRow(
            label=row["severity"] or "Unknown",
            value=row["count"],
            metadata={"avg_score": row["avg_score"], "max_score": row["max_score"], "min_score": row["min_score"]},
        )
        for row in breakdown
    ]
    return ctx.builder(SEVERITY_DISTRIBUTION).distribution(
        rows,
        keep_order=True,
        metadata={
            "total_cves": sum(row.value for row in rows),
            "date_range": range_metadata(window),
            "severity_levels": len(rows),
        },
    )


def publication_trends(ctx: MetricContext) -> MetricPayload:
    """Daily publication counts with the per-band split in each point's metadata."""
    window = ctx.time_range("month")
    days: dict = defaultdict(lambda: {"critical": 0, "high": 0, "medium": 0, "low": 0, "total": 0})
    for published, score in ctx.store.nvd_published_scores(window):
        bucket = days[truncate(published, "day")]
        bucket["total"] += 1
        band = severity_band(score)
        if band is not None:
            bucket[band] += 1

    points = [
        SeriesPoint(
            timestamp=day,
            value=counts["total"],
            metadata={band: counts[band] for band in ("critical", "high", "medium", "low")},
        )
        for day, counts in days.items()
    ]
    return ctx.builder(PUBLICATION_TRENDS).timeseries(
        points,
        interval="day",
        label="Latest Day",
        metadata={"date_range": range_metadata(window), "days_with_data": len(points)},
    )


def recent_high_severity(ctx: MetricContext) -> MetricPayload:
    records = ctx.store.recent_nvd(min_score=HIGH_SCORE, limit=10)
    total = ctx.store.count_nvd(min_score=HIGH_SCORE)
    items = []
    for cve in records:
        severity = cve.cvss_v3_base_severity or "UNKNOWN"
        description = cve.description or "No description available"
        if len(description) > 150:
            description = description[:150] + "..."
        items.append(
            ListItem(
                id=cve.cve_id,
                title=cve.cve_id,
                subtitle=f"{severity} ({cve.cvss_v3_base_score})",
                value=cve.cvss_v3_base_score,
                badge={"text": severity, "variant": _BADGE_VARIANTS.get(severity, "outline")},
                metadata={
                    "severity": severity,
                    "score": cve.cvss_v3_base_score,
                    "published": isoformat(cve.published),
                    "status": cve.vuln_status,
                    "description": description,
                },
            )
        )
    return ctx.builder(RECENT_HIGH_SEVERITY).list_items(items, total=total, label="High-Severity CVEs")


def vuln_status_summary(ctx: MetricContext) -> MetricPayload:
    statuses = ctx.store.nvd_status_counts()
    rows = [DistributionRow(label=s["status"] or "Unknown", value=s["count"]) for s in statuses]
    return ctx.builder(VULN_STATUS_SUMMARY).distribution(
        rows,
        metadata={"total_cves": sum(row.value for row in rows), "status_types": len(rows)},
    )


HANDLERS = {
    CRITICAL_COUNT.id: critical_count,
    SEVERITY_DISTRIBUTION.id: severity_distribution,
    PUBLICATION_TRENDS.id: publication_trends,
    RECENT_HIGH_SEVERITY.id: recent_high_severity,
    VULN_STATUS_SUMMARY.id: vuln_status_summary,
}
