"""
metrics/mitre.py -- Metric handlers over MITRE ATT&CK techniques and tactics.

Only active techniques count: revoked or deprecated techniques are filtered
out by FeedStore. Tactic and platform membership is a JSON list per
technique, so coverage is tallied here with Counter instead of with
dialect-specific JSON operators.
"""

from collections import Counter

from core.envelope import round_half_up
from core.models import DistributionRow, ListItem, MetricDefinition, MetricPayload
from metrics.context import MetricContext, isoformat, range_metadata

SOURCE = "mitre_attack"

_INGESTION_MESSAGE = "No ATT&CK techniques found in database. Run MITRE ingestion to populate data."

TECHNIQUE_COUNT = MetricDefinition("technique-count", "ATT&CK Techniques", "Total techniques in framework", SOURCE)
TACTICS_COVERAGE = MetricDefinition(
    "tactics-coverage", "MITRE Tactics Coverage", "ATT&CK tactics and technique counts", SOURCE
)
PLATFORM_COVERAGE = MetricDefinition(
    "platform-coverage", "Platform Coverage", "ATT&CK technique coverage by platform", SOURCE
)
RECENT_UPDATES = MetricDefinition(
    "recent-updates", "Recent Framework Updates", "Latest MITRE ATT&CK technique updates and additions", SOURCE
)
TOP_TECHNIQUES = MetricDefinition(
    "top-techniques", "Most Versatile Techniques", "Techniques spanning multiple tactics and platforms", SOURCE
)


def technique_count(ctx: MetricContext) -> MetricPayload:
    window = ctx.time_range("month")
    current = ctx.store.count_techniques(created_until=window.end)
    previous = ctx.store.count_techniques(created_before=window.start)
    latest = ctx.store.latest_technique()
    return ctx.builder(TECHNIQUE_COUNT).counter(
        current,
        previous,
        label="Total Techniques",
        metadata={
            "date_range": range_metadata(window),
            "latest_technique": (
                {
                    "technique_id": latest.technique_id,
                    "name": latest.name,
                    "last_modified": isoformat(latest.last_modified),
                }
                if latest is not None
                else None
            ),
        },
    )


def tactics_coverage(ctx: MetricContext) -> MetricPayload:
    """Active techniques per tactic.

    Every stored tactic gets a row, including tactics with no techniques.
    Without a tactics table the rows come from the short names the
    techniques reference. Percentages are shares of all active techniques,
    so they can sum past 100 (a technique may serve several tactics).
    """
    techniques = ctx.store.active_techniques()
    tactics = ctx.store.list_tactics()
    counts = Counter(name for technique in techniques for name in set(technique.tactics))

    if tactics:
        rows = [
            DistributionRow(
                label=tactic.name,
                value=counts.get(tactic.short_name, 0),
                metadata={"tactic_id": tactic.tactic_id, "short_name": tactic.short_name},
            )
            for tactic in tactics
        ]
    else:
        rows = [DistributionRow(label=name, value=n, metadata={"short_name": name}) for name, n in counts.items()]

    covered = sum(1 for row in rows if row.value > 0)
    metadata = {
        "total_tactics": len(rows),
        "tactics_with_techniques": covered,
        "coverage_percentage": round_half_up(covered / len(rows) * 100) if rows else 0,
        "total_techniques": len(techniques),
    }
    if not techniques:
        metadata.update(message=_INGESTION_MESSAGE, suggested_action="ingestion_required")
    return ctx.builder(TACTICS_COVERAGE).distribution(rows, total=len(techniques), metadata=metadata)


def platform_coverage(ctx: MetricContext) -> MetricPayload:
    techniques = [t for t in ctx.store.active_techniques() if t.platforms]
    counts = Counter(platform for technique in techniques for platform in set(technique.platforms))
    # Rank before slicing so ties at the cut-off are resolved by name.
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[: ctx.settings.distribution_limit]
    rows = [DistributionRow(label=platform, value=n) for platform, n in ranked]
    metadata = {"total_platforms": len(counts), "total_techniques": len(techniques)}
    if not techniques:
        metadata.update(message=_INGESTION_MESSAGE, suggested_action="ingestion_required")
    return ctx.builder(PLATFORM_COVERAGE).distribution(rows, total=len(techniques), metadata=metadata)


def recent_updates(ctx: MetricContext) -> MetricPayload:
    techniques = ctx.store.recent_techniques(limit=10)
    items = [
        ListItem(
            id=t.technique_id,
            title=t.name,
            subtitle=f"Modified {t.last_modified:%Y-%m-%d}" if t.last_modified else None,
            value=t.version,
            badge={"text": t.technique_id, "variant": "secondary"},
            metadata={
                "version": t.version,
                "last_modified": isoformat(t.last_modified),
                "tactics": t.tactics,
                "platforms": t.platforms,
            },
        )
        for t in techniques
    ]
    return ctx.builder(RECENT_UPDATES).list_items(items, label="Recent Updates")


def top_techniques(ctx: MetricContext) -> MetricPayload:
    """Techniques ranked by how many tactics plus platforms they span."""
    techniques = sorted(
        ctx.store.active_techniques(),
        key=lambda t: (-(len(t.tactics) + len(t.platforms)), t.technique_id),
    )[:10]
    items = [
        ListItem(
            id=t.technique_id,
            title=t.name,
            subtitle=f"{len(t.tactics)} tactics, {len(t.platforms)} platforms",
            value=len(t.tactics) + len(t.platforms),
            metadata={
                "tactic_count": len(t.tactics),
                "platform_count": len(t.platforms),
                "tactics": t.tactics,
                "platforms": t.platforms,
            },
        )
        for t in techniques
    ]
    return ctx.builder(TOP_TECHNIQUES).list_items(items, label="Multi-Tactic Techniques")


HANDLERS = {
    TECHNIQUE_COUNT.id: technique_count,
    TACTICS_COVERAGE.id: tactics_coverage,
    PLATFORM_COVERAGE.id: platform_coverage,
    RECENT_UPDATES.id: recent_updates,
    TOP_TECHNIQUES.id: top_techniques,
}
