"""
dashboards/templates.py -- The stock "CyberSecurity Overview" dashboard.

Inserted by DashboardStore.initialize_default() when the store holds no
dashboards. One widget per metric handler, laid out on a 12-column grid.
"""

from dashboards.models import REFRESH_INTERVALS, Dashboard, GridCell, WidgetConfig

DEFAULT_DASHBOARD_NAME = "CyberSecurity Overview"

# (i, x, y, w, h, min_w, min_h)
_LAYOUT = [
    ("cisa-kev-count", 0, 0, 3, 3, 2, 2),
    ("cisa-top-vendor", 3, 0, 3, 3, 2, 2),
    ("cisa-vendor-leaderboard", 6, 0, 4, 4, 3, 3),
    ("cisa-due-date-compliance", 10, 0, 3, 3, 2, 2),
    ("cisa-vendor-breakdown", 0, 3, 8, 4, 6, 4),
    ("cisa-new-vulns-rate", 0, 8, 12, 7, 6, 7),
    ("cisa-product-distribution", 0, 22, 6, 5, 4, 5),
    ("nvd-cve-critical", 10, 3, 3, 3, 2, 2),
    ("nvd-publication-trends", 0, 16, 12, 5, 6, 5),
    ("nvd-severity-distribution", 6, 22, 6, 5, 4, 4),
    ("nvd-recent-high-severity", 6, 25, 6, 3, 3, 3),
    ("nvd-vuln-status-summary", 0, 32, 5, 4, 4, 4),
    ("mitre-technique-count", 8, 7, 3, 3, 2, 2),
    ("mitre-tactics-coverage", 6, 37, 6, 4, 4, 4),
    ("mitre-platform-coverage", 6, 29, 6, 4, 4, 4),
    ("mitre-recent-updates", 6, 39, 6, 3, 3, 3),
    ("mitre-top-techniques", 6, 34, 6, 3, 3, 3),
]

# (id, type, title, description, data_source, metric_id, cadence, chart_type)
_WIDGETS = [
    ("cisa-kev-count", "metric_card", "CISA KEV Total", "Known Exploited Vulnerabilities",
     "cisa", "total-count", "normal", None),
    ("cisa-top-vendor", "vendor_card", "Top Vendor", "Most vulnerable vendor",
     "cisa", "top-vendor", "fast", None),
    ("cisa-vendor-leaderboard", "list", "Vendor Leaderboard", "Top vendors by vulnerability count",
     "cisa", "vendor-breakdown", "slow", None),
    ("cisa-due-date-compliance", "metric_card", "Due Date Compliance",
     "Percentage of vulnerabilities not approaching due date", "cisa", "due-date-compliance", "fast", None),
    ("cisa-vendor-breakdown", "table", "Vendor Breakdown", "Vulnerabilities by vendor",
     "cisa", "vendor-breakdown", "slow", None),
    ("cisa-new-vulns-rate", "chart", "New Vulnerabilities Rate", "Rate of new vulnerabilities over time",
     "cisa", "new-vulns-rate", "normal", "line"),
    ("cisa-product-distribution", "chart", "Product Distribution", "Distribution of vulnerabilities by product",
     "cisa", "product-distribution", "slow", "pie"),
    ("nvd-cve-critical", "metric_card", "Critical CVEs", "CVSS Score >= 9.0",
     "nvd", "critical-count", "fast", None),
    ("nvd-publication-trends", "chart", "CVE Publication Trends", "CVEs published over time",
     "nvd", "publication-trends", "normal", "line"),
    ("nvd-severity-distribution", "table", "Severity Distribution", "CVEs by CVSS severity levels",
     "nvd", "severity-distribution", "slow", None),
    ("nvd-recent-high-severity", "list", "Recent High Severity", "Recently published high severity CVEs",
     "nvd", "recent-high-severity", "fast", None),
    ("nvd-vuln-status-summary", "table", "Vulnerability Status Summary", "Summary of vulnerability statuses",
     "nvd", "vuln-status-summary", "normal", None),
    ("mitre-technique-count", "metric_card", "ATT&CK Techniques", "Total techniques in framework",
     "mitre", "technique-count", "hourly", None),
    ("mitre-tactics-coverage", "table", "MITRE Tactics Coverage", "ATT&CK tactics and technique counts",
     "mitre", "tactics-coverage", "slow", None),
    ("mitre-platform-coverage", "table", "Platform Coverage", "ATT&CK technique coverage by platform",
     "mitre", "platform-coverage", "slow", None),
    ("mitre-recent-updates", "list", "Recent Framework Updates",
     "Latest MITRE ATT&CK technique updates and additions", "mitre", "recent-updates", "slow", None),
    ("mitre-top-techniques", "list", "Most Versatile Techniques",
     "Techniques spanning multiple tactics and platforms", "mitre", "top-techniques", "slow", None),
]


def default_dashboard() -> Dashboard:
    """Return a fresh (unsaved) copy of the stock dashboard."""
    return Dashboard(
        name=DEFAULT_DASHBOARD_NAME,
        description="Complete cybersecurity metrics dashboard with all available widgets",
        is_default=True,
        layout=[GridCell(i, x, y, w, h, min_w, min_h) for i, x, y, w, h, min_w, min_h in _LAYOUT],
        widgets=[
            WidgetConfig(
                id=widget_id,
                type=widget_type,
                title=title,
                description=description,
                data_source=source,
                metric_id=metric_id,
                refresh_interval=REFRESH_INTERVALS[cadence],
                chart_type=chart_type,
            )
            for widget_id, widget_type, title, description, source, metric_id, cadence, chart_type in _WIDGETS
        ],
    )
