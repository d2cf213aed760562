"""Unit tests for metrics/ -- every handler against a seeded FeedStore.

Covers:
- CISA: total count change, top vendor (in range, fallback, empty),
  vendor breakdown, product distribution, due-date compliance, new-vulns rate
- NVD: critical count, severity ordering, publication trends, recent high
  severity list, status summary
- MITRE: technique count, tactics coverage, platform coverage, recent
  updates, top techniques
- Empty tables give zeroed payloads with suggested_action, never errors
- Registry lookup raises NotFoundError for unknown sources and metric ids
"""

from datetime import timedelta

import pytest

from conftest import FIXED_NOW, fixed_clock, make_kev, make_nvd, make_tactic, make_technique
from core.errors import NotFoundError
from core.models import NO_DATA_LABEL
from metrics import cisa, mitre, nvd
from metrics.context import MetricContext
from metrics.registry import available_metrics, compute, get_handler

DAY = timedelta(days=1)
HOUR = timedelta(hours=1)


def _ctx(store, **kw) -> MetricContext:
    return MetricContext(store=store, clock=fixed_clock, **kw)


# ---------------------------------------------------------------------------
# CISA KEV
# ---------------------------------------------------------------------------


@pytest.fixture
def kev_store(feed_store):
    """Microsoft x3 and Apple x1 within the last week (none in the last 24 hours), Cisco x2 a year ago."""
    feed_store.add_kev(make_kev("CVE-2025-0001", FIXED_NOW - DAY - HOUR, due_date=FIXED_NOW - DAY))
    feed_store.add_kev(make_kev("CVE-2025-0002", FIXED_NOW - 2 * DAY, product="Exchange", due_date=FIXED_NOW + 2 * DAY))
    feed_store.add_kev(make_kev("CVE-2025-0003", FIXED_NOW - 3 * DAY, due_date=FIXED_NOW + 30 * DAY))
    feed_store.add_kev(make_kev("CVE-2025-0004", FIXED_NOW - 4 * DAY, vendor="Apple", product="iOS", due_date=FIXED_NOW + 40 * DAY))
    feed_store.add_kev(make_kev("CVE-2024-0005", FIXED_NOW - 365 * DAY, vendor="Cisco", product="ASA"))
    feed_store.add_kev(make_kev("CVE-2024-0006", FIXED_NOW - 366 * DAY, vendor="Cisco", product="ASA"))
    return feed_store


class TestCisa:
    def test_total_count(self, kev_store):
        payload = cisa.total_count(_ctx(kev_store))

        assert payload.kind == "counter"
        assert payload.source == "cisa_kev"
        assert payload.value.value == 6
        assert payload.value.previous == 2
        assert payload.value.change == 4
        assert payload.value.change_percent == 200.0
        assert payload.metadata["latest_vulnerability"]["cve_id"] == "CVE-2025-0001"

    def test_top_vendor_in_range(self, kev_store):
        payload = cisa.top_vendor(_ctx(kev_store))
        assert payload.value.label == "Microsoft"
        assert payload.value.value == 3
        assert payload.value.previous == 0
        assert payload.metadata["vendor_name"] == "Microsoft"

    def test_top_vendor_falls_back_to_overall(self, kev_store):
        payload = cisa.top_vendor(_ctx(kev_store, preset="24h"))
        assert payload.value.label == "Microsoft"
        assert payload.metadata["suggested_action"] == "adjust_date_range"

    def test_top_vendor_empty_catalog(self, feed_store):
        payload = cisa.top_vendor(_ctx(feed_store))
        assert payload.value.label == NO_DATA_LABEL
        assert payload.value.value == 0
        assert payload.metadata["suggested_action"] == "ingestion_required"

    def test_vendor_breakdown(self, kev_store):
        payload = cisa.vendor_breakdown(_ctx(kev_store))
        assert [(row.label, row.value) for row in payload.distribution] == [("Microsoft", 3), ("Cisco", 2), ("Apple", 1)]
        assert [row.percentage for row in payload.distribution] == [50, 33, 17]
        assert payload.metadata["top_vendor_share"] == 50
        assert [item.title for item in payload.items] == ["Microsoft", "Cisco", "Apple"]

    def test_vendor_breakdown_empty(self, feed_store):
        payload = cisa.vendor_breakdown(_ctx(feed_store))
        assert payload.distribution == []
        assert payload.metadata["suggested_action"] == "ingestion_required"

    def test_product_distribution_uses_catalog_total(self, kev_store):
        payload = cisa.product_distribution(_ctx(kev_store))
        top = payload.distribution[0]
        assert top.label == "ASA (Cisco)"
        assert top.value == 2
        assert top.percentage == 33
        assert payload.total == 6

    def test_due_date_compliance(self, kev_store):
        payload = cisa.due_date_compliance(_ctx(kev_store))
        assert payload.kind == "gauge"
        assert payload.value.value == 50.0
        assert payload.metadata == {"total_with_due_dates": 4, "at_risk": 2, "approaching_due": 1, "overdue": 1}
        assert [row.value for row in payload.distribution] == [2, 1, 1]

    def test_due_date_compliance_without_due_dates(self, feed_store):
        assert cisa.due_date_compliance(_ctx(feed_store)).value.value == 100

    def test_new_vulns_rate_widens(self, kev_store):
        payload = cisa.new_vulns_rate(_ctx(kev_store))
        assert payload.kind == "timeseries"
        assert payload.interval == "day"
        assert payload.metadata["time_range"] == "7 days"
        assert payload.metadata["data_points"] == 4
        assert payload.total == 4

    def test_new_vulns_rate_empty(self, feed_store):
        payload = cisa.new_vulns_rate(_ctx(feed_store))
        assert payload.timeseries == []
        assert payload.value.label == NO_DATA_LABEL
        assert payload.description == "No recent vulnerability data available"


# ---------------------------------------------------------------------------
# NVD
# ---------------------------------------------------------------------------


@pytest.fixture
def nvd_store(feed_store):
    feed_store.add_nvd(make_nvd("CVE-2025-2001", FIXED_NOW - DAY, 9.8, "CRITICAL", description="x" * 200))
    feed_store.add_nvd(make_nvd("CVE-2025-2002", FIXED_NOW - DAY, 7.2, "HIGH"))
    feed_store.add_nvd(make_nvd("CVE-2025-2003", FIXED_NOW - 2 * DAY, 4.3, "MEDIUM", status="Modified"))
    feed_store.add_nvd(make_nvd("CVE-2025-2004", FIXED_NOW - 2 * DAY, 2.0, "LOW"))
    feed_store.add_nvd(make_nvd("CVE-2025-2005", FIXED_NOW - 2 * DAY, 5.5, "MEDIUM"))
    feed_store.add_nvd(make_nvd("CVE-2024-2006", FIXED_NOW - 200 * DAY, 9.9, "CRITICAL"))
    return feed_store


class TestNvd:
    def test_critical_count(self, nvd_store):
        payload = nvd.critical_count(_ctx(nvd_store))
        assert payload.value.value == 2
        assert payload.value.previous == 1
        assert payload.metadata["latest_critical_cve"]["cve_id"] == "CVE-2025-2001"

    def test_severity_order_is_fixed(self, nvd_store):
        payload = nvd.severity_distribution(_ctx(nvd_store))
        assert [row.label for row in payload.distribution] == ["CRITICAL", "HIGH", "MEDIUM", "LOW"]
        assert [row.value for row in payload.distribution] == [1, 1, 2, 1]
        assert payload.distribution[2].metadata["max_score"] == 5.5

    def test_publication_trends(self, nvd_store):
        payload = nvd.publication_trends(_ctx(nvd_store, preset="7d"))
        assert payload.interval == "day"
        assert [point.value for point in payload.timeseries] == [3, 2]
        assert payload.timeseries[0].metadata == {"critical": 0, "high": 0, "medium": 2, "low": 1}
        assert payload.value.value == 2
        assert payload.value.previous == 3

    def test_recent_high_severity(self, nvd_store):
        payload = nvd.recent_high_severity(_ctx(nvd_store))
        assert [item.id for item in payload.items] == ["CVE-2025-2001", "CVE-2025-2002", "CVE-2024-2006"]
        assert payload.items[0].badge == {"text": "CRITICAL", "variant": "destructive"}
        assert payload.items[0].metadata["description"].endswith("...")
        assert payload.total == 3

    def test_status_summary(self, nvd_store):
        payload = nvd.vuln_status_summary(_ctx(nvd_store))
        assert [(row.label, row.value) for row in payload.distribution] == [("Analyzed", 5), ("Modified", 1)]

    def test_severity_band(self):
        assert [nvd.severity_band(s) for s in (9.0, 8.9, 4.0, 3.9, None)] == ["critical", "high", "medium", "low", None]


# ---------------------------------------------------------------------------
# MITRE ATT&CK
# ---------------------------------------------------------------------------


@pytest.fixture
def mitre_store(feed_store):
    feed_store.add_tactic(make_tactic("TA0001", "Initial Access", "initial-access"))
    feed_store.add_tactic(make_tactic("TA0002", "Execution", "execution"))
    feed_store.add_tactic(make_tactic("TA0040", "Impact", "impact"))
    feed_store.add_technique(
        make_technique(
            "T1190",
            "Exploit Public-Facing Application",
            ["initial-access"],
            ["Linux", "Windows", "Containers"],
            last_modified=FIXED_NOW - 2 * DAY,
            version="2.5",
        )
    )
    feed_store.add_technique(
        make_technique(
            "T1059",
            "Command and Scripting Interpreter",
            ["execution"],
            ["Windows", "Linux"],
            last_modified=FIXED_NOW - DAY,
        )
    )
    feed_store.add_technique(make_technique("T1566", "Phishing", ["initial-access"], ["Windows"]))
    feed_store.add_technique(make_technique("T0000", "Revoked", ["impact"], ["Windows"], is_revoked=True))
    return feed_store


class TestMitre:
    def test_technique_count(self, mitre_store):
        payload = mitre.technique_count(_ctx(mitre_store))
        assert payload.value.value == 3
        assert payload.value.previous == 3
        assert payload.value.change == 0

    def test_tactics_coverage_includes_empty_tactics(self, mitre_store):
        payload = mitre.tactics_coverage(_ctx(mitre_store))
        assert [(row.label, row.value) for row in payload.distribution] == [
            ("Initial Access", 2),
            ("Execution", 1),
            ("Impact", 0),
        ]
        assert payload.metadata["tactics_with_techniques"] == 2
        assert payload.metadata["coverage_percentage"] == 67
        assert payload.total == 3

    def test_tactics_coverage_empty(self, feed_store):
        payload = mitre.tactics_coverage(_ctx(feed_store))
        assert payload.distribution == []
        assert payload.metadata["suggested_action"] == "ingestion_required"

    def test_platform_coverage(self, mitre_store):
        payload = mitre.platform_coverage(_ctx(mitre_store))
        assert [(row.label, row.value) for row in payload.distribution] == [
            ("Windows", 3),
            ("Linux", 2),
            ("Containers", 1),
        ]
        assert payload.distribution[0].percentage == 100

    def test_recent_updates(self, mitre_store):
        payload = mitre.recent_updates(_ctx(mitre_store))
        assert [item.id for item in payload.items] == ["T1059", "T1190"]
        assert payload.items[1].subtitle == f"Modified {FIXED_NOW - 2 * DAY:%Y-%m-%d}"

    def test_top_techniques(self, mitre_store):
        payload = mitre.top_techniques(_ctx(mitre_store))
        assert [item.id for item in payload.items] == ["T1190", "T1059", "T1566"]
        assert payload.items[0].subtitle == "1 tactics, 3 platforms"


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_lookup(self):
        assert get_handler("cisa", "total-count") is cisa.total_count

    def test_unknown_source(self):
        with pytest.raises(NotFoundError):
            get_handler("exploitdb", "total-count")

    def test_unknown_metric(self):
        with pytest.raises(NotFoundError):
            get_handler("nvd", "total-count")

    def test_available_metrics(self):
        metrics = available_metrics()
        assert set(metrics) == {"cisa", "nvd", "mitre"}
        assert len(metrics["cisa"]) == 6
        assert len(metrics["nvd"]) == 5
        assert len(metrics["mitre"]) == 5

    @pytest.mark.parametrize(
        "source,metric_id",
        [(source, metric_id) for source, ids in available_metrics().items() for metric_id in ids],
    )
    def test_every_metric_handles_empty_store(self, feed_store, source, metric_id):
        payload = compute(source, metric_id, _ctx(feed_store))
        assert payload.id == metric_id
        assert payload.last_updated == FIXED_NOW
