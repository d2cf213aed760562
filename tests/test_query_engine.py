"""Unit tests for feeds/query.py -- the KEV listing engine.

Covers:
- limit is clamped to [1, max_limit]; offset below 0 becomes 0
- Page arithmetic (page, total_pages, has_next, has_prev)
- Sort keys outside the allow-list are ValidationErrors, never SQL
- Ties on the sort column are broken by cve_id so pages are stable
- vendor / product / search filters are case-insensitive substrings
- LIKE wildcards in search input match literally
- Malformed dates name the offending field
"""

from datetime import timedelta

import pytest

from conftest import FIXED_NOW, make_kev
from core.errors import ValidationError
from feeds.query import VulnerabilityFilters, VulnerabilityQuery, VulnerabilityQueryEngine, paginate

DAY = timedelta(days=1)


@pytest.fixture
def engine(feed_store):
    """Engine over 45 Microsoft entries (one per day) plus three named extras."""
    for n in range(45):
        feed_store.add_kev(make_kev(f"CVE-2025-{n:04d}", FIXED_NOW - (n + 10) * DAY))
    feed_store.add_kev(
        make_kev(
            "CVE-2024-9001",
            FIXED_NOW - DAY,
            vendor="Apache",
            product="Log4j",
            short_description="Remote code execution via JNDI lookup",
        )
    )
    feed_store.add_kev(make_kev("CVE-2024-9002", FIXED_NOW - DAY, vendor="Fortinet", product="FortiOS"))
    feed_store.add_kev(make_kev("CVE-2024-9003", FIXED_NOW - 2 * DAY, vendor="Ivanti", product="100%_Secure"))
    return VulnerabilityQueryEngine(feed_store, default_limit=20, max_limit=100)


class TestPaginate:
    def test_middle_page(self):
        p = paginate(total=45, limit=20, offset=20)
        assert (p.page, p.total_pages, p.has_next, p.has_prev) == (2, 3, True, True)

    def test_empty(self):
        p = paginate(total=0, limit=20, offset=0)
        assert (p.page, p.total_pages, p.has_next, p.has_prev) == (1, 0, False, False)


class TestLimits:
    def test_default_limit(self, engine):
        result = engine.run(VulnerabilityQuery())
        assert len(result.rows) == 20
        assert result.pagination.limit == 20
        assert result.pagination.total == 48

    def test_limit_clamped_to_max(self, engine):
        assert engine.run(VulnerabilityQuery(limit=500)).pagination.limit == 100

    def test_limit_clamped_to_one(self, engine):
        assert len(engine.run(VulnerabilityQuery(limit=0)).rows) == 1

    def test_negative_offset(self, engine):
        assert engine.run(VulnerabilityQuery(offset=-5)).pagination.offset == 0

    def test_offset_past_end(self, engine):
        result = engine.run(VulnerabilityQuery(offset=1000))
        assert result.rows == []
        assert result.pagination.total == 48


class TestSorting:
    def test_default_newest_first_with_cve_tiebreak(self, engine):
        rows = engine.run(VulnerabilityQuery(limit=3)).rows
        assert [r.cve_id for r in rows] == ["CVE-2024-9001", "CVE-2024-9002", "CVE-2024-9003"]

    def test_sort_by_vendor_asc(self, engine):
        rows = engine.run(VulnerabilityQuery(limit=3, sort_by="vendor", sort_order="asc")).rows
        assert [r.vendor_project for r in rows] == ["Apache", "Fortinet", "Ivanti"]

    def test_sort_by_cve_desc(self, engine):
        rows = engine.run(VulnerabilityQuery(limit=1, sort_by="cveID", sort_order="desc")).rows
        assert rows[0].cve_id == "CVE-2025-0044"

    def test_unknown_sort_field(self, engine):
        with pytest.raises(ValidationError) as exc_info:
            engine.run(VulnerabilityQuery(sort_by="droptable"))
        assert exc_info.value.field == "sort_by"

    def test_unknown_sort_order(self, engine):
        with pytest.raises(ValidationError) as exc_info:
            engine.run(VulnerabilityQuery(sort_order="sideways"))
        assert exc_info.value.field == "sort_order"

    def test_pages_do_not_overlap(self, engine):
        first = engine.run(VulnerabilityQuery(limit=20, offset=0)).rows
        second = engine.run(VulnerabilityQuery(limit=20, offset=20)).rows
        assert not {r.cve_id for r in first} & {r.cve_id for r in second}


class TestFilters:
    def _run(self, engine, **filters):
        return engine.run(VulnerabilityQuery(limit=100, filters=VulnerabilityFilters(**filters)))

    def test_vendor_case_insensitive(self, engine):
        result = self._run(engine, vendor="apach")
        assert [r.cve_id for r in result.rows] == ["CVE-2024-9001"]
        assert result.filters == {"vendor": "apach"}

    def test_product(self, engine):
        assert self._run(engine, product="FORTI").pagination.total == 1

    def test_search_scans_description(self, engine):
        assert [r.cve_id for r in self._run(engine, search="jndi").rows] == ["CVE-2024-9001"]

    def test_search_wildcards_are_literal(self, engine):
        assert [r.cve_id for r in self._run(engine, search="100%_").rows] == ["CVE-2024-9003"]
        assert self._run(engine, search="%").pagination.total == 1

    def test_blank_filters_ignored(self, engine):
        result = self._run(engine, vendor="   ", search="")
        assert result.pagination.total == 48
        assert result.filters == {}

    def test_date_range(self, engine):
        result = self._run(
            engine,
            date_from=(FIXED_NOW - 3 * DAY).isoformat(),
            date_to=FIXED_NOW.isoformat(),
        )
        assert result.pagination.total == 3
        assert result.filters["date_from"] == (FIXED_NOW - 3 * DAY).isoformat()

    def test_bad_date(self, engine):
        with pytest.raises(ValidationError) as exc_info:
            self._run(engine, date_to="not-a-date")
        assert exc_info.value.field == "date_to"

    def test_filtered_pagination(self, engine):
        result = engine.run(
            VulnerabilityQuery(limit=20, offset=20, filters=VulnerabilityFilters(vendor="microsoft"))
        )
        p = result.pagination
        assert (p.total, p.page, p.total_pages, p.has_next, p.has_prev) == (45, 2, 3, True, True)
