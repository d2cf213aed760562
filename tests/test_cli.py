"""Tests for main.py -- the administrative CLI.

Covers:
- init-dashboard creates the stock dashboard once, then reports it unchanged
- migrate-widgets with no match options converts legacy vendor cards, idempotently
- migrate-widgets --metric-id / --widget-id / --from-type / --to
- normalize-metric-ids rewrites underscore ids
- build_predicate() matching rules
- Invalid choices exit through argparse
"""

import pytest

from dashboards.models import Dashboard, WidgetConfig
from dashboards.store import DashboardStore
from main import build_predicate, main


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'cli.db'}"


def _seed(db_url: str, *widgets: WidgetConfig) -> int:
    store = DashboardStore(db_url)
    try:
        return store.create(Dashboard(name="Legacy", widgets=list(widgets))).id
    finally:
        store.close()


def _widgets(db_url: str, dashboard_id: int) -> list[WidgetConfig]:
    store = DashboardStore(db_url)
    try:
        return store.get(dashboard_id).widgets
    finally:
        store.close()


def _card(widget_id: str, metric_id: str, widget_type: str = "metric_card") -> WidgetConfig:
    return WidgetConfig(id=widget_id, type=widget_type, title=widget_id, data_source="cisa", metric_id=metric_id)


def test_init_dashboard(db_url, capsys):
    assert main(["--db", db_url, "init-dashboard"]) == 0
    assert "Created default dashboard 'CyberSecurity Overview'" in capsys.readouterr().out

    assert main(["--db", db_url, "init-dashboard"]) == 0
    assert "left unchanged" in capsys.readouterr().out


def test_migrate_vendor_widgets_default(db_url, capsys):
    dashboard_id = _seed(db_url, _card("cisa-top-vendor", "top-vendor"), _card("kev", "total-count"))

    assert main(["--db", db_url, "migrate-widgets"]) == 0
    assert "Migrated 1 dashboard(s)" in capsys.readouterr().out
    assert [w.type for w in _widgets(db_url, dashboard_id)] == ["vendor_card", "metric_card"]

    assert main(["--db", db_url, "migrate-widgets"]) == 0
    assert "Migrated 0 dashboard(s)" in capsys.readouterr().out


def test_migrate_by_metric_id(db_url, capsys):
    dashboard_id = _seed(db_url, _card("trend", "new-vulns-rate"), _card("kev", "total-count"))

    argv = ["--db", db_url, "migrate-widgets", "--metric-id", "new-vulns-rate", "--to", "chart"]
    assert main(argv) == 0
    assert "to widget type chart" in capsys.readouterr().out
    assert [w.type for w in _widgets(db_url, dashboard_id)] == ["chart", "metric_card"]


def test_migrate_respects_from_type(db_url):
    dashboard_id = _seed(db_url, _card("a", "top-vendor", widget_type="table"), _card("b", "top-vendor"))

    argv = ["--db", db_url, "migrate-widgets", "--metric-id", "top-vendor", "--from-type", "metric_card"]
    assert main(argv) == 0
    assert [w.type for w in _widgets(db_url, dashboard_id)] == ["table", "vendor_card"]


def test_normalize_metric_ids(db_url, capsys):
    dashboard_id = _seed(db_url, _card("a", "vendor_breakdown"), _card("b", "top-vendor"))

    assert main(["--db", db_url, "normalize-metric-ids"]) == 0
    assert "Normalized metric ids in 1 dashboard(s)" in capsys.readouterr().out
    assert [w.metric_id for w in _widgets(db_url, dashboard_id)] == ["vendor-breakdown", "top-vendor"]


def test_invalid_target_type(db_url):
    with pytest.raises(SystemExit):
        main(["--db", db_url, "migrate-widgets", "--to", "sparkline"])


class TestBuildPredicate:
    def test_metric_or_widget_id(self):
        predicate = build_predicate(["top-vendor"], ["leaderboard"], None)
        assert predicate(_card("x", "top-vendor"))
        assert predicate(_card("leaderboard", "vendor-breakdown"))
        assert not predicate(_card("x", "total-count"))

    def test_from_type_narrows(self):
        predicate = build_predicate(["top-vendor"], [], "metric_card")
        assert predicate(_card("x", "top-vendor"))
        assert not predicate(_card("x", "top-vendor", widget_type="list"))
