#!/usr/bin/env python3
"""
CyberDash -- administrative CLI for the dashboard store.

Migrations are explicit, idempotent, re-runnable operations. Running one
twice changes nothing the second time (it reports 0 dashboards changed).

Usage:
  python main.py init-dashboard
  python main.py migrate-widgets
  python main.py migrate-widgets --metric-id top_vendor --from-type metric_card --to vendor_card
  python main.py normalize-metric-ids
  python main.py --db sqlite:///other.db migrate-widgets

Environment variables:
  DATABASE_URL   Store connection string (default: sqlite:///cyberdash.db in the repo root).
"""

import argparse
import logging
from typing import Optional

from core.errors import CyberDashError
from dashboards.models import WIDGET_TYPES, WidgetConfig
from dashboards.store import DashboardStore, WidgetPredicate

logger = logging.getLogger("cyberdash.cli")


def build_predicate(
    metric_ids: list[str],
    widget_ids: list[str],
    from_type: Optional[str],
) -> WidgetPredicate:
    """Match widgets whose metric id or widget id is listed, optionally of one type only."""
    metric_set = set(metric_ids)
    id_set = set(widget_ids)

    def predicate(widget: WidgetConfig) -> bool:
        if from_type is not None and widget.type != from_type:
            return False
        return widget.metric_id in metric_set or widget.id in id_set

    return predicate


def _cmd_init_dashboard(store: DashboardStore, args: argparse.Namespace) -> None:
    dashboard, created = store.initialize_default()
    if created:
        print(f"  Created default dashboard '{dashboard.name}' (id {dashboard.id}, {len(dashboard.widgets)} widgets).")
    else:
        print(f"  Dashboards already exist; left unchanged (first: '{dashboard.name}', id {dashboard.id}).")


def _cmd_migrate_widgets(store: DashboardStore, args: argparse.Namespace) -> None:
    if not (args.metric_id or args.widget_id):
        changed = store.migrate_vendor_widgets()
        print(f"  Migrated {changed} dashboard(s) to use the vendor_card widget type.")
        return
    predicate = build_predicate(args.metric_id, args.widget_id, args.from_type)
    changed = store.migrate_widget_types(predicate, args.to)
    print(f"  Migrated {changed} dashboard(s) to widget type {args.to}.")


def _cmd_normalize_metric_ids(store: DashboardStore, args: argparse.Namespace) -> None:
    changed = store.normalize_metric_ids()
    print(f"  Normalized metric ids in {changed} dashboard(s).")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cyberdash",
        description="Administrative tasks for the CyberDash dashboard store.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--db",
        metavar="URL",
        default=None,
        help="SQLAlchemy database URL (default: DATABASE_URL setting)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init-dashboard", help="Create the stock dashboard when no dashboards exist")
    init.set_defaults(func=_cmd_init_dashboard)

    migrate = sub.add_parser(
        "migrate-widgets",
        help="Retype matching widgets. Without match options, converts legacy vendor metric cards to vendor_card.",
    )
    migrate.add_argument("--metric-id", action="append", default=[], metavar="ID", help="Match widgets by metric id")
    migrate.add_argument("--widget-id", action="append", default=[], metavar="ID", help="Match widgets by widget id")
    migrate.add_argument(
        "--from-type",
        choices=WIDGET_TYPES,
        default=None,
        metavar="TYPE",
        help="Only match widgets currently of this type",
    )
    migrate.add_argument(
        "--to",
        choices=WIDGET_TYPES,
        default="vendor_card",
        metavar="TYPE",
        help="Target widget type (default: vendor_card)",
    )
    migrate.set_defaults(func=_cmd_migrate_widgets)

    normalize = sub.add_parser("normalize-metric-ids", help="Rewrite underscore metric ids (total_count -> total-count)")
    normalize.set_defaults(func=_cmd_normalize_metric_ids)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    args = build_parser().parse_args(argv)
    store = DashboardStore(args.db)
    try:
        args.func(store, args)
    except CyberDashError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
