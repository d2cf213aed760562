"""
tests/conftest.py -- Shared test fixtures for CyberDash unit and integration tests.

This module provides:
  - FIXED_NOW / fixed_clock: the pinned "now" every time-dependent test uses
  - TickingClock: a clock that advances on every call (for updated_at ordering)
  - feed_store / dashboard_store: plain ':memory:' stores for unit tests
  - _patch_lifespan(): wires test stores and the fixed clock into app.state
  - api_client: TestClient over the real app with isolated stores

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the TestClient fixture because it runs route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from dashboards.store import DashboardStore
from feeds.models import KevRecord, MitreTactic, MitreTechnique, NvdCve
from feeds.store import FeedStore

FIXED_NOW = datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


class TickingClock:
    """Returns start, start + step, start + 2*step, ... on successive calls."""

    def __init__(self, start: datetime = FIXED_NOW, step: timedelta = timedelta(minutes=1)) -> None:
        self._next = start
        self._step = step

    def __call__(self) -> datetime:
        current = self._next
        self._next += self._step
        return current


# ---------------------------------------------------------------------------
# Record builders -- only the fields a test cares about need to be passed
# ---------------------------------------------------------------------------


def make_kev(cve_id: str, date_added: datetime, vendor: str = "Microsoft", product: str = "Windows", **kw) -> KevRecord:
    return KevRecord(
        cve_id=cve_id,
        vendor_project=vendor,
        product=product,
        vulnerability_name=kw.pop("vulnerability_name", f"{vendor} {product} Vulnerability"),
        date_added=date_added,
        **kw,
    )


def make_nvd(cve_id: str, published: datetime, score=None, severity=None, status: str = "Analyzed", **kw) -> NvdCve:
    return NvdCve(
        cve_id=cve_id,
        published=published,
        last_modified=kw.pop("last_modified", published),
        vuln_status=status,
        cvss_v3_base_score=score,
        cvss_v3_base_severity=severity,
        **kw,
    )


def make_technique(technique_id: str, name: str, tactics=(), platforms=(), **kw) -> MitreTechnique:
    return MitreTechnique(
        technique_id=technique_id,
        name=name,
        tactics=list(tactics),
        platforms=list(platforms),
        created_at=kw.pop("created_at", FIXED_NOW - timedelta(days=365)),
        **kw,
    )


def make_tactic(tactic_id: str, name: str, short_name: str) -> MitreTactic:
    return MitreTactic(tactic_id=tactic_id, name=name, short_name=short_name)


# ---------------------------------------------------------------------------
# Unit-test stores
# ---------------------------------------------------------------------------


@pytest.fixture
def feed_store() -> Generator[FeedStore, None, None]:
    store = FeedStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def dashboard_store() -> Generator[DashboardStore, None, None]:
    store = DashboardStore("sqlite:///:memory:", clock=TickingClock())
    yield store
    store.close()


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    """Each test starts with empty slowapi counters (one limiter is shared process-wide)."""
    limiter.reset()
    yield


# ---------------------------------------------------------------------------
# Integration client
# ---------------------------------------------------------------------------


def _patch_lifespan(feeds: FeedStore, dashboards: DashboardStore):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores and the fixed clock into app.state so
    TestClient routes see isolated test DBs rather than the configured
    DATABASE_URL.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.clock = fixed_clock
        app.state.feeds = feeds
        app.state.dashboards = dashboards
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, FeedStore, DashboardStore], None, None]:
    """Yield (client, feeds, dashboards) for API integration tests.

    The DB name includes the test module name so modules never share rows.
    Tests seed data directly through the yielded stores.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    url = f"sqlite:///file:test_{suffix}?mode=memory&cache=shared&uri=true"
    feeds = FeedStore(url)
    dashboards = DashboardStore(url, clock=TickingClock())

    app.router.lifespan_context = _patch_lifespan(feeds, dashboards)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, feeds, dashboards

    feeds.close()
    dashboards.close()
