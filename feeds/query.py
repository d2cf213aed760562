"""
feeds/query.py -- Filtered, sorted, paginated listing of CISA KEV entries.

The list route hands over raw request values; the engine validates them,
builds SQLAlchemy predicates, and asks FeedStore for one page plus a total
count computed with the same predicates.

Security: sortable columns and searchable columns are explicit allow-lists
of Column objects. A sort key outside SORT_COLUMNS is a ValidationError,
never string-interpolated into SQL. Search terms go through icontains()
with autoescape, so % and _ in user input match literally.

The page query and the count query are two separate statements. A row
added between them can make the total disagree with the page by one; this
is accepted for a dashboard listing.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union

from sqlalchemy import or_
from sqlalchemy.sql.elements import ColumnElement

from core.errors import ValidationError
from core.timerange import parse_timestamp
from feeds.models import KevRecord
from feeds.store import FeedStore, cisa_kev

# Public sort keys -> columns. Keys match the names the dashboard client sends.
SORT_COLUMNS = {
    "dateAdded": cisa_kev.c.date_added,
    "cveID": cisa_kev.c.cve_id,
    "vendor": cisa_kev.c.vendor_project,
    "product": cisa_kev.c.product,
}

SORT_ORDERS = ("asc", "desc")

# Columns scanned by the free-text search filter.
SEARCHABLE_COLUMNS = (
    cisa_kev.c.cve_id,
    cisa_kev.c.vulnerability_name,
    cisa_kev.c.short_description,
    cisa_kev.c.vendor_project,
    cisa_kev.c.product,
)


@dataclass
class VulnerabilityFilters:
    date_from: Union[str, datetime, None] = None
    date_to: Union[str, datetime, None] = None
    vendor: Optional[str] = None
    product: Optional[str] = None
    search: Optional[str] = None


@dataclass
class VulnerabilityQuery:
    """Request-scoped listing parameters. Never persisted.

    limit and offset are left as None when the caller omitted them; the
    engine applies its configured defaults.
    """

    limit: Optional[int] = None
    offset: Optional[int] = None
    sort_by: str = "dateAdded"
    sort_order: str = "desc"
    filters: VulnerabilityFilters = field(default_factory=VulnerabilityFilters)


@dataclass
class Pagination:
    total: int
    page: int
    limit: int
    offset: int
    total_pages: int
    has_next: bool
    has_prev: bool


@dataclass
class QueryResult:
    rows: list[KevRecord]
    pagination: Pagination
    filters: dict[str, Any]  # the filters actually applied, echoed to the client


def paginate(total: int, limit: int, offset: int) -> Pagination:
    page = offset // limit + 1
    total_pages = math.ceil(total / limit)
    return Pagination(
        total=total,
        page=page,
        limit=limit,
        offset=offset,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class VulnerabilityQueryEngine:
    """Run VulnerabilityQuery objects against a FeedStore.

    Usage:
        engine = VulnerabilityQueryEngine(store)
        result = engine.run(VulnerabilityQuery(limit=50, sort_by="vendor"))
    """

    def __init__(self, store: FeedStore, default_limit: int = 20, max_limit: int = 100) -> None:
        self.store = store
        self.default_limit = default_limit
        self.max_limit = max_limit

    def run(self, query: VulnerabilityQuery) -> QueryResult:
        """Validate, filter, sort, and page. Raises ValidationError on bad input."""
        limit = self._clamp_limit(query.limit)
        offset = max(query.offset or 0, 0)
        order_by = self._order_by(query.sort_by, query.sort_order)
        conditions, applied = self._conditions(query.filters)

        rows = self.store.kev_page(conditions, order_by, limit=limit, offset=offset)
        total = self.store.count_kev_where(conditions)
        return QueryResult(rows=rows, pagination=paginate(total, limit, offset), filters=applied)

    # ------------------------------------------------------------------
    # Validation and predicate building
    # ------------------------------------------------------------------

    def _clamp_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.default_limit
        return min(max(limit, 1), self.max_limit)

    def _order_by(self, sort_by: str, sort_order: str) -> list[ColumnElement]:
        column = SORT_COLUMNS.get(sort_by)
        if column is None:
            raise ValidationError(
                "Invalid sort field.",
                field="sort_by",
                detail=f"Expected one of: {', '.join(SORT_COLUMNS)}.",
            )
        if sort_order not in SORT_ORDERS:
            raise ValidationError(
                "Invalid sort order.",
                field="sort_order",
                detail="Expected 'asc' or 'desc'.",
            )
        primary = column.asc() if sort_order == "asc" else column.desc()
        if column is cisa_kev.c.cve_id:
            return [primary]
        # cve_id is unique, so ties on the primary key never reorder across pages.
        return [primary, cisa_kev.c.cve_id.asc()]

    def _conditions(self, filters: VulnerabilityFilters) -> tuple[list[ColumnElement], dict[str, Any]]:
        conditions: list[ColumnElement] = []
        applied: dict[str, Any] = {}

        date_from = parse_timestamp(filters.date_from, "date_from")
        date_to = parse_timestamp(filters.date_to, "date_to")
        if date_from is not None:
            conditions.append(cisa_kev.c.date_added >= date_from)
            applied["date_from"] = date_from.isoformat()
        if date_to is not None:
            conditions.append(cisa_kev.c.date_added <= date_to)
            applied["date_to"] = date_to.isoformat()

        vendor = _clean(filters.vendor)
        if vendor:
            conditions.append(cisa_kev.c.vendor_project.icontains(vendor, autoescape=True))
            applied["vendor"] = vendor

        product = _clean(filters.product)
        if product:
            conditions.append(cisa_kev.c.product.icontains(product, autoescape=True))
            applied["product"] = product

        search = _clean(filters.search)
        if search:
            conditions.append(or_(*(col.icontains(search, autoescape=True) for col in SEARCHABLE_COLUMNS)))
            applied["search"] = search

        return conditions, applied

