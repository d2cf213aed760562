"""
api/routes/v1/vulnerabilities.py -- Paginated CISA KEV listing.

GET /vulnerabilities/cisa
  limit       -- page size, clamped to [1, MAX_PAGE_LIMIT] (default DEFAULT_PAGE_LIMIT)
  offset      -- rows to skip, negative values treated as 0
  sort_by     -- dateAdded | cveID | vendor | product   (default dateAdded)
  sort_order  -- asc | desc                              (default desc)
  date_from   -- ISO 8601, inclusive lower bound on date_added
  date_to     -- ISO 8601, inclusive upper bound on date_added
  vendor      -- case-insensitive substring of vendor_project
  product     -- case-insensitive substring of product
  search      -- case-insensitive substring of any searchable column

Out-of-range limit/offset are clamped, not rejected. An unknown sort key or
order, or an unparseable date, is a 400 with the offending field named.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Query, Request

from api.limiter import limiter, list_limit
from api.models import Envelope, PaginationModel, VulnerabilityList, VulnerabilityRow, wrap
from core.config import get_settings
from feeds.query import VulnerabilityFilters, VulnerabilityQuery, VulnerabilityQueryEngine

router = APIRouter()

_Text = Annotated[Optional[str], Query(max_length=200)]


@limiter.limit(list_limit)
@router.get("/vulnerabilities/cisa", response_model=Envelope[VulnerabilityList])
def list_cisa_vulnerabilities(
    request: Request,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    sort_by: Annotated[str, Query(max_length=32)] = "dateAdded",
    sort_order: Annotated[str, Query(max_length=8)] = "desc",
    date_from: Annotated[Optional[str], Query(max_length=64)] = None,
    date_to: Annotated[Optional[str], Query(max_length=64)] = None,
    vendor: _Text = None,
    product: _Text = None,
    search: _Text = None,
) -> Envelope:
    settings = get_settings()
    engine = VulnerabilityQueryEngine(
        request.app.state.feeds,
        default_limit=settings.default_page_limit,
        max_limit=settings.max_page_limit,
    )
    result = engine.run(
        VulnerabilityQuery(
            limit=limit,
            offset=offset,
            sort_by=sort_by,
            sort_order=sort_order,
            filters=VulnerabilityFilters(
                date_from=date_from,
                date_to=date_to,
                vendor=vendor,
                product=product,
                search=search,
            ),
        )
    )
    data = VulnerabilityList(
        vulnerabilities=[VulnerabilityRow.from_record(row) for row in result.rows],
        pagination=PaginationModel.from_pagination(result.pagination),
        filters=result.filters,
    )
    return wrap(data, source="cisa_kev", timestamp=request.app.state.clock())
