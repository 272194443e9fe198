"""
Pulse Analytics API

Query Params:
- date_from: ISO 8601 start (with offset, e.g. 2025-01-01T00:00:00Z)
- date_to: ISO 8601 end, inclusive
- group_by: day | hour | model | provider
- include_latency: add latency buckets and p50/p95/p99
"""

from fastapi import APIRouter, Depends, Request

from pulse.api.deps import get_analytics_store, require_project
from pulse.core.analytics import AnalyticsStore, DateRange, get_analytics
from pulse.core.validation import AnalyticsQueryParams, parse_query

router = APIRouter(prefix="/v1/analytics", tags=["Analytics"])


@router.get("")
async def analytics_summary(
    request: Request,
    project_id: str = Depends(require_project),
    store: AnalyticsStore = Depends(get_analytics_store),
):
    """Cost, token, latency and error analytics for a date range."""
    params = parse_query(AnalyticsQueryParams, dict(request.query_params))

    result = await get_analytics(
        project_id,
        DateRange(date_from=params.date_from, date_to=params.date_to),
        store,
        group_by=params.group_by,
        include_latency=params.include_latency,
    )
    return result.to_dict()
