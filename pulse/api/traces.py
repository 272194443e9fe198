"""
Pulse Traces API

- POST /v1/traces/batch: ingest a batch of traces from the SDK
- GET /v1/traces: query traces with filters and pagination
- GET /v1/traces/{trace_id}: fetch a single trace
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from pulse.api.deps import get_storage, require_project
from pulse.core.errors import NotFoundError
from pulse.core.ingestion import get_trace, ingest_traces, query_traces
from pulse.core.storage import StorageAdapter, TraceQueryFilters
from pulse.core.validation import TraceQueryParams, parse_query

logger = logging.getLogger("pulse.api")
router = APIRouter(prefix="/v1/traces", tags=["Traces"])


@router.post("/batch", status_code=202)
async def ingest_batch(
    request: Request,
    project_id: str = Depends(require_project),
    storage: StorageAdapter = Depends(get_storage),
):
    """
    Ingest a batch of up to 100 traces.

    The batch is all-or-nothing: one invalid trace rejects the request.
    """
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

    result = await ingest_traces(project_id, body, storage)
    logger.info(f"Accepted {result.count} traces for project {project_id}")
    return result.to_dict()


@router.get("")
async def list_traces(
    request: Request,
    project_id: str = Depends(require_project),
    storage: StorageAdapter = Depends(get_storage),
):
    """
    List traces for the project, newest first.

    Filters: session_id, provider, model, status, date_from, date_to
    (ISO string or epoch seconds/milliseconds), limit, offset.
    """
    params = parse_query(TraceQueryParams, dict(request.query_params))

    filters = TraceQueryFilters(
        session_id=str(params.session_id) if params.session_id else None,
        provider=params.provider,
        model=params.model,
        status=params.status,
        date_from=params.date_from,
        date_to=params.date_to,
        limit=params.limit,
        offset=params.offset,
    )

    result = await query_traces(project_id, filters, storage)
    return result.to_dict()


@router.get("/{trace_id}")
async def get_trace_by_id(
    trace_id: str,
    project_id: str = Depends(require_project),
    storage: StorageAdapter = Depends(get_storage),
):
    trace = await get_trace(trace_id, project_id, storage)
    if not trace:
        raise NotFoundError("Trace not found")
    return trace.to_dict()
