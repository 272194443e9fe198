"""
Trace Ingestion Service

Validates inbound trace batches and persists them, plus the read-side
lookups used by the query endpoints.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pulse.core.models import TraceRecord
from pulse.core.storage import StorageAdapter, TraceQueryFilters
from pulse.core.validation import TraceIn, parse_batch

logger = logging.getLogger("pulse.ingestion")


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class IngestResult:
    """Result of a batch ingestion."""
    count: int
    traces: List[TraceRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "traces": [t.to_dict() for t in self.traces],
        }


@dataclass
class QueryResult:
    """A page of traces plus the unpaginated total."""
    traces: List[TraceRecord]
    total: int
    limit: int
    offset: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "traces": [t.to_dict() for t in self.traces],
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
        }


@dataclass
class SessionTracesResult:
    session_id: str
    traces: List[TraceRecord]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "traces": [t.to_dict() for t in self.traces],
        }


# =============================================================================
# INGESTION
# =============================================================================

def _to_record(trace: TraceIn, project_id: str) -> TraceRecord:
    """Map a validated wire trace onto a stored record."""
    return TraceRecord(
        trace_id=str(trace.trace_id),
        project_id=project_id,
        timestamp=trace.timestamp,
        provider=trace.provider,
        model_requested=trace.model_requested,
        model_used=trace.model_used,
        provider_request_id=trace.provider_request_id,
        request_body=trace.request_body,
        response_body=trace.response_body,
        input_tokens=trace.input_tokens,
        output_tokens=trace.output_tokens,
        output_text=trace.output_text,
        finish_reason=trace.finish_reason,
        status=trace.status,
        error=trace.error,
        latency_ms=trace.latency_ms,
        cost_cents=trace.cost_cents,
        session_id=str(trace.session_id) if trace.session_id else None,
        metadata=trace.metadata,
    )


async def ingest_traces(
    project_id: str,
    raw_batch: Any,
    storage: StorageAdapter,
) -> IngestResult:
    """
    Ingest a batch of traces for a project.

    The whole batch is validated before anything is written. Each distinct
    session is upserted, then every trace is inserted in payload order.

    Raises:
        ValidationError: if the batch is not a list of at most 100 valid traces.
    """
    parsed = parse_batch(raw_batch)

    session_ids: List[str] = []
    for trace in parsed:
        if trace.session_id:
            sid = str(trace.session_id)
            if sid not in session_ids:
                session_ids.append(sid)

    for session_id in session_ids:
        await storage.upsert_session(project_id, session_id)

    # A repeated trace_id replaces the earlier row, so it is counted once
    stored: Dict[str, TraceRecord] = {}
    for trace in parsed:
        record = await storage.insert_trace(project_id, _to_record(trace, project_id))
        stored.pop(record.trace_id, None)
        stored[record.trace_id] = record
    inserted = list(stored.values())

    logger.debug(
        f"Ingested {len(inserted)} traces for project {project_id} "
        f"({len(session_ids)} sessions)"
    )
    return IngestResult(count=len(inserted), traces=inserted)


# =============================================================================
# READ SIDE
# =============================================================================

async def get_trace(
    trace_id: str,
    project_id: str,
    storage: StorageAdapter,
) -> Optional[TraceRecord]:
    return await storage.get_trace(trace_id, project_id)


async def query_traces(
    project_id: str,
    filters: TraceQueryFilters,
    storage: StorageAdapter,
) -> QueryResult:
    """Query traces with filters and pagination, newest first."""
    traces, total = await storage.query_traces(project_id, filters)
    return QueryResult(
        traces=traces,
        total=total,
        limit=filters.limit,
        offset=filters.offset,
    )


async def get_session_traces(
    session_id: str,
    project_id: str,
    storage: StorageAdapter,
) -> SessionTracesResult:
    """All traces for a session, oldest first."""
    traces = await storage.get_session_traces(session_id, project_id)
    return SessionTracesResult(session_id=session_id, traces=traces)


__all__ = [
    "IngestResult",
    "QueryResult",
    "SessionTracesResult",
    "ingest_traces",
    "get_trace",
    "query_traces",
    "get_session_traces",
]
