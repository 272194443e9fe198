"""
Trace Storage

Storage adapter protocol for the trace service plus the default
in-memory implementation.

Implement StorageAdapter to add a different backend (Postgres, BigQuery,
...). Implementations satisfy the protocol structurally; no inheritance
is required.
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List, Dict, Any, Protocol, Tuple

from pulse.core.config import DEFAULT_QUERY_LIMIT
from pulse.core.models import (
    APIKey,
    Project,
    Session,
    TraceRecord,
    TraceStatus,
    hash_api_key,
)

logger = logging.getLogger("pulse.storage")

# Sentinel for "metadata not supplied" in session upserts
_UNSET: Any = object()


@dataclass
class TraceQueryFilters:
    """Filters for trace lookups."""
    session_id: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    status: Optional[TraceStatus] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    limit: int = DEFAULT_QUERY_LIMIT
    offset: int = 0

    def matches(self, trace: TraceRecord) -> bool:
        if self.session_id and trace.session_id != self.session_id:
            return False
        if self.provider and trace.provider != self.provider:
            return False
        if self.model and trace.model_requested != self.model:
            return False
        if self.status and trace.status != self.status:
            return False
        if self.date_from and trace.timestamp < self.date_from:
            return False
        if self.date_to and trace.timestamp > self.date_to:
            return False
        return True


class StorageAdapter(Protocol):
    """Storage backend for traces, sessions and project credentials."""

    async def insert_trace(self, project_id: str, trace: TraceRecord) -> TraceRecord: ...

    async def get_trace(self, trace_id: str, project_id: str) -> Optional[TraceRecord]: ...

    async def query_traces(
        self, project_id: str, filters: Optional[TraceQueryFilters] = None
    ) -> Tuple[List[TraceRecord], int]: ...

    async def count_traces(
        self, project_id: str, filters: Optional[TraceQueryFilters] = None
    ) -> int: ...

    async def upsert_session(
        self, project_id: str, session_id: str, metadata: Any = _UNSET
    ) -> Session: ...

    async def get_session(self, session_id: str, project_id: str) -> Optional[Session]: ...

    async def get_session_traces(self, session_id: str, project_id: str) -> List[TraceRecord]: ...

    async def traces_in_range(
        self, project_id: str, date_from: datetime, date_to: datetime
    ) -> List[TraceRecord]: ...

    async def create_project(self, name: str) -> Tuple[Project, str]: ...

    async def get_project_id_by_key(self, api_key: str) -> Optional[str]: ...


class InMemoryStorage:
    """
    In-memory storage for traces, sessions, projects and API keys.

    Mutations are serialized with an asyncio lock. Traces are indexed by
    project for scoped lookups.
    """

    def __init__(self):
        # Rows keyed by (project_id, trace_id) so ids never collide across projects
        self._traces: Dict[Tuple[str, str], TraceRecord] = {}
        self._by_project: Dict[str, List[str]] = {}
        self._sessions: Dict[Tuple[str, str], Session] = {}
        self._projects: Dict[str, Project] = {}
        self._keys_by_hash: Dict[str, APIKey] = {}
        self._lock = asyncio.Lock()

    # =========================================================================
    # TRACES
    # =========================================================================

    async def insert_trace(self, project_id: str, trace: TraceRecord) -> TraceRecord:
        """
        Insert a trace scoped to project_id.

        Re-inserting an id the project already holds replaces that row.
        """
        trace.project_id = project_id
        key = (project_id, trace.trace_id)
        async with self._lock:
            if key not in self._traces:
                self._by_project.setdefault(project_id, []).append(trace.trace_id)
            self._traces[key] = trace
        return trace

    async def get_trace(self, trace_id: str, project_id: str) -> Optional[TraceRecord]:
        return self._traces.get((project_id, trace_id))

    def _project_traces(self, project_id: str) -> List[TraceRecord]:
        rows = [self._traces.get((project_id, tid)) for tid in self._by_project.get(project_id, [])]
        return [t for t in rows if t is not None and t.project_id == project_id]

    async def query_traces(
        self,
        project_id: str,
        filters: Optional[TraceQueryFilters] = None,
    ) -> Tuple[List[TraceRecord], int]:
        """Filter, sort newest first and paginate. Returns (page, total)."""
        filters = filters or TraceQueryFilters()
        matched = [t for t in self._project_traces(project_id) if filters.matches(t)]
        matched.sort(key=lambda t: t.timestamp, reverse=True)
        page = matched[filters.offset:filters.offset + filters.limit]
        return page, len(matched)

    async def count_traces(
        self,
        project_id: str,
        filters: Optional[TraceQueryFilters] = None,
    ) -> int:
        filters = filters or TraceQueryFilters()
        return sum(1 for t in self._project_traces(project_id) if filters.matches(t))

    async def traces_in_range(
        self,
        project_id: str,
        date_from: datetime,
        date_to: datetime,
    ) -> List[TraceRecord]:
        """All project traces with date_from <= timestamp <= date_to."""
        return [
            t for t in self._project_traces(project_id)
            if date_from <= t.timestamp <= date_to
        ]

    # =========================================================================
    # SESSIONS
    # =========================================================================

    async def upsert_session(
        self,
        project_id: str,
        session_id: str,
        metadata: Any = _UNSET,
    ) -> Session:
        """
        Create the session if absent.

        An existing session is left as-is unless metadata is supplied, in
        which case its metadata is replaced wholesale.
        """
        async with self._lock:
            session = self._sessions.get((project_id, session_id))
            if session is None:
                session = Session(
                    id=session_id,
                    project_id=project_id,
                    metadata=None if metadata is _UNSET else metadata,
                )
                self._sessions[(project_id, session_id)] = session
            elif metadata is not _UNSET:
                session.metadata = metadata
            return session

    async def get_session(self, session_id: str, project_id: str) -> Optional[Session]:
        return self._sessions.get((project_id, session_id))

    async def get_session_traces(self, session_id: str, project_id: str) -> List[TraceRecord]:
        traces = [t for t in self._project_traces(project_id) if t.session_id == session_id]
        traces.sort(key=lambda t: t.timestamp)
        return traces

    # =========================================================================
    # PROJECTS & API KEYS
    # =========================================================================

    async def create_project(self, name: str) -> Tuple[Project, str]:
        """Create a project with a fresh API key. Returns (project, full_key)."""
        project = Project(id=Project.generate_id(), name=name)
        full_key, key_hash = APIKey.generate()
        api_key = APIKey(id=APIKey.generate_id(), project_id=project.id, key_hash=key_hash)

        async with self._lock:
            self._projects[project.id] = project
            self._keys_by_hash[key_hash] = api_key

        logger.info(f"Created project {project.id} ({name})")
        return project, full_key

    async def get_project_id_by_key(self, api_key: str) -> Optional[str]:
        key = self._keys_by_hash.get(hash_api_key(api_key))
        return key.project_id if key else None


__all__ = [
    "TraceQueryFilters",
    "StorageAdapter",
    "InMemoryStorage",
]
