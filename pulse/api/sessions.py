"""
Pulse Sessions API
"""

from fastapi import APIRouter, Depends

from pulse.api.deps import get_storage, require_project
from pulse.core.errors import NotFoundError
from pulse.core.ingestion import get_session_traces
from pulse.core.storage import StorageAdapter

router = APIRouter(prefix="/v1/sessions", tags=["Sessions"])


@router.get("/{session_id}")
async def get_session(
    session_id: str,
    project_id: str = Depends(require_project),
    storage: StorageAdapter = Depends(get_storage),
):
    """
    Get all traces for a session, oldest first.

    A session with no traces in this project is reported as not found.
    """
    result = await get_session_traces(session_id, project_id, storage)
    if not result.traces:
        raise NotFoundError("Session not found")
    return result.to_dict()
