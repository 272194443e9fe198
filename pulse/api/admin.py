"""
Pulse Admin API

Project provisioning, guarded by the ADMIN_KEY shared secret.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from pulse.api.deps import get_storage, require_admin
from pulse.core.storage import StorageAdapter

logger = logging.getLogger("pulse.api")
router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/projects", status_code=201, dependencies=[Depends(require_admin)])
async def create_project(
    request: Request,
    storage: StorageAdapter = Depends(get_storage),
):
    """
    Create a project and its first API key.

    The plaintext key is returned once and never stored.
    """
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

    name = body.get("name") if isinstance(body, dict) else None
    if not name or not isinstance(name, str):
        return JSONResponse({"error": "Missing required field: name"}, status_code=400)

    name = name.strip()
    if not name:
        return JSONResponse({"error": "Project name cannot be empty"}, status_code=400)

    project, api_key = await storage.create_project(name)

    return {
        "projectId": project.id,
        "apiKey": api_key,
        "name": project.name,
    }
