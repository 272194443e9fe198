"""
Shared API dependencies: storage handles and project authentication.
"""

import logging
import secrets
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from pulse.core.analytics import AnalyticsStore
from pulse.core.config import config
from pulse.core.errors import AuthenticationError, ServiceUnavailableError
from pulse.core.storage import StorageAdapter

logger = logging.getLogger("pulse.api")

security = HTTPBearer(auto_error=False)


def get_storage(request: Request) -> StorageAdapter:
    return request.app.state.storage


def get_analytics_store(request: Request) -> AnalyticsStore:
    return request.app.state.analytics_store


async def require_project(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    storage: StorageAdapter = Depends(get_storage),
) -> str:
    """Resolve the Bearer API key to its project id."""
    if not credentials or not credentials.credentials:
        raise AuthenticationError("Missing or invalid Authorization header")

    project_id = await storage.get_project_id_by_key(credentials.credentials)
    if not project_id:
        logger.warning("Rejected request with unknown API key")
        raise AuthenticationError("Invalid API key")

    return project_id


def require_admin(request: Request) -> None:
    """Check X-Admin-Key (or admin_key query param) against ADMIN_KEY."""
    admin_key = config.admin_key
    if not admin_key:
        raise ServiceUnavailableError("Admin API is not configured")

    provided = request.headers.get("X-Admin-Key") or request.query_params.get("admin_key")
    if not provided:
        raise AuthenticationError("Missing admin key")
    if not secrets.compare_digest(provided.encode(), admin_key.encode()):
        raise AuthenticationError("Invalid admin key")
