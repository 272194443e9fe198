"""
Core Data Models

Stored records for the Pulse trace service: projects, API keys,
sessions and traces.
"""

from __future__ import annotations
import uuid
import hashlib
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from dataclasses import dataclass, field
from enum import Enum


# =============================================================================
# ENUMS
# =============================================================================

class TraceStatus(str, Enum):
    """Outcome of a traced LLM call."""
    SUCCESS = "success"
    ERROR = "error"


# =============================================================================
# PROJECT & API KEY
# =============================================================================

API_KEY_PREFIX = "pulse_sk_"


def hash_api_key(key: str) -> str:
    """SHA-256 hex digest used for key storage and lookup."""
    return hashlib.sha256(key.encode()).hexdigest()


@dataclass
class Project:
    """A project owns traces, sessions and API keys."""
    id: str
    name: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @staticmethod
    def generate_id() -> str:
        return str(uuid.uuid4())


@dataclass
class APIKey:
    """
    API key used by the SDK to authenticate against the trace service.

    Only the hash is stored; the full key is shown once at creation.
    """
    id: str
    project_id: str
    key_hash: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @staticmethod
    def generate() -> tuple[str, str]:
        """
        Generate a new API key.

        Returns: (full_key, hash)
        """
        full_key = f"{API_KEY_PREFIX}{uuid.uuid4()}"
        return full_key, hash_api_key(full_key)

    @staticmethod
    def generate_id() -> str:
        return str(uuid.uuid4())


# =============================================================================
# SESSION
# =============================================================================

@dataclass
class Session:
    """
    Caller-defined grouping of traces (e.g. one conversation).

    Created lazily on the first trace that references it; never closed.
    """
    id: str
    project_id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "created_at": self.created_at.isoformat(),
            "metadata": self.metadata,
        }


# =============================================================================
# TRACE (THE CORE DATA WE COLLECT)
# =============================================================================

@dataclass
class TraceRecord:
    """
    A stored trace: one LLM call, scoped to a project.
    """
    trace_id: str
    project_id: str
    timestamp: datetime
    provider: str
    model_requested: str
    request_body: Dict[str, Any]
    status: TraceStatus
    latency_ms: float

    model_used: Optional[str] = None
    provider_request_id: Optional[str] = None
    response_body: Optional[Dict[str, Any]] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    output_text: Optional[str] = None
    finish_reason: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    cost_cents: Optional[float] = None
    session_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @property
    def is_error(self) -> bool:
        return self.status == TraceStatus.ERROR

    @property
    def total_tokens(self) -> int:
        return (self.input_tokens or 0) + (self.output_tokens or 0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the snake_case wire form returned by the API."""
        return {
            "trace_id": self.trace_id,
            "project_id": self.project_id,
            "timestamp": self.timestamp.isoformat(),
            "provider": self.provider,
            "model_requested": self.model_requested,
            "model_used": self.model_used,
            "provider_request_id": self.provider_request_id,
            "request_body": self.request_body,
            "response_body": self.response_body,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "output_text": self.output_text,
            "finish_reason": self.finish_reason,
            "status": self.status.value if isinstance(self.status, TraceStatus) else self.status,
            "error": self.error,
            "cost_cents": self.cost_cents,
            "latency_ms": self.latency_ms,
            "session_id": self.session_id,
            "metadata": self.metadata,
        }
