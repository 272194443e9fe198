"""Shared test fixtures: in-memory storage, seeded project, API client, trace factories."""

import os

# Keep the service config deterministic regardless of the shell environment.
os.environ["ENV"] = "test"
os.environ.pop("ADMIN_KEY", None)

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List

import pytest
from httpx import ASGITransport, AsyncClient

from main import app
from pulse.api.deps import get_analytics_store, get_storage
from pulse.core.analytics import InMemoryAnalyticsStore
from pulse.core.models import TraceRecord, TraceStatus
from pulse.core.storage import InMemoryStorage
from pulse.sdk.buffer import Pulse
from pulse.sdk.config import PulseConfig
from pulse.sdk.tracing import Trace


TEST_SDK_KEY = "pulse_sk_test-key"


@dataclass
class SeededProject:
    id: str
    api_key: str

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}


class RecordingTransport:
    """Stands in for HTTPTransport; keeps every batch it is asked to send."""

    def __init__(self):
        self.batches: List[List[Trace]] = []

    async def send(self, traces: List[Trace]) -> bool:
        self.batches.append(list(traces))
        return True

    @property
    def sent(self) -> List[Trace]:
        return [t for batch in self.batches for t in batch]


# =============================================================================
# FACTORIES
# =============================================================================

def make_wire_trace(**overrides: Any) -> Dict[str, Any]:
    """A valid trace as the SDK would POST it."""
    trace = {
        "trace_id": str(uuid.uuid4()),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "provider": "openai",
        "model_requested": "gpt-4o",
        "model_used": "gpt-4o-2024-08-06",
        "request_body": {"model": "gpt-4o", "messages": [{"role": "user", "content": "hi"}]},
        "response_body": {"content": "hello", "inputTokens": 10, "outputTokens": 5},
        "input_tokens": 10,
        "output_tokens": 5,
        "output_text": "hello",
        "finish_reason": "stop",
        "status": "success",
        "latency_ms": 120,
        "cost_cents": 0.0075,
    }
    trace.update(overrides)
    return trace


def make_record(project_id: str, **overrides: Any) -> TraceRecord:
    """A stored trace row for analytics and storage tests."""
    values = dict(
        trace_id=str(uuid.uuid4()),
        project_id=project_id,
        timestamp=datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc),
        provider="openai",
        model_requested="gpt-4o",
        request_body={"model": "gpt-4o"},
        status=TraceStatus.SUCCESS,
        latency_ms=100,
        input_tokens=100,
        output_tokens=50,
        cost_cents=1.0,
    )
    values.update(overrides)
    return TraceRecord(**values)


def make_sdk_trace(**overrides: Any) -> Trace:
    values = dict(
        trace_id=str(uuid.uuid4()),
        timestamp=datetime.now(timezone.utc).isoformat(),
        provider="openai",
        model_requested="gpt-4o",
        request_body={"model": "gpt-4o"},
        status="success",
        latency_ms=50,
    )
    values.update(overrides)
    return Trace(**values)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
async def project(storage: InMemoryStorage) -> SeededProject:
    created, api_key = await storage.create_project("Test Project")
    return SeededProject(id=created.id, api_key=api_key)


@pytest.fixture
async def client(storage: InMemoryStorage):
    """API client backed by the test's own storage."""
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_analytics_store] = lambda: InMemoryAnalyticsStore(storage)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def recorder() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def pulse(recorder: RecordingTransport) -> Pulse:
    """SDK client that buffers up to 100 traces and records sends in memory."""
    config = PulseConfig(api_key=TEST_SDK_KEY, batch_size=100).validate()
    return Pulse(config, transport=recorder)
