"""
Trace Builder

Assembles the Trace sent to the collector from a normalized response or a
caught exception, plus the timing and correlation helpers shared by every
provider adapter.
"""

from __future__ import annotations
import time
import uuid
import traceback
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Tuple

from pulse.core.models import TraceStatus
from pulse.sdk.normalize import NormalizedResponse
from pulse.sdk.pricing import calculate_cost


# Correlation kwargs accepted on create() calls and stripped before forwarding
SESSION_PARAM = "pulse_session_id"
METADATA_PARAM = "pulse_metadata"


# =============================================================================
# TRACE
# =============================================================================

@dataclass
class Trace:
    """One LLM call, in the wire shape accepted by POST /v1/traces/batch."""
    trace_id: str
    timestamp: str
    provider: str
    model_requested: str
    request_body: Dict[str, Any]
    status: str
    latency_ms: int

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

    def to_dict(self) -> Dict[str, Any]:
        """Wire form. Unknown optional fields are omitted."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


@dataclass
class TraceMetadata:
    """Correlation data attached to a trace."""
    session_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


# =============================================================================
# TIMING
# =============================================================================

@dataclass
class CallTimer:
    """Wall-clock start for the trace timestamp, monotonic clock for latency."""
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _start: float = field(default_factory=time.perf_counter)

    def elapsed_ms(self) -> int:
        return max(0, round((time.perf_counter() - self._start) * 1000))


def start_timer() -> CallTimer:
    return CallTimer()


# =============================================================================
# CORRELATION
# =============================================================================

def extract_pulse_params(
    kwargs: Dict[str, Any],
) -> Tuple[Dict[str, Any], Optional[str], Optional[Dict[str, Any]]]:
    """
    Split Pulse correlation kwargs from the provider request.

    Returns: (clean_kwargs, session_id, metadata)
    """
    clean = dict(kwargs)
    session_id = clean.pop(SESSION_PARAM, None)
    metadata = clean.pop(METADATA_PARAM, None)
    return clean, session_id, metadata


def resolve_trace_metadata(
    session_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    payload_session_id: Optional[str] = None,
    payload_metadata: Optional[Dict[str, Any]] = None,
) -> TraceMetadata:
    """Observe-time options win over values embedded in the call payload."""
    return TraceMetadata(
        session_id=str(session_id or payload_session_id) if (session_id or payload_session_id) else None,
        metadata=metadata if metadata is not None else payload_metadata,
    )


# =============================================================================
# BUILDERS
# =============================================================================

def _model_requested(request: Dict[str, Any]) -> str:
    model = request.get("model")
    return str(model) if model else "unknown"


def build_trace(
    request: Dict[str, Any],
    response: NormalizedResponse,
    provider: str,
    timer: CallTimer,
    trace_metadata: Optional[TraceMetadata] = None,
    provider_request_id: Optional[str] = None,
) -> Trace:
    """
    Build a success trace.

    A provider-supplied cost wins; otherwise cost is computed when both
    token counts are known and the model is priced.
    """
    trace_metadata = trace_metadata or TraceMetadata()

    cost_cents = response.cost_cents
    if cost_cents is None and response.input_tokens is not None and response.output_tokens is not None:
        cost_cents = calculate_cost(response.model or "", response.input_tokens, response.output_tokens)

    return Trace(
        trace_id=str(uuid.uuid4()),
        timestamp=timer.started_at.isoformat(),
        provider=provider,
        model_requested=_model_requested(request),
        model_used=response.model,
        provider_request_id=provider_request_id,
        request_body=request,
        response_body=response.to_dict(),
        input_tokens=response.input_tokens,
        output_tokens=response.output_tokens,
        output_text=response.content,
        finish_reason=response.finish_reason,
        status=TraceStatus.SUCCESS.value,
        latency_ms=timer.elapsed_ms(),
        cost_cents=cost_cents,
        session_id=trace_metadata.session_id,
        metadata=trace_metadata.metadata,
    )


def build_error_trace(
    request: Dict[str, Any],
    error: BaseException,
    provider: str,
    timer: CallTimer,
    trace_metadata: Optional[TraceMetadata] = None,
) -> Trace:
    """Build an error trace capturing the exception name, message and stack."""
    trace_metadata = trace_metadata or TraceMetadata()

    return Trace(
        trace_id=str(uuid.uuid4()),
        timestamp=timer.started_at.isoformat(),
        provider=provider,
        model_requested=_model_requested(request),
        request_body=request,
        status=TraceStatus.ERROR.value,
        error={
            "name": type(error).__name__,
            "message": str(error),
            "stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
        },
        latency_ms=timer.elapsed_ms(),
        session_id=trace_metadata.session_id,
        metadata=trace_metadata.metadata,
    )
