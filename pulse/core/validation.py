"""
Wire Validation

Pydantic schemas for inbound trace batches and query parameters.
Any invalid element rejects the whole payload; nothing is partially applied.
"""

from __future__ import annotations
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Type, TypeVar
from uuid import UUID

from pydantic import (
    AwareDatetime,
    BaseModel,
    Field,
    TypeAdapter,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError

from pulse.core.config import DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT, config
from pulse.core.errors import ValidationError
from pulse.core.models import TraceStatus


# Epoch numbers at or above this are treated as milliseconds
EPOCH_MS_THRESHOLD = 100_000_000_000

# Token counts must arrive as JSON integers, not numeric strings
TokenCount = Annotated[int, Field(strict=True, ge=0)]


class GroupBy(str, Enum):
    """Grouping options for analytics aggregation."""
    DAY = "day"
    HOUR = "hour"
    MODEL = "model"
    PROVIDER = "provider"


# =============================================================================
# TRACE INGESTION
# =============================================================================

class TraceIn(BaseModel):
    """A single trace as sent by the SDK."""
    trace_id: UUID
    timestamp: AwareDatetime
    provider: str = Field(..., min_length=1, max_length=50)
    model_requested: str = Field(..., min_length=1)
    model_used: Optional[str] = None
    provider_request_id: Optional[str] = None
    request_body: Dict[str, Any]
    response_body: Optional[Dict[str, Any]] = None
    input_tokens: Optional[TokenCount] = None
    output_tokens: Optional[TokenCount] = None
    output_text: Optional[str] = None
    finish_reason: Optional[str] = None
    status: TraceStatus
    error: Optional[Dict[str, Any]] = None
    latency_ms: float = Field(..., ge=0)
    cost_cents: Optional[float] = Field(None, ge=0)
    session_id: Optional[UUID] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _timestamp_is_iso_string(cls, value: Any) -> Any:
        if not isinstance(value, str):
            raise ValueError("timestamp must be an ISO-8601 string with a UTC offset")
        return value


BatchTraceInput = TypeAdapter(
    Annotated[List[TraceIn], Field(max_length=config.max_batch_size)]
)


# =============================================================================
# QUERY PARAMETERS
# =============================================================================

def parse_date_param(value: Any) -> Optional[datetime]:
    """
    Parse a date query param: ISO string or epoch seconds/milliseconds.

    Naive ISO strings are read as UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        try:
            number = float(text)
        except ValueError:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    if number >= EPOCH_MS_THRESHOLD:
        number = number / 1000
    try:
        return datetime.fromtimestamp(number, tz=timezone.utc)
    except (OverflowError, OSError) as e:
        raise ValueError(f"epoch value out of range: {value}") from e


class TraceQueryParams(BaseModel):
    """Query params for GET /v1/traces."""
    session_id: Optional[UUID] = None
    provider: Optional[str] = Field(None, min_length=1, max_length=50)
    model: Optional[str] = None
    status: Optional[TraceStatus] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    limit: int = Field(DEFAULT_QUERY_LIMIT, ge=1, le=MAX_QUERY_LIMIT)
    offset: int = Field(0, ge=0)

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def _parse_dates(cls, value: Any) -> Optional[datetime]:
        return parse_date_param(value)


class AnalyticsQueryParams(BaseModel):
    """Query params for GET /v1/analytics."""
    date_from: AwareDatetime
    date_to: AwareDatetime
    group_by: Optional[GroupBy] = None
    include_latency: bool = False


# =============================================================================
# PARSING HELPERS
# =============================================================================

ModelT = TypeVar("ModelT", bound=BaseModel)


def _error_details(exc: PydanticValidationError) -> List[Dict[str, Any]]:
    # Round-trip through JSON so error contexts are always serializable
    return json.loads(exc.json(include_url=False))


def parse_batch(raw: Any) -> List[TraceIn]:
    """Validate a raw trace batch. Raises ValidationError on any invalid element."""
    try:
        return BatchTraceInput.validate_python(raw)
    except PydanticValidationError as e:
        raise ValidationError("Validation failed", details=_error_details(e)) from e


def parse_query(model: Type[ModelT], params: Dict[str, Any]) -> ModelT:
    """Validate query params against a schema. Raises ValidationError."""
    try:
        return model.model_validate(params)
    except PydanticValidationError as e:
        raise ValidationError("Invalid query parameters", details=_error_details(e)) from e


__all__ = [
    "GroupBy",
    "TraceIn",
    "BatchTraceInput",
    "TraceQueryParams",
    "AnalyticsQueryParams",
    "parse_date_param",
    "parse_batch",
    "parse_query",
]
