"""
Streaming Support

Accumulators fold provider stream events into a NormalizedResponse, and
TracedStream / TracedAsyncStream wrap the provider's stream so the caller
sees every event unchanged while exactly one trace is recorded when the
stream ends.
"""

from __future__ import annotations
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional

from pulse.sdk.normalize import (
    NormalizedResponse,
    _get,
    dollars_to_cents,
    map_anthropic_stop_reason,
    to_plain,
)

logger = logging.getLogger("pulse.sdk.providers")


# =============================================================================
# ACCUMULATORS
# =============================================================================

class AnthropicStreamAccumulator:
    """
    Rebuilds an Anthropic message from raw stream events.

    Handles message_start, content_block_start, content_block_delta
    (text_delta only) and message_delta. Everything else is ignored.
    """

    def __init__(self):
        self.id: Optional[str] = None
        self.model: Optional[str] = None
        self.content: List[Optional[Dict[str, Any]]] = []
        self.stop_reason: Optional[str] = None
        self.stop_sequence: Optional[str] = None
        self.usage: Optional[Dict[str, Any]] = None
        self.text_content = ""

    def process(self, event: Any) -> None:
        event_type = _get(event, "type")

        if event_type == "message_start":
            message = _get(event, "message")
            self.id = _get(message, "id")
            self.model = _get(message, "model")
            usage = to_plain(_get(message, "usage"))
            self.usage = dict(usage) if isinstance(usage, dict) else None

        elif event_type == "content_block_start":
            index = _get(event, "index", len(self.content))
            block = to_plain(_get(event, "content_block"))
            block = dict(block) if isinstance(block, dict) else {"type": None}
            while len(self.content) <= index:
                self.content.append(None)
            self.content[index] = block

        elif event_type == "content_block_delta":
            delta = _get(event, "delta")
            if _get(delta, "type") != "text_delta":
                return
            text = _get(delta, "text") or ""
            self.text_content += text

            index = _get(event, "index")
            if index is not None and 0 <= index < len(self.content):
                block = self.content[index]
                if block and block.get("type") == "text":
                    block["text"] = (block.get("text") or "") + text

        elif event_type == "message_delta":
            delta = _get(event, "delta")
            self.stop_reason = _get(delta, "stop_reason")
            self.stop_sequence = _get(delta, "stop_sequence")

            usage_delta = _get(event, "usage")
            if usage_delta is not None:
                merged = dict(self.usage or {})
                for key in ("input_tokens", "output_tokens"):
                    value = _get(usage_delta, key)
                    if value is not None:
                        merged[key] = value
                for key in ("cache_creation_input_tokens", "cache_read_input_tokens", "server_tool_use"):
                    merged[key] = to_plain(_get(usage_delta, key))
                self.usage = merged

    def to_normalized(self) -> NormalizedResponse:
        usage = self.usage or {}
        return NormalizedResponse(
            content=self.text_content or None,
            input_tokens=usage.get("input_tokens"),
            output_tokens=usage.get("output_tokens"),
            finish_reason=map_anthropic_stop_reason(self.stop_reason),
            model=self.model or "unknown",
        )


class OpenAIStreamAccumulator:
    """
    Rebuilds an OpenAI-compatible completion from chat.completion.chunk events.

    Usage only arrives when the request sets stream_options.include_usage.
    """

    def __init__(self):
        self.id: Optional[str] = None
        self.model: Optional[str] = None
        self.parts: List[str] = []
        self.finish_reason: Optional[str] = None
        self.usage: Optional[Dict[str, Any]] = None
        self.cost_cents: Optional[float] = None

    def process(self, chunk: Any) -> None:
        self.id = _get(chunk, "id") or self.id
        self.model = _get(chunk, "model") or self.model

        choices = _get(chunk, "choices") or []
        if choices:
            choice = choices[0]
            text = _get(_get(choice, "delta"), "content")
            if text:
                self.parts.append(text)
            finish_reason = _get(choice, "finish_reason")
            if finish_reason:
                self.finish_reason = finish_reason

        usage = to_plain(_get(chunk, "usage"))
        if isinstance(usage, dict):
            self.usage = usage

        cost = dollars_to_cents(_get(chunk, "cost"))
        if cost is not None:
            self.cost_cents = cost

    def to_normalized(self) -> NormalizedResponse:
        usage = self.usage or {}
        return NormalizedResponse(
            content="".join(self.parts) or None,
            input_tokens=usage.get("prompt_tokens"),
            output_tokens=usage.get("completion_tokens"),
            finish_reason=self.finish_reason,
            model=self.model or "unknown",
            cost_cents=self.cost_cents,
        )


# =============================================================================
# TRACED STREAMS
# =============================================================================

class _TracedStreamBase:
    def __init__(
        self,
        stream: Any,
        accumulator: Any,
        on_complete: Callable[[Any], None],
        on_error: Callable[[BaseException], None],
    ):
        self._stream = stream
        self._accumulator = accumulator
        self._on_complete = on_complete
        self._on_error = on_error
        self._iterator: Any = None
        self._recorded = False

    def __getattr__(self, name: str) -> Any:
        # Forward public attributes (response, headers, ...) to the wrapped stream
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self._stream, name)

    def _process(self, event: Any) -> None:
        try:
            self._accumulator.process(event)
        except Exception as e:
            logger.debug(f"Failed to accumulate stream event: {e}")

    def _record_success(self) -> None:
        if self._recorded:
            return
        self._recorded = True
        self._on_complete(self._accumulator)

    def _record_error(self, error: BaseException) -> None:
        if self._recorded:
            return
        self._recorded = True
        self._on_error(error)


class TracedStream(_TracedStreamBase):
    """Sync stream wrapper. Records one trace on exhaustion or first error."""

    def __iter__(self):
        return self

    def __next__(self) -> Any:
        if self._iterator is None:
            self._iterator = iter(self._stream)
        try:
            event = next(self._iterator)
        except StopIteration:
            self._record_success()
            raise
        except Exception as e:
            self._record_error(e)
            raise
        self._process(event)
        return event

    def close(self) -> None:
        close = getattr(self._stream, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "TracedStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class TracedAsyncStream(_TracedStreamBase):
    """Async stream wrapper. Records one trace on exhaustion or first error."""

    def __aiter__(self):
        return self

    async def __anext__(self) -> Any:
        if self._iterator is None:
            self._iterator = self._stream.__aiter__()
        try:
            event = await self._iterator.__anext__()
        except StopAsyncIteration:
            self._record_success()
            raise
        except Exception as e:
            self._record_error(e)
            raise
        self._process(event)
        return event

    async def close(self) -> None:
        close = getattr(self._stream, "close", None)
        if close is None:
            close = getattr(self._stream, "aclose", None)
        if close is not None:
            result = close()
            if inspect.isawaitable(result):
                await result

    async def aclose(self) -> None:
        await self.close()

    async def __aenter__(self) -> "TracedAsyncStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
