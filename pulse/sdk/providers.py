"""
Provider Adapters

Instrument an LLM client so that every create() call records one trace:
- OpenAI: client.chat.completions.create
- OpenRouter: the OpenAI client pointed at openrouter.ai
- Anthropic: client.messages.create

Sync and async clients are both supported. The caller always gets the
provider's own return value or exception; instrumentation failures are
logged and never surface.
"""

from __future__ import annotations
import functools
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from pulse.core.errors import ConfigurationError
from pulse.sdk.buffer import Pulse
from pulse.sdk.normalize import (
    NormalizedResponse,
    normalize_anthropic_response,
    normalize_openai_response,
    response_id,
)
from pulse.sdk.streaming import (
    AnthropicStreamAccumulator,
    OpenAIStreamAccumulator,
    TracedAsyncStream,
    TracedStream,
)
from pulse.sdk.tracing import (
    CallTimer,
    TraceMetadata,
    build_error_trace,
    build_trace,
    extract_pulse_params,
    resolve_trace_metadata,
    start_timer,
)

logger = logging.getLogger("pulse.sdk.providers")


class Provider(str, Enum):
    """Which client family to instrument."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OPENROUTER = "openrouter"
    AUTO = "auto"


@dataclass
class ObserveOptions:
    """Defaults applied to every trace from an observed client."""
    session_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


# =============================================================================
# BASE ADAPTER
# =============================================================================

class ProviderAdapter:
    """
    Wraps one provider's create method.

    Subclasses supply the create target, the response normalizer and the
    stream accumulator.
    """

    def __init__(
        self,
        pulse: Pulse,
        provider: Provider,
        options: Optional[ObserveOptions] = None,
    ):
        self.pulse = pulse
        self.provider = provider
        self.options = options or ObserveOptions()

    # Provider-specific hooks

    def create_owner(self, client: Any) -> Any:
        raise NotImplementedError

    def normalize(self, response: Any) -> NormalizedResponse:
        raise NotImplementedError

    def new_accumulator(self) -> Any:
        raise NotImplementedError

    # Instrumentation

    def instrument(self, client: Any) -> Any:
        owner = self.create_owner(client)
        create = owner.create
        if getattr(create, "_pulse_wrapped", False):
            logger.debug(f"{self.provider.value} client already observed")
            return client
        owner.create = self.wrap(create)
        return client

    def wrap(self, create: Callable) -> Callable:
        """Return a traced replacement for create."""
        if inspect.iscoroutinefunction(create):
            @functools.wraps(create)
            async def async_wrapper(*args, **kwargs):
                return await self._call(create, args, kwargs)

            async_wrapper._pulse_wrapped = True
            return async_wrapper

        @functools.wraps(create)
        def sync_wrapper(*args, **kwargs):
            return self._call(create, args, kwargs)

        sync_wrapper._pulse_wrapped = True
        return sync_wrapper

    def _call(self, create: Callable, args: tuple, kwargs: Dict[str, Any]) -> Any:
        request, payload_session_id, payload_metadata = extract_pulse_params(kwargs)

        if not self.pulse.enabled:
            return create(*args, **request)

        trace_metadata = resolve_trace_metadata(
            self.options.session_id,
            self.options.metadata,
            payload_session_id,
            payload_metadata,
        )
        timer = start_timer()

        try:
            result = create(*args, **request)
        except Exception as e:
            self._record_error(request, e, timer, trace_metadata)
            raise

        # Async clients return an awaitable even when create is not a coroutine function
        if inspect.isawaitable(result):
            return self._await_result(result, request, timer, trace_metadata)
        return self._handle_result(result, request, timer, trace_metadata)

    async def _await_result(
        self,
        awaitable: Any,
        request: Dict[str, Any],
        timer: CallTimer,
        trace_metadata: TraceMetadata,
    ) -> Any:
        try:
            result = await awaitable
        except Exception as e:
            self._record_error(request, e, timer, trace_metadata)
            raise
        return self._handle_result(result, request, timer, trace_metadata)

    def _handle_result(
        self,
        result: Any,
        request: Dict[str, Any],
        timer: CallTimer,
        trace_metadata: TraceMetadata,
    ) -> Any:
        if request.get("stream") is True:
            return self._wrap_stream(result, request, timer, trace_metadata)

        self._record_success(request, result, timer, trace_metadata)
        return result

    def _wrap_stream(
        self,
        stream: Any,
        request: Dict[str, Any],
        timer: CallTimer,
        trace_metadata: TraceMetadata,
    ) -> Any:
        def on_complete(accumulator: Any) -> None:
            try:
                trace = build_trace(
                    request,
                    accumulator.to_normalized(),
                    self.provider.value,
                    timer,
                    trace_metadata,
                    provider_request_id=accumulator.id,
                )
                self.pulse.add(trace)
            except Exception as e:
                logger.error(f"Pulse SDK: failed to record stream trace: {e}")

        def on_error(error: BaseException) -> None:
            self._record_error(request, error, timer, trace_metadata)

        stream_cls = TracedAsyncStream if hasattr(stream, "__aiter__") else TracedStream
        return stream_cls(stream, self.new_accumulator(), on_complete, on_error)

    def _record_success(
        self,
        request: Dict[str, Any],
        response: Any,
        timer: CallTimer,
        trace_metadata: TraceMetadata,
    ) -> None:
        try:
            trace = build_trace(
                request,
                self.normalize(response),
                self.provider.value,
                timer,
                trace_metadata,
                provider_request_id=response_id(response),
            )
            self.pulse.add(trace)
        except Exception as e:
            logger.error(f"Pulse SDK: failed to record trace: {e}")

    def _record_error(
        self,
        request: Dict[str, Any],
        error: BaseException,
        timer: CallTimer,
        trace_metadata: TraceMetadata,
    ) -> None:
        try:
            trace = build_error_trace(request, error, self.provider.value, timer, trace_metadata)
            self.pulse.add(trace)
        except Exception as e:
            logger.error(f"Pulse SDK: failed to record error trace: {e}")


# =============================================================================
# PROVIDERS
# =============================================================================

class OpenAIAdapter(ProviderAdapter):
    """OpenAI chat completions. Also used for OpenRouter."""

    def create_owner(self, client: Any) -> Any:
        return client.chat.completions

    def normalize(self, response: Any) -> NormalizedResponse:
        return normalize_openai_response(response)

    def new_accumulator(self) -> OpenAIStreamAccumulator:
        return OpenAIStreamAccumulator()


class AnthropicAdapter(ProviderAdapter):
    """Anthropic messages."""

    def create_owner(self, client: Any) -> Any:
        return client.messages

    def normalize(self, response: Any) -> NormalizedResponse:
        return normalize_anthropic_response(response)

    def new_accumulator(self) -> AnthropicStreamAccumulator:
        return AnthropicStreamAccumulator()


ADAPTERS = {
    Provider.OPENAI: OpenAIAdapter,
    Provider.OPENROUTER: OpenAIAdapter,
    Provider.ANTHROPIC: AnthropicAdapter,
}


def detect_provider(client: Any) -> Provider:
    """
    Resolve Provider.AUTO from the client.

    Anthropic clients expose messages; OpenAI clients expose chat, and are
    treated as OpenRouter when their base_url points at openrouter.ai.
    """
    module = type(client).__module__ or ""

    if module.startswith("anthropic") or (hasattr(client, "messages") and not hasattr(client, "chat")):
        return Provider.ANTHROPIC

    if module.startswith("openai") or hasattr(client, "chat"):
        base_url = str(getattr(client, "base_url", "") or "")
        if "openrouter" in base_url:
            return Provider.OPENROUTER
        return Provider.OPENAI

    raise ConfigurationError(
        f"Pulse SDK: cannot detect provider for {type(client).__name__}; "
        "pass provider= explicitly"
    )


def observe(
    client: Any,
    pulse: Pulse,
    provider: Provider = Provider.AUTO,
    options: Optional[ObserveOptions] = None,
    *,
    session_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Any:
    """
    Instrument a provider client in place and return it.

    Usage:
        client = observe(OpenAI(), pulse, Provider.OPENAI, session_id=sid)
        client.chat.completions.create(model="gpt-4o", messages=[...])

    Per-call correlation is also accepted as pulse_session_id= and
    pulse_metadata= kwargs; observe-time values take precedence.
    """
    provider = Provider(provider)
    if provider == Provider.AUTO:
        provider = detect_provider(client)

    if options is None:
        options = ObserveOptions(session_id=session_id, metadata=metadata)

    adapter = ADAPTERS[provider](pulse, provider, options)
    return adapter.instrument(client)
