"""Tests for client instrumentation (observe) across providers."""

import pytest

from pulse.core.errors import ConfigurationError
from pulse.sdk.buffer import Pulse
from pulse.sdk.config import PulseConfig
from pulse.sdk.providers import ObserveOptions, Provider, detect_provider, observe
from tests.conftest import TEST_SDK_KEY, RecordingTransport
from tests.test_streaming import FakeAsyncStream, FakeStream, anthropic_events, openai_chunks


def openai_completion(model="gpt-4o", content="Hello!", **extra):
    response = {
        "id": "chatcmpl-abc",
        "model": model,
        "choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 1000, "completion_tokens": 500},
    }
    response.update(extra)
    return response


def anthropic_message():
    return {
        "id": "msg_abc",
        "model": "claude-3-5-sonnet-20241022",
        "content": [{"type": "text", "text": "Bonjour"}],
        "stop_reason": "max_tokens",
        "usage": {"input_tokens": 10, "output_tokens": 20},
    }


# =============================================================================
# FAKE CLIENTS
# =============================================================================

class FakeCompletions:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return self.result


class FakeAsyncCompletions(FakeCompletions):
    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return self.result


class FakeAwaitableCompletions(FakeCompletions):
    """create() is a plain function returning a coroutine, like decorated SDK methods."""

    def create(self, **kwargs):
        self.calls.append(kwargs)
        return self._respond()

    async def _respond(self):
        if self.error:
            raise self.error
        return self.result


class FakeChat:
    def __init__(self, completions):
        self.completions = completions


class FakeOpenAI:
    def __init__(self, completions, base_url="https://api.openai.com/v1"):
        self.chat = FakeChat(completions)
        self.base_url = base_url


class FakeAnthropic:
    def __init__(self, messages):
        self.messages = messages


@pytest.fixture
def disabled_pulse(recorder: RecordingTransport) -> Pulse:
    config = PulseConfig(api_key=TEST_SDK_KEY, enabled=False).validate()
    return Pulse(config, transport=recorder)


# =============================================================================
# NON-STREAMING
# =============================================================================

class TestObserveOpenAI:
    def test_records_success_trace(self, pulse: Pulse) -> None:
        completions = FakeCompletions(result=openai_completion())
        client = observe(FakeOpenAI(completions), pulse, Provider.OPENAI)

        result = client.chat.completions.create(model="gpt-4o", messages=[{"role": "user", "content": "hi"}])

        assert result["id"] == "chatcmpl-abc"
        assert len(pulse) == 1
        trace = pulse.pending[0]
        assert trace.provider == "openai"
        assert trace.status == "success"
        assert trace.model_requested == "gpt-4o"
        assert trace.model_used == "gpt-4o"
        assert trace.output_text == "Hello!"
        assert trace.input_tokens == 1000
        assert trace.output_tokens == 500
        assert trace.cost_cents == pytest.approx(0.75)
        assert trace.provider_request_id == "chatcmpl-abc"
        assert trace.latency_ms >= 0
        assert trace.request_body["messages"][0]["content"] == "hi"

    def test_unpriced_model_has_no_cost(self, pulse: Pulse) -> None:
        completions = FakeCompletions(result=openai_completion(model="llama-3-70b"))
        client = observe(FakeOpenAI(completions), pulse, Provider.OPENAI)

        client.chat.completions.create(model="llama-3-70b", messages=[])

        assert pulse.pending[0].cost_cents is None

    def test_error_recorded_and_reraised(self, pulse: Pulse) -> None:
        completions = FakeCompletions(error=ValueError("rate limited"))
        client = observe(FakeOpenAI(completions), pulse, Provider.OPENAI)

        with pytest.raises(ValueError, match="rate limited"):
            client.chat.completions.create(model="gpt-4o", messages=[])

        trace = pulse.pending[0]
        assert trace.status == "error"
        assert trace.error["name"] == "ValueError"
        assert trace.error["message"] == "rate limited"
        assert "ValueError" in trace.error["stack"]
        assert trace.output_text is None

    def test_correlation_params_stripped(self, pulse: Pulse) -> None:
        completions = FakeCompletions(result=openai_completion())
        client = observe(FakeOpenAI(completions), pulse, Provider.OPENAI)

        client.chat.completions.create(
            model="gpt-4o",
            messages=[],
            pulse_session_id="sess-1",
            pulse_metadata={"user": "u1"},
        )

        assert "pulse_session_id" not in completions.calls[0]
        assert "pulse_metadata" not in completions.calls[0]
        trace = pulse.pending[0]
        assert trace.session_id == "sess-1"
        assert trace.metadata == {"user": "u1"}
        assert "pulse_session_id" not in trace.request_body

    def test_observe_options_override_call_params(self, pulse: Pulse) -> None:
        completions = FakeCompletions(result=openai_completion())
        client = observe(
            FakeOpenAI(completions),
            pulse,
            Provider.OPENAI,
            ObserveOptions(session_id="from-observe"),
        )

        client.chat.completions.create(
            model="gpt-4o",
            messages=[],
            pulse_session_id="from-call",
            pulse_metadata={"k": "v"},
        )

        trace = pulse.pending[0]
        assert trace.session_id == "from-observe"
        assert trace.metadata == {"k": "v"}

    def test_observe_twice_wraps_once(self, pulse: Pulse) -> None:
        completions = FakeCompletions(result=openai_completion())
        client = FakeOpenAI(completions)
        observe(client, pulse, Provider.OPENAI)
        observe(client, pulse, Provider.OPENAI)

        client.chat.completions.create(model="gpt-4o", messages=[])

        assert len(pulse) == 1

    def test_disabled_passes_through(self, disabled_pulse: Pulse) -> None:
        completions = FakeCompletions(result=openai_completion())
        client = observe(FakeOpenAI(completions), disabled_pulse, Provider.OPENAI)

        result = client.chat.completions.create(model="gpt-4o", messages=[], pulse_session_id="s")

        assert result["id"] == "chatcmpl-abc"
        assert "pulse_session_id" not in completions.calls[0]
        assert len(disabled_pulse) == 0


class TestObserveAnthropic:
    def test_records_normalized_trace(self, pulse: Pulse) -> None:
        messages = FakeCompletions(result=anthropic_message())
        client = observe(FakeAnthropic(messages), pulse, Provider.ANTHROPIC)

        client.messages.create(model="claude-3-5-sonnet-20241022", max_tokens=20, messages=[])

        trace = pulse.pending[0]
        assert trace.provider == "anthropic"
        assert trace.output_text == "Bonjour"
        assert trace.finish_reason == "length"
        assert trace.response_body["finishReason"] == "length"
        assert trace.provider_request_id == "msg_abc"


class TestObserveAsync:
    @pytest.mark.asyncio
    async def test_async_create(self, pulse: Pulse) -> None:
        completions = FakeAsyncCompletions(result=openai_completion())
        client = observe(FakeOpenAI(completions), pulse, Provider.OPENAI)

        result = await client.chat.completions.create(model="gpt-4o", messages=[])

        assert result["model"] == "gpt-4o"
        assert len(pulse) == 1

    @pytest.mark.asyncio
    async def test_create_returning_awaitable(self, pulse: Pulse) -> None:
        completions = FakeAwaitableCompletions(result=anthropic_message())
        client = observe(FakeAnthropic(completions), pulse, Provider.ANTHROPIC)

        result = await client.messages.create(model="claude-3-5-sonnet-20241022", messages=[])

        assert result["id"] == "msg_abc"
        assert pulse.pending[0].status == "success"

    @pytest.mark.asyncio
    async def test_async_error_recorded(self, pulse: Pulse) -> None:
        completions = FakeAwaitableCompletions(error=TimeoutError("slow"))
        client = observe(FakeOpenAI(completions), pulse, Provider.OPENAI)

        with pytest.raises(TimeoutError):
            await client.chat.completions.create(model="gpt-4o", messages=[])

        assert pulse.pending[0].error["name"] == "TimeoutError"


# =============================================================================
# STREAMING
# =============================================================================

class TestObserveStreaming:
    def test_sync_stream_records_once_on_completion(self, pulse: Pulse) -> None:
        events = anthropic_events()
        messages = FakeCompletions(result=FakeStream(events))
        client = observe(FakeAnthropic(messages), pulse, Provider.ANTHROPIC)

        stream = client.messages.create(model="claude-3-5-sonnet-20241022", messages=[], stream=True)
        assert len(pulse) == 0

        received = list(stream)

        assert received == events
        assert len(pulse) == 1
        trace = pulse.pending[0]
        assert trace.output_text == "Hello world"
        assert trace.finish_reason == "stop"
        assert trace.input_tokens == 25
        assert trace.output_tokens == 12
        assert trace.provider_request_id == "msg_01"

    def test_stream_error_records_error_trace(self, pulse: Pulse) -> None:
        messages = FakeCompletions(result=FakeStream(anthropic_events(), fail_after=3))
        client = observe(FakeAnthropic(messages), pulse, Provider.ANTHROPIC)

        stream = client.messages.create(model="claude-3-5-sonnet-20241022", messages=[], stream=True)
        with pytest.raises(ConnectionError):
            for _ in stream:
                pass

        assert len(pulse) == 1
        assert pulse.pending[0].status == "error"

    def test_abandoned_stream_records_nothing(self, pulse: Pulse) -> None:
        raw = FakeStream(anthropic_events())
        messages = FakeCompletions(result=raw)
        client = observe(FakeAnthropic(messages), pulse, Provider.ANTHROPIC)

        stream = client.messages.create(model="claude-3-5-sonnet-20241022", messages=[], stream=True)
        next(stream)
        stream.close()

        assert raw.closed
        assert len(pulse) == 0

    @pytest.mark.asyncio
    async def test_async_stream_records_once(self, pulse: Pulse) -> None:
        completions = FakeAsyncCompletions(result=FakeAsyncStream(openai_chunks()))
        client = observe(FakeOpenAI(completions), pulse, Provider.OPENAI)

        stream = await client.chat.completions.create(model="gpt-4o", messages=[], stream=True)
        async for _ in stream:
            pass

        assert len(pulse) == 1
        trace = pulse.pending[0]
        assert trace.output_text == "Hi there"
        assert trace.input_tokens == 9
        assert trace.provider_request_id == "chatcmpl-9"


# =============================================================================
# PROVIDER DETECTION
# =============================================================================

class TestDetectProvider:
    def test_openai(self) -> None:
        assert detect_provider(FakeOpenAI(FakeCompletions())) == Provider.OPENAI

    def test_openrouter_by_base_url(self) -> None:
        client = FakeOpenAI(FakeCompletions(), base_url="https://openrouter.ai/api/v1")
        assert detect_provider(client) == Provider.OPENROUTER

    def test_anthropic(self) -> None:
        assert detect_provider(FakeAnthropic(FakeCompletions())) == Provider.ANTHROPIC

    def test_unknown_client(self) -> None:
        with pytest.raises(ConfigurationError):
            detect_provider(object())

    def test_auto_openrouter_trace_provider(self, pulse: Pulse) -> None:
        completions = FakeCompletions(result=openai_completion(cost=0.002))
        client = observe(FakeOpenAI(completions, base_url="https://openrouter.ai/api/v1"), pulse)

        client.chat.completions.create(model="openai/gpt-4o", messages=[])

        trace = pulse.pending[0]
        assert trace.provider == "openrouter"
        assert trace.cost_cents == pytest.approx(0.2)
