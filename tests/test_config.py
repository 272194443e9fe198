"""Tests for SDK configuration and client initialization."""

import pytest

from pulse.core.errors import ConfigurationError
from pulse.sdk.buffer import init_pulse
from pulse.sdk.config import PulseConfig, load_config
from tests.conftest import TEST_SDK_KEY, RecordingTransport


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("PULSE_API_KEY", "PULSE_API_URL", "PULSE_BATCH_SIZE", "PULSE_FLUSH_INTERVAL", "PULSE_ENABLED"):
        monkeypatch.delenv(name, raising=False)


class TestPulseConfigValidation:
    def test_defaults(self) -> None:
        config = PulseConfig(api_key=TEST_SDK_KEY).validate()
        assert config.api_url == "http://localhost:3000"
        assert config.batch_size == 10
        assert config.flush_interval == 5000
        assert config.enabled is True
        assert config.batch_endpoint == "http://localhost:3000/v1/traces/batch"

    def test_trailing_slash_stripped(self) -> None:
        config = PulseConfig(api_key=TEST_SDK_KEY, api_url="https://pulse.example.com/").validate()
        assert config.batch_endpoint == "https://pulse.example.com/v1/traces/batch"

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"api_key": ""}, "apiKey is required"),
            ({"api_key": "sk-openai-key"}, "must start with 'pulse_sk_'"),
            ({"batch_size": 0}, "batchSize must be between 1 and 100"),
            ({"batch_size": 101}, "batchSize must be between 1 and 100"),
            ({"flush_interval": 999}, "flushInterval must be at least 1000ms"),
            ({"timeout": 0}, "timeout must be positive"),
        ],
    )
    def test_invalid(self, overrides, message) -> None:
        values = {"api_key": TEST_SDK_KEY, **overrides}
        with pytest.raises(ConfigurationError, match=message):
            PulseConfig(**values).validate()


class TestLoadConfig:
    def test_reads_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("PULSE_API_KEY", TEST_SDK_KEY)
        monkeypatch.setenv("PULSE_API_URL", "https://env.example.com")
        monkeypatch.setenv("PULSE_BATCH_SIZE", "25")
        monkeypatch.setenv("PULSE_ENABLED", "false")

        config = load_config()

        assert config.api_key == TEST_SDK_KEY
        assert config.api_url == "https://env.example.com"
        assert config.batch_size == 25
        assert config.enabled is False

    def test_arguments_override_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("PULSE_API_KEY", "pulse_sk_from-env")
        monkeypatch.setenv("PULSE_BATCH_SIZE", "25")

        config = load_config(api_key=TEST_SDK_KEY, batch_size=5)

        assert config.api_key == TEST_SDK_KEY
        assert config.batch_size == 5

    def test_non_integer_env(self, monkeypatch) -> None:
        monkeypatch.setenv("PULSE_API_KEY", TEST_SDK_KEY)
        monkeypatch.setenv("PULSE_BATCH_SIZE", "lots")

        with pytest.raises(ConfigurationError, match="PULSE_BATCH_SIZE"):
            load_config()

    def test_missing_key(self) -> None:
        with pytest.raises(ConfigurationError):
            load_config()


class TestInitPulse:
    def test_from_options(self, recorder: RecordingTransport) -> None:
        pulse = init_pulse(api_key=TEST_SDK_KEY, batch_size=3, transport=recorder, register_handlers=False)

        assert pulse.enabled
        assert pulse.config.batch_size == 3
        assert pulse.transport is recorder
        # No running loop: the periodic flush waits for the first add()
        assert not pulse.flush_interval_running

    def test_from_config(self, recorder: RecordingTransport) -> None:
        config = PulseConfig(api_key=TEST_SDK_KEY, api_url="https://pulse.example.com/")
        pulse = init_pulse(config, transport=recorder, register_handlers=False)

        assert pulse.config.api_url == "https://pulse.example.com"

    def test_invalid_config_raises(self) -> None:
        with pytest.raises(ConfigurationError):
            init_pulse(api_key="not-a-pulse-key", register_handlers=False)

    @pytest.mark.asyncio
    async def test_starts_flush_interval_inside_loop(self, recorder: RecordingTransport) -> None:
        pulse = init_pulse(api_key=TEST_SDK_KEY, transport=recorder, register_handlers=False)

        assert pulse.flush_interval_running
        await pulse.shutdown()
