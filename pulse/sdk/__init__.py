"""
Pulse SDK

Trace OpenAI, Anthropic and OpenRouter calls and ship them to a Pulse
trace service.

    from pulse.sdk import init_pulse, observe, Provider

    pulse = init_pulse(api_key="pulse_sk_...")
    client = observe(OpenAI(), pulse, Provider.OPENAI)
"""

from pulse.sdk.buffer import Pulse, init_pulse
from pulse.sdk.config import PulseConfig, load_config
from pulse.sdk.pricing import calculate_cost, has_pricing
from pulse.sdk.providers import ObserveOptions, Provider, observe

__all__ = [
    "Pulse",
    "PulseConfig",
    "Provider",
    "ObserveOptions",
    "init_pulse",
    "load_config",
    "observe",
    "calculate_cost",
    "has_pricing",
]
