"""
Pulse - LLM call tracing and analytics.

- pulse.sdk: instrument OpenAI, Anthropic and OpenRouter clients
- pulse.core: trace ingestion, storage and analytics for the trace service
"""

__version__ = "1.0.0"
