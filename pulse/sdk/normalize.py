"""
Response Normalizers

Map OpenAI, OpenRouter and Anthropic responses onto one
provider-agnostic NormalizedResponse.

| Scenario      | OpenAI/OpenRouter | Anthropic     | Normalized |
|---------------|-------------------|---------------|------------|
| Normal end    | stop              | end_turn      | stop       |
| Max tokens    | length            | max_tokens    | length     |
| Stop sequence | stop              | stop_sequence | stop       |
| Tool use      | tool_calls        | tool_use      | tool_calls |

Responses may be plain dicts or SDK objects; both are read.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional


ANTHROPIC_STOP_REASON_MAP: Dict[str, str] = {
    "end_turn": "stop",
    "max_tokens": "length",
    "stop_sequence": "stop",
    "tool_use": "tool_calls",
    "pause_turn": "pause",
    "refusal": "refusal",
}


@dataclass
class NormalizedResponse:
    """Provider-agnostic view of a completed LLM call."""
    content: Optional[str] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    finish_reason: Optional[str] = None
    model: Optional[str] = None
    cost_cents: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """The response_body form sent on the wire."""
        data = {
            "content": self.content,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "finishReason": self.finish_reason,
            "model": self.model,
        }
        if self.cost_cents is not None:
            data["costCents"] = self.cost_cents
        return data


# =============================================================================
# FIELD ACCESS
# =============================================================================

def _get(obj: Any, key: str, default: Any = None) -> Any:
    """Read a field from a dict or an SDK object."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def to_plain(obj: Any) -> Any:
    """Convert an SDK object into plain JSON-ready data when possible."""
    if obj is None or isinstance(obj, (dict, list, str, int, float, bool)):
        return obj
    if hasattr(obj, "model_dump"):
        try:
            return obj.model_dump(mode="json")
        except TypeError:
            return obj.model_dump()
    if hasattr(obj, "__dict__"):
        return {k: v for k, v in vars(obj).items() if not k.startswith("_")}
    return obj


def response_id(response: Any) -> Optional[str]:
    rid = _get(response, "id")
    return str(rid) if rid else None


def map_anthropic_stop_reason(stop_reason: Optional[str]) -> Optional[str]:
    """Normalize an Anthropic stop_reason. Unmapped reasons pass through."""
    if not stop_reason:
        return None
    return ANTHROPIC_STOP_REASON_MAP.get(stop_reason, stop_reason)


def dollars_to_cents(cost: Any) -> Optional[float]:
    if cost is None:
        return None
    try:
        return float(cost) * 100
    except (TypeError, ValueError):
        return None


# =============================================================================
# NORMALIZERS
# =============================================================================

def normalize_openai_response(response: Any) -> NormalizedResponse:
    """
    Normalize an OpenAI chat completion.

    Also covers OpenRouter, which adds a top-level `cost` in dollars.
    """
    choices = _get(response, "choices") or []
    choice = choices[0] if choices else None
    message = _get(choice, "message")
    usage = _get(response, "usage")

    return NormalizedResponse(
        content=_get(message, "content"),
        input_tokens=_get(usage, "prompt_tokens"),
        output_tokens=_get(usage, "completion_tokens"),
        finish_reason=_get(choice, "finish_reason"),
        model=_get(response, "model"),
        cost_cents=dollars_to_cents(_get(response, "cost")),
    )


def normalize_anthropic_response(response: Any) -> NormalizedResponse:
    """Normalize an Anthropic message. Text blocks are concatenated in order."""
    text_parts = [
        _get(block, "text") or ""
        for block in (_get(response, "content") or [])
        if _get(block, "type") == "text"
    ]
    usage = _get(response, "usage")

    return NormalizedResponse(
        content="".join(text_parts) if text_parts else None,
        input_tokens=_get(usage, "input_tokens"),
        output_tokens=_get(usage, "output_tokens"),
        finish_reason=map_anthropic_stop_reason(_get(response, "stop_reason")),
        model=_get(response, "model"),
    )
