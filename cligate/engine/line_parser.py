"""CLI stdout line parsing.

With `--output-format stream-json --verbose --include-partial-messages` the CLI
writes one JSON object per line. Two families of shapes appear:

Top-level messages (tagged by "type"):

    {"type": "system", "subtype": "init", ...}
    {"type": "assistant", "message": {"model": "...", "content": [{"type": "text", "text": "..."}]}}
    {"type": "result", "result": "...", "exitCode": 0, "modelUsage": {"<model>": {...}}}

Partial streaming events:

    {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "..."}}
    {"type": "message_start" | "message_delta" | "message_stop" | "content_block_start" | ...}

A line is decoded strictly: a known field holding the wrong JSON type makes the
whole shape fail to match. Lines that match neither family are dropped.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from .events import Completed, ContentDelta, ModelAnnounced, ModelUsage, NormalizedEvent, ResultSummary


class _ShapeError(ValueError):
    pass


@dataclass(frozen=True)
class SystemMessage:
    subtype: str | None = None


@dataclass(frozen=True)
class AssistantMessage:
    model: str | None = None
    texts: tuple[str | None, ...] = ()


@dataclass(frozen=True)
class ResultMessage:
    summary: ResultSummary


@dataclass(frozen=True)
class PartialEvent:
    kind: str
    text: str | None = None


CliMessage = SystemMessage | AssistantMessage | ResultMessage

_PARTIAL_KINDS = frozenset(
    {
        "content_block_start",
        "content_block_delta",
        "content_block_stop",
        "message_start",
        "message_delta",
        "message_stop",
    }
)

# snake_case is the documented spelling; the CLI itself writes camelCase.
_USAGE_KEYS = {
    "input_tokens": ("input_tokens", "inputTokens"),
    "output_tokens": ("output_tokens", "outputTokens"),
    "cache_write_tokens": ("cache_write_tokens", "cacheCreationInputTokens"),
    "cache_read_tokens": ("cache_read_tokens", "cacheReadInputTokens"),
}


def _opt_str(obj: dict[str, Any], key: str) -> str | None:
    value = obj.get(key)
    if value is None or isinstance(value, str):
        return value
    raise _ShapeError(f"{key!r} must be a string")


def _opt_int(obj: dict[str, Any], key: str, *, unsigned: bool = True) -> int | None:
    value = obj.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise _ShapeError(f"{key!r} must be an integer")
    if unsigned and value < 0:
        raise _ShapeError(f"{key!r} must be >= 0")
    return value


def _opt_object(obj: dict[str, Any], key: str) -> dict[str, Any] | None:
    value = obj.get(key)
    if value is None or isinstance(value, dict):
        return value
    raise _ShapeError(f"{key!r} must be an object")


def _model_usage(raw: dict[str, Any]) -> ModelUsage:
    counts: dict[str, int] = {}
    for field_name, aliases in _USAGE_KEYS.items():
        count = 0
        for alias in aliases:
            value = _opt_int(raw, alias)
            if value is not None:
                count = value
                break
        counts[field_name] = count
    return ModelUsage(**counts)


def _decode_cli_message(obj: dict[str, Any]) -> CliMessage | None:
    kind = obj.get("type")
    if kind == "system":
        return SystemMessage(subtype=_opt_str(obj, "subtype"))

    if kind == "assistant":
        inner = _opt_object(obj, "message")
        if inner is None:
            return AssistantMessage()
        model = _opt_str(inner, "model")
        content = inner.get("content")
        if content is None:
            return AssistantMessage(model=model)
        if not isinstance(content, list):
            raise _ShapeError("'content' must be a list")
        texts: list[str | None] = []
        for block in content:
            if not isinstance(block, dict):
                raise _ShapeError("content blocks must be objects")
            _opt_str(block, "type")
            texts.append(_opt_str(block, "text"))
        return AssistantMessage(model=model, texts=tuple(texts))

    if kind == "result":
        usage_raw = _opt_object(obj, "modelUsage")
        model_usage: dict[str, ModelUsage] | None = None
        if usage_raw is not None:
            model_usage = {}
            for model_name, per_model in usage_raw.items():
                if not isinstance(per_model, dict):
                    raise _ShapeError("modelUsage entries must be objects")
                model_usage[model_name] = _model_usage(per_model)
        summary = ResultSummary(
            text=_opt_str(obj, "result") or "",
            exit_code=_opt_int(obj, "exitCode", unsigned=False),
            duration_ms=_opt_int(obj, "duration_ms"),
            duration_api_ms=_opt_int(obj, "duration_api_ms"),
            num_turns=_opt_int(obj, "num_turns"),
            model_usage=model_usage,
        )
        return ResultMessage(summary=summary)

    return None


def _decode_partial_event(obj: dict[str, Any]) -> PartialEvent | None:
    kind = obj.get("type")
    if kind not in _PARTIAL_KINDS:
        return None

    if kind == "content_block_delta":
        _opt_int(obj, "index")
        delta = obj.get("delta")
        if not isinstance(delta, dict):
            raise _ShapeError("'delta' must be an object")
        _opt_str(delta, "type")
        return PartialEvent(kind=kind, text=_opt_str(delta, "text"))

    if kind == "content_block_start":
        _opt_int(obj, "index")
        block = _opt_object(obj, "content_block")
        if block is not None:
            _opt_str(block, "type")
            _opt_str(block, "text")
    elif kind == "content_block_stop":
        _opt_int(obj, "index")
    return PartialEvent(kind=kind)


def decode_line(raw: str) -> CliMessage | PartialEvent | None:
    """Decode one stdout line into a known shape, or None if unrecognized."""
    try:
        obj = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(obj, dict):
        return None

    # Top-level message first, then partial event.
    try:
        message = _decode_cli_message(obj)
    except _ShapeError:
        message = None
    if message is not None:
        return message

    try:
        return _decode_partial_event(obj)
    except _ShapeError:
        return None


def events_for(decoded: CliMessage | PartialEvent | None) -> list[NormalizedEvent]:
    """Translate a decoded shape into normalized events (in emission order)."""
    if isinstance(decoded, AssistantMessage):
        events: list[NormalizedEvent] = []
        if decoded.model is not None:
            events.append(ModelAnnounced(decoded.model))
        for text in decoded.texts:
            if text:
                events.append(ContentDelta(text))
        return events

    if isinstance(decoded, ResultMessage):
        return [Completed(decoded.summary)]

    if isinstance(decoded, PartialEvent):
        if decoded.kind == "content_block_delta" and decoded.text:
            return [ContentDelta(decoded.text)]
        return []

    # SystemMessage and unrecognized lines.
    return []


def parse_line(raw: str) -> list[NormalizedEvent]:
    """Parse one raw stdout line. Never raises; unknown input yields []."""
    return events_for(decode_line(raw))
