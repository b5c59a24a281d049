"""Anthropic Messages encoding (named SSE events + non-streaming object)."""

from __future__ import annotations

from enum import Enum
from typing import Any

from ..aggregate import AggregatedResponse
from ..events import Closed, Completed, ContentDelta, Failed, ModelAnnounced, NormalizedEvent
from ..registry import DEFAULT_MODEL_NAME, normalize_model_name
from .base import BaseStreamEncoder, SseEvent

STOP_REASON = "end_turn"


class StreamState(Enum):
    IDLE = "idle"
    STARTED = "started"
    STOPPED = "stopped"


def anthropic_error(message: str, error_type: str = "server_error") -> dict[str, Any]:
    return {"type": "error", "error": {"type": error_type, "message": message}}


def _usage(
    input_tokens: int = 0,
    output_tokens: int = 0,
    cache_creation_input_tokens: int = 0,
    cache_read_input_tokens: int = 0,
) -> dict[str, int]:
    return {
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "cache_creation_input_tokens": cache_creation_input_tokens,
        "cache_read_input_tokens": cache_read_input_tokens,
    }


class AnthropicStreamEncoder(BaseStreamEncoder):
    """Multi-event encoder.

    The start events (message_start, ping, content_block_start) are emitted
    lazily on the first delta, or immediately before the stop sequence when
    the reply is empty.
    """

    def __init__(self, request_id: str) -> None:
        self._id = f"msg_{request_id}"
        self._model = DEFAULT_MODEL_NAME
        self._state = StreamState.IDLE
        self._output_tokens = 0
        self._failed = False

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def finished(self) -> bool:
        return self._failed or self._state is StreamState.STOPPED

    def _start_events(self) -> list[SseEvent]:
        self._state = StreamState.STARTED
        message = {
            "id": self._id,
            "type": "message",
            "role": "assistant",
            "content": [],
            "model": self._model,
            "stop_reason": None,
            "stop_sequence": None,
            "usage": _usage(),
        }
        return [
            SseEvent({"type": "message_start", "message": message}, event="message_start"),
            SseEvent({"type": "ping"}, event="ping"),
            SseEvent(
                {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
                event="content_block_start",
            ),
        ]

    def _error(self, message: str) -> list[SseEvent]:
        self._failed = True
        return [SseEvent(anthropic_error(message), event="error")]

    def feed(self, event: NormalizedEvent) -> list[SseEvent]:
        if self.finished:
            return []

        if isinstance(event, ModelAnnounced):
            self._model = event.name
            return []

        if isinstance(event, ContentDelta):
            out = self._start_events() if self._state is StreamState.IDLE else []
            out.append(
                SseEvent(
                    {
                        "type": "content_block_delta",
                        "index": 0,
                        "delta": {"type": "text_delta", "text": event.text},
                    },
                    event="content_block_delta",
                )
            )
            return out

        if isinstance(event, Completed):
            self._output_tokens += event.summary.total_usage().output_tokens
            out = self._start_events() if self._state is StreamState.IDLE else []
            out.extend(
                [
                    SseEvent({"type": "content_block_stop", "index": 0}, event="content_block_stop"),
                    SseEvent(
                        {
                            "type": "message_delta",
                            "delta": {"stop_reason": STOP_REASON, "stop_sequence": None},
                            "usage": {"output_tokens": self._output_tokens},
                        },
                        event="message_delta",
                    ),
                    SseEvent({"type": "message_stop"}, event="message_stop"),
                ]
            )
            self._state = StreamState.STOPPED
            return out

        if isinstance(event, Failed):
            return self._error(event.message)

        if isinstance(event, Closed):
            if self._state is StreamState.IDLE and event.exit_code != 0:
                return self._error(f"Process exited with code {event.exit_code}")
            return []

        return []


def build_message(response: AggregatedResponse, *, request_id: str) -> dict[str, Any]:
    """Non-streaming `message` object.

    The model is collapsed to its family name; only the streaming
    `message_start` carries the id exactly as announced.
    """
    usage = response.usage
    return {
        "id": f"msg_{request_id}",
        "type": "message",
        "role": "assistant",
        "content": [{"type": "text", "text": response.text}],
        "model": normalize_model_name(response.model),
        "stop_reason": STOP_REASON,
        "stop_sequence": None,
        "usage": _usage(
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            cache_creation_input_tokens=usage.cache_write_tokens,
            cache_read_input_tokens=usage.cache_read_tokens,
        ),
    }
