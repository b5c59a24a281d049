"""OpenAI Chat Completions encoding (streaming chunks + non-streaming object)."""

from __future__ import annotations

import time
from typing import Any

from ..aggregate import AggregatedResponse
from ..events import Closed, Completed, ContentDelta, Failed, ModelAnnounced, NormalizedEvent
from ..registry import DEFAULT_MODEL_NAME, normalize_model_name
from .base import BaseStreamEncoder, SseEvent

DONE = SseEvent("[DONE]")


def openai_error(message: str, error_type: str = "server_error", code: str | None = None) -> dict[str, Any]:
    return {"error": {"message": message, "type": error_type, "code": code}}


class OpenAIStreamEncoder(BaseStreamEncoder):
    """Incremental-delta encoder.

    Chunk sequence for a normal run:
        {"delta": {"role": "assistant", "content": "He"}}
        {"delta": {"content": "llo"}}
        {"delta": {}, "finish_reason": "stop"}
        [DONE]
    """

    def __init__(self, request_id: str, *, created: int | None = None) -> None:
        self._id = f"chatcmpl-{request_id}"
        self._created = int(time.time()) if created is None else int(created)
        self._model = DEFAULT_MODEL_NAME
        self._first_chunk_sent = False
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def model(self) -> str:
        return normalize_model_name(self._model)

    def _chunk(self, delta: dict[str, Any], finish_reason: str | None) -> SseEvent:
        return SseEvent(
            {
                "id": self._id,
                "object": "chat.completion.chunk",
                "created": self._created,
                "model": self.model,
                "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
            }
        )

    def _stop(self) -> list[SseEvent]:
        self._finished = True
        return [self._chunk({}, "stop"), DONE]

    def _error(self, message: str) -> list[SseEvent]:
        self._finished = True
        return [SseEvent(openai_error(message)), DONE]

    def feed(self, event: NormalizedEvent) -> list[SseEvent]:
        if self._finished:
            return []

        if isinstance(event, ModelAnnounced):
            self._model = event.name
            return []

        if isinstance(event, ContentDelta):
            if self._first_chunk_sent:
                delta: dict[str, Any] = {"content": event.text}
            else:
                delta = {"role": "assistant", "content": event.text}
                self._first_chunk_sent = True
            return [self._chunk(delta, None)]

        if isinstance(event, Completed):
            return self._stop()

        if isinstance(event, Failed):
            return self._error(event.message)

        if isinstance(event, Closed):
            # Reached only when no Completed preceded it.
            if event.exit_code != 0:
                return self._error(f"Process exited with code {event.exit_code}")
            return self._stop()

        return []


def build_chat_completion(
    response: AggregatedResponse,
    *,
    request_id: str,
    created: int | None = None,
) -> dict[str, Any]:
    """Non-streaming `chat.completion` object."""
    body: dict[str, Any] = {
        "id": f"chatcmpl-{request_id}",
        "object": "chat.completion",
        "created": int(time.time()) if created is None else int(created),
        "model": normalize_model_name(response.model),
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": response.text},
                "finish_reason": "stop",
            }
        ],
    }
    if response.usage_reported:
        body["usage"] = {
            "prompt_tokens": response.usage.input_tokens,
            "completion_tokens": response.usage.output_tokens,
            "total_tokens": response.usage.total_tokens,
        }
    return body
