"""Anthropic Messages request adapter."""

from __future__ import annotations

from typing import Any

from ..registry import resolve_cli_alias
from .base import (
    MESSAGES_REQUIRED,
    AdaptedRequest,
    BaseAdapter,
    RequestValidationError,
    join_prompt,
    previous_response_block,
    stream_flag,
    system_block,
    text_from_content,
)


def messages_to_prompt(system: Any, messages: list[dict[str, Any]]) -> str:
    """Flatten a top-level system prompt plus transcript into one prompt."""
    parts: list[str] = []

    if system is not None:
        system_text = text_from_content(system, what="system")
        if system_text:
            parts.append(system_block(system_text))

    for msg in messages:
        text = text_from_content(msg.get("content"))
        if msg.get("role") == "assistant":
            parts.append(previous_response_block(text))
        else:
            parts.append(text)
    return join_prompt(parts)


class AnthropicAdapter(BaseAdapter):
    def parse(self, payload: Any) -> AdaptedRequest:
        if not isinstance(payload, dict):
            raise RequestValidationError("Request body must be a JSON object.")

        model = payload.get("model")
        if not isinstance(model, str):
            raise RequestValidationError("'model' is required and must be a string.")

        max_tokens = payload.get("max_tokens")
        if isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens < 0:
            raise RequestValidationError("'max_tokens' is required and must be a non-negative integer.")

        raw_messages = payload.get("messages")
        if not isinstance(raw_messages, list) or not raw_messages:
            raise RequestValidationError(MESSAGES_REQUIRED)
        for msg in raw_messages:
            if not isinstance(msg, dict):
                raise RequestValidationError("Each message must be an object.")
            if not isinstance(msg.get("role"), str):
                raise RequestValidationError("Each message must have a string 'role'.")
            if msg.get("content") is None:
                raise RequestValidationError("Each message must have 'content'.")

        client_id = None
        metadata = payload.get("metadata")
        if metadata is not None:
            if not isinstance(metadata, dict):
                raise RequestValidationError("'metadata' must be an object.")
            client_id = metadata.get("user_id")
            if client_id is not None and not isinstance(client_id, str):
                raise RequestValidationError("'metadata.user_id' must be a string.")

        return AdaptedRequest(
            model=resolve_cli_alias(model),
            prompt=messages_to_prompt(payload.get("system"), raw_messages),
            client_id=client_id,
            stream=stream_flag(payload),
        )
