"""OpenAI Chat Completions request adapter."""

from __future__ import annotations

from typing import Any

from ..registry import resolve_cli_alias
from .base import (
    MESSAGES_REQUIRED,
    AdaptedRequest,
    BaseAdapter,
    RequestValidationError,
    join_prompt,
    optional_str,
    previous_response_block,
    stream_flag,
    system_block,
    text_from_content,
)


def messages_to_prompt(messages: list[dict[str, Any]]) -> str:
    """Flatten a chat transcript into one prompt.

    - system messages are wrapped in <system> tags
    - user messages are included as bare text
    - assistant messages are wrapped in <previous_response> tags
    """
    parts: list[str] = []
    for msg in messages:
        text = text_from_content(msg.get("content"))
        role = msg.get("role")
        if role == "system":
            parts.append(system_block(text))
        elif role == "assistant":
            parts.append(previous_response_block(text))
        else:
            # Unknown roles are treated as user input.
            parts.append(text)
    return join_prompt(parts)


class OpenAIAdapter(BaseAdapter):
    def parse(self, payload: Any) -> AdaptedRequest:
        if not isinstance(payload, dict):
            raise RequestValidationError("Request body must be a JSON object.")

        raw_messages = payload.get("messages")
        if not isinstance(raw_messages, list) or not raw_messages:
            raise RequestValidationError(MESSAGES_REQUIRED)
        for msg in raw_messages:
            if not isinstance(msg, dict):
                raise RequestValidationError("Each message must be an object.")
            if not isinstance(msg.get("role"), str):
                raise RequestValidationError("Each message must have a string 'role'.")

        return AdaptedRequest(
            model=resolve_cli_alias(optional_str(payload, "model")),
            prompt=messages_to_prompt(raw_messages),
            client_id=optional_str(payload, "user"),
            stream=stream_flag(payload),
        )
