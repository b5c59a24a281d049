"""Base adapter interface for wire request formats."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

MESSAGES_REQUIRED = "messages is required and must be a non-empty array"


class RequestValidationError(ValueError):
    pass


@dataclass(frozen=True)
class AdaptedRequest:
    """A wire request reduced to what the CLI needs."""

    model: str  # CLI alias
    prompt: str
    client_id: str | None = None
    stream: bool = False


def system_block(text: str) -> str:
    return f"<system>\n{text}\n</system>\n"


def previous_response_block(text: str) -> str:
    return f"<previous_response>\n{text}\n</previous_response>\n"


def join_prompt(parts: list[str]) -> str:
    return "\n".join(parts).strip()


def text_from_content(content: Any, *, what: str = "content") -> str:
    """Flatten a string or a list of typed parts; only `type == "text"` parts count."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        raise RequestValidationError(f"'{what}' must be a string or an array of content parts.")

    parts: list[str] = []
    for part in content:
        if not isinstance(part, dict):
            raise RequestValidationError(f"Each '{what}' part must be an object.")
        part_type = part.get("type")
        if not isinstance(part_type, str):
            raise RequestValidationError(f"Each '{what}' part must have a string 'type'.")
        if part_type != "text":
            continue
        text = part.get("text")
        if isinstance(text, str):
            parts.append(text)
    return "".join(parts)


def optional_str(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is not None and not isinstance(value, str):
        raise RequestValidationError(f"'{key}' must be a string.")
    return value


def stream_flag(payload: dict[str, Any]) -> bool:
    value = payload.get("stream", False)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise RequestValidationError("'stream' must be a boolean.")
    return value


class BaseAdapter(ABC):
    """
    Abstract base class for request-format adapters.

    Each supported wire format implements this interface so the gateway can
    drive the CLI without knowing format-specific details.
    """

    @abstractmethod
    def parse(self, payload: Any) -> AdaptedRequest:
        """
        Validate a decoded JSON request body and reduce it to CLI inputs.

        Args:
            payload: The decoded request body.

        Returns:
            The adapted request.

        Raises:
            RequestValidationError: If the body is not a valid request.
        """
        pass
