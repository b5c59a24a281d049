# Wire-format encoders
#
# Each encoder consumes one request's normalized events and produces that
# wire format's exact SSE event sequence. Encoder state is per request.

from .anthropic import AnthropicStreamEncoder, build_message
from .base import BaseStreamEncoder, SseEvent
from .openai import OpenAIStreamEncoder, build_chat_completion

__all__ = [
    "AnthropicStreamEncoder",
    "BaseStreamEncoder",
    "OpenAIStreamEncoder",
    "SseEvent",
    "build_chat_completion",
    "build_message",
]
