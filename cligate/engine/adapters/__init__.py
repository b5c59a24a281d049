# Request-format adapters
#
# Each adapter turns one wire request format into the CLI's inputs:
#   - model alias (for `--model`)
#   - a single prompt string
#   - an optional client id (mapped to a CLI session id)
#   - the caller's streaming preference

from .anthropic import AnthropicAdapter
from .base import AdaptedRequest, BaseAdapter, RequestValidationError
from .openai import OpenAIAdapter

__all__ = [
    "AdaptedRequest",
    "AnthropicAdapter",
    "BaseAdapter",
    "OpenAIAdapter",
    "RequestValidationError",
]
