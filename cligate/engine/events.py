"""Normalized request and event types.

These types are internal to the library and are intentionally decoupled from:
- HTTP transport (FastAPI / SSE)
- OpenAI / Anthropic request and response JSON envelopes
- The CLI's own stdout JSON shapes

Every unit of progress the CLI reports is translated into one of the events
below before any wire format sees it.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CliRequest:
    """Normalized request descriptor handed to the process supervisor."""

    prompt: str
    model: str  # CLI model alias ("opus" | "sonnet" | "haiku")
    session_id: str | None = None
    cwd: str = "."


@dataclass(frozen=True)
class ModelUsage:
    """Token counts reported for one model."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_write_tokens: int = 0
    cache_read_tokens: int = 0


@dataclass(frozen=True)
class UsageTotals:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_write_tokens: int = 0
    cache_read_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class ResultSummary:
    """The CLI's final `result` message.

    Notes:
    - `model_usage` is None when the CLI never reported usage at all; an empty
      mapping means it reported usage for no models.
    - Per-model counts are kept as reported; summing happens at encoding time.
    """

    text: str = ""
    exit_code: int | None = None
    duration_ms: int | None = None
    duration_api_ms: int | None = None
    num_turns: int | None = None
    model_usage: dict[str, ModelUsage] | None = None

    def total_usage(self) -> UsageTotals:
        if not self.model_usage:
            return UsageTotals()
        return UsageTotals(
            input_tokens=sum(u.input_tokens for u in self.model_usage.values()),
            output_tokens=sum(u.output_tokens for u in self.model_usage.values()),
            cache_write_tokens=sum(u.cache_write_tokens for u in self.model_usage.values()),
            cache_read_tokens=sum(u.cache_read_tokens for u in self.model_usage.values()),
        )


@dataclass(frozen=True)
class ModelAnnounced:
    """The CLI revealed which model served the request (last one wins)."""

    name: str


@dataclass(frozen=True)
class ContentDelta:
    """A non-empty fragment of generated text."""

    text: str


@dataclass(frozen=True)
class Completed:
    """The CLI reported a logical end of generation."""

    summary: ResultSummary


@dataclass(frozen=True)
class Failed:
    """Terminal failure (spawn error, inactivity timeout)."""

    message: str


@dataclass(frozen=True)
class Closed:
    """The process exited."""

    exit_code: int


NormalizedEvent = ModelAnnounced | ContentDelta | Completed | Failed | Closed
