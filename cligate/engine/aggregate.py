"""Non-streaming aggregation.

Folds one request's normalized events into a single response, independent of
wire format. The format-specific JSON objects are built by
`encoders.openai.build_chat_completion` and `encoders.anthropic.build_message`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterable

from .events import (
    Closed,
    Completed,
    ContentDelta,
    Failed,
    ModelAnnounced,
    NormalizedEvent,
    ResultSummary,
    UsageTotals,
)
from .registry import DEFAULT_MODEL_NAME


class ProcessFailedError(RuntimeError):
    """The CLI process failed (spawn error, timeout)."""


class EmptyCompletionError(RuntimeError):
    """The CLI process exited without ever reporting a result."""

    def __init__(self, exit_code: int) -> None:
        super().__init__(f"Process exited with code {exit_code} without producing a response")
        self.exit_code = exit_code


@dataclass(frozen=True)
class AggregatedResponse:
    text: str
    model: str
    usage: UsageTotals
    usage_reported: bool
    exit_code: int | None = None


class ResponseAggregator:
    def __init__(self) -> None:
        self._parts: list[str] = []
        self._model = DEFAULT_MODEL_NAME
        self._summary: ResultSummary | None = None
        self._failure: str | None = None
        self._exit_code: int | None = None

    def feed(self, event: NormalizedEvent) -> None:
        if isinstance(event, ModelAnnounced):
            self._model = event.name
        elif isinstance(event, ContentDelta):
            self._parts.append(event.text)
        elif isinstance(event, Completed):
            self._summary = event.summary
        elif isinstance(event, Failed):
            self._failure = event.message
        elif isinstance(event, Closed):
            self._exit_code = event.exit_code

    def finish(self) -> AggregatedResponse:
        """Build the final response.

        Raises:
            ProcessFailedError: A `Failed` event was seen.
            EmptyCompletionError: No `Completed` event was seen.
        """
        if self._failure is not None:
            raise ProcessFailedError(self._failure)
        if self._summary is None:
            raise EmptyCompletionError(-1 if self._exit_code is None else self._exit_code)

        text = "".join(self._parts) if self._parts else self._summary.text
        return AggregatedResponse(
            text=text,
            model=self._model,
            usage=self._summary.total_usage(),
            usage_reported=self._summary.model_usage is not None,
            exit_code=self._exit_code,
        )


async def aggregate_events(events: AsyncIterable[NormalizedEvent]) -> AggregatedResponse:
    """Drain an event stream and return the aggregated response."""
    aggregator = ResponseAggregator()
    async for event in events:
        aggregator.feed(event)
    return aggregator.finish()
