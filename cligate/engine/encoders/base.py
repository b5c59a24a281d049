"""Base streaming encoder interface."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from ..events import NormalizedEvent


@dataclass(frozen=True)
class SseEvent:
    """One server-sent event.

    `data` is a JSON-serializable object, or a literal string such as "[DONE]".
    """

    data: Any
    event: str | None = None

    def encode(self) -> str:
        payload = self.data if isinstance(self.data, str) else json.dumps(self.data, ensure_ascii=False)
        if self.event is None:
            return f"data: {payload}\n\n"
        return f"event: {self.event}\ndata: {payload}\n\n"


def sse_comment(text: str = "") -> str:
    return f": {text}\n\n" if text else ":\n\n"


class BaseStreamEncoder(ABC):
    """
    Abstract base class for wire-format stream encoders.

    One instance per request. `feed` is called once per normalized event, in
    order, and returns the wire events to send (possibly none).
    """

    @abstractmethod
    def feed(self, event: NormalizedEvent) -> list[SseEvent]:
        pass

    @property
    @abstractmethod
    def finished(self) -> bool:
        """True once the encoder has written its terminal event(s)."""
        pass
