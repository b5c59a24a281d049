"""
cligate - OpenAI & Anthropic-compatible HTTP gateway for the Claude Code CLI.

Each inbound chat request drives one `claude --print` subprocess. Its
line-delimited JSON output is normalized into a small event vocabulary and
re-encoded as either wire format (streaming SSE or a single JSON object).

Submodules:
    - cligate.engine.events: Normalized event types
    - cligate.engine.line_parser: CLI stdout line decoding
    - cligate.engine.supervisor: Subprocess lifecycle and cancellation
    - cligate.engine.encoders: Streaming encoders (OpenAI, Anthropic)
    - cligate.engine.aggregate: Non-streaming aggregation
    - cligate.engine.adapters: Request parsing (OpenAI, Anthropic)
    - cligate.engine.sessions: Client id -> CLI session id cache

The HTTP layer lives under `apps/server/`.
"""

from cligate._version import __version__

__all__ = ["__version__"]
