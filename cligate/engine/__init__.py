# Subprocess-backed streaming translation core
#
# This package turns one Claude CLI invocation into a normalized event
# stream and re-encodes that stream for either wire format.
#
# Key components:
#   - events.py       Normalized event + request descriptor types
#   - line_parser.py  stdout line -> normalized events
#   - supervisor.py   Process lifecycle, inactivity timeout, disconnect kill
#   - registry.py     Public model names <-> CLI model aliases
#   - adapters/       Wire request -> CLI prompt/model/session
#   - encoders/       Normalized events -> SSE wire events
#   - aggregate.py    Normalized events -> single response object
#   - sessions.py     Client id -> CLI session id cache
#
# No HTTP/FastAPI code lives here.
