"""cligate server entrypoint (FastAPI + OpenAI/Anthropic-style chat endpoints).

Example:
    python -m apps.server.main 8080 --host 0.0.0.0 --cwd ~/projects/demo
"""

from __future__ import annotations

import argparse
import logging
import os
import subprocess
import sys

from apps.server.app import create_app
from cligate.engine.sessions import SessionStore, default_sessions_path
from cligate.engine.supervisor import CLI_NOT_FOUND_MESSAGE, INACTIVITY_TIMEOUT_S, SupervisorConfig


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Claude CLI gateway server")
    p.add_argument("port", nargs="?", type=int, default=8080, help="Bind port (default: 8080)")
    p.add_argument("--host", default="127.0.0.1", help="Bind host (default: 127.0.0.1)")
    p.add_argument(
        "--cwd",
        default=os.getcwd(),
        help="Working directory for spawned CLI processes (default: current directory)",
    )
    p.add_argument(
        "--cli-path",
        default=os.environ.get("CLIGATE_CLI_PATH", "claude"),
        help="Path to the claude executable (default: $CLIGATE_CLI_PATH or 'claude')",
    )
    p.add_argument(
        "--inactivity-timeout",
        type=float,
        default=INACTIVITY_TIMEOUT_S,
        help=f"Kill a CLI process after this many seconds without output (default: {INACTIVITY_TIMEOUT_S})",
    )
    p.add_argument(
        "--sessions-file",
        default=None,
        help=f"Session mapping file (default: {default_sessions_path()})",
    )
    p.add_argument(
        "--log-level",
        default=os.environ.get("CLIGATE_LOG_LEVEL", "info"),
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: $CLIGATE_LOG_LEVEL or info)",
    )
    return p.parse_args(argv)


def _probe_cli(cli_path: str) -> str | None:
    """Return the CLI's version string, or None when it cannot be run."""
    try:
        proc = subprocess.run(
            [cli_path, "--version"],
            capture_output=True,
            text=True,
            timeout=30,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None
    if proc.returncode != 0:
        return None
    return proc.stdout.strip() or "unknown"


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cwd = os.path.abspath(os.path.expanduser(args.cwd))
    if not os.path.isdir(cwd):
        print(f"[server] working directory does not exist: {cwd}", file=sys.stderr, flush=True)
        raise SystemExit(1)

    version = _probe_cli(args.cli_path)
    if version is None:
        print(f"[server] {CLI_NOT_FOUND_MESSAGE}", file=sys.stderr, flush=True)
        raise SystemExit(1)

    store = SessionStore(args.sessions_file)
    app = create_app(
        cwd=cwd,
        supervisor_config=SupervisorConfig(
            cli_command=(args.cli_path,),
            inactivity_timeout_s=args.inactivity_timeout,
        ),
        session_store=store,
    )

    print(f"[server] claude CLI: {version}", flush=True)
    print(f"[server] listening on http://{args.host}:{args.port}", flush=True)
    print(f"[server] working directory: {cwd}", flush=True)
    print(f"[server] sessions file: {store.path}", flush=True)
    print("[server] endpoints: GET /health, GET /v1/models, POST /v1/chat/completions, POST /v1/messages", flush=True)

    try:
        import uvicorn
    except Exception as exc:  # pragma: no cover
        raise RuntimeError("uvicorn is required to run the server.") from exc

    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
