"""FastAPI app for OpenAI-style Chat Completions and Anthropic-style Messages.

The HTTP layer lives under `apps/` and can depend on heavier deps (FastAPI, uvicorn).
All CLI process handling is delegated to the core engine (`cligate/engine`).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
import uuid
from typing import Any, AsyncIterator

import anyio
import anyio.to_thread
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse, StreamingResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from cligate import __version__
from cligate.engine.adapters import AdaptedRequest, AnthropicAdapter, BaseAdapter, OpenAIAdapter, RequestValidationError
from cligate.engine.aggregate import AggregatedResponse, EmptyCompletionError, ProcessFailedError, aggregate_events
from cligate.engine.encoders import (
    AnthropicStreamEncoder,
    BaseStreamEncoder,
    OpenAIStreamEncoder,
    build_chat_completion,
    build_message,
)
from cligate.engine.encoders.base import sse_comment
from cligate.engine.events import CliRequest
from cligate.engine.registry import list_models
from cligate.engine.sessions import CLEANUP_INTERVAL_S, SessionStore
from cligate.engine.supervisor import SupervisorConfig, start_event_stream

logger = logging.getLogger(__name__)

DEFAULT_MAX_BODY_BYTES = 10 * 1024 * 1024
DEFAULT_KEEPALIVE_S = 15.0


class ApiError(Exception):
    """An error rendered as `{"error": {"message", "type", "code"}}`."""

    def __init__(
        self,
        status_code: int,
        message: str,
        *,
        error_type: str = "invalid_request_error",
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.error_type = error_type
        self.code = code

    @classmethod
    def bad_request(cls, message: str) -> ApiError:
        return cls(400, message, code="invalid_messages")

    @classmethod
    def not_found(cls, message: str) -> ApiError:
        return cls(404, message, code="not_found")

    @classmethod
    def server_error(cls, message: str) -> ApiError:
        return cls(500, message, error_type="server_error")

    def to_response(self, headers: dict[str, str] | None = None) -> JSONResponse:
        return JSONResponse(
            {"error": {"message": self.message, "type": self.error_type, "code": self.code}},
            status_code=self.status_code,
            headers=headers,
        )


class BodyLimitMiddleware:
    """Reject request bodies larger than `max_body_bytes` with 413."""

    def __init__(self, app: ASGIApp, *, max_body_bytes: int) -> None:
        self.app = app
        self.max_body_bytes = max_body_bytes

    def _too_large(self) -> ApiError:
        return ApiError(
            413,
            f"Request body exceeds {self.max_body_bytes} bytes",
            code="request_too_large",
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        for name, value in scope.get("headers", []):
            if name == b"content-length":
                try:
                    declared = int(value)
                except ValueError:
                    break
                if declared > self.max_body_bytes:
                    await self._too_large().to_response()(scope, receive, send)
                    return
                break

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_bytes:
                    raise self._too_large()
            return message

        await self.app(scope, limited_receive, send)


def generate_request_id() -> str:
    return uuid.uuid4().hex[:8]


def create_app(
    *,
    cwd: str = ".",
    supervisor_config: SupervisorConfig | None = None,
    session_store: SessionStore | None = None,
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES,
    keepalive_s: float = DEFAULT_KEEPALIVE_S,
) -> FastAPI:
    supervisor_config = supervisor_config or SupervisorConfig()
    if keepalive_s <= 0:
        raise ValueError("keepalive_s must be > 0")
    if max_body_bytes <= 0:
        raise ValueError("max_body_bytes must be > 0")

    started_at = time.time()
    openai_adapter = OpenAIAdapter()
    anthropic_adapter = AnthropicAdapter()

    @contextlib.asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        cleanup_task: asyncio.Task[None] | None = None
        if session_store is not None:
            session_store.load()
            cleanup_task = asyncio.create_task(_cleanup_sessions_forever(session_store))
        try:
            yield
        finally:
            if cleanup_task is not None:
                cleanup_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await cleanup_task

    app = FastAPI(title="cligate", version=__version__, lifespan=lifespan)
    app.add_middleware(BodyLimitMiddleware, max_body_bytes=max_body_bytes)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["x-request-id"],
    )

    @app.exception_handler(ApiError)
    async def api_error_handler(_: Request, exc: ApiError) -> JSONResponse:
        return exc.to_response()

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return ApiError.not_found("The requested endpoint does not exist").to_response()
        return ApiError(exc.status_code, str(exc.detail)).to_response(headers=exc.headers)

    async def _wait_for_disconnect(request: Request, poll_s: float = 0.1) -> None:
        while True:
            if await request.is_disconnected():
                return
            await asyncio.sleep(poll_s)

    async def _run_with_disconnect_cancellation(request: Request, coro: Any) -> Any:
        task = asyncio.create_task(coro)
        disconnect_task = asyncio.create_task(_wait_for_disconnect(request))
        # Yield to let both tasks start (handles coroutines that return synchronously).
        await asyncio.sleep(0)
        done, pending = await asyncio.wait(
            {task, disconnect_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
        if disconnect_task in done:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            raise ApiError(499, "Client disconnected")

        disconnect_task.cancel()
        try:
            await disconnect_task
        except asyncio.CancelledError:
            pass
        return task.result()

    async def _json_body(request: Request) -> Any:
        try:
            return await request.json()
        except ValueError as exc:
            raise ApiError.bad_request("Request body must be valid JSON.") from exc

    async def _cli_request(adapted: AdaptedRequest) -> CliRequest:
        session_id = adapted.client_id
        if session_id is not None and session_store is not None:
            # get_or_create may write the sessions file.
            session_id = await anyio.to_thread.run_sync(
                session_store.get_or_create, session_id, adapted.model
            )
        return CliRequest(prompt=adapted.prompt, model=adapted.model, session_id=session_id, cwd=cwd)

    async def _aggregate(cli_request: CliRequest, request_id: str) -> AggregatedResponse:
        with start_event_stream(cli_request, config=supervisor_config, request_id=request_id) as events:
            return await aggregate_events(events)

    async def _handle(request: Request, *, api: str, adapter: BaseAdapter) -> Any:
        payload = await _json_body(request)
        try:
            adapted = adapter.parse(payload)
        except RequestValidationError as exc:
            raise ApiError.bad_request(str(exc)) from exc

        request_id = generate_request_id()
        label = "OpenAI chat completions" if api == "openai" else "Anthropic messages"
        logger.info("[req=%s] %s model=%s streaming=%s", request_id, label, adapted.model, adapted.stream)
        cli_request = await _cli_request(adapted)

        if adapted.stream:
            encoder: BaseStreamEncoder
            if api == "openai":
                encoder = OpenAIStreamEncoder(request_id)
            else:
                encoder = AnthropicStreamEncoder(request_id)
            event_iter = _stream_events(
                cli_request=cli_request,
                encoder=encoder,
                config=supervisor_config,
                request_id=request_id,
                keepalive_s=keepalive_s,
                preamble=sse_comment("ok") if api == "openai" else None,
            )
            return StreamingResponse(
                event_iter,
                media_type="text/event-stream",
                headers={"x-request-id": request_id, "cache-control": "no-cache"},
            )

        started = time.monotonic()
        try:
            response = await _run_with_disconnect_cancellation(request, _aggregate(cli_request, request_id))
        except (ProcessFailedError, EmptyCompletionError) as exc:
            logger.error("[req=%s] Request failed after %.2fs: %s", request_id, time.monotonic() - started, exc)
            raise ApiError.server_error(str(exc)) from exc
        logger.info(
            "[req=%s] Request complete after %.2fs (exit code %s)",
            request_id,
            time.monotonic() - started,
            response.exit_code,
        )

        if api == "openai":
            body = build_chat_completion(response, request_id=request_id)
        else:
            body = build_message(response, request_id=request_id)
        return JSONResponse(body, headers={"x-request-id": request_id})

    # -------------------------------------------------------------------------
    # Health & Models
    # -------------------------------------------------------------------------

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "uptime": int(time.time() - started_at)}

    @app.get("/v1/models")
    async def models() -> dict[str, Any]:
        return {"object": "list", "data": list_models(created=int(time.time()))}

    # -------------------------------------------------------------------------
    # Completions
    # -------------------------------------------------------------------------

    @app.post("/v1/chat/completions")
    async def chat_completions(request: Request) -> Any:
        return await _handle(request, api="openai", adapter=openai_adapter)

    @app.post("/v1/messages")
    async def messages(request: Request) -> Any:
        return await _handle(request, api="anthropic", adapter=anthropic_adapter)

    return app


async def _cleanup_sessions_forever(store: SessionStore, interval_s: float = CLEANUP_INTERVAL_S) -> None:
    while True:
        await asyncio.sleep(interval_s)
        await anyio.to_thread.run_sync(store.cleanup_expired)


async def _stream_events(
    *,
    cli_request: CliRequest,
    encoder: BaseStreamEncoder,
    config: SupervisorConfig,
    request_id: str,
    keepalive_s: float,
    preamble: str | None = None,
) -> AsyncIterator[str]:
    started = time.monotonic()
    if preamble is not None:
        yield preamble

    try:
        with start_event_stream(cli_request, config=config, request_id=request_id) as events:
            while True:
                event = None
                with anyio.move_on_after(keepalive_s):
                    try:
                        event = await events.receive.receive()
                    except anyio.EndOfStream:
                        break
                if event is None:
                    # Idle: keep intermediaries from dropping the connection.
                    if not encoder.finished:
                        yield sse_comment()
                    continue
                for wire_event in encoder.feed(event):
                    yield wire_event.encode()
    finally:
        logger.info("[req=%s] Stream closed after %.2fs", request_id, time.monotonic() - started)
