import json

import pytest

pytest.importorskip("fastapi", reason="fastapi not installed")


def _collect_named_events(raw: str) -> list[tuple[str, dict]]:
    events: list[tuple[str, dict]] = []
    for block in raw.split("\n\n"):
        lines = block.strip().split("\n")
        if len(lines) != 2 or not lines[0].startswith("event: "):
            continue
        events.append((lines[0][len("event: ") :], json.loads(lines[1][len("data: ") :])))
    return events


def _assistant(text: str, model: str = "claude-sonnet-4-5-20250929") -> dict:
    return {"type": "assistant", "message": {"model": model, "content": [{"type": "text", "text": text}]}}


def _result(text: str = "") -> dict:
    return {
        "type": "result",
        "subtype": "success",
        "result": text,
        "modelUsage": {
            "claude-sonnet-4-5-20250929": {
                "inputTokens": 12,
                "outputTokens": 7,
                "cacheCreationInputTokens": 3,
                "cacheReadInputTokens": 4,
            }
        },
    }


def _client(tmp_path, config):
    from fastapi.testclient import TestClient

    from apps.server.app import create_app

    return TestClient(create_app(cwd=str(tmp_path), supervisor_config=config))


_REQUEST = {
    "model": "claude-sonnet-4-5",
    "max_tokens": 256,
    "system": "Be terse.",
    "messages": [{"role": "user", "content": "hi"}],
}


def test_non_stream_message(fake_cli, tmp_path):
    client = _client(tmp_path, fake_cli.config([_assistant("Hi "), _assistant("there"), _result("Hi there")]))

    resp = client.post("/v1/messages", json=_REQUEST)
    assert resp.status_code == 200
    data = resp.json()
    assert data["id"] == f"msg_{resp.headers['x-request-id']}"
    assert data["type"] == "message"
    assert data["role"] == "assistant"
    assert data["model"] == "claude-sonnet-4"
    assert data["content"] == [{"type": "text", "text": "Hi there"}]
    assert data["stop_reason"] == "end_turn"
    assert data["usage"] == {
        "input_tokens": 12,
        "output_tokens": 7,
        "cache_creation_input_tokens": 3,
        "cache_read_input_tokens": 4,
    }

    argv = fake_cli.argv()
    assert argv[argv.index("--model") + 1] == "sonnet"
    assert "<system>\nBe terse.\n</system>\n\nhi" in argv


def test_stream_event_sequence(fake_cli, tmp_path):
    client = _client(tmp_path, fake_cli.config([_assistant("Hi "), _assistant("there"), _result("Hi there")]))

    with client.stream("POST", "/v1/messages", json={**_REQUEST, "stream": True}) as resp:
        assert resp.status_code == 200
        resp.read()
        raw = resp.text

    events = _collect_named_events(raw)
    assert [name for name, _ in events] == [
        "message_start",
        "ping",
        "content_block_start",
        "content_block_delta",
        "content_block_delta",
        "content_block_stop",
        "message_delta",
        "message_stop",
    ]
    assert events[0][1]["message"]["model"] == "claude-sonnet-4-5-20250929"
    text = "".join(data["delta"]["text"] for name, data in events if name == "content_block_delta")
    assert text == "Hi there"
    assert events[-2][1]["usage"] == {"output_tokens": 7}


def test_stream_failure_before_output(fake_cli, tmp_path):
    client = _client(tmp_path, fake_cli.config([], exit_code=1))

    with client.stream("POST", "/v1/messages", json={**_REQUEST, "stream": True}) as resp:
        resp.read()
        raw = resp.text

    events = _collect_named_events(raw)
    assert events == [
        ("error", {"type": "error", "error": {"type": "server_error", "message": "Process exited with code 1"}})
    ]


def test_invalid_message_request(fake_cli, tmp_path):
    client = _client(tmp_path, fake_cli.config())

    resp = client.post("/v1/messages", json={"model": "claude-opus-4", "messages": [{"role": "user", "content": "hi"}]})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "invalid_messages"
