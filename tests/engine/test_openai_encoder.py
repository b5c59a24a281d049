import json


def _decode(wire_events) -> list:
    out = []
    for ev in wire_events:
        raw = ev.encode()
        assert raw.startswith("data: ") and raw.endswith("\n\n")
        payload = raw[len("data: ") : -2]
        out.append(payload if payload == "[DONE]" else json.loads(payload))
    return out


def _summary(**usage):
    from cligate.engine.events import ModelUsage, ResultSummary

    if not usage:
        return ResultSummary(text="")
    return ResultSummary(text="", model_usage={"m": ModelUsage(**usage)})


def test_stream_normal_sequence():
    from cligate.engine.encoders import OpenAIStreamEncoder
    from cligate.engine.events import Closed, Completed, ContentDelta, ModelAnnounced

    enc = OpenAIStreamEncoder("abcd1234", created=1700000000)
    out = []
    for event in (
        ModelAnnounced("claude-opus-4-5-20251101"),
        ContentDelta("He"),
        ContentDelta("llo"),
        Completed(_summary(input_tokens=1, output_tokens=2)),
        Closed(0),
    ):
        out.extend(_decode(enc.feed(event)))

    assert len(out) == 4
    first, second, stop, done = out
    assert first["id"] == "chatcmpl-abcd1234"
    assert first["object"] == "chat.completion.chunk"
    assert first["created"] == 1700000000
    assert first["model"] == "claude-opus-4"
    assert first["choices"] == [{"index": 0, "delta": {"role": "assistant", "content": "He"}, "finish_reason": None}]
    assert second["choices"][0]["delta"] == {"content": "llo"}
    assert stop["choices"] == [{"index": 0, "delta": {}, "finish_reason": "stop"}]
    assert done == "[DONE]"
    assert enc.finished


def test_stream_default_model_before_announcement():
    from cligate.engine.encoders import OpenAIStreamEncoder
    from cligate.engine.events import ContentDelta

    enc = OpenAIStreamEncoder("r1")
    (chunk,) = _decode(enc.feed(ContentDelta("x")))
    assert chunk["model"] == "claude-sonnet-4"


def test_stream_failure_emits_error_then_done():
    from cligate.engine.encoders import OpenAIStreamEncoder
    from cligate.engine.events import Closed, ContentDelta, Failed

    enc = OpenAIStreamEncoder("r1")
    enc.feed(ContentDelta("partial"))
    out = _decode(enc.feed(Failed("Inactivity timeout after 30 minutes")))
    assert out == [
        {"error": {"message": "Inactivity timeout after 30 minutes", "type": "server_error", "code": None}},
        "[DONE]",
    ]
    assert enc.finished
    assert enc.feed(Closed(1)) == []


def test_stream_nonzero_exit_without_result():
    from cligate.engine.encoders import OpenAIStreamEncoder
    from cligate.engine.events import Closed

    enc = OpenAIStreamEncoder("r1")
    out = _decode(enc.feed(Closed(2)))
    assert out[0]["error"]["message"] == "Process exited with code 2"
    assert out[-1] == "[DONE]"


def test_stream_clean_exit_without_result_still_stops():
    from cligate.engine.encoders import OpenAIStreamEncoder
    from cligate.engine.events import Closed

    enc = OpenAIStreamEncoder("r1")
    out = _decode(enc.feed(Closed(0)))
    assert out[0]["choices"][0]["finish_reason"] == "stop"
    assert out[-1] == "[DONE]"


def test_build_chat_completion_with_usage():
    from cligate.engine.aggregate import AggregatedResponse
    from cligate.engine.encoders import build_chat_completion
    from cligate.engine.events import UsageTotals

    response = AggregatedResponse(
        text="Hello",
        model="claude-haiku-4-5-20251001",
        usage=UsageTotals(input_tokens=300, output_tokens=150),
        usage_reported=True,
        exit_code=0,
    )
    body = build_chat_completion(response, request_id="r1", created=42)
    assert body == {
        "id": "chatcmpl-r1",
        "object": "chat.completion",
        "created": 42,
        "model": "claude-haiku-4",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": "Hello"}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 300, "completion_tokens": 150, "total_tokens": 450},
    }


def test_build_chat_completion_omits_unreported_usage():
    from cligate.engine.aggregate import AggregatedResponse
    from cligate.engine.encoders import build_chat_completion
    from cligate.engine.events import UsageTotals

    response = AggregatedResponse(text="", model="claude-sonnet-4", usage=UsageTotals(), usage_reported=False)
    assert "usage" not in build_chat_completion(response, request_id="r1")
