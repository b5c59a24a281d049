import pytest


def test_openai_prompt_wraps_roles():
    from cligate.engine.adapters import OpenAIAdapter

    adapted = OpenAIAdapter().parse(
        {
            "model": "claude-sonnet-4",
            "messages": [
                {"role": "system", "content": "Be brief."},
                {"role": "user", "content": "Hi"},
                {"role": "assistant", "content": "Hello!"},
                {"role": "user", "content": [{"type": "text", "text": "How "}, {"type": "image_url"}, {"type": "text", "text": "are you?"}]},
            ],
            "user": "client-1",
            "stream": True,
        }
    )

    assert adapted.model == "sonnet"
    assert adapted.client_id == "client-1"
    assert adapted.stream is True
    assert adapted.prompt == (
        "<system>\nBe brief.\n</system>\n\n"
        "Hi\n"
        "<previous_response>\nHello!\n</previous_response>\n\n"
        "How are you?"
    )


def test_openai_defaults():
    from cligate.engine.adapters import OpenAIAdapter

    adapted = OpenAIAdapter().parse({"messages": [{"role": "user", "content": "  hi  "}]})
    assert adapted.model == "opus"
    assert adapted.client_id is None
    assert adapted.stream is False
    assert adapted.prompt == "hi"


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {},
        {"messages": []},
        {"messages": "hi"},
        {"messages": ["hi"]},
        {"messages": [{"content": "hi"}]},
        {"messages": [{"role": "user", "content": 5}]},
        {"messages": [{"role": "user", "content": "hi"}], "stream": "yes"},
        {"messages": [{"role": "user", "content": "hi"}], "model": 4},
    ],
)
def test_openai_rejects_invalid(payload):
    from cligate.engine.adapters import OpenAIAdapter, RequestValidationError

    with pytest.raises(RequestValidationError):
        OpenAIAdapter().parse(payload)


def test_openai_missing_messages_message():
    from cligate.engine.adapters import OpenAIAdapter, RequestValidationError

    with pytest.raises(RequestValidationError, match="messages is required and must be a non-empty array"):
        OpenAIAdapter().parse({"model": "claude-opus-4"})


def test_anthropic_system_and_metadata():
    from cligate.engine.adapters import AnthropicAdapter

    adapted = AnthropicAdapter().parse(
        {
            "model": "claude-haiku-4-5-20251001",
            "max_tokens": 1024,
            "system": [{"type": "text", "text": "You are terse."}],
            "messages": [
                {"role": "user", "content": "Hi"},
                {"role": "assistant", "content": [{"type": "text", "text": "Yo"}]},
                {"role": "user", "content": "Again"},
            ],
            "metadata": {"user_id": "abc"},
        }
    )

    assert adapted.model == "haiku"
    assert adapted.client_id == "abc"
    assert adapted.stream is False
    assert adapted.prompt == (
        "<system>\nYou are terse.\n</system>\n\n"
        "Hi\n"
        "<previous_response>\nYo\n</previous_response>\n\n"
        "Again"
    )


@pytest.mark.parametrize(
    "payload",
    [
        {"max_tokens": 10, "messages": [{"role": "user", "content": "hi"}]},
        {"model": "claude-opus-4", "messages": [{"role": "user", "content": "hi"}]},
        {"model": "claude-opus-4", "max_tokens": -1, "messages": [{"role": "user", "content": "hi"}]},
        {"model": "claude-opus-4", "max_tokens": True, "messages": [{"role": "user", "content": "hi"}]},
        {"model": "claude-opus-4", "max_tokens": 10, "messages": []},
        {"model": "claude-opus-4", "max_tokens": 10, "messages": [{"role": "user"}]},
        {"model": "claude-opus-4", "max_tokens": 10, "messages": [{"role": "user", "content": "hi"}], "metadata": "x"},
    ],
)
def test_anthropic_rejects_invalid(payload):
    from cligate.engine.adapters import AnthropicAdapter, RequestValidationError

    with pytest.raises(RequestValidationError):
        AnthropicAdapter().parse(payload)
