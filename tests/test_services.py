import re

import httpx
import pytest

from chat_relay.models import CompletionResult, Message
from chat_relay.services import (
    DEFAULT_QUERY,
    FALLBACK_ANSWER,
    CompletionAPIError,
    CompletionNetworkError,
    build_messages,
    format_answer,
)

FOOTER = re.compile(r"\n\n---\nResponse time: \d+ ms \| Tokens used: \d+$")


def test_build_messages_query_only():
    messages = build_messages("What is up?", None)

    assert messages == [Message(role="user", content="What is up?")]


def test_build_messages_with_file_and_default_query():
    messages = build_messages("", '[{"a":"1"}]')

    assert [m.content for m in messages] == [DEFAULT_QUERY, 'File content: [{"a":"1"}]']
    assert all(m.role == "user" for m in messages)


def test_format_answer_with_footer():
    result = CompletionResult(text="Answer", elapsed_ms=123, tokens_used=45)

    text = format_answer(result, include_usage=True)

    assert text == "Answer\n\n---\nResponse time: 123 ms | Tokens used: 45"
    assert FOOTER.search(text)


def test_format_answer_without_footer():
    result = CompletionResult(text="Answer", elapsed_ms=123, tokens_used=45)

    assert format_answer(result, include_usage=False) == "Answer"


@pytest.mark.anyio
async def test_complete_sends_model_messages_and_bearer(provider, completion_service):
    result = await completion_service.complete(build_messages("Hi", None))

    assert result.text == "Hello from the model"
    assert result.tokens_used == 42
    assert result.elapsed_ms >= 0

    request = provider.requests[0]
    assert request.headers["Authorization"] == "Bearer test-key"
    assert provider.payloads[0] == {
        "model": "gpt-3.5-turbo",
        "messages": [{"role": "user", "content": "Hi"}],
    }


@pytest.mark.anyio
@pytest.mark.parametrize("body", [
    {"choices": []},
    {"choices": [{"message": {"role": "assistant", "content": ""}}]},
    {"choices": [{"message": {"role": "assistant"}}]},
])
async def test_complete_falls_back_when_no_text(provider, completion_service, body):
    provider.body = body

    result = await completion_service.complete(build_messages("Hi", None))

    assert result.text == FALLBACK_ANSWER
    assert result.tokens_used == 0


@pytest.mark.anyio
async def test_complete_api_error_keeps_details(provider, completion_service):
    provider.status_code = 401
    provider.body = {"error": {"message": "Incorrect API key provided", "type": "invalid_request_error"}}

    with pytest.raises(CompletionAPIError) as excinfo:
        await completion_service.complete(build_messages("Hi", None))

    assert excinfo.value.status_code == 401
    assert excinfo.value.details == provider.body


@pytest.mark.anyio
async def test_complete_api_error_with_text_body(provider, completion_service):
    provider.status_code = 502
    provider.body = b"Bad Gateway"

    with pytest.raises(CompletionAPIError) as excinfo:
        await completion_service.complete(build_messages("Hi", None))

    assert excinfo.value.details == "Bad Gateway"


@pytest.mark.anyio
async def test_complete_network_error(provider, completion_service):
    provider.error = httpx.ConnectError("connection refused")

    with pytest.raises(CompletionNetworkError):
        await completion_service.complete(build_messages("Hi", None))


@pytest.mark.anyio
async def test_complete_timeout_is_network_error(provider, completion_service):
    provider.error = httpx.ReadTimeout("timed out")

    with pytest.raises(CompletionNetworkError):
        await completion_service.complete(build_messages("Hi", None))
