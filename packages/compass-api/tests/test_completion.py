"""Tests for the Groq completion client."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from groq import AuthenticationError

from compass_api.completion import (
    EMPTY_COMPLETION_RESPONSE,
    PERSONA_PROMPT,
    CompletionClient,
    create_completion_client,
)
from compass_api.exceptions import CompletionError, CompletionNotConfiguredError
from compass_api.schemas import ChatMessage


HI = [ChatMessage(role="user", content="hi")]


def completion_result(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def groq_client():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=completion_result("Namaste!"))
    return client


class TestComplete:
    @pytest.mark.asyncio
    async def test_persona_prepended(self, groq_client):
        client = CompletionClient(groq_client, model="test-model")

        reply = await client.complete(
            [ChatMessage(role="user", content="Greetings in Mumbai?")], location="Mumbai"
        )

        assert reply == "Namaste!"
        kwargs = groq_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["temperature"] == 0.7
        assert kwargs["max_tokens"] == 1000
        assert kwargs["messages"][0] == {
            "role": "system",
            "content": f"{PERSONA_PROMPT}\n\nContext: Location: Mumbai",
        }
        assert kwargs["messages"][1] == {"role": "user", "content": "Greetings in Mumbai?"}

    @pytest.mark.asyncio
    async def test_overrides(self, groq_client):
        await CompletionClient(groq_client).complete(
            HI, temperature=0.0, max_tokens=10
        )

        kwargs = groq_client.chat.completions.create.call_args.kwargs
        assert kwargs["temperature"] == 0.0
        assert kwargs["max_tokens"] == 10
        assert kwargs["messages"][0]["content"] == PERSONA_PROMPT

    @pytest.mark.asyncio
    async def test_empty_output_returns_apology(self, groq_client):
        groq_client.chat.completions.create.return_value = completion_result(None)

        reply = await CompletionClient(groq_client).complete(HI)

        assert reply == EMPTY_COMPLETION_RESPONSE

    @pytest.mark.asyncio
    async def test_no_choices_returns_apology(self, groq_client):
        groq_client.chat.completions.create.return_value = SimpleNamespace(choices=[])

        reply = await CompletionClient(groq_client).complete(HI)

        assert reply == EMPTY_COMPLETION_RESPONSE


class TestCompletionErrors:
    @pytest.mark.asyncio
    async def test_not_configured(self):
        client = CompletionClient(None)

        assert client.is_configured is False
        with pytest.raises(CompletionNotConfiguredError) as exc_info:
            await client.complete(HI)
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_rejected_key(self, groq_client):
        request = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")
        groq_client.chat.completions.create.side_effect = AuthenticationError(
            "Invalid API Key", response=httpx.Response(401, request=request), body=None
        )

        with pytest.raises(CompletionNotConfiguredError):
            await CompletionClient(groq_client).complete(HI)

    @pytest.mark.asyncio
    async def test_transient_failure(self, groq_client):
        groq_client.chat.completions.create.side_effect = ConnectionError("reset")

        with pytest.raises(CompletionError) as exc_info:
            await CompletionClient(groq_client).complete(HI)
        assert exc_info.value.message == "Failed to generate response. Please try again."

    @pytest.mark.asyncio
    async def test_timeout(self, groq_client):
        async def slow(**kwargs):
            await asyncio.sleep(1)

        groq_client.chat.completions.create = slow

        with pytest.raises(CompletionError, match="timed out"):
            await CompletionClient(groq_client, timeout=0.01).complete(
                HI
            )


class TestFactory:
    def test_missing_key(self):
        client = create_completion_client(None)

        assert isinstance(client, CompletionClient)
        assert client.is_configured is False

    def test_with_key(self):
        assert create_completion_client("gsk_test").is_configured is True

    @pytest.mark.asyncio
    async def test_connection_check_reports_demo_without_key(self):
        result = await create_completion_client(None).test_connection()

        assert result["status"] == "demo"
