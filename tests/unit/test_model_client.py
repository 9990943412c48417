"""
Unit Tests for ModelClient

Tests retry/backoff on the overload signature, the no-retry path for other
errors, and degraded-model fallback. The OpenAI client is replaced by a stub
exposing ``chat.completions.create``; backoff sleeps are recorded, not slept.
"""

import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from services.model_client import ModelClient, is_overload_error


def completion(text):
    """Build an object shaped like an OpenAI chat completion."""
    message = SimpleNamespace(content=text)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def make_client(*outcomes):
    """ModelClient over a stub whose create() yields ``outcomes`` in order."""
    create = AsyncMock(side_effect=list(outcomes))
    stub = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    sleeps = []

    async def record_sleep(seconds):
        sleeps.append(seconds)

    client = ModelClient(
        client=stub,
        reasoning_model="pro-model",
        fast_model="flash-model",
        sleep=record_sleep,
    )
    return client, create, sleeps


class TestOverloadSignature:
    """Tests for is_overload_error."""

    @pytest.mark.parametrize("message", [
        "503 Service Unavailable",
        "The model is overloaded. Please try again later.",
        "SERVICE UNAVAILABLE",
        "upstream unavailable",
    ])
    def test_overload_messages_match(self, message):
        assert is_overload_error(message)
        assert is_overload_error(Exception(message))

    @pytest.mark.parametrize("message", [
        "401 Unauthorized",
        "Invalid API key",
        "400 Bad Request: context length exceeded",
        "",
    ])
    def test_other_messages_do_not_match(self, message):
        assert not is_overload_error(message)

    def test_status_code_attribute_matches(self):
        error = Exception("server busy")
        error.status_code = 529
        assert is_overload_error(error)


class TestInvokeRetries:
    """Tests for ModelClient.invoke retry behavior."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self):
        client, create, sleeps = make_client(completion("hello"))

        response = await client.invoke("prompt", "system")

        assert response.ok
        assert response.text == "hello"
        assert response.model == "pro-model"
        assert create.await_count == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_two_overloads_then_success_sleeps_twice(self):
        client, create, sleeps = make_client(
            Exception("503 Service Unavailable"),
            Exception("model overloaded"),
            completion("finally"),
        )

        response = await client.invoke("prompt", "system", max_retries=3)

        assert response.ok
        assert response.text == "finally"
        assert create.await_count == 3
        assert len(sleeps) == 2
        # 2^n * 1.5s plus jitter in [0, 2s)
        assert 3 <= sleeps[0] <= 5
        assert 6 <= sleeps[1] <= 8

    @pytest.mark.asyncio
    async def test_non_overload_error_is_not_retried(self):
        client, create, sleeps = make_client(Exception("401 Unauthorized"))

        response = await client.invoke("prompt", "system")

        assert not response.ok
        assert "401" in response.error
        assert create.await_count == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_overload_exhausts_attempts(self):
        client, create, sleeps = make_client(*[Exception("503 overloaded")] * 3)

        response = await client.invoke("prompt", "system", max_retries=3)

        assert not response.ok
        assert "overloaded" in response.error
        assert create.await_count == 3
        assert len(sleeps) == 2

    @pytest.mark.asyncio
    async def test_empty_response_is_an_error_without_retry(self):
        client, create, sleeps = make_client(completion("   "))

        response = await client.invoke("prompt", "system")

        assert not response.ok
        assert "empty" in response.error.lower()
        assert create.await_count == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_system_instruction_and_model_are_sent(self):
        client, create, _ = make_client(completion("ok"))

        await client.invoke("the prompt", "the system", model="flash-model")

        kwargs = create.await_args.kwargs
        assert kwargs["model"] == "flash-model"
        assert kwargs["messages"] == [
            {"role": "system", "content": "the system"},
            {"role": "user", "content": "the prompt"},
        ]


class TestInvokeWithFallback:
    """Tests for degraded-model fallback."""

    @pytest.mark.asyncio
    async def test_falls_back_when_primary_overloaded(self):
        client, create, _ = make_client(
            Exception("503 overloaded"),
            Exception("503 overloaded"),
            completion("from fallback"),
        )

        response = await client.invoke_with_fallback(
            "prompt", "system", max_retries=2, fallback_retries=3
        )

        assert response.ok
        assert response.model == "flash-model"
        models = [call.kwargs["model"] for call in create.await_args_list]
        assert models == ["pro-model", "pro-model", "flash-model"]

    @pytest.mark.asyncio
    async def test_no_fallback_for_other_errors(self):
        client, create, _ = make_client(Exception("400 Bad Request"))

        response = await client.invoke_with_fallback("prompt", "system")

        assert not response.ok
        assert create.await_count == 1

    @pytest.mark.asyncio
    async def test_no_fallback_when_primary_succeeds(self):
        client, create, _ = make_client(completion("primary"))

        response = await client.invoke_with_fallback("prompt", "system")

        assert response.text == "primary"
        assert create.await_count == 1


class TestConstruction:
    """Tests for environment-based construction."""

    def test_missing_api_key_raises(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ValueError, match="OPENAI_API_KEY"):
            ModelClient()

    def test_models_read_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENAI_MODEL", "env-pro")
        monkeypatch.setenv("OPENAI_FAST_MODEL", "env-flash")

        client = ModelClient(client=MagicMock())

        assert client.reasoning_model == "env-pro"
        assert client.fast_model == "env-flash"
