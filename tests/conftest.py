"""Shared fixtures for the deal intelligence tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from services.model_client import ModelResponse


@pytest.fixture
def model_client():
    """ModelClient stand-in whose invoke methods are AsyncMocks."""
    client = MagicMock()
    client.reasoning_model = "reasoning-model"
    client.fast_model = "fast-model"
    client.invoke = AsyncMock()
    client.invoke_with_fallback = AsyncMock()
    return client


@pytest.fixture
def reply():
    """Factory for successful model responses."""
    def _reply(text: str, model: str = "reasoning-model") -> ModelResponse:
        return ModelResponse(text=text, model=model)
    return _reply


@pytest.fixture
def failure():
    """Factory for failed model responses."""
    def _failure(error: str, model: str = "reasoning-model") -> ModelResponse:
        return ModelResponse(error=error, model=model)
    return _failure
