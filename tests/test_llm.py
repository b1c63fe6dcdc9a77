from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from projectpilot.errors import LLMError
from projectpilot.llm import LLMMessage, LLMRequestConfig, LLMRole, OpenAIChatClient


def _completion(content, prompt_tokens=12, completion_tokens=7):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


@pytest.fixture
def mock_openai() -> MagicMock:
    """AsyncOpenAI stand-in exposing chat.completions.create."""
    m = MagicMock()
    m.chat.completions.create = AsyncMock(return_value=_completion("hello"))
    return m


@pytest.mark.asyncio
async def test_send_maps_messages_and_usage(mock_openai: MagicMock) -> None:
    client = OpenAIChatClient(client=mock_openai, default_model="test-model")
    messages = [LLMMessage(LLMRole.SYSTEM, "be brief"), LLMMessage(LLMRole.USER, "hi")]

    response = await client.send(messages, LLMRequestConfig(max_tokens=50, temperature=0.2))

    assert (response.content, response.input_tokens, response.output_tokens) == ("hello", 12, 7)
    mock_openai.chat.completions.create.assert_awaited_once_with(
        model="test-model",
        messages=[{"role": "system", "content": "be brief"}, {"role": "user", "content": "hi"}],
        max_tokens=50,
        temperature=0.2,
    )


@pytest.mark.asyncio
async def test_config_model_overrides_default(mock_openai: MagicMock) -> None:
    client = OpenAIChatClient(client=mock_openai, default_model="test-model")
    await client.send([LLMMessage(LLMRole.USER, "hi")], LLMRequestConfig(model="other"))
    assert mock_openai.chat.completions.create.call_args.kwargs["model"] == "other"


@pytest.mark.asyncio
async def test_api_error_becomes_llm_error(mock_openai: MagicMock) -> None:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    mock_openai.chat.completions.create.side_effect = openai.APIConnectionError(request=request)
    client = OpenAIChatClient(client=mock_openai, default_model="m")
    with pytest.raises(LLMError):
        await client.send([LLMMessage(LLMRole.USER, "hi")], LLMRequestConfig())


@pytest.mark.asyncio
async def test_empty_reply_is_an_error(mock_openai: MagicMock) -> None:
    client = OpenAIChatClient(client=mock_openai, default_model="m")

    mock_openai.chat.completions.create.return_value = SimpleNamespace(choices=[], usage=None)
    with pytest.raises(LLMError):
        await client.send([LLMMessage(LLMRole.USER, "hi")], LLMRequestConfig())

    mock_openai.chat.completions.create.return_value = _completion(None)
    with pytest.raises(LLMError):
        await client.send([LLMMessage(LLMRole.USER, "hi")], LLMRequestConfig())


@pytest.mark.asyncio
async def test_missing_usage_yields_none(mock_openai: MagicMock) -> None:
    mock_openai.chat.completions.create.return_value = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content="ok"))], usage=None
    )
    client = OpenAIChatClient(client=mock_openai, default_model="m")
    response = await client.send([LLMMessage(LLMRole.USER, "hi")], LLMRequestConfig())
    assert response.input_tokens is None and response.output_tokens is None
