"""Tests for the retrying text-generation client."""

import asyncio

import pytest
from langchain_core.messages import HumanMessage, SystemMessage

from app.core.config import Settings
from app.core.errors import ExternalServiceError
from app.llm.client import TextGenerationClient
from app.llm.prompts import JSON_ONLY_INSTRUCTION

from conftest import FakeChatModel


def _client(model, **kwargs) -> TextGenerationClient:
    kwargs.setdefault("timeout", 1.0)
    kwargs.setdefault("retry_base_delay", 0.0)
    return TextGenerationClient(model, **kwargs)


@pytest.mark.asyncio
async def test_unconfigured_client_raises() -> None:
    client = TextGenerationClient(None)

    assert client.available is False
    with pytest.raises(ExternalServiceError, match="not configured"):
        await client.generate("hello")


def test_from_settings_without_key_is_unavailable() -> None:
    client = TextGenerationClient.from_settings(Settings(OPENAI_API_KEY=None))
    assert client.available is False


@pytest.mark.asyncio
async def test_generate_sends_system_and_user_messages() -> None:
    model = FakeChatModel("Plan your week on Sunday.")
    client = _client(model, temperature=0.2, max_tokens=50)

    text = await client.generate("Coach me", system_prompt="Be brief.")

    assert text == "Plan your week on Sunday."
    call = model.calls[0]
    assert call["temperature"] == 0.2
    assert call["max_tokens"] == 50
    system, human = call["messages"]
    assert isinstance(system, SystemMessage) and system.content == "Be brief."
    assert isinstance(human, HumanMessage) and human.content == "Coach me"


@pytest.mark.asyncio
async def test_per_call_overrides() -> None:
    model = FakeChatModel("ok")
    client = _client(model)

    await client.generate("x", temperature=0.9, max_tokens=10)

    assert model.calls[0]["temperature"] == 0.9
    assert model.calls[0]["max_tokens"] == 10


@pytest.mark.asyncio
async def test_retries_until_success() -> None:
    model = FakeChatModel(RuntimeError("rate limited"), "", "Finally")
    client = _client(model, max_attempts=3)

    assert await client.generate("x") == "Finally"
    assert len(model.calls) == 3


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts() -> None:
    model = FakeChatModel(RuntimeError("down"))
    client = _client(model, max_attempts=2)

    with pytest.raises(ExternalServiceError, match="failed after 2 attempts"):
        await client.generate("x")
    assert len(model.calls) == 2


@pytest.mark.asyncio
async def test_timeout_counts_as_failed_attempt() -> None:
    class SlowModel(FakeChatModel):
        async def ainvoke(self, messages):
            self.calls.append({"messages": messages})
            await asyncio.sleep(1)
            return await super().ainvoke(messages)

    model = SlowModel("too late")
    client = _client(model, timeout=0.01, max_attempts=2)

    with pytest.raises(ExternalServiceError):
        await client.generate("x")


def test_backoff_doubles() -> None:
    client = TextGenerationClient(None, retry_base_delay=1.0)
    assert [client.backoff_delay(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_backoff_sleeps_between_attempts(monkeypatch) -> None:
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr("app.llm.client.asyncio.sleep", fake_sleep)
    model = FakeChatModel(RuntimeError("a"), RuntimeError("b"), RuntimeError("c"))
    client = TextGenerationClient(model, timeout=1.0, max_attempts=3, retry_base_delay=0.5)

    with pytest.raises(ExternalServiceError):
        await client.generate("x")

    assert delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_generate_json() -> None:
    model = FakeChatModel('```json\n{"tasks": [{"title": "Stretch"}]}\n```')
    client = _client(model)

    result = await client.generate_json("Break this down")

    assert result == {"tasks": [{"title": "Stretch"}]}
    assert JSON_ONLY_INSTRUCTION in model.calls[0]["messages"][1].content


@pytest.mark.asyncio
async def test_generate_json_without_json_raises() -> None:
    client = _client(FakeChatModel("No idea, sorry."))

    with pytest.raises(ExternalServiceError, match="no valid JSON found"):
        await client.generate_json("Break this down")
