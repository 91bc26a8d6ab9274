"""Tests for the LiteLLM adapter (litellm.acompletion is patched, no network)"""
from __future__ import annotations

import json
from types import SimpleNamespace

import pytest

from packflow.adapters import llm_litellm
from packflow.adapters.llm_litellm import LiteLLMAdapter, ModelProvider
from packflow.core.ports.llm import LLMMessage, ToolCall


def completion(content="", tool_calls=None, model="gpt-4o-mini"):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        model=model,
        choices=[SimpleNamespace(message=message, finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=30, completion_tokens=10, total_tokens=40),
    )


def raw_tool_call(call_id, name, arguments):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


@pytest.fixture
def openai_key(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")


class TestModelProvider:
    def test_for_model(self):
        assert ModelProvider.for_model("gpt-4o-mini") == ModelProvider.OPENAI
        assert ModelProvider.for_model("claude-3-haiku-20240307") == ModelProvider.ANTHROPIC
        assert ModelProvider.for_model("google/gemini-2.5-flash") == ModelProvider.GOOGLE

    def test_unknown_model(self):
        with pytest.raises(ValueError):
            ModelProvider.for_model("llama-local")


class TestLiteLLMAdapter:
    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with pytest.raises(ValueError) as exc:
            LiteLLMAdapter(default_model="claude-3-haiku-20240307")
        assert "ANTHROPIC_API_KEY" in str(exc.value)

    @pytest.mark.asyncio
    async def test_generate(self, monkeypatch, openai_key):
        seen = {}

        async def fake_acompletion(**kwargs):
            seen.update(kwargs)
            return completion(content="Hello")

        monkeypatch.setattr(llm_litellm, "acompletion", fake_acompletion)
        adapter = LiteLLMAdapter()

        response = await adapter.generate("Be brief.", [LLMMessage(role="user", content="Hi")])

        assert response.content == "Hello"
        assert response.tokens_used == 40
        assert not response.wants_tools
        assert seen["messages"][0] == {"role": "system", "content": "Be brief."}
        assert seen["temperature"] == 0.7
        assert "tools" not in seen

    @pytest.mark.asyncio
    async def test_tool_calls(self, monkeypatch, openai_key):
        seen = {}

        async def fake_acompletion(**kwargs):
            seen.update(kwargs)
            return completion(tool_calls=[
                raw_tool_call("c1", "store_insight", json.dumps({"key": "k", "value": {}, "type": "fact"})),
                raw_tool_call("c2", "ask_agent", "{not json"),
            ])

        monkeypatch.setattr(llm_litellm, "acompletion", fake_acompletion)
        tools = [{"type": "function", "function": {"name": "store_insight"}}]
        history = [
            LLMMessage(role="user", content="Go"),
            LLMMessage(role="assistant", content="", tool_calls=[ToolCall(id="c0", name="ask_agent",
                                                                          arguments={"question": "?"})]),
            LLMMessage(role="tool", content='{"success": true}', tool_call_id="c0"),
        ]

        response = await LiteLLMAdapter().generate("sys", history, tools=tools)

        assert seen["tool_choice"] == "auto"
        assert seen["messages"][2]["tool_calls"][0]["function"]["arguments"] == '{"question": "?"}'
        assert seen["messages"][3]["tool_call_id"] == "c0"
        assert response.wants_tools
        assert response.tool_calls[0] == ToolCall(id="c1", name="store_insight",
                                                  arguments={"key": "k", "value": {}, "type": "fact"})
        assert response.tool_calls[1].arguments == {}

    @pytest.mark.asyncio
    async def test_fallback_model(self, monkeypatch, openai_key):
        models = []

        async def fake_acompletion(**kwargs):
            models.append(kwargs["model"])
            if kwargs["model"] == "gpt-4o-mini":
                raise RuntimeError("rate limited")
            return completion(content="from fallback", model=kwargs["model"])

        monkeypatch.setattr(llm_litellm, "acompletion", fake_acompletion)
        adapter = LiteLLMAdapter(fallback_model="gpt-4-turbo")

        response = await adapter.generate("sys", [LLMMessage(role="user", content="Hi")])

        assert models == ["gpt-4o-mini", "gpt-4-turbo"]
        assert response.model == "gpt-4-turbo"

    @pytest.mark.asyncio
    async def test_error_without_fallback(self, monkeypatch, openai_key):
        async def fake_acompletion(**kwargs):
            raise RuntimeError("rate limited")

        monkeypatch.setattr(llm_litellm, "acompletion", fake_acompletion)
        with pytest.raises(RuntimeError):
            await LiteLLMAdapter().generate("sys", [LLMMessage(role="user", content="Hi")])
