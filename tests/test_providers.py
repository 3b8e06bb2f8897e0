"""Tests for the backend adapters, against mocked HTTP transports."""

import json

import httpx
import pytest

from llm_switchboard.errors import BackendTransportError, MalformedResponse
from llm_switchboard.providers.anthropic import AnthropicProvider
from llm_switchboard.providers.base import build_messages, split_system
from llm_switchboard.providers.gemini import GeminiProvider, _to_gemini_contents
from llm_switchboard.providers.ollama import OllamaProvider
from llm_switchboard.providers.openai import GroqProvider, OpenAIProvider
from llm_switchboard.router.types import (
    CompletionRequest,
    ConversationContext,
    ConversationMessage,
    MessageRole,
    RequestOptions,
)


class Recorder:
    """httpx handler that records requests and replies with a canned response."""

    def __init__(self, status=200, body=None, text=None):
        self.status = status
        self.body = body
        self.text = text
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.text is not None:
            return httpx.Response(self.status, text=self.text)
        return httpx.Response(self.status, json=self.body)

    @property
    def sent(self) -> dict:
        return json.loads(self.requests[-1].content)


def _transport(handler):
    return httpx.MockTransport(handler)


def _with_context():
    context = ConversationContext(conversation_id="u:c")
    context.append(ConversationMessage(role=MessageRole.USER, content="earlier question"))
    context.append(ConversationMessage(role=MessageRole.ASSISTANT, content="earlier answer"))
    return CompletionRequest(
        prompt="follow up",
        context=context,
        options=RequestOptions(system_prompt="be brief", max_tokens=64, temperature=0.2),
    )


def _with_system_context():
    context = ConversationContext(conversation_id="u:c")
    context.append(ConversationMessage(role=MessageRole.SYSTEM, content="Answer in French"))
    return CompletionRequest(
        prompt="hello", context=context, options=RequestOptions(system_prompt="be brief"),
    )


OPENAI_OK = {
    "choices": [{"message": {"role": "assistant", "content": "hi there"}}],
    "usage": {"prompt_tokens": 12, "completion_tokens": 3},
}


class TestBuildMessages:
    def test_order_is_system_context_prompt(self):
        messages = build_messages(_with_context())
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
        assert messages[-1]["content"] == "follow up"

    def test_prompt_only(self):
        assert build_messages(CompletionRequest(prompt="hi")) == [
            {"role": "user", "content": "hi"},
        ]

    def test_split_system_keeps_every_instruction(self):
        system, turns = split_system(build_messages(_with_system_context()))
        assert system == "be brief\n\nAnswer in French"
        assert turns == [{"role": "user", "content": "hello"}]

    def test_split_system_without_instruction(self):
        system, turns = split_system(build_messages(CompletionRequest(prompt="hi")))
        assert system is None
        assert len(turns) == 1


class TestOpenAIProvider:
    @pytest.mark.asyncio
    async def test_request_and_response(self):
        handler = Recorder(body=OPENAI_OK)
        provider = OpenAIProvider(
            "openai", "https://api.openai.com/v1", api_key="sk-test",
            organization="org-9", transport=_transport(handler),
        )
        raw = await provider.execute(_with_context(), "gpt-4")

        assert raw.content == "hi there"
        assert (raw.prompt_tokens, raw.completion_tokens) == (12, 3)

        sent = handler.requests[0]
        assert str(sent.url) == "https://api.openai.com/v1/chat/completions"
        assert sent.headers["authorization"] == "Bearer sk-test"
        assert sent.headers["openai-organization"] == "org-9"
        body = handler.sent
        assert body["model"] == "gpt-4"
        assert body["max_tokens"] == 64
        assert body["temperature"] == 0.2
        assert body["stream"] is False
        assert body["messages"][0] == {"role": "system", "content": "be brief"}

    @pytest.mark.asyncio
    async def test_defaults_for_unset_options(self):
        handler = Recorder(body=OPENAI_OK)
        provider = OpenAIProvider("openai", "https://x/v1", api_key="k",
                                  transport=_transport(handler))
        await provider.execute(CompletionRequest(prompt="hi"), "gpt-4")
        assert handler.sent["max_tokens"] == 1000
        assert handler.sent["temperature"] == 0.7

    @pytest.mark.asyncio
    async def test_missing_usage_counts_as_zero(self):
        body = {"choices": [{"message": {"content": "x"}}]}
        provider = OpenAIProvider("custom_lab", "http://lab/v1",
                                  transport=_transport(Recorder(body=body)))
        raw = await provider.execute(CompletionRequest(prompt="hi"), "default")
        assert (raw.prompt_tokens, raw.completion_tokens) == (0, 0)

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        provider = OpenAIProvider(
            "openai", "https://x/v1", api_key="k",
            transport=_transport(Recorder(status=429, body={"error": "slow down"})),
        )
        with pytest.raises(BackendTransportError) as exc_info:
            await provider.execute(CompletionRequest(prompt="hi"), "gpt-4")
        assert exc_info.value.status_code == 429
        assert exc_info.value.is_rate_limited
        assert exc_info.value.backend == "openai"
        assert exc_info.value.model == "gpt-4"

    @pytest.mark.asyncio
    async def test_auth_failure(self):
        provider = OpenAIProvider(
            "openai", "https://x/v1", api_key="bad",
            transport=_transport(Recorder(status=401, body={})),
        )
        with pytest.raises(BackendTransportError) as exc_info:
            await provider.execute(CompletionRequest(prompt="hi"), "gpt-4")
        assert exc_info.value.is_auth_failure

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        provider = OpenAIProvider("openai", "https://x/v1", api_key="k",
                                  transport=_transport(Recorder(text="<html>oops")))
        with pytest.raises(MalformedResponse):
            await provider.execute(CompletionRequest(prompt="hi"), "gpt-4")

    @pytest.mark.asyncio
    async def test_missing_choices(self):
        provider = OpenAIProvider("openai", "https://x/v1", api_key="k",
                                  transport=_transport(Recorder(body={"id": "x"})))
        with pytest.raises(MalformedResponse):
            await provider.execute(CompletionRequest(prompt="hi"), "gpt-4")

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        provider = OpenAIProvider("openai", "https://x/v1", api_key="k",
                                  transport=_transport(handler))
        with pytest.raises(BackendTransportError) as exc_info:
            await provider.execute(CompletionRequest(prompt="hi"), "gpt-4")
        assert exc_info.value.status_code == 504

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        provider = OpenAIProvider("openai", "https://x/v1", api_key="k",
                                  transport=_transport(handler))
        with pytest.raises(BackendTransportError) as exc_info:
            await provider.execute(CompletionRequest(prompt="hi"), "gpt-4")
        assert exc_info.value.status_code is None
        assert not isinstance(exc_info.value, MalformedResponse)

    @pytest.mark.asyncio
    async def test_groq_uses_same_protocol(self):
        handler = Recorder(body=OPENAI_OK)
        provider = GroqProvider("groq", "https://api.groq.com/openai/v1", api_key="gsk",
                                transport=_transport(handler))
        raw = await provider.execute(CompletionRequest(prompt="hi"), "mixtral-8x7b-32768")
        assert raw.content == "hi there"
        assert str(handler.requests[0].url) == (
            "https://api.groq.com/openai/v1/chat/completions"
        )


class TestAnthropicProvider:
    @pytest.mark.asyncio
    async def test_request_and_response(self):
        handler = Recorder(body={
            "content": [{"type": "text", "text": "bonjour"}],
            "usage": {"input_tokens": 20, "output_tokens": 5},
        })
        provider = AnthropicProvider("anthropic", "https://api.anthropic.com",
                                     api_key="ak", transport=_transport(handler))
        raw = await provider.execute(_with_context(), "claude-3-haiku-20240307")

        assert raw.content == "bonjour"
        assert (raw.prompt_tokens, raw.completion_tokens) == (20, 5)

        sent = handler.requests[0]
        assert str(sent.url) == "https://api.anthropic.com/v1/messages"
        assert sent.headers["x-api-key"] == "ak"
        assert sent.headers["anthropic-version"] == "2023-06-01"
        body = handler.sent
        assert body["system"] == "be brief"
        assert [m["role"] for m in body["messages"]] == ["user", "assistant", "user"]
        assert body["max_tokens"] == 64

    @pytest.mark.asyncio
    async def test_no_system_field_without_instruction(self):
        handler = Recorder(body={"content": [{"type": "text", "text": "x"}], "usage": {}})
        provider = AnthropicProvider("anthropic", "https://a", api_key="ak",
                                     transport=_transport(handler))
        await provider.execute(CompletionRequest(prompt="hi"), "claude-3-haiku-20240307")
        assert "system" not in handler.sent

    @pytest.mark.asyncio
    async def test_context_system_turns_join_system_field(self):
        handler = Recorder(body={"content": [{"type": "text", "text": "oui"}], "usage": {}})
        provider = AnthropicProvider("anthropic", "https://a", api_key="ak",
                                     transport=_transport(handler))
        await provider.execute(_with_system_context(), "claude-3-haiku-20240307")
        body = handler.sent
        assert body["system"] == "be brief\n\nAnswer in French"
        assert body["messages"] == [{"role": "user", "content": "hello"}]

    @pytest.mark.asyncio
    async def test_non_text_first_block(self):
        handler = Recorder(body={"content": [{"type": "tool_use", "id": "t"}]})
        provider = AnthropicProvider("anthropic", "https://a", api_key="ak",
                                     transport=_transport(handler))
        raw = await provider.execute(CompletionRequest(prompt="hi"), "m")
        assert raw.content == ""

    @pytest.mark.asyncio
    async def test_missing_content(self):
        provider = AnthropicProvider("anthropic", "https://a", api_key="ak",
                                     transport=_transport(Recorder(body={"usage": {}})))
        with pytest.raises(MalformedResponse):
            await provider.execute(CompletionRequest(prompt="hi"), "m")

    @pytest.mark.asyncio
    async def test_server_error(self):
        provider = AnthropicProvider("anthropic", "https://a", api_key="ak",
                                     transport=_transport(Recorder(status=529, body={})))
        with pytest.raises(BackendTransportError) as exc_info:
            await provider.execute(CompletionRequest(prompt="hi"), "m")
        assert exc_info.value.status_code == 529


class TestOllamaProvider:
    @pytest.mark.asyncio
    async def test_request_and_response(self):
        handler = Recorder(body={
            "message": {"role": "assistant", "content": "local reply"},
            "prompt_eval_count": 40,
            "eval_count": 12,
        })
        provider = OllamaProvider("ollama", "http://localhost:11434",
                                  transport=_transport(handler))
        raw = await provider.execute(_with_context(), "llama2")

        assert raw.content == "local reply"
        # Local usage is never accounted
        assert (raw.prompt_tokens, raw.completion_tokens) == (0, 0)

        assert str(handler.requests[0].url) == "http://localhost:11434/api/chat"
        body = handler.sent
        assert body["stream"] is False
        assert body["options"] == {"temperature": 0.2, "num_predict": 64}
        assert len(body["messages"]) == 4

    @pytest.mark.asyncio
    async def test_missing_message(self):
        provider = OllamaProvider("ollama", "http://localhost:11434",
                                  transport=_transport(Recorder(body={"done": True})))
        with pytest.raises(MalformedResponse):
            await provider.execute(CompletionRequest(prompt="hi"), "llama2")


class TestGeminiProvider:
    def test_contents_conversion(self):
        contents, system = _to_gemini_contents(build_messages(_with_context()))
        assert system == "be brief"
        assert [c["role"] for c in contents] == ["user", "model", "user"]
        assert contents[-1]["parts"] == [{"text": "follow up"}]

    def test_context_system_turns_join_instruction(self):
        contents, system = _to_gemini_contents(build_messages(_with_system_context()))
        assert system == "be brief\n\nAnswer in French"
        assert contents == [{"role": "user", "parts": [{"text": "hello"}]}]

    @pytest.mark.asyncio
    async def test_system_instruction_sent_with_context_turns(self):
        handler = Recorder(body={
            "candidates": [{"content": {"parts": [{"text": "oui"}]}}],
            "usageMetadata": {},
        })
        provider = GeminiProvider("gemini", "https://g", api_key="gk",
                                  transport=_transport(handler))
        await provider.execute(_with_system_context(), "gemini-2.5-flash")
        assert handler.sent["systemInstruction"] == {
            "parts": [{"text": "be brief\n\nAnswer in French"}],
        }

    @pytest.mark.asyncio
    async def test_request_and_response(self):
        handler = Recorder(body={
            "candidates": [{"content": {"parts": [
                {"text": "thinking...", "thought": True},
                {"text": "answer"},
            ]}}],
            "usageMetadata": {"promptTokenCount": 7, "candidatesTokenCount": 2},
        })
        provider = GeminiProvider(
            "gemini", "https://generativelanguage.googleapis.com/v1beta",
            api_key="gk", transport=_transport(handler),
        )
        raw = await provider.execute(_with_context(), "gemini-2.5-flash")

        assert raw.content == "answer"
        assert (raw.prompt_tokens, raw.completion_tokens) == (7, 2)

        sent = handler.requests[0]
        assert sent.url.path == "/v1beta/models/gemini-2.5-flash:generateContent"
        assert sent.url.params["key"] == "gk"
        body = handler.sent
        assert body["systemInstruction"] == {"parts": [{"text": "be brief"}]}
        assert body["generationConfig"]["maxOutputTokens"] == 64

    @pytest.mark.asyncio
    async def test_missing_candidates(self):
        provider = GeminiProvider("gemini", "https://g", api_key="gk",
                                  transport=_transport(Recorder(body={})))
        with pytest.raises(MalformedResponse):
            await provider.execute(CompletionRequest(prompt="hi"), "gemini-2.5-flash")


class TestClientLifecycle:
    @pytest.mark.asyncio
    async def test_close_then_reuse(self):
        handler = Recorder(body=OPENAI_OK)
        provider = OpenAIProvider("openai", "https://x/v1", api_key="k",
                                  transport=_transport(handler))
        await provider.execute(CompletionRequest(prompt="a"), "gpt-4")
        await provider.close()
        await provider.execute(CompletionRequest(prompt="b"), "gpt-4")
        assert len(handler.requests) == 2
        await provider.close()
