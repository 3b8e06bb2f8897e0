"""Tests for conversational task presets."""

import pytest

from llm_switchboard.errors import InvalidRequest
from llm_switchboard.pipeline.presets import PRESETS, apply_preset, get_preset, render_prompt
from llm_switchboard.router.types import CompletionRequest, RequestMetadata, RequestOptions


def _request(command, prompt="some text", **kwargs):
    return CompletionRequest(prompt=prompt, metadata=RequestMetadata(command=command), **kwargs)


class TestPresetTable:
    def test_known_commands(self):
        assert set(PRESETS) == {"ask", "analyze", "generate", "summarize", "translate", "code"}

    @pytest.mark.parametrize("command,temperature,backend", [
        ("ask", 0.7, None),
        ("analyze", 0.3, "anthropic"),
        ("generate", 0.8, "openai"),
        ("summarize", 0.3, "anthropic"),
        ("translate", 0.2, "openai"),
        ("code", 0.1, "openai"),
    ])
    def test_defaults(self, command, temperature, backend):
        preset = PRESETS[command]
        assert preset.temperature == temperature
        assert preset.backend == backend

    def test_lookup_ignores_case(self):
        assert get_preset("Analyze") is PRESETS["analyze"]
        assert get_preset("compare") is None
        assert get_preset(None) is None


class TestRenderPrompt:
    def test_ask_passes_prompt_through(self):
        assert render_prompt(PRESETS["ask"], "what is 2+2?") == "what is 2+2?"

    def test_braces_in_prompt_are_kept(self):
        rendered = render_prompt(PRESETS["code"], "fix {x: 1}")
        assert rendered == "Help with this coding task: fix {x: 1}"

    def test_translate_splits_language(self):
        rendered = render_prompt(PRESETS["translate"], "french  Good morning, all")
        assert rendered == "Translate the following text to french: Good morning, all"

    @pytest.mark.parametrize("prompt", ["german", "german   ", "  "])
    def test_translate_requires_text(self, prompt):
        with pytest.raises(InvalidRequest) as exc_info:
            render_prompt(PRESETS["translate"], prompt)
        assert exc_info.value.error_code == "INVALID_REQUEST"


class TestApplyPreset:
    def test_no_command_is_untouched(self):
        request = CompletionRequest(prompt="hi")
        assert apply_preset(request) == (request, None)

    def test_fills_unset_options(self):
        prepared, preset = apply_preset(_request("generate"))
        assert preset is PRESETS["generate"]
        assert prepared.options.temperature == 0.8
        assert prepared.options.system_prompt == preset.system_prompt
        assert (prepared.backend, prepared.model) == ("openai", "gpt-4")

    def test_request_id_and_user_kept(self):
        request = _request("ask", user_id="u", team_id="t")
        prepared, _ = apply_preset(request)
        assert prepared.id == request.id
        assert (prepared.user_id, prepared.team_id) == ("u", "t")

    def test_explicit_zero_temperature_wins(self):
        prepared, _ = apply_preset(_request("generate", options=RequestOptions(temperature=0.0)))
        assert prepared.options.temperature == 0.0

    def test_summary_cap_respects_smaller_request(self):
        prepared, _ = apply_preset(_request("summarize", options=RequestOptions(max_tokens=100)))
        assert prepared.options.max_tokens == 100
        prepared, _ = apply_preset(_request("summarize", options=RequestOptions(max_tokens=900)))
        assert prepared.options.max_tokens == 500

    def test_preferred_backend_needs_availability(self):
        prepared, _ = apply_preset(_request("analyze"), is_available=lambda name: False)
        assert prepared.is_auto_routed
        assert prepared.model is None

    def test_explicit_backend_kept(self):
        prepared, _ = apply_preset(_request("analyze", backend="groq", model="llama3"))
        assert (prepared.backend, prepared.model) == ("groq", "llama3")
