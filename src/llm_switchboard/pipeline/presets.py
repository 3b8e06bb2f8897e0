"""Task presets for conversational commands.

A request whose ``metadata.command`` names a preset is rewritten before it
is dispatched: the prompt is wrapped in the task's template and the task's
system prompt, temperature and preferred backend fill in whatever the
caller left unset. Explicit request options always win.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Callable

from ..errors import InvalidRequest
from ..router.types import CompletionRequest


@dataclass(frozen=True)
class TaskPreset:
    command: str
    template: str
    system_prompt: str
    temperature: float
    backend: str | None = None
    model: str | None = None
    max_tokens: int | None = None
    uses_context: bool = True


PRESETS: dict[str, TaskPreset] = {
    p.command: p for p in (
        TaskPreset(
            command="ask",
            template="{prompt}",
            system_prompt=("You are a helpful AI assistant. Provide clear, accurate, "
                           "and concise responses."),
            temperature=0.7,
        ),
        TaskPreset(
            command="analyze",
            template=("Analyze the following content in detail. Provide insights, "
                      "key points, and actionable recommendations:\n\n{prompt}"),
            system_prompt=("You are an expert analyst. Provide structured, insightful "
                           "analysis with clear recommendations."),
            temperature=0.3,
            backend="anthropic",
            model="claude-3-5-sonnet-20241022",
        ),
        TaskPreset(
            command="generate",
            template="Generate creative content based on this request: {prompt}",
            system_prompt=("You are a creative writing assistant. Generate engaging, "
                           "original content that meets the user's specifications."),
            temperature=0.8,
            backend="openai",
            model="gpt-4",
        ),
        TaskPreset(
            command="summarize",
            template=("Provide a concise summary of the following content, highlighting "
                      "the key points and main takeaways:\n\n{prompt}"),
            system_prompt=("You are an expert at creating clear, concise summaries. "
                           "Focus on the most important information."),
            temperature=0.3,
            backend="anthropic",
            model="claude-3-5-sonnet-20241022",
            max_tokens=500,
        ),
        TaskPreset(
            command="translate",
            template="Translate the following text to {language}: {text}",
            system_prompt=("You are a professional translator. Provide accurate "
                           "translations that preserve meaning and context."),
            temperature=0.2,
            backend="openai",
            model="gpt-4",
            uses_context=False,
        ),
        TaskPreset(
            command="code",
            template="Help with this coding task: {prompt}",
            system_prompt=("You are an expert programmer. Provide clean, well-commented "
                           "code with explanations."),
            temperature=0.1,
            backend="openai",
            model="gpt-4",
        ),
    )
}


def get_preset(command: str | None) -> TaskPreset | None:
    if not command:
        return None
    return PRESETS.get(command.lower())


def render_prompt(preset: TaskPreset, prompt: str) -> str:
    """Wrap the user's prompt in the task template.

    ``translate`` reads the target language from the first word and
    translates the rest.
    """
    if preset.command == "translate":
        language, _, text = prompt.strip().partition(" ")
        text = text.strip()
        if not text:
            raise InvalidRequest(
                "Specify a target language and the text, e.g. 'spanish Hello, how are you?'",
                {"command": preset.command},
            )
        return preset.template.format(language=language, text=text)
    return preset.template.format(prompt=prompt)


def apply_preset(
    request: CompletionRequest,
    is_available: Callable[[str], bool] | None = None,
) -> tuple[CompletionRequest, TaskPreset | None]:
    """Rewrite a request for the task named by its command.

    The preset's backend is only used when the request is auto-routed and
    ``is_available`` (when given) accepts it; otherwise the router picks.
    Requests without a known command are returned unchanged.
    """
    preset = get_preset(request.metadata.command)
    if preset is None:
        return request, None

    opts = request.options
    max_tokens = opts.max_tokens
    if preset.max_tokens is not None:
        max_tokens = min(preset.max_tokens, max_tokens) if max_tokens else preset.max_tokens
    options = dataclasses.replace(
        opts,
        max_tokens=max_tokens,
        temperature=opts.temperature if opts.temperature is not None else preset.temperature,
        system_prompt=opts.system_prompt or preset.system_prompt,
    )

    backend, model = request.backend, request.model
    if request.is_auto_routed and preset.backend is not None:
        if is_available is None or is_available(preset.backend):
            backend, model = preset.backend, request.model or preset.model

    return dataclasses.replace(
        request,
        prompt=render_prompt(preset, request.prompt),
        options=options,
        backend=backend,
        model=model,
    ), preset
