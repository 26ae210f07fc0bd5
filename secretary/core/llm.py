"""
Group Secretary Bot — LLM Provider Abstraction.

`complete()` routes a prompt to one of several interchangeable providers.
`complete_with_tools()` asks for a structured tool call instead of text.
`generate_image()` produces an image through Gemini.

The process-wide provider comes from LLM_PROVIDER; per-call `provider` and
`model` arguments (from tenant settings) override it.
Supports: gemini, anthropic, openai, cohere.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class AIProviderError(Exception):
    """Raised when a provider call fails or the provider is misconfigured."""


@dataclass(frozen=True)
class ToolSpec:
    """A provider-neutral function declaration (parameters is JSON Schema)."""

    name: str
    description: str
    parameters: dict = field(default_factory=lambda: {"type": "object", "properties": {}})


@dataclass(frozen=True)
class ToolCall:
    name: str
    arguments: dict


# Type alias for provider implementations:
# (api_key, model, system, user_message, max_tokens, temperature) -> text
_ProviderFn = Callable[[str, str, str, str, int, float], Awaitable[str]]

# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------


async def _complete_gemini(
    api_key: str, model: str, system: str, user_message: str, max_tokens: int, temperature: float,
) -> str:
    import google.generativeai as genai

    genai.configure(api_key=api_key)
    gm = genai.GenerativeModel(
        model_name=model,
        system_instruction=system,
    )
    response = await gm.generate_content_async(
        user_message,
        generation_config=genai.types.GenerationConfig(
            max_output_tokens=max_tokens, temperature=temperature,
        ),
    )
    return response.text


async def _complete_anthropic(
    api_key: str, model: str, system: str, user_message: str, max_tokens: int, temperature: float,
) -> str:
    import anthropic

    client = anthropic.AsyncAnthropic(api_key=api_key)
    response = await client.messages.create(
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
        system=system,
        messages=[{"role": "user", "content": user_message}],
    )
    return response.content[0].text


async def _complete_openai(
    api_key: str, model: str, system: str, user_message: str, max_tokens: int, temperature: float,
) -> str:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=api_key)
    response = await client.chat.completions.create(
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user_message},
        ],
    )
    return response.choices[0].message.content or ""


async def _complete_cohere(
    api_key: str, model: str, system: str, user_message: str, max_tokens: int, temperature: float,
) -> str:
    import cohere

    client = cohere.AsyncClientV2(api_key=api_key)
    response = await client.chat(
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user_message},
        ],
    )
    return response.message.content[0].text


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------

_PROVIDERS: dict[str, tuple[_ProviderFn, str]] = {
    "gemini":    (_complete_gemini,    "gemini-2.0-flash"),
    "anthropic": (_complete_anthropic, "claude-sonnet-4-5-20250929"),
    "openai":    (_complete_openai,    "gpt-4o"),
    "cohere":    (_complete_cohere,    "command-a-03-2025"),
}

# Tenant settings may say "claude" for the anthropic provider
_ALIASES = {"claude": "anthropic", "google": "gemini"}


def _resolve(provider: str | None, model: str | None) -> tuple[str, _ProviderFn, str]:
    """Return (provider_name, provider_fn, model) for a call."""
    from secretary.config import settings

    name = (provider or settings.LLM_PROVIDER).lower()
    name = _ALIASES.get(name, name)
    if name not in _PROVIDERS:
        raise AIProviderError(
            f"Unknown LLM provider {name!r}. Supported: {', '.join(_PROVIDERS)}"
        )

    fn, default_model = _PROVIDERS[name]
    if not model and name == _configured_provider():
        model = settings.LLM_MODEL
    return name, fn, model or default_model


def _configured_provider() -> str:
    from secretary.config import settings

    name = settings.LLM_PROVIDER.lower()
    return _ALIASES.get(name, name)


def _api_key_for(provider: str) -> str:
    from secretary.config import settings

    if provider == _configured_provider():
        return settings.LLM_API_KEY
    if provider == "openai" and settings.OPENAI_API_KEY:
        return settings.OPENAI_API_KEY
    if provider == "gemini" and settings.GEMINI_API_KEY:
        return settings.GEMINI_API_KEY
    raise AIProviderError(f"No API key configured for provider {provider!r}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def complete(
    system: str,
    user_message: str,
    max_tokens: int = 256,
    temperature: float = 0.7,
    provider: str | None = None,
    model: str | None = None,
) -> str:
    """Send a prompt to the selected LLM provider and return the response text.

    Raises AIProviderError on any provider failure.
    """
    name, fn, model_name = _resolve(provider, model)
    api_key = _api_key_for(name)
    try:
        text = await fn(api_key, model_name, system, user_message, max_tokens, temperature)
    except Exception as exc:
        logger.error("LLM call failed (%s/%s): %s", name, model_name, exc)
        raise AIProviderError(f"{name} completion failed: {exc}") from exc
    logger.info("LLM %s/%s returned %d chars", name, model_name, len(text or ""))
    return text or ""


async def _tools_openai(
    api_key: str, model: str, system: str, user_message: str,
    tools: list[ToolSpec], force_tool: str | None, max_tokens: int, temperature: float,
) -> ToolCall | None:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=api_key)
    tool_choice: Any = "auto"
    if force_tool:
        tool_choice = {"type": "function", "function": {"name": force_tool}}
    response = await client.chat.completions.create(
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user_message},
        ],
        tools=[
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": t.parameters,
                },
            }
            for t in tools
        ],
        tool_choice=tool_choice,
    )
    calls = response.choices[0].message.tool_calls or []
    if not calls:
        return None
    call = calls[0]
    return ToolCall(name=call.function.name, arguments=json.loads(call.function.arguments or "{}"))


async def _tools_anthropic(
    api_key: str, model: str, system: str, user_message: str,
    tools: list[ToolSpec], force_tool: str | None, max_tokens: int, temperature: float,
) -> ToolCall | None:
    import anthropic

    client = anthropic.AsyncAnthropic(api_key=api_key)
    tool_choice = {"type": "tool", "name": force_tool} if force_tool else {"type": "auto"}
    response = await client.messages.create(
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
        system=system,
        messages=[{"role": "user", "content": user_message}],
        tools=[
            {"name": t.name, "description": t.description, "input_schema": t.parameters}
            for t in tools
        ],
        tool_choice=tool_choice,
    )
    for block in response.content:
        if block.type == "tool_use":
            return ToolCall(name=block.name, arguments=dict(block.input))
    return None


_TOOL_PROVIDERS = {
    "openai": _tools_openai,
    "anthropic": _tools_anthropic,
}


async def complete_with_tools(
    system: str,
    user_message: str,
    tools: list[ToolSpec],
    force_tool: str | None = None,
    max_tokens: int = 500,
    temperature: float = 0.3,
    provider: str | None = None,
    model: str | None = None,
) -> ToolCall | None:
    """Ask the model for a tool call. Returns None when it declines to call one.

    Providers without native tool support fall back to OpenAI when an
    OpenAI key is configured; otherwise None is returned.
    """
    name, _, model_name = _resolve(provider, model)
    if name not in _TOOL_PROVIDERS:
        from secretary.config import settings

        if not settings.OPENAI_API_KEY:
            logger.warning("Tool calling unavailable for provider %s", name)
            return None
        logger.info("Tool calling via OpenAI fallback (provider %s)", name)
        name, model_name = "openai", _PROVIDERS["openai"][1]

    api_key = _api_key_for(name)
    try:
        call = await _TOOL_PROVIDERS[name](
            api_key, model_name, system, user_message, tools, force_tool, max_tokens, temperature,
        )
    except Exception as exc:
        logger.error("Tool call failed (%s/%s): %s", name, model_name, exc)
        raise AIProviderError(f"{name} tool call failed: {exc}") from exc
    logger.info("Tool call from %s/%s: %s", name, model_name, call.name if call else None)
    return call


async def generate_image(
    prompt: str,
    model: str = "gemini-2.5-flash-image",
    reference_image: bytes | None = None,
) -> bytes:
    """Generate an image with Gemini, optionally guided by a reference photo."""
    from google import genai
    from google.genai import types

    from secretary.config import settings

    api_key = settings.GEMINI_API_KEY or (
        settings.LLM_API_KEY if settings.LLM_PROVIDER.lower() == "gemini" else ""
    )
    if not api_key:
        raise AIProviderError("GEMINI_API_KEY is not configured")

    contents: list = []
    if reference_image is not None:
        contents.append(types.Part.from_bytes(data=reference_image, mime_type="image/jpeg"))
    contents.append(prompt)

    try:
        client = genai.Client(api_key=api_key)
        response = await client.aio.models.generate_content(
            model=model,
            contents=contents,
            config=types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"]),
        )
    except Exception as exc:
        logger.error("Image generation failed (%s): %s", model, exc)
        raise AIProviderError(f"Image generation failed: {exc}") from exc

    for candidate in response.candidates or []:
        for part in candidate.content.parts or []:
            if part.inline_data is not None and part.inline_data.data:
                logger.info("Image generated with %s (%d bytes)", model, len(part.inline_data.data))
                return part.inline_data.data
    raise AIProviderError("Image generation returned no image")
