"""
LLM API client.

Models are addressed by OpenRouter ids. ``anthropic/*`` models go straight to
the Anthropic API when ANTHROPIC_API_KEY is configured; everything else goes
through OpenRouter's chat-completions endpoint.
"""

import logging
from dataclasses import dataclass, field

import anthropic
import httpx

import config
from ai import errors

logger = logging.getLogger(__name__)

ALLOWED_MODELS = (
    "google/gemini-2.0-flash-001",
    "anthropic/claude-sonnet-4-5",
)

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
APP_TITLE = "FragCoder"

_ANTHROPIC_PREFIX = "anthropic/"
_ANTHROPIC_MAX_TOKENS = 8192


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> dict:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass(frozen=True)
class LLMResponse:
    content: str
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)


# ---------------------------------------------------------------------------
# Model selection
# ---------------------------------------------------------------------------

def resolve_model(requested: str | None, settings: config.Settings | None = None) -> str:
    """Use the requested model if allowed, otherwise the configured default."""
    settings = settings or config.load_settings()
    if requested and requested in ALLOWED_MODELS:
        return requested
    if requested:
        logger.info("Model %r not allowed, falling back to %s", requested, settings.openrouter_model)
    return settings.openrouter_model


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

async def _call_anthropic(prompt: str, model: str, settings: config.Settings) -> LLMResponse:
    client = anthropic.AsyncAnthropic(
        api_key=settings.anthropic_api_key,
        timeout=settings.request_timeout,
    )
    try:
        resp = await client.messages.create(
            model=model.removeprefix(_ANTHROPIC_PREFIX),
            max_tokens=_ANTHROPIC_MAX_TOKENS,
            messages=[{"role": "user", "content": prompt}],
        )
    except anthropic.AuthenticationError:
        raise errors.LLMError("Invalid Anthropic API key") from None
    except anthropic.APIStatusError as e:
        raise errors.LLMError(f"Anthropic API error: {e.status_code}") from e
    except (anthropic.APIConnectionError, anthropic.APITimeoutError) as e:
        raise errors.LLMError("Could not connect to Anthropic API") from e

    text = "".join(block.text for block in resp.content if block.type == "text")
    usage = TokenUsage(
        prompt_tokens=resp.usage.input_tokens,
        completion_tokens=resp.usage.output_tokens,
        total_tokens=resp.usage.input_tokens + resp.usage.output_tokens,
    )
    return LLMResponse(content=text, model=model, usage=usage)


async def _call_openrouter(
    prompt: str,
    model: str,
    settings: config.Settings,
    client: httpx.AsyncClient | None = None,
) -> LLMResponse:
    if not settings.openrouter_api_key:
        raise errors.LLMError("OPENROUTER_API_KEY environment variable is not set")

    headers = {
        "Authorization": f"Bearer {settings.openrouter_api_key}",
        "Content-Type": "application/json",
        "HTTP-Referer": settings.frontend_url,
        "X-Title": APP_TITLE,
    }
    body = {"model": model, "messages": [{"role": "user", "content": prompt}]}

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=settings.request_timeout)
    try:
        resp = await client.post(OPENROUTER_URL, headers=headers, json=body)
    except httpx.HTTPError as e:
        raise errors.LLMError(f"Could not connect to OpenRouter: {e}") from e
    finally:
        if owns_client:
            await client.aclose()

    if not resp.is_success:
        raise errors.LLMError(f"OpenRouter API error: {resp.status_code}")

    try:
        data = resp.json()
        content = data["choices"][0]["message"]["content"]
    except (ValueError, KeyError, IndexError, TypeError):
        raise errors.LLMError("OpenRouter returned an unexpected payload") from None

    usage = data.get("usage") or {}
    return LLMResponse(
        content=content or "",
        model=model,
        usage=TokenUsage(
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            total_tokens=usage.get("total_tokens", 0),
        ),
    )


async def call_llm(
    prompt: str,
    requested_model: str | None = None,
    settings: config.Settings | None = None,
    client: httpx.AsyncClient | None = None,
) -> LLMResponse:
    """Send an engineered prompt to the selected model."""
    settings = settings or config.load_settings()
    model = resolve_model(requested_model, settings)

    if model.startswith(_ANTHROPIC_PREFIX) and settings.anthropic_api_key:
        logger.debug("Calling Anthropic API with %s", model)
        return await _call_anthropic(prompt, model, settings)

    logger.debug("Calling OpenRouter with %s", model)
    return await _call_openrouter(prompt, model, settings, client)
