"""
AI service: the prompt pipeline behind both the REST endpoint and the chat.

Pipeline: validate -> sanitize -> engineer -> call LLM -> parse -> log.
"""

import logging
import time

import config
from ai.errors import AIError, ValidationError
from ai.llm_client import TokenUsage, call_llm, resolve_model
from ai.metrics import AIMetrics, log_ai_request
from ai.prompts import engineer_prompt
from ai.response_parser import parse_response
from ai.sanitizer import sanitize_prompt

logger = logging.getLogger(__name__)


async def process_prompt(
    prompt: str,
    model: str | None = None,
    code: str | None = None,
    user_id: str | None = None,
    settings: config.Settings | None = None,
) -> dict:
    """Run one prompt through the pipeline.

    Returns {"code", "explanation", "usage"}. Raises an AIError subclass on
    any failure; nothing is partially returned.
    """
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValidationError("Prompt is required and must be a non-empty string")

    settings = settings or config.load_settings()
    model_id = resolve_model(model, settings)
    start = time.monotonic()
    usage = TokenUsage()

    try:
        sanitized = sanitize_prompt(prompt)
        engineered = engineer_prompt(sanitized, code)
        llm_result = await call_llm(engineered, model_id, settings)
        usage = llm_result.usage
        parsed = parse_response(llm_result.content)
    except Exception as e:
        log_ai_request(AIMetrics(
            model=model_id,
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
            latency_ms=int((time.monotonic() - start) * 1000),
            success=False,
            user_id=user_id,
            error=e.message if isinstance(e, AIError) else str(e),
        ))
        raise

    log_ai_request(AIMetrics(
        model=model_id,
        prompt_tokens=usage.prompt_tokens,
        completion_tokens=usage.completion_tokens,
        total_tokens=usage.total_tokens,
        latency_ms=int((time.monotonic() - start) * 1000),
        success=True,
        user_id=user_id,
    ))
    return {
        "code": parsed.code,
        "explanation": parsed.explanation,
        "usage": usage.to_dict(),
    }


async def generate(prompt: str, model: str | None = None, code: str | None = None) -> dict:
    """Chat-facing generation call: returns {"code", "explanation"}."""
    result = await process_prompt(prompt, model=model, code=code)
    return {"code": result["code"], "explanation": result["explanation"]}
