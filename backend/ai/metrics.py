"""Per-request metrics logging for the AI pipeline."""

import logging
from dataclasses import asdict, dataclass

logger = logging.getLogger(__name__)

# USD per 1M tokens: (input, output)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "google/gemini-2.0-flash-001": (0.10, 0.40),
    "anthropic/claude-sonnet-4-5": (3.00, 15.00),
}


@dataclass
class AIMetrics:
    model: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    latency_ms: int
    success: bool
    user_id: str | None = None
    error: str | None = None


def estimate_cost(metrics: AIMetrics) -> float:
    """Estimated USD cost of a request; unknown models cost 0."""
    price_in, price_out = MODEL_PRICING.get(metrics.model, (0.0, 0.0))
    cost = (metrics.prompt_tokens * price_in + metrics.completion_tokens * price_out) / 1_000_000
    return round(cost, 6)


def log_ai_request(metrics: AIMetrics) -> dict:
    """Log one ai_request record and return it."""
    record = {"type": "ai_request", **asdict(metrics), "estimated_cost": estimate_cost(metrics)}
    if metrics.success:
        logger.info("AI request completed %s", record)
    else:
        logger.warning("AI request failed %s", record)
    return record
