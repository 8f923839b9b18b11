# shared/llm_pricing.py
"""
LLM pricing for recipe-ai.
All costs are calculated server-side only - never accept costs from clients.
"""

import logging
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"

# USD per 1K tokens (input/output)
PRICING_CONFIG = {
    "gpt-4": {"input": 0.03, "output": 0.06},
    "gpt-4o": {"input": 0.005, "output": 0.015},
    "gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
    "gpt-3.5-turbo": {"input": 0.0015, "output": 0.002},
}

SUPPORTED_MODELS = tuple(PRICING_CONFIG)


def get_model_pricing(model_id: str) -> Optional[dict[str, float]]:
    """Return the per-1K rates for a model, or None when it is not priced"""
    return PRICING_CONFIG.get(model_id)


def is_supported_model(model_id: str) -> bool:
    return model_id in PRICING_CONFIG


def calculate_llm_cost(model_id: str, input_tokens: int, output_tokens: int) -> Optional[float]:
    """
    Calculate the cost of a completion in USD.

    Args:
        model_id: Model the completion ran on
        input_tokens: Prompt tokens reported by the provider
        output_tokens: Completion tokens reported by the provider

    Returns:
        Cost rounded to 4 decimals, or None for a model without pricing

    Raises:
        ValueError: If a token count is negative
    """
    if input_tokens < 0 or output_tokens < 0:
        raise ValueError(
            f"Token counts must be non-negative: input={input_tokens}, output={output_tokens}"
        )

    pricing = get_model_pricing(model_id)
    if pricing is None:
        logger.warning(f"⚠️ PRICING: No pricing for model {model_id}, cost unknown")
        return None

    cost = (input_tokens / 1000) * pricing["input"] + (output_tokens / 1000) * pricing["output"]
    return round(cost, 4)
