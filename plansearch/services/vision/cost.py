"""Vision cost accounting and model approval checks."""

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from plansearch.core.config import EngineConfig

PROMPT_TOKENS_ESTIMATE = 1500
OUTPUT_TOKENS_ESTIMATE = 2000

# (max pixels, image tokens)
IMAGE_TOKEN_TIERS = [
    (200_000, 85),
    (500_000, 170),
    (1_000_000, 340),
    (2_000_000, 680),
]
LARGE_IMAGE_TOKENS = 1360

# (max sheets, target USD per document)
COST_TARGETS = [
    (10, 0.20),
    (50, 1.00),
    (100, 2.00),
]
VERY_LARGE_COST_TARGET = 3.00

APPROVED_MODELS = ("anthropic/claude-haiku-4.5", "anthropic/claude-sonnet-4.5")
REJECTED_MODELS = ("anthropic/claude-opus-4.1",)


@dataclass(frozen=True)
class CostEstimate:
    """
    Pre-flight cost estimate for a batch of sheets.

    Attributes:
        num_sheets: Sheets to analyze
        model: Model the estimate was priced for
        image_tokens: Estimated tokens per image
        input_tokens: Total estimated input tokens
        output_tokens: Total estimated output tokens
        estimated_cost_usd: Total estimated cost
    """

    num_sheets: int
    model: str
    image_tokens: int
    input_tokens: int
    output_tokens: int
    estimated_cost_usd: float


@dataclass(frozen=True)
class ModelApproval:
    approved: bool
    warning: Optional[str] = None


def image_tokens_for(pixels: int) -> int:
    for max_pixels, tokens in IMAGE_TOKEN_TIERS:
        if pixels <= max_pixels:
            return tokens
    return LARGE_IMAGE_TOKENS


def token_cost(input_tokens: int, output_tokens: int, model: str, config: Optional[EngineConfig] = None) -> float:
    """USD cost of one call from its token usage."""
    pricing = (config or EngineConfig()).pricing_for(model)
    return (
        input_tokens / 1_000_000 * pricing.input_per_million
        + output_tokens / 1_000_000 * pricing.output_per_million
    )


def estimate_analysis_cost(
    num_sheets: int,
    width: int = 2048,
    height: int = 2048,
    config: Optional[EngineConfig] = None,
) -> CostEstimate:
    config = config or EngineConfig()
    image_tokens = image_tokens_for(width * height)
    input_tokens = (image_tokens + PROMPT_TOKENS_ESTIMATE) * num_sheets
    output_tokens = OUTPUT_TOKENS_ESTIMATE * num_sheets
    return CostEstimate(
        num_sheets=num_sheets,
        model=config.vision_model,
        image_tokens=image_tokens,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        estimated_cost_usd=token_cost(input_tokens, output_tokens, config.vision_model, config),
    )


def estimate_document_cost(pages: Sequence[Any], config: Optional[EngineConfig] = None) -> float:
    """USD estimate for already rendered pages (anything with ``width`` and ``height``)."""
    config = config or EngineConfig()
    input_tokens = sum(image_tokens_for(page.width * page.height) + PROMPT_TOKENS_ESTIMATE for page in pages)
    output_tokens = OUTPUT_TOKENS_ESTIMATE * len(pages)
    return token_cost(input_tokens, output_tokens, config.vision_model, config)


def cost_target(sheet_count: int) -> float:
    """Budget for processing a document of the given size."""
    for max_sheets, target in COST_TARGETS:
        if sheet_count <= max_sheets:
            return target
    return VERY_LARGE_COST_TARGET


def validate_model_selection(model: str) -> ModelApproval:
    if model in REJECTED_MODELS:
        return ModelApproval(approved=False, warning=f"{model} is too expensive for document processing")
    if model not in APPROVED_MODELS:
        return ModelApproval(approved=True, warning=f"{model} has not been evaluated for plan extraction")
    if "sonnet" in model:
        return ModelApproval(approved=True, warning=f"{model} costs several times the default model")
    return ModelApproval(approved=True)
