"""
Vision model client for plan sheet extraction.

Sends one rendered page plus the extraction prompt to an OpenRouter-compatible
chat-completions endpoint and turns the JSON reply into a
VisionExtractionResult. Retries live in BaseLLMClient; this layer only
translates failures into VisionAnalysisError.
"""

import base64
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from plansearch.core.config import EngineConfig, settings
from plansearch.core.exceptions import APIClientError, ConfigurationError, VisionAnalysisError
from plansearch.core.llm_client import BaseLLMClient
from plansearch.schemas.vision import (
    Quantity,
    RenderedPage,
    SheetMetadata,
    SheetType,
    TerminationPoint,
    UtilityCrossing,
    VisionExtractionResult,
)
from plansearch.services.parsing import station_parser
from plansearch.services.vision.cost import token_cost, validate_model_selection
from plansearch.services.vision.prompts import build_vision_prompt
from plansearch.services.vision.termination_points import infer_utility_type
from plansearch.utils.json_parser import parse_json_safely
from plansearch.utils.logging import get_logger

LOGGER = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _parse_items(items: Any, model: Type[ModelT], label: str) -> List[ModelT]:
    """Validate each item, skipping (and logging) the ones that do not fit."""
    if not isinstance(items, list):
        return []
    parsed: List[ModelT] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            parsed.append(model.model_validate(item))
        except ValidationError as e:
            LOGGER.warning(f"Skipping malformed {label}", extra={"item": str(item)[:200], "error": str(e)[:200]})
    return parsed


def _parse_stations(items: Any) -> List[str]:
    stations: List[str] = []
    for item in items if isinstance(items, list) else []:
        text = item.get("station") if isinstance(item, dict) else item
        normalized = station_parser.normalize(text) if isinstance(text, str) else None
        if normalized and normalized not in stations:
            stations.append(normalized)
    return stations


def build_extraction_result(
    payload: Dict[str, Any],
    page_number: int,
    sheet_type: Optional[SheetType] = None,
) -> VisionExtractionResult:
    """Model JSON reply -> VisionExtractionResult. Unparseable sections become empty lists."""
    metadata_raw = payload.get("sheet_metadata") or {}
    try:
        metadata = SheetMetadata.model_validate(metadata_raw if isinstance(metadata_raw, dict) else {})
    except ValidationError:
        metadata = SheetMetadata()

    if metadata.sheet_type == SheetType.INDEX:
        metadata = metadata.model_copy(update={"is_index_sheet": True})

    terminations = [
        point if point.utility_type else point.model_copy(update={"utility_type": infer_utility_type(point.utility_name)})
        for point in _parse_items(payload.get("termination_points"), TerminationPoint, "termination point")
    ]

    detected_type = metadata.sheet_type if metadata.sheet_type != SheetType.UNKNOWN else None
    return VisionExtractionResult(
        page_number=page_number,
        sheet_type=detected_type or sheet_type or SheetType.UNKNOWN,
        sheet_metadata=metadata,
        quantities=_parse_items(payload.get("quantities"), Quantity, "quantity"),
        termination_points=terminations,
        utility_crossings=_parse_items(payload.get("utility_crossings"), UtilityCrossing, "utility crossing"),
        stations=_parse_stations(payload.get("stations")),
    )


class VisionClient:
    """Analyzes rendered plan sheets with a vision-capable model."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[int] = None,
        max_retries: Optional[int] = None,
    ):
        self.config = config or settings.engine_config()
        self.model = self.config.vision_model
        self.api_key = api_key if api_key is not None else settings.vision.api_key

        approval = validate_model_selection(self.model)
        if not approval.approved:
            raise ConfigurationError(approval.warning or f"Vision model not approved: {self.model}")
        if approval.warning:
            LOGGER.warning(approval.warning)

        self.client = BaseLLMClient(
            api_key=self.api_key,
            base_url=api_url or settings.vision.api_url,
            timeout=timeout or settings.vision.timeout,
            max_retries=max_retries or settings.vision.max_retries,
        )

        LOGGER.info(f"Initialized vision client with model {self.model}")

    @property
    def is_available(self) -> bool:
        return bool(self.api_key)

    def build_payload(
        self,
        page: RenderedPage,
        sheet_type: Optional[SheetType] = None,
        sheet_number: Optional[str] = None,
        custom_prompt: Optional[str] = None,
    ) -> Dict[str, Any]:
        image_b64 = base64.b64encode(page.image_bytes).decode("ascii")
        return {
            "model": self.model,
            "max_tokens": self.config.max_output_tokens,
            "temperature": self.config.temperature,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "image_url", "image_url": {"url": f"data:{page.media_type};base64,{image_b64}"}},
                        {"type": "text", "text": build_vision_prompt(sheet_type, sheet_number, custom_prompt)},
                    ],
                }
            ],
        }

    async def analyze_sheet(
        self,
        page: RenderedPage,
        sheet_type: Optional[SheetType] = None,
        sheet_number: Optional[str] = None,
        custom_prompt: Optional[str] = None,
    ) -> VisionExtractionResult:
        """
        Extract structured data from one rendered sheet.

        Args:
            page: Rendered page image
            sheet_type: Sheet type from text classification, used to tailor the prompt
            sheet_number: Sheet number hint
            custom_prompt: Extra instructions appended to the prompt

        Returns:
            VisionExtractionResult with token usage and cost

        Raises:
            VisionAnalysisError: Call failed or the reply had no content
        """
        payload = self.build_payload(page, sheet_type, sheet_number, custom_prompt)

        try:
            response = await self.client.call_api(endpoint="", method="POST", payload=payload)
        except APIClientError as e:
            raise VisionAnalysisError(f"Vision analysis failed: {e}", e) from e

        choices = response.get("choices") or []
        content = choices[0].get("message", {}).get("content") if choices else None
        if isinstance(content, list):
            content = "".join(part.get("text", "") for part in content if isinstance(part, dict))
        if not content:
            raise VisionAnalysisError(f"Empty vision response for page {page.page_number}")

        usage = response.get("usage") or {}
        input_tokens = int(usage.get("prompt_tokens", 0))
        output_tokens = int(usage.get("completion_tokens", 0))
        cost = token_cost(input_tokens, output_tokens, self.model, self.config)

        parsed = parse_json_safely(content)
        if not isinstance(parsed, dict):
            LOGGER.error("Vision response was not a JSON object", extra={"page_number": page.page_number})
            parsed = {}

        result = build_extraction_result(parsed, page.page_number, sheet_type)

        LOGGER.info(
            "Vision analysis complete",
            extra={
                "page_number": page.page_number,
                "sheet_type": result.sheet_type.value,
                "quantities": len(result.quantities),
                "termination_points": len(result.termination_points),
                "crossings": len(result.utility_crossings),
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "cost_usd": round(cost, 5),
            },
        )

        return result.model_copy(
            update={
                "cost_usd": cost,
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "model": self.model,
            }
        )
