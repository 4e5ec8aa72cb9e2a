"""Vision extraction schema definitions.

Models for the page-level structured extraction pipeline:
- Sheet classification and source context enums
- Extracted records (quantities, termination points, utility crossings)
- Per-page extraction result and per-document processing result
"""

from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SheetType(str, Enum):
    """Role of a plan sheet within the drawing set. A scoring hint only."""

    TITLE = "title"
    SUMMARY = "summary"
    PLAN = "plan"
    PROFILE = "profile"
    DETAIL = "detail"
    LEGEND = "legend"
    INDEX = "index"
    UNKNOWN = "unknown"

    @classmethod
    def coerce(cls, value: Any) -> "SheetType":
        """Map free-form labels (``TOC``, ``Plan & Profile``) onto the enum."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        if text in ("toc", "table of contents"):
            return cls.INDEX
        if "profile" in text:
            return cls.PROFILE
        for member in cls:
            if member.value == text:
                return member
        for member in cls:
            if member.value in text:
                return member
        return cls.UNKNOWN


class SourceContext(str, Enum):
    """Where on the sheet a quantity was read. Drawing labels are most trusted."""

    INDEX_LIST = "index_list"
    QUANTITY_TABLE = "quantity_table"
    DRAWING_LABEL = "drawing_label"


SOURCE_CONTEXT_TRUST = {
    SourceContext.DRAWING_LABEL: 3,
    SourceContext.QUANTITY_TABLE: 2,
    SourceContext.INDEX_LIST: 1,
}


class TerminationType(str, Enum):
    BEGIN = "BEGIN"
    END = "END"
    TIE_IN = "TIE_IN"
    TERMINUS = "TERMINUS"


class VisionStatus(str, Enum):
    """Per-document vision processing state."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


def _clamp_confidence(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    return min(1.0, max(0.0, score))


class Quantity(BaseModel):
    """A quantity item read from a sheet."""

    model_config = ConfigDict(frozen=True)

    item_name: str
    quantity: Optional[float] = None
    unit: Optional[str] = None
    size: Optional[str] = None
    description: Optional[str] = None
    sheet_number: Optional[str] = None
    station_from: Optional[str] = None
    station_to: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    source_context: SourceContext = SourceContext.DRAWING_LABEL

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        return _clamp_confidence(v)

    @field_validator("source_context", mode="before")
    @classmethod
    def default_source_context(cls, v: Any) -> Any:
        if v in (None, ""):
            return SourceContext.DRAWING_LABEL
        return v


class TerminationPoint(BaseModel):
    """A BEGIN/END/TIE-IN/TERMINUS label bounding a utility run."""

    model_config = ConfigDict(frozen=True)

    utility_name: str
    termination_type: TerminationType
    station: str
    utility_type: Optional[str] = None
    sheet_reference: Optional[str] = None
    notes: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @field_validator("termination_type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper().replace("-", "_").replace(" ", "_")
        return v

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        return _clamp_confidence(v)


class UtilityCrossing(BaseModel):
    """A different utility system crossing the one drawn on the sheet."""

    model_config = ConfigDict(frozen=True)

    crossing_utility: str
    utility_full_name: Optional[str] = None
    station: Optional[str] = None
    elevation: Optional[float] = None
    sheet_reference: Optional[str] = None
    is_existing: bool = False
    is_proposed: bool = False
    size: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        return _clamp_confidence(v)

    @field_validator("elevation", mode="before")
    @classmethod
    def parse_elevation(cls, v: Any) -> Optional[float]:
        if v in (None, ""):
            return None
        if isinstance(v, str):
            v = v.replace("±", "").strip()
        try:
            return float(v)
        except (TypeError, ValueError):
            return None


class SheetMetadata(BaseModel):
    """Title-block information reported by the vision model."""

    sheet_number: Optional[str] = None
    sheet_title: Optional[str] = None
    sheet_type: SheetType = SheetType.UNKNOWN
    discipline: Optional[str] = None
    revision: Optional[str] = None
    date: Optional[str] = None
    is_index_sheet: bool = False

    @field_validator("sheet_type", mode="before")
    @classmethod
    def coerce_sheet_type(cls, v: Any) -> SheetType:
        return SheetType.coerce(v)


class VisionExtractionResult(BaseModel):
    """Structured output for one analyzed page. Immutable once produced."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "page_number": 7,
                "sheet_type": "profile",
                "sheet_metadata": {"sheet_number": "CU107", "sheet_title": "WATER LINE 'A' PLAN & PROFILE"},
                "quantities": [
                    {
                        "item_name": "GATE VALVE AND VALVE BOX",
                        "quantity": 1,
                        "unit": "EA",
                        "size": "12-IN",
                        "station_from": "13+00",
                        "confidence": 0.9,
                        "source_context": "drawing_label",
                    }
                ],
                "termination_points": [
                    {"utility_name": "WATER LINE 'A'", "termination_type": "BEGIN", "station": "10+00", "confidence": 0.95}
                ],
                "utility_crossings": [
                    {"crossing_utility": "ELEC", "station": "14+20", "elevation": 35.73, "confidence": 0.75}
                ],
                "cost_usd": 0.0123,
            }
        },
    )

    page_number: int
    sheet_type: SheetType = SheetType.UNKNOWN
    sheet_metadata: SheetMetadata = Field(default_factory=SheetMetadata)
    quantities: list[Quantity] = Field(default_factory=list)
    termination_points: list[TerminationPoint] = Field(default_factory=list)
    utility_crossings: list[UtilityCrossing] = Field(default_factory=list)
    stations: list[str] = Field(default_factory=list)
    cost_usd: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    model: Optional[str] = None


class VisionProcessingOptions(BaseModel):
    """Options for processing one document."""

    max_sheets: int = Field(default=200, ge=1)
    process_all_sheets: bool = False
    image_scale: float = Field(default=2.0, ge=1.0, le=3.0)
    extract_quantities: bool = True
    store_vision_data: bool = True
    custom_prompt: Optional[str] = None


class VisionProcessingResult(BaseModel):
    """Aggregate outcome for one document."""

    document_id: Optional[UUID] = None
    success: bool = True
    sheets_processed: int = 0
    quantities_extracted: int = 0
    termination_points_extracted: int = 0
    crossings_extracted: int = 0
    total_cost: float = 0.0
    processing_time_ms: int = 0
    errors: list[str] = Field(default_factory=list)
    status: VisionStatus = VisionStatus.PENDING


class ProcessingStatus(BaseModel):
    """Answer to ``get_processing_status``."""

    document_id: UUID
    processed: bool
    vision_status: VisionStatus
    sheets_with_vision: int = 0
    quantities_extracted: int = 0
    total_cost: float = 0.0
    error: Optional[str] = None


class RenderedPage(BaseModel):
    """Rendered page image."""

    page_number: int
    image_bytes: bytes
    width: int
    height: int
    media_type: str = "image/png"
