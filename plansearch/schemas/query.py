"""Query classification and routing schema definitions."""

from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from plansearch.schemas.vision import SheetType


class QueryType(str, Enum):
    """What kind of answer a question is after."""
    QUANTITY = "quantity"
    LOCATION = "location"
    SPECIFICATION = "specification"
    DETAIL = "detail"
    REFERENCE = "reference"
    UTILITY_CROSSING = "utility_crossing"
    PROJECT_SUMMARY = "project_summary"
    GENERAL = "general"


class QueryIntent(str, Enum):
    QUANTITATIVE = "quantitative"
    INFORMATIONAL = "informational"
    LOCATIONAL = "locational"


class SearchHints(BaseModel):
    """Hints passed from the classifier to the retrieval strategies."""
    preferred_sheet_types: List[SheetType] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    system_name: Optional[str] = None


class QueryClassification(BaseModel):
    """
    Typed classification of one question.

    `confidence` is a heuristic score from pattern matches, useful for
    ordering only. It is never a calibrated probability.
    """
    type: QueryType = QueryType.GENERAL
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    intent: QueryIntent = QueryIntent.INFORMATIONAL
    original_query: str = ""

    item_name: Optional[str] = None
    station: Optional[str] = None
    stations: List[str] = Field(default_factory=list)
    sheet_number: Optional[str] = None
    size_filter: Optional[str] = None
    material: Optional[str] = None
    detail_number: Optional[str] = None

    needs_direct_lookup: bool = False
    needs_vector_search: bool = True
    needs_vision: bool = False
    needs_complete_data: bool = False
    is_aggregation_query: bool = False

    search_hints: SearchHints = Field(default_factory=SearchHints)

    class Config:
        json_schema_extra = {
            "example": {
                "type": "quantity",
                "confidence": 0.9,
                "intent": "quantitative",
                "original_query": "What is the total length of waterline A?",
                "item_name": "waterline a",
                "needs_direct_lookup": True,
                "needs_complete_data": True,
                "is_aggregation_query": True,
                "search_hints": {"preferred_sheet_types": ["plan", "profile", "summary"]},
            }
        }


class VisualTaskType(str, Enum):
    COUNT_COMPONENTS = "count_components"
    MATERIAL_TAKEOFF = "material_takeoff"
    FIND_CROSSINGS = "find_crossings"
    VERIFY_LENGTH = "verify_length"
    LOCATE_FEATURE = "locate_feature"
    GENERAL_INSPECTION = "general_inspection"


class VisualAnalysisRequest(BaseModel):
    """Parameters for delegating a question to direct page inspection."""
    query: str
    task_type: VisualTaskType
    component_type: Optional[str] = None
    size_filter: Optional[str] = None
    utility_name: Optional[str] = None
    sheet_number: Optional[str] = None


class BoostFactors(BaseModel):
    """Additive adjustments applied on top of base similarity."""
    station_proximity: float = 0.0
    sheet_type_match: float = 0.0
    critical_sheet: float = 0.0
    index_sheet_penalty: float = 0.0

    @property
    def total(self) -> float:
        return self.station_proximity + self.sheet_type_match + self.critical_sheet + self.index_sheet_penalty


class EnhancedSearchResult(BaseModel):
    """A vector hit after domain re-ranking."""
    chunk_id: UUID
    document_id: UUID
    content: str
    page_number: Optional[int] = None
    sheet_number: Optional[str] = None
    sheet_type: Optional[str] = None
    chunk_type: Optional[str] = None
    system_name: Optional[str] = None
    stations: List[str] = Field(default_factory=list)
    is_critical_sheet: bool = False
    vision_data: Optional[Dict[str, Any]] = None

    base_similarity: float
    boost_factors: BoostFactors = Field(default_factory=BoostFactors)
    boosted_score: float


class VectorSearchResponse(BaseModel):
    """Vector search outcome; `error` is set instead of raising."""
    results: List[EnhancedSearchResult] = Field(default_factory=list)
    candidates_considered: int = 0
    error: Optional[str] = None


class DirectLookupResult(BaseModel):
    """Answer assembled from persisted structured records."""
    found: bool = False
    method: Optional[str] = None  # termination_points | quantities | aggregation | project_summary
    answer: Optional[str] = None
    source: Optional[str] = None
    item_name: Optional[str] = None
    quantity: Optional[float] = None
    unit: Optional[str] = None
    confidence: float = 0.0
    sheet_numbers: List[str] = Field(default_factory=list)
    source_flags: List[str] = Field(default_factory=list)
    records: List[Dict[str, Any]] = Field(default_factory=list)
    estimated: bool = False
    error: Optional[str] = None


class Coverage(BaseModel):
    """How much of a system the complete-data retrieval covered."""
    system_variants: List[str] = Field(default_factory=list)
    sheets_matched: int = 0
    chunks_fetched: int = 0
    noise_chunks_filtered: int = 0
    short_chunks_filtered: int = 0
    truncated: bool = False
    used_fallback: bool = False


class CompleteSystemData(BaseModel):
    """Exhaustive, sheet-ordered chunk set for one system."""
    system_name: Optional[str] = None
    chunks: List[Dict[str, Any]] = Field(default_factory=list)
    sheets: List[str] = Field(default_factory=list)
    total_chunks: int = 0
    callout_chunks: int = 0
    coverage: Coverage = Field(default_factory=Coverage)
    error: Optional[str] = None


class RoutingMethod(str, Enum):
    DIRECT_ONLY = "direct_only"
    VECTOR_ONLY = "vector_only"
    HYBRID = "hybrid"
    COMPLETE_DATA = "complete_data"
    VISUAL_ANALYSIS = "visual_analysis"


class RoutingOptions(BaseModel):
    """Per-call router knobs."""
    max_results: Optional[int] = None
    similarity_threshold: Optional[float] = None
    document_id: Optional[UUID] = None
    enable_visual_analysis: bool = True
    enable_complete_data: bool = True


class RoutingMetadata(BaseModel):
    latency_ms: int = 0
    strategies: List[str] = Field(default_factory=list)
    direct_lookup_count: int = 0
    vector_result_count: int = 0
    complete_data_chunks: int = 0
    detected_system: Optional[str] = None
    errors: List[str] = Field(default_factory=list)


class RoutingResult(BaseModel):
    """Everything the answer-generation layer needs for one question."""
    classification: QueryClassification
    method: RoutingMethod
    context: str = ""
    direct_lookup: Optional[DirectLookupResult] = None
    vector_results: List[EnhancedSearchResult] = Field(default_factory=list)
    complete_data: Optional[CompleteSystemData] = None
    visual_analysis: Optional[VisualAnalysisRequest] = None
    metadata: RoutingMetadata = Field(default_factory=RoutingMetadata)
    success: bool = True
